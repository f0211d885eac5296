"""
Bounded tool-calling loop between an LLM and the local function registry.

The conversation is kept in a provider-neutral list of entries:

    {"role": "user", "content": "..."}
    {"type": "function_call", "call_id": "...", "name": "...", "arguments": "<json>"}
    {"type": "function_call_output", "call_id": "...", "output": "<json>"}

Oracle adapters translate it to the OpenAI-compatible chat format (Ollama,
OpenAI) or to Anthropic messages, and translate the model's reply back into
an OracleResponse.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from retake_trim.shared import (
    tprint as print,
    TrimConfig, ToolError,
    create_llm_client, llm_call_with_retry,
)


class LoopState(str, Enum):
    AWAITING_ORACLE = "awaiting_oracle"
    EXECUTING_TOOLS = "executing_tools"
    DONE_NO_CALLS = "done_no_calls"
    DONE_MAX_ITER = "done_max_iter"


@dataclass
class ToolCall:
    call_id: str
    name: str
    arguments: str  # raw JSON text as produced by the model


@dataclass
class OracleResponse:
    text: str = ""
    calls: list[ToolCall] = field(default_factory=list)


@dataclass
class ToolLoopResult:
    state: LoopState
    iterations: int
    text: str
    conversation: list
    tool_outputs: list = field(default_factory=list)  # [{call_id, name, result}]


def _execute_call(registry, call: ToolCall) -> dict:
    """Run one tool call; any failure becomes a {success: False, error} result."""
    try:
        args = json.loads(call.arguments) if call.arguments else {}
        return registry.execute(call.name, args)
    except json.JSONDecodeError as e:
        return {"success": False, "error": f"Invalid JSON arguments: {e}"}
    except ToolError as e:
        return {"success": False, "error": str(e)}
    except Exception as e:
        return {"success": False, "error": f"{type(e).__name__}: {e}"}


def run_with_tools(oracle, registry, messages: list, tools: list,
                   max_iterations: int = 5,
                   instructions: Optional[str] = None) -> ToolLoopResult:
    """Call the oracle until it stops requesting tools or the ceiling is hit.

    Each round sends the whole conversation; every requested call is executed
    against the registry and its call and output entries are appended in
    request order. Reaching max_iterations with calls still pending ends the
    loop in DONE_MAX_ITER with a warning.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")

    conversation = list(messages)
    tool_outputs = []
    iteration = 0

    while True:
        iteration += 1
        print(f"  [Iteration {iteration}] Calling LLM...")
        response = oracle.decide(conversation, tools, instructions)

        if not response.calls:
            print(f"  [Complete] No more function calls needed ({iteration} iteration(s))")
            return ToolLoopResult(LoopState.DONE_NO_CALLS, iteration, response.text,
                                  conversation, tool_outputs)

        for call in response.calls:
            print(f"  [Tool Call] {call.name} with args: {call.arguments}")
            result = _execute_call(registry, call)
            if result.get("success") is False:
                print(f"  [Tool Error] {call.name}: {result.get('error')}")
            conversation.append({
                "type": "function_call",
                "call_id": call.call_id,
                "name": call.name,
                "arguments": call.arguments,
            })
            conversation.append({
                "type": "function_call_output",
                "call_id": call.call_id,
                "output": json.dumps(result),
            })
            tool_outputs.append({"call_id": call.call_id, "name": call.name, "result": result})

        if iteration >= max_iterations:
            print(f"  Warning: Reached max iterations ({max_iterations})")
            return ToolLoopResult(LoopState.DONE_MAX_ITER, iteration, response.text,
                                  conversation, tool_outputs)


# ---------------------------------------------------------------------------
# Oracle adapters
# ---------------------------------------------------------------------------

def _group_entries(conversation: list):
    """Yield (kind, entries) runs of consecutive calls / outputs / plain messages."""
    run_kind, run = None, []
    for entry in conversation:
        kind = entry.get("type", "message")
        if kind != run_kind or kind == "message":
            if run:
                yield run_kind, run
            run_kind, run = kind, []
        run.append(entry)
    if run:
        yield run_kind, run


class OpenAIChatOracle:
    """Decision oracle over an OpenAI-compatible chat.completions endpoint."""

    def __init__(self, client, config: TrimConfig, model: Optional[str] = None):
        self.client = client
        self.config = config
        self.model = model or config.local_model

    @staticmethod
    def to_messages(conversation: list, instructions: Optional[str] = None) -> list:
        messages = []
        if instructions:
            messages.append({"role": "system", "content": instructions})
        for kind, entries in _group_entries(conversation):
            if kind == "function_call":
                messages.append({
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [{
                        "id": e["call_id"],
                        "type": "function",
                        "function": {"name": e["name"], "arguments": e["arguments"]},
                    } for e in entries],
                })
            elif kind == "function_call_output":
                for e in entries:
                    messages.append({"role": "tool", "tool_call_id": e["call_id"],
                                     "content": e["output"]})
            else:
                messages.extend({"role": e["role"], "content": e["content"]} for e in entries)
        return messages

    def decide(self, conversation: list, tools: list,
               instructions: Optional[str] = None) -> OracleResponse:
        response = llm_call_with_retry(
            self.client, self.config,
            model=self.model,
            messages=self.to_messages(conversation, instructions),
            tools=[{"type": "function", "function": t} for t in tools],
        )
        message = response.choices[0].message
        calls = [
            ToolCall(call_id=tc.id, name=tc.function.name,
                     arguments=tc.function.arguments or "")
            for tc in (message.tool_calls or [])
        ]
        return OracleResponse(text=message.content or "", calls=calls)


class AnthropicOracle:
    """Decision oracle over the Anthropic messages API with tool use."""

    def __init__(self, client, config: TrimConfig, model: Optional[str] = None):
        self.client = client
        self.config = config
        self.model = model or config.claude_model

    @staticmethod
    def to_messages(conversation: list) -> list:
        messages = []
        for kind, entries in _group_entries(conversation):
            if kind == "function_call":
                blocks = []
                for e in entries:
                    try:
                        tool_input = json.loads(e["arguments"]) if e["arguments"] else {}
                    except json.JSONDecodeError:
                        tool_input = {}
                    blocks.append({"type": "tool_use", "id": e["call_id"],
                                   "name": e["name"], "input": tool_input})
                messages.append({"role": "assistant", "content": blocks})
            elif kind == "function_call_output":
                messages.append({"role": "user", "content": [
                    {"type": "tool_result", "tool_use_id": e["call_id"], "content": e["output"]}
                    for e in entries
                ]})
            else:
                messages.extend({"role": e["role"], "content": e["content"]} for e in entries)
        return messages

    def decide(self, conversation: list, tools: list,
               instructions: Optional[str] = None) -> OracleResponse:
        kwargs = {
            "model": self.model,
            "messages": self.to_messages(conversation),
            "tools": [{"name": t["name"], "description": t["description"],
                       "input_schema": t["parameters"]} for t in tools],
        }
        if instructions:
            kwargs["system"] = instructions
        response = llm_call_with_retry(self.client, self.config, **kwargs)

        texts, calls = [], []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(call_id=block.id, name=block.name,
                                      arguments=json.dumps(block.input)))
        return OracleResponse(text="\n".join(texts), calls=calls)


def create_oracle(config: TrimConfig):
    """Build the decision oracle for the configured LLM backend."""
    client = create_llm_client(config)
    if config.local:
        return OpenAIChatOracle(client, config)
    return AnthropicOracle(client, config)
