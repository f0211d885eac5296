"""Shared test fixtures and utilities."""

import json
from unittest.mock import MagicMock


def make_openai_response(text="hello", tool_calls=None):
    """Build a mock OpenAI ChatCompletion response.

    tool_calls is a list of (call_id, name, arguments) tuples; arguments may
    be a dict (serialized to JSON) or a raw string.
    """
    msg = MagicMock()
    msg.content = text
    msg.tool_calls = None
    if tool_calls:
        msg.tool_calls = []
        for call_id, name, arguments in tool_calls:
            tc = MagicMock()
            tc.id = call_id
            tc.function.name = name
            tc.function.arguments = arguments if isinstance(arguments, str) else json.dumps(arguments)
            msg.tool_calls.append(tc)
    choice = MagicMock()
    choice.message = msg
    resp = MagicMock()
    resp.choices = [choice]
    return resp


def make_anthropic_response(text=None, tool_uses=None):
    """Build a mock Anthropic Message with optional text and tool_use blocks.

    tool_uses is a list of (block_id, name, input_dict) tuples.
    """
    blocks = []
    if text is not None:
        block = MagicMock()
        block.type = "text"
        block.text = text
        blocks.append(block)
    for block_id, name, tool_input in tool_uses or []:
        block = MagicMock()
        block.type = "tool_use"
        block.id = block_id
        block.name = name
        block.input = tool_input
        blocks.append(block)
    resp = MagicMock()
    resp.content = blocks
    return resp


def write_intervals(path, items):
    """Write an interval-sequence document for a test."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(items))
    return path
