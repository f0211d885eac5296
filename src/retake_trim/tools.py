"""
Function registry for LLM tool calling.

Each tool has a name, a JSON-schema definition sent to the model, a typed
argument class, and a handler. Handlers receive validated arguments and return
a JSON-serializable dict.
"""

import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from retake_trim.intervals import delete_by_ids
from retake_trim.shared import ToolError


class ToolName(str, Enum):
    DELETE_BY_IDS = "delete_by_ids"
    IDENTIFY_REDUNDANT_SEGMENTS = "identify_redundant_segments"


def _int_list(args: dict, key: str) -> list[int]:
    value = args.get(key)
    if not isinstance(value, list):
        raise ToolError(f"'{key}' must be an array of integers")
    ids = []
    for item in value:
        # JSON numbers may arrive as floats (e.g. 3.0)
        if isinstance(item, bool) or not isinstance(item, (int, float)) \
                or not math.isfinite(item) or item != int(item):
            raise ToolError(f"'{key}' must be an array of integers, got {item!r}")
        ids.append(int(item))
    return ids


def _string(args: dict, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolError(f"'{key}' must be a string")
    return value


@dataclass
class DeleteByIdsArgs:
    file_name: str
    ids_to_delete: list[int]

    @classmethod
    def parse(cls, args: dict) -> "DeleteByIdsArgs":
        return cls(file_name=_string(args, "fileName"),
                   ids_to_delete=_int_list(args, "idsToDelete"))


@dataclass
class IdentifyRedundantArgs:
    ids_to_delete: list[int]
    reason: str

    @classmethod
    def parse(cls, args: dict) -> "IdentifyRedundantArgs":
        return cls(ids_to_delete=_int_list(args, "idsToDelete"),
                   reason=_string(args, "reason"))


# Tool definitions in the JSON-schema form the model sees
TOOL_DEFINITIONS = {
    ToolName.DELETE_BY_IDS: {
        "name": ToolName.DELETE_BY_IDS.value,
        "description": (
            "Delete transcription segments from a JSON file based on their ID "
            "numbers. Use this when you need to remove specific segments from "
            "a transcription."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "fileName": {
                    "type": "string",
                    "description": "The name of the JSON file (e.g., 'test1_pauses_trimmed.json')",
                },
                "idsToDelete": {
                    "type": "array",
                    "items": {"type": "number"},
                    "description": "Array of ID numbers to delete from the file",
                },
            },
            "required": ["fileName", "idsToDelete"],
        },
    },
    ToolName.IDENTIFY_REDUNDANT_SEGMENTS: {
        "name": ToolName.IDENTIFY_REDUNDANT_SEGMENTS.value,
        "description": (
            "Identify which segment IDs should be deleted because they are "
            "redundant or inferior takes. This does NOT delete them, only "
            "returns the list of IDs that should be removed."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "idsToDelete": {
                    "type": "array",
                    "items": {"type": "number"},
                    "description": "Array of segment ID numbers that should be deleted",
                },
                "reason": {
                    "type": "string",
                    "description": "Brief explanation of why these segments should be deleted",
                },
            },
            "required": ["idsToDelete", "reason"],
        },
    },
}


def get_tools(*names: ToolName) -> list[dict]:
    """Tool definitions for the given names (all tools when none given)."""
    selected = names or tuple(ToolName)
    return [TOOL_DEFINITIONS[name] for name in selected]


class FunctionRegistry:
    """Maps tool names to handlers.

    delete_by_ids operates on interval documents inside `directory`.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._handlers: dict[ToolName, tuple[Callable, Callable]] = {
            ToolName.DELETE_BY_IDS: (DeleteByIdsArgs.parse, self._delete_by_ids),
            ToolName.IDENTIFY_REDUNDANT_SEGMENTS: (IdentifyRedundantArgs.parse,
                                                   self._identify_redundant_segments),
        }

    def execute(self, name: str, args: dict) -> dict:
        """Run the named tool. Raises ToolError for unknown names or bad arguments."""
        try:
            tool = ToolName(name)
        except ValueError:
            raise ToolError(f"Function '{name}' not found in registry")
        if not isinstance(args, dict):
            raise ToolError(f"Arguments for '{name}' must be a JSON object")
        parse, handler = self._handlers[tool]
        return handler(parse(args))

    def _delete_by_ids(self, args: DeleteByIdsArgs) -> dict:
        # Only bare file names; the model must not reach outside the directory
        if Path(args.file_name).name != args.file_name:
            raise ToolError(f"Invalid file name: {args.file_name}")
        path = self.directory / args.file_name
        if not path.exists():
            raise ToolError(f"File not found: {args.file_name}")
        deleted, remaining = delete_by_ids(path, args.ids_to_delete)
        return {
            "success": True,
            "deletedCount": len(deleted),
            "remainingCount": len(remaining),
            "deletedIds": [iv.id for iv in deleted],
        }

    def _identify_redundant_segments(self, args: IdentifyRedundantArgs) -> dict:
        # Echo only: the caller decides what to do with the ids
        return {
            "success": True,
            "idsToDelete": args.ids_to_delete,
            "reason": args.reason,
            "count": len(args.ids_to_delete),
        }
