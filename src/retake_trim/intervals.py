"""
Interval and Range value types and the interval-sequence document.

An interval sequence is persisted as a JSON array of
{id?, start, end, text, speaker} objects at every stage boundary.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Optional

from retake_trim.shared import (
    tprint as print,
    UNKNOWN_SPEAKER, _save_json, _load_json,
)


@dataclass
class Interval:
    """A closed time range in seconds with its spoken text and speaker."""
    start: float
    end: float
    text: str = ""
    speaker: str = UNKNOWN_SPEAKER
    id: Optional[int] = None

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Interval start {self.start} is after end {self.end}")

    @property
    def duration(self) -> float:
        return self.end - self.start

    @classmethod
    def from_dict(cls, item: dict) -> "Interval":
        return cls(
            start=float(item["start"]),
            end=float(item["end"]),
            text=item.get("text") or "",
            speaker=item.get("speaker") or UNKNOWN_SPEAKER,
            id=item.get("id"),
        )

    def to_dict(self) -> dict:
        payload = {}
        if self.id is not None:
            payload["id"] = self.id
        payload.update({
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "speaker": self.speaker,
        })
        return payload


@dataclass
class Range:
    """A keep-window in the original timeline."""
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


def assign_ids(intervals: Iterable[Interval], start_id: int = 1) -> list[Interval]:
    """Return copies of the intervals numbered sequentially in order of appearance."""
    return [replace(iv, id=start_id + i) for i, iv in enumerate(intervals)]


def load_intervals(path: Path) -> list[Interval]:
    """Load an interval-sequence document."""
    return [Interval.from_dict(item) for item in _load_json(path)]


def save_intervals(path: Path, intervals: Iterable[Interval]) -> None:
    """Write an interval-sequence document (full-file replace)."""
    _save_json(path, [iv.to_dict() for iv in intervals])


def delete_by_ids(path: Path, ids_to_delete: Iterable[int]) -> tuple[list[Interval], list[Interval]]:
    """Remove intervals with the given ids from a document on disk.

    Returns (deleted, remaining).
    """
    doomed = set(ids_to_delete)
    intervals = load_intervals(path)
    remaining = [iv for iv in intervals if iv.id not in doomed]
    deleted = [iv for iv in intervals if iv.id in doomed]

    save_intervals(path, remaining)

    print(f"  Deleted {len(deleted)} item(s) from {Path(path).name}")
    print(f"  Remaining items: {len(remaining)}")
    return deleted, remaining
