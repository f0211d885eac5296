"""
Timeline arithmetic for cutting dead air and retakes out of a recording.

- find_keep_ranges: group speech into keep ranges split on long pauses
- pad_ranges / coalesce_ranges: turn padded spans into disjoint cut ranges
- remap_intervals: move intervals onto the timeline of the cut media

All functions are pure; inputs are never modified.
"""

from typing import Sequence

from retake_trim.intervals import Interval, Range


# ---------------------------------------------------------------------------
# Pause segmentation
# ---------------------------------------------------------------------------

def find_keep_ranges(intervals: Sequence[Interval], threshold: float,
                     cushion: float) -> list[Range]:
    """Group chronologically sorted intervals into keep ranges.

    A gap between consecutive intervals longer than `threshold` seconds ends
    the current range at the last interval's end + cushion and opens a new
    one at the next interval's start - cushion (never below 0). Shorter gaps
    are absorbed into the current range.
    """
    if not intervals:
        return []

    ranges = []
    current_start = max(0.0, intervals[0].start - cushion)

    for current, following in zip(intervals, intervals[1:]):
        pause = following.start - current.end
        if pause > threshold:
            ranges.append(Range(current_start, current.end + cushion))
            current_start = max(0.0, following.start - cushion)

    ranges.append(Range(current_start, intervals[-1].end + cushion))
    return ranges


# ---------------------------------------------------------------------------
# Range coalescing
# ---------------------------------------------------------------------------

def pad_ranges(intervals: Sequence[Interval], cushion: float) -> list[Range]:
    """One range per interval, widened by the cushion on both sides (clamped at 0)."""
    return [Range(max(0.0, iv.start - cushion), iv.end + cushion) for iv in intervals]


def coalesce_ranges(ranges: Sequence[Range]) -> list[Range]:
    """Merge overlapping or touching ranges into a minimal disjoint, sorted set."""
    merged: list[Range] = []
    for candidate in sorted(ranges, key=lambda r: r.start):
        if merged and candidate.start <= merged[-1].end:
            merged[-1].end = max(merged[-1].end, candidate.end)
        else:
            merged.append(Range(candidate.start, candidate.end))
    return merged


def total_duration(ranges: Sequence[Range]) -> float:
    """Sum of range durations."""
    return sum(r.duration for r in ranges)


# ---------------------------------------------------------------------------
# Remapping
# ---------------------------------------------------------------------------

def remap_intervals(intervals: Sequence[Interval],
                    kept_ranges: Sequence[Range]) -> list[Interval]:
    """Rewrite interval times relative to media made of the kept ranges back to back.

    Only intervals lying entirely inside a kept range survive; an interval
    straddling a range boundary is dropped, not clipped. The result is a new
    sequence without ids.
    """
    remapped = []
    cumulative = 0.0

    for kept in kept_ranges:
        for iv in intervals:
            if iv.start >= kept.start and iv.end <= kept.end:
                remapped.append(Interval(
                    start=cumulative + (iv.start - kept.start),
                    end=cumulative + (iv.end - kept.start),
                    text=iv.text,
                    speaker=iv.speaker,
                ))
        cumulative += kept.end - kept.start

    return remapped
