"""
Merge logic for combining diarization spans with transcript spans.

The diarizer and the transcriber segment the same recording differently, so
speaker spans are matched to transcript spans by temporal overlap rather than
by boundaries. Each transcript span becomes one speaker-attributed interval.
"""

from collections import defaultdict
from typing import Sequence, Union

from retake_trim.intervals import Interval
from retake_trim.shared import UNKNOWN_SPEAKER

Span = Union[Interval, dict]


def _span_fields(span: Span) -> tuple:
    """Return (start, end, text, speaker) for an Interval or a service dict."""
    if isinstance(span, Interval):
        return span.start, span.end, span.text, span.speaker
    return (float(span["start"]), float(span["end"]),
            span.get("text") or "", span.get("speaker"))


def _overlap(a_start: float, a_end: float, b_start: float, b_end: float) -> float:
    """Length of the intersection of two time ranges (0 when disjoint)."""
    return max(0.0, min(a_end, b_end) - max(a_start, b_start))


def _best_transcript_index(start: float, end: float, transcripts: list) -> int:
    """Index of the transcript span overlapping [start, end] the most.

    Ties keep the lowest index; returns -1 when nothing overlaps.
    """
    best_index = -1
    max_overlap = 0.0
    for j, (t_start, t_end, _, _) in enumerate(transcripts):
        overlap = _overlap(start, end, t_start, t_end)
        if overlap > max_overlap:
            max_overlap = overlap
            best_index = j
    return best_index


def _fix_overlaps(intervals: list[Interval]) -> list[Interval]:
    """Sort by start and clamp each interval's end to the next one's start."""
    intervals.sort(key=lambda iv: iv.start)
    for prev, current in zip(intervals, intervals[1:]):
        if current.start < prev.end:
            prev.end = current.start
    return intervals


def align(speaker_spans: Sequence[Span], transcript_spans: Sequence[Span]) -> list[Interval]:
    """Merge speaker-only spans and text-only spans into speaker-attributed intervals.

    Every speaker span is assigned to the transcript span it overlaps most.
    Each transcript span then yields one interval covering the earliest start
    and latest end of its assigned speaker spans, labeled with the first
    assigned span's speaker. Transcript spans with no assigned speaker keep
    their own timing and get UNKNOWN_SPEAKER. The result is sorted by start
    and made non-overlapping by clamping.

    Inputs are not modified.
    """
    transcripts = [_span_fields(t) for t in transcript_spans]
    groups = defaultdict(list)

    for span in speaker_spans:
        start, end, _, speaker = _span_fields(span)
        index = _best_transcript_index(start, end, transcripts)
        if index >= 0:
            groups[index].append((start, end, speaker))

    merged = []
    for i, (t_start, t_end, text, _) in enumerate(transcripts):
        group = groups.get(i)
        if group:
            merged.append(Interval(
                start=min(s for s, _, _ in group),
                end=max(e for _, e, _ in group),
                text=text.strip(),
                speaker=group[0][2] or UNKNOWN_SPEAKER,
            ))
        else:
            merged.append(Interval(
                start=t_start,
                end=t_end,
                text=text.strip(),
                speaker=UNKNOWN_SPEAKER,
            ))

    return _fix_overlaps(merged)
