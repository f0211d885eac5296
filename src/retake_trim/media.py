"""
ffmpeg wrappers for the cutting stages.

Keep ranges are extracted with a re-encode (libx264/aac) so cuts land on
exact timestamps, then joined with the concat demuxer. Every output is
written to a .partial sibling and moved into place only once ffmpeg
succeeds, so an existing output always means a finished one.
"""

import os
from pathlib import Path
from typing import Sequence

from retake_trim.intervals import Range
from retake_trim.shared import (
    tprint as print,
    run_command,
)


def _partial_path(output_path: Path) -> Path:
    # Keep the real extension last; ffmpeg picks the muxer from it
    return output_path.with_name(f"{output_path.stem}.partial{output_path.suffix}")


def _run_ffmpeg(args: list[str], output_path: Path, description: str,
                verbose: bool = False) -> Path:
    """Run `ffmpeg -y <args> <partial>` and move the result to output_path."""
    partial = _partial_path(output_path)
    try:
        run_command(["ffmpeg", "-y", *args, str(partial)], description, verbose)
        os.replace(partial, output_path)
    finally:
        partial.unlink(missing_ok=True)
    return output_path


def extract_audio(video_path: Path, output_path: Path, verbose: bool = False) -> Path:
    """Extract the audio track of a video as MP3."""
    return _run_ffmpeg(
        ["-i", str(video_path), "-vn", "-acodec", "libmp3lame", "-q:a", "2"],
        output_path,
        f"extracting audio from {video_path.name}",
        verbose,
    )


def extract_range(source: Path, start: float, duration: float, output_path: Path,
                  verbose: bool = False) -> Path:
    """Copy [start, start + duration) of the source into a new file."""
    return _run_ffmpeg(
        ["-i", str(source), "-ss", f"{start:.3f}", "-t", f"{duration:.3f}",
         "-c:v", "libx264", "-c:a", "aac"],
        output_path,
        f"extracting {duration:.2f}s at {start:.2f}s from {source.name}",
        verbose,
    )


def concatenate(parts: Sequence[Path], output_path: Path, verbose: bool = False) -> Path:
    """Join media files in order with the ffmpeg concat demuxer."""
    list_path = output_path.with_name(f"{output_path.stem}_concat.txt")
    with open(list_path, 'w') as f:
        for part in parts:
            f.write(f"file '{Path(part).name}'\n")
    try:
        return _run_ffmpeg(
            ["-f", "concat", "-safe", "0", "-i", str(list_path),
             "-c:v", "libx264", "-c:a", "aac"],
            output_path,
            f"concatenating {len(parts)} segment(s)",
            verbose,
        )
    finally:
        list_path.unlink(missing_ok=True)


def cut_ranges(source: Path, ranges: Sequence[Range], output_path: Path,
               verbose: bool = False) -> Path:
    """Produce output_path holding only the given ranges of source, in order.

    A single range is extracted directly; several are extracted to temporary
    segment files next to the output and concatenated.
    """
    if not ranges:
        raise ValueError(f"No ranges to cut from {source.name}")

    if len(ranges) == 1:
        only = ranges[0]
        return extract_range(source, only.start, only.duration, output_path, verbose)

    parts = []
    try:
        for i, r in enumerate(ranges):
            part = output_path.with_name(f"{output_path.stem}_segment_{i}{output_path.suffix}")
            extract_range(source, r.start, r.duration, part, verbose)
            parts.append(part)
            print(f"    Extracted segment {i + 1}/{len(ranges)}", end="\r")
        print()
        return concatenate(parts, output_path, verbose)
    finally:
        for part in parts:
            part.unlink(missing_ok=True)
