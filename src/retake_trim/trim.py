"""
Pause trimming stage.

Cuts silences longer than the pause threshold out of each raw video and
rewrites its diarized transcript onto the trimmed timeline.
"""

from pathlib import Path
from typing import Optional

from retake_trim.intervals import Range, assign_ids, load_intervals, save_intervals
from retake_trim.media import cut_ranges
from retake_trim.shared import (
    tprint as print,
    TrimConfig, MissingArtifactError,
    STAGE_DIARIZED, STAGE_PAUSES_TRIMMED, STAGE_TRIMMED,
    stage_path, video_stage_path, _dry_run_skip, _print_reusing,
)
from retake_trim.timeline import (
    find_keep_ranges, coalesce_ranges, remap_intervals, total_duration,
)


def plan_pause_cuts(config: TrimConfig, intervals) -> list[Range]:
    """Disjoint keep ranges for a diarized transcript."""
    ranges = find_keep_ranges(intervals, config.pause_threshold_seconds,
                              config.cushion_seconds)
    return coalesce_ranges(ranges)


def trim_pauses(config: TrimConfig, video_path: Path) -> Optional[Path]:
    """Cut long pauses out of one video and save the remapped transcript.

    The stage is complete only when both the trimmed video and
    <base>_pauses_trimmed.json exist; a missing one is rebuilt from the
    diarized transcript while the other is reused.
    Returns the trimmed video path, or None when the stage was skipped.
    Raises MissingArtifactError when the diarized transcript is absent.
    """
    base_name = video_path.stem
    diarized_path = stage_path(config, base_name, STAGE_DIARIZED)
    output_path = video_stage_path(config, base_name, STAGE_TRIMMED, video_path.suffix)
    remapped_path = stage_path(config, base_name, STAGE_PAUSES_TRIMMED)

    video_done = config.skip_existing and output_path.exists()
    transcript_done = config.skip_existing and remapped_path.exists()
    if video_done and transcript_done:
        _print_reusing(output_path.name)
        _print_reusing(remapped_path.name)
        return None

    if _dry_run_skip(config, "trim pauses", output_path.name):
        return None

    if not diarized_path.exists():
        raise MissingArtifactError(f"No diarization data found for {video_path.name}")

    print(f"  Processing {video_path.name}...")
    intervals = load_intervals(diarized_path)
    if not intervals:
        raise MissingArtifactError(f"Diarization for {video_path.name} has no segments")

    ranges = plan_pause_cuts(config, intervals)
    print(f"  Found {len(ranges)} segment(s) to keep "
          f"(removing {config.pause_threshold_seconds}s+ pauses, "
          f"{total_duration(ranges):.1f}s kept)")

    if video_done:
        _print_reusing(output_path.name)
    else:
        config.processing_dir.mkdir(parents=True, exist_ok=True)
        cut_ranges(video_path, ranges, output_path, verbose=config.verbose)
        print(f"  Trimmed {video_path.name} → {output_path.name}")

    if transcript_done:
        _print_reusing(remapped_path.name)
    else:
        remapped = assign_ids(remap_intervals(intervals, ranges))
        save_intervals(remapped_path, remapped)
        print(f"  Saved updated transcription → {remapped_path.name} ({len(remapped)} segments)")

    return output_path
