"""
Redundant-take removal for pause-trimmed transcripts.

Segments are sent to the LLM in batches; for each batch the model reports
which segment ids are inferior retakes via the identify_redundant_segments
tool. The ids from all batches are merged, the surviving segments are saved
as <base>_cleaned.json, and the trimmed video is cut down to match.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from retake_trim.intervals import Interval, load_intervals, save_intervals
from retake_trim.media import cut_ranges
from retake_trim.shared import (
    tprint as print,
    TrimConfig, MissingArtifactError,
    STAGE_PAUSES_TRIMMED, STAGE_CLEANED, STAGE_TRIMMED,
    stage_path, video_stage_path, find_stage_video, _should_skip,
)
from retake_trim.timeline import pad_ranges, coalesce_ranges
from retake_trim.tool_loop import run_with_tools, create_oracle
from retake_trim.tools import FunctionRegistry, ToolName, get_tools

SECTION_SEPARATOR = "=" * 60

CLEANING_INSTRUCTIONS = (
    "You are an expert at analyzing speech patterns and identifying redundant "
    "takes in video transcriptions. Be thorough but conservative in your deletions."
)


@dataclass
class CleanResult:
    """Summary of cleaning one transcript."""
    file_name: str
    cleaned_file_name: str = ""
    skipped: bool = False
    reason: str = ""
    original_count: int = 0
    deleted_ids: list = field(default_factory=list)
    remaining_count: int = 0
    video_path: Optional[Path] = None
    error: Optional[str] = None

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_ids)


def build_cleaning_prompt(segments: list[Interval], file_name: str,
                          batch_number: int, total_batches: int) -> str:
    """Prompt asking the model to flag redundant or botched takes in one batch."""
    segments_json = json.dumps([s.to_dict() for s in segments], indent=2)
    return f"""You are analyzing a video transcription to identify and remove redundant or poorly executed speech segments where the speaker repeated themselves to get a better take.

FILE: {file_name}
BATCH: {batch_number} of {total_batches}

SEGMENTS TO ANALYZE:
{segments_json}

YOUR TASK:
Identify segments that should be DELETED because they are:
1. Repetitive attempts at saying the same thing (where the speaker is trying to get a better take)
2. False starts or incomplete thoughts that were immediately re-recorded
3. Verbal mistakes followed by corrections (e.g., "and, sorry, let me say that again")
4. Segments that repeat similar content already covered in previous segments

RULES:
1. If the same idea or phrase appears in multiple segments, DELETE all but the best version
2. When multiple takes exist, KEEP ONLY the one with the most complete information
3. If the speaker says "sorry, let me say that again" or similar, DELETE that segment and any redundant attempts
4. The remaining segments must flow naturally in chronological order without repetition
5. If a segment trails off incompletely and is then re-stated, DELETE the incomplete version

RESPONSE FORMAT:
Use the identify_redundant_segments tool to specify which IDs should be removed and why. If no deletions are needed, call the tool with an empty array and explain why all segments should be kept.

Analyze carefully and identify which segment IDs should be deleted from "{file_name}"."""


def split_batches(segments: list, batch_size: int) -> list[list]:
    """Split a list into consecutive batches of at most batch_size items."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [segments[i:i + batch_size] for i in range(0, len(segments), batch_size)]


def collect_ids_to_delete(conversation: list) -> list[int]:
    """Extract idsToDelete from every tool output in a loop conversation.

    Outputs that are not valid JSON or that report a failure are ignored.
    """
    ids = []
    for entry in conversation:
        if entry.get("type") != "function_call_output":
            continue
        try:
            result = json.loads(entry["output"])
        except (json.JSONDecodeError, TypeError, KeyError):
            continue
        if not isinstance(result, dict) or result.get("success") is False:
            continue
        batch_ids = result.get("idsToDelete") or []
        if batch_ids:
            print(f"  → Identified {len(batch_ids)} segment(s) to delete: "
                  f"{', '.join(str(i) for i in batch_ids)}")
            print(f"  → Reason: {result.get('reason', '')}")
            ids.extend(batch_ids)
        elif "idsToDelete" in result:
            print("  → No redundant segments found in this batch")
    return ids


def merge_deletions(batch_ids: list[list[int]]) -> list[int]:
    """Union of the ids flagged across batches, deduplicated and sorted."""
    return sorted({i for ids in batch_ids for i in ids})


def _resolve_batch(config: TrimConfig, oracle, registry: FunctionRegistry,
                   batch: list[Interval], file_name: str,
                   batch_number: int, total_batches: int) -> list[int]:
    """Run one bounded tool loop for a batch and return the ids it flagged."""
    prompt = build_cleaning_prompt(batch, file_name, batch_number, total_batches)
    result = run_with_tools(
        oracle, registry,
        messages=[{"role": "user", "content": prompt}],
        tools=get_tools(ToolName.IDENTIFY_REDUNDANT_SEGMENTS),
        max_iterations=config.max_oracle_iterations,
        instructions=CLEANING_INSTRUCTIONS,
    )
    if result.text:
        print(f"  LLM analysis: {result.text}")
    return collect_ids_to_delete(result.conversation)


def cut_video_by_segments(config: TrimConfig, base_name: str,
                          segments: list[Interval]) -> Path:
    """Cut <base>_trimmed.<ext> down to the given segments (plus cushion).

    Returns the path of <base>_cleaned.<ext>.
    """
    video_path = find_stage_video(config, base_name, STAGE_TRIMMED)
    if video_path is None:
        raise MissingArtifactError(
            f"Could not find trimmed video file for {base_name}. "
            "Make sure pause trimming has been completed first.")

    output_path = video_stage_path(config, base_name, STAGE_CLEANED, video_path.suffix)
    if _should_skip(config, output_path, "cut cleaned video"):
        return output_path

    if not segments:
        raise ValueError(f"No segments left to keep for {base_name}")

    ranges = coalesce_ranges(pad_ranges(segments, config.cushion_seconds))
    print(f"  Segments to keep: {len(segments)}, merged into {len(ranges)} continuous range(s)")

    cut_ranges(video_path, ranges, output_path, verbose=config.verbose)
    print(f"  Created cleaned video → {output_path.name}")
    return output_path


def clean_transcription_file(config: TrimConfig, base_name: str,
                             oracle=None) -> CleanResult:
    """Remove redundant takes from <base>_pauses_trimmed.json and cut the video."""
    source_path = stage_path(config, base_name, STAGE_PAUSES_TRIMMED)
    cleaned_path = stage_path(config, base_name, STAGE_CLEANED)
    result = CleanResult(file_name=source_path.name, cleaned_file_name=cleaned_path.name)

    if _should_skip(config, cleaned_path, "clean transcription"):
        result.skipped = True
        result.reason = "dry run" if config.dry_run and not cleaned_path.exists() \
            else "Cleaned version already exists"
        return result

    if not source_path.exists():
        raise MissingArtifactError(f"No pause-trimmed transcript found: {source_path.name}")

    print()
    print(SECTION_SEPARATOR)
    print(f"PROCESSING: {source_path.name}")
    print(SECTION_SEPARATOR)

    segments = load_intervals(source_path)
    batches = split_batches(segments, config.batch_size)
    print(f"  Total segments: {len(segments)}")
    print(f"  Processing in {len(batches)} batch(es) of up to {config.batch_size} segments")

    if oracle is None:
        oracle = create_oracle(config)
    registry = FunctionRegistry(config.diarized_dir)

    batch_ids = []
    for i, batch in enumerate(batches, 1):
        print()
        print(f"  --- Batch {i}/{len(batches)} ---")
        print(f"  Analyzing segments {batch[0].id} to {batch[-1].id}")
        try:
            batch_ids.append(_resolve_batch(
                config, oracle, registry, batch, source_path.name, i, len(batches)))
        except Exception as e:
            print(f"  Error processing batch {i}: {e}")

    ids_to_delete = merge_deletions(batch_ids)
    doomed = set(ids_to_delete)
    cleaned = [s for s in segments if s.id not in doomed]

    print()
    print(f"  Segments to delete: {len(ids_to_delete)}")
    print(f"  IDs to delete: {', '.join(str(i) for i in ids_to_delete) or 'None'}")
    print(f"  Segments remaining: {len(cleaned)}")

    save_intervals(cleaned_path, cleaned)
    print(f"  Saved cleaned transcription → {cleaned_path.name}")

    result.original_count = len(segments)
    result.deleted_ids = ids_to_delete
    result.remaining_count = len(cleaned)

    # The saved transcript stays even if cutting fails
    try:
        result.video_path = cut_video_by_segments(config, base_name, cleaned)
    except Exception as e:
        print(f"  Warning: Failed to cut video: {e}")
        print("  Transcription was saved, but video processing failed.")

    return result


def clean_all_transcriptions(config: TrimConfig, oracle=None) -> list[CleanResult]:
    """Clean every *_pauses_trimmed.json in the diarized directory."""
    print()
    print(SECTION_SEPARATOR)
    print("STARTING TRANSCRIPTION CLEANING PROCESS")
    print(SECTION_SEPARATOR)

    suffix = f"{STAGE_PAUSES_TRIMMED}.json"
    files = sorted(p for p in config.diarized_dir.glob(f"*{suffix}"))
    print(f"  Found {len(files)} file(s) to process")

    results = []
    for path in files:
        base_name = path.name[:-len(suffix)]
        try:
            results.append(clean_transcription_file(config, base_name, oracle))
        except Exception as e:
            print(f"  Error processing {path.name}: {e}")
            results.append(CleanResult(file_name=path.name, error=str(e)))

    print()
    print(SECTION_SEPARATOR)
    print("FINAL SUMMARY - ALL FILES")
    print(SECTION_SEPARATOR)
    for r in results:
        if r.error:
            print(f"  ✗ {r.file_name}: ERROR - {r.error}")
        elif r.skipped:
            print(f"  ⊘ {r.file_name}: skipped ({r.reason})")
        else:
            print(f"  ✓ {r.file_name} → {r.cleaned_file_name}")
            print(f"    Original: {r.original_count}  Deleted: {r.deleted_count}  "
                  f"Remaining: {r.remaining_count}")
    return results
