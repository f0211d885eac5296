#!/usr/bin/env python3
"""
Retake Trimmer
==============
Turns raw recordings into a cleaned, speaker-aware transcript and a re-cut
video without long pauses or repeated takes.

Pipeline (per video, each stage skipped when its output already exists):
1. Extract audio (ffmpeg)                       → AUDIO_EXTRACTED/<base>.mp3
2. Diarize (pyannoteAI) + transcribe (OpenAI),
   align speakers with text                     → DIARIZED_TRANSCRIBED/<base>.json
3. Cut pauses longer than the threshold          → VIDEO_PROCESSING/<base>_trimmed.<ext>
   and remap the transcript                     → DIARIZED_TRANSCRIBED/<base>_pauses_trimmed.json
4. Ask the LLM for redundant takes per batch     → DIARIZED_TRANSCRIBED/<base>_cleaned.json
   and cut them out                             → VIDEO_PROCESSING/<base>_cleaned.<ext>

Usage:
    retake-trim [options]

Examples:
    # Process everything in ./FILES/RAW_VIDEO with local Ollama
    retake-trim

    # Use the Anthropic API for redundancy detection
    retake-trim --api

    # Only redo pause trimming with a shorter threshold
    retake-trim --steps trim --pause-threshold 3
"""

import argparse
import sys
from pathlib import Path

from retake_trim import __version__
from retake_trim.clean import clean_transcription_file, CleanResult
from retake_trim.diarization import diarize_file
from retake_trim.media import extract_audio
from retake_trim.shared import (
    tprint as print,
    TrimConfig, MissingArtifactError,
    VIDEO_EXTENSIONS,
    list_media, _should_skip, check_dependencies,
)
from retake_trim.tool_loop import create_oracle
from retake_trim.trim import trim_pauses

SECTION_SEPARATOR = "=" * 50

# Valid pipeline step names, in execution order
PIPELINE_STEPS = ("extract", "diarize", "trim", "clean")
VALID_STEPS = set(PIPELINE_STEPS)


def _should_run_step(step_name: str, config: TrimConfig) -> bool:
    """Check if a pipeline step should run based on --steps filter."""
    if config.steps is None:
        return True
    return step_name in config.steps


def _extract_step(config: TrimConfig, video: Path) -> Path:
    audio_path = config.audio_dir / f"{video.stem}.mp3"
    if not _should_skip(config, audio_path, "extract audio"):
        config.audio_dir.mkdir(parents=True, exist_ok=True)
        extract_audio(video, audio_path, config.verbose)
        print(f"  Extracted audio: {audio_path.name}")
    return audio_path


def _diarize_step(config: TrimConfig, audio_path: Path) -> None:
    if not audio_path.exists() and not config.dry_run:
        raise MissingArtifactError(f"No extracted audio for {audio_path.stem}")
    config.diarized_dir.mkdir(parents=True, exist_ok=True)
    diarize_file(config, audio_path)


def process_video(config: TrimConfig, video: Path, oracle_factory=create_oracle) -> dict:
    """Run the enabled pipeline steps for one video.

    A missing upstream artifact stops this video's progression (the remaining
    steps depend on it) without affecting other videos.
    Any other failure (service error, ffmpeg error) is recorded as the
    video's error so the remaining videos still run.
    Returns {"video", "completed": [...], "skipped_reason", "error", "clean"}.
    """
    outcome = {"video": video.name, "completed": [], "skipped_reason": None,
               "error": None, "clean": None}
    audio_path = config.audio_dir / f"{video.stem}.mp3"

    try:
        if _should_run_step("extract", config):
            print(f"[extract] {video.name}")
            audio_path = _extract_step(config, video)
            outcome["completed"].append("extract")

        if _should_run_step("diarize", config):
            print(f"[diarize] {video.name}")
            _diarize_step(config, audio_path)
            outcome["completed"].append("diarize")

        if _should_run_step("trim", config):
            print(f"[trim] {video.name}")
            trim_pauses(config, video)
            outcome["completed"].append("trim")

        if _should_run_step("clean", config):
            print(f"[clean] {video.name}")
            outcome["clean"] = clean_transcription_file(
                config, video.stem, oracle=_LazyOracle(oracle_factory, config))
            outcome["completed"].append("clean")
    except MissingArtifactError as e:
        print(f"  ⊘ Skipping {video.name} ({e})")
        outcome["skipped_reason"] = str(e)
    except Exception as e:
        print(f"  ✗ Error processing {video.name}: {e}")
        outcome["error"] = str(e)
        if config.verbose:
            import traceback
            traceback.print_exc()

    return outcome


class _LazyOracle:
    """Defers creating the LLM client until a batch actually needs it."""

    def __init__(self, factory, config: TrimConfig):
        self._factory = factory
        self._config = config
        self._oracle = None

    def decide(self, conversation, tools, instructions=None):
        if self._oracle is None:
            self._oracle = self._factory(self._config)
        return self._oracle.decide(conversation, tools, instructions)


def run_pipeline(config: TrimConfig, oracle_factory=create_oracle) -> list[dict]:
    """Process every video in the raw directory, one at a time."""
    videos = list_media(config.raw_video_dir, VIDEO_EXTENSIONS)
    print(f"Found {len(videos)} video(s) in {config.raw_video_dir}")

    outcomes = []
    for video in videos:
        print()
        print(SECTION_SEPARATOR)
        print(video.name)
        print(SECTION_SEPARATOR)
        outcomes.append(process_video(config, video, oracle_factory))
    return outcomes


def _print_summary(outcomes: list[dict]) -> None:
    print()
    print(SECTION_SEPARATOR)
    print("COMPLETE!")
    print(SECTION_SEPARATOR)
    for outcome in outcomes:
        if outcome.get("error"):
            print(f"  ✗ {outcome['video']}: ERROR - {outcome['error']}")
            continue
        if outcome["skipped_reason"]:
            print(f"  ⊘ {outcome['video']}: {outcome['skipped_reason']}")
            continue
        line = f"  ✓ {outcome['video']}: {', '.join(outcome['completed']) or 'nothing to do'}"
        clean: CleanResult = outcome["clean"]
        if clean and not clean.skipped:
            line += (f" (deleted {clean.deleted_count} of {clean.original_count} segments)")
        print(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retake-trim",
        description="Remove long pauses and redundant takes from recorded videos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s --api
  %(prog)s --steps trim,clean --pause-threshold 3 --cushion 0.25
  %(prog)s --raw-dir ./videos --dry-run
        """
    )
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")

    dirs_group = parser.add_argument_group("directories")
    dirs_group.add_argument("--raw-dir", default="./FILES/RAW_VIDEO",
                            help="Directory of source videos (default: ./FILES/RAW_VIDEO)")
    dirs_group.add_argument("--audio-dir", default="./FILES/AUDIO_EXTRACTED",
                            help="Extracted audio (default: ./FILES/AUDIO_EXTRACTED)")
    dirs_group.add_argument("--diarized-dir", default="./FILES/DIARIZED_TRANSCRIBED",
                            help="Transcript documents (default: ./FILES/DIARIZED_TRANSCRIBED)")
    dirs_group.add_argument("--processing-dir", default="./FILES/VIDEO_PROCESSING",
                            help="Trimmed and cleaned videos (default: ./FILES/VIDEO_PROCESSING)")

    timeline_group = parser.add_argument_group("timeline")
    timeline_group.add_argument("--pause-threshold", type=float, default=5.0,
                                help="Cut pauses longer than this many seconds (default: 5.0)")
    timeline_group.add_argument("--cushion", type=float, default=0.5,
                                help="Seconds of padding kept around speech (default: 0.5)")
    timeline_group.add_argument("--batch-size", type=int, default=50,
                                help="Segments per redundancy-detection request (default: 50)")
    timeline_group.add_argument("--max-iterations", type=int, default=1,
                                help="Tool-calling rounds per batch (default: 1)")

    llm_group = parser.add_argument_group("LLM backend")
    llm_group.add_argument("--api", action="store_true",
                           help="Use Anthropic Claude API instead of local Ollama (requires API key)")
    llm_group.add_argument("--api-key",
                           help="Anthropic API key (or set ANTHROPIC_API_KEY env var; implies --api)")
    llm_group.add_argument("--claude-model", default="claude-sonnet-4-20250514",
                           help="Claude model for API calls (default: claude-sonnet-4-20250514)")
    llm_group.add_argument("--local-model", default="qwen2.5",
                           help="Ollama model (default: qwen2.5)")
    llm_group.add_argument("--ollama-url", default="http://localhost:11434/v1/",
                           help="Ollama server URL (default: http://localhost:11434/v1/)")

    services_group = parser.add_argument_group("speech services")
    services_group.add_argument("--pyannote-api-key",
                                help="pyannoteAI key (or set PYANNOTE_API_KEY env var)")
    services_group.add_argument("--transcription-model", default="whisper-1",
                                help="OpenAI transcription model (default: whisper-1)")
    services_group.add_argument("--poll-interval", type=float, default=10.0,
                                help="Seconds between diarization job checks (default: 10)")
    services_group.add_argument("--poll-max-attempts", type=int, default=360,
                                help="Give up on a diarization job after this many checks (default: 360)")

    pipeline_group = parser.add_argument_group("pipeline")
    pipeline_group.add_argument("--steps",
                                help="Run only these pipeline steps (comma-separated). "
                                     f"Steps: {', '.join(PIPELINE_STEPS)}")
    pipeline_group.add_argument("--force", action="store_true",
                                help="Re-process even if outputs already exist")
    pipeline_group.add_argument("--dry-run", action="store_true",
                                help="Show what would be done without actually doing it")
    pipeline_group.add_argument("-v", "--verbose", action="store_true",
                                help="Show detailed command output")
    return parser


def config_from_args(args: argparse.Namespace) -> TrimConfig:
    """Build a TrimConfig from parsed command-line arguments."""
    steps = None
    if args.steps:
        steps = [s.strip() for s in args.steps.split(",") if s.strip()]
        invalid = set(steps) - VALID_STEPS
        if invalid:
            raise ValueError(f"Invalid step(s): {', '.join(sorted(invalid))}. "
                             f"Valid steps: {', '.join(PIPELINE_STEPS)}")

    if args.pause_threshold < 0 or args.cushion < 0:
        raise ValueError("--pause-threshold and --cushion must not be negative")
    if args.batch_size < 1 or args.max_iterations < 1:
        raise ValueError("--batch-size and --max-iterations must be at least 1")

    return TrimConfig(
        raw_video_dir=Path(args.raw_dir),
        audio_dir=Path(args.audio_dir),
        diarized_dir=Path(args.diarized_dir),
        processing_dir=Path(args.processing_dir),
        pause_threshold_seconds=args.pause_threshold,
        cushion_seconds=args.cushion,
        batch_size=args.batch_size,
        max_oracle_iterations=args.max_iterations,
        local=not (args.api or bool(args.api_key)),
        api_key=args.api_key,
        claude_model=args.claude_model,
        local_model=args.local_model,
        ollama_base_url=args.ollama_url,
        pyannote_api_key=args.pyannote_api_key,
        transcription_model=args.transcription_model,
        poll_interval=args.poll_interval,
        poll_max_attempts=args.poll_max_attempts,
        steps=steps,
        skip_existing=not args.force,
        dry_run=args.dry_run,
        verbose=args.verbose,
    )


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print("Checking dependencies...")
    deps = check_dependencies()
    if not deps["ffmpeg"]:
        print("Missing dependencies:")
        print("  - ffmpeg (install with: brew install ffmpeg)")
        sys.exit(1)
    print("  ffmpeg: OK")

    if config.local:
        print(f"  LLM: local Ollama ({config.local_model})")
    else:
        print(f"  LLM: Anthropic API ({config.claude_model})")

    if config.steps:
        print(f"  Running steps: {', '.join(config.steps)}")

    if config.dry_run:
        print()
        print(SECTION_SEPARATOR)
        print("DRY RUN - No actions will be taken")
        print(SECTION_SEPARATOR)

    try:
        outcomes = run_pipeline(config)
    except Exception as e:
        print()
        print(f"Error: {e}")
        if config.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    _print_summary(outcomes)
    if any(o.get("error") for o in outcomes):
        sys.exit(1)


if __name__ == "__main__":
    main()
