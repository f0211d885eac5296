"""
Shared types and utilities for the retake trimming pipeline.

Contains TrimConfig, the stage-artifact naming helpers, the pipeline
exceptions, and utility functions used by every stage module.
"""

import json
import os
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

import builtins


def tprint(*args, **kwargs):
    """Print with [HH:MM:SS] timestamp prefix.

    Skips the timestamp for carriage-return progress lines (end != newline)
    so that in-place progress updates remain clean.
    """
    if kwargs.get("end", "\n") != "\n":
        builtins.print(*args, flush=True, **kwargs)
        return
    stamp = time.strftime("[%H:%M:%S]")
    builtins.print(stamp, *args, flush=True, **kwargs)


print = tprint

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".flv", ".wmv", ".webm")

UNKNOWN_SPEAKER = "UNKNOWN"


@dataclass
class TrimConfig:
    """Configuration for the retake trimming pipeline."""
    raw_video_dir: Path = Path("./FILES/RAW_VIDEO")
    audio_dir: Path = Path("./FILES/AUDIO_EXTRACTED")
    diarized_dir: Path = Path("./FILES/DIARIZED_TRANSCRIBED")
    processing_dir: Path = Path("./FILES/VIDEO_PROCESSING")
    # Timeline tuning
    pause_threshold_seconds: float = 5.0  # Gaps longer than this are cut
    cushion_seconds: float = 0.5  # Padding kept around speech
    batch_size: int = 50  # Segments per redundancy-detection call
    max_oracle_iterations: int = 1  # Tool-calling rounds per redundancy batch
    # Local LLM (default) vs cloud API
    local: bool = True  # Use local Ollama by default
    local_model: str = "qwen2.5"
    ollama_base_url: str = "http://localhost:11434/v1/"
    api_key: Optional[str] = None
    claude_model: str = "claude-sonnet-4-20250514"  # Anthropic API model; ignored when local=True
    max_tokens: int = 4096
    api_max_retries: int = 5
    api_initial_backoff: int = 5  # seconds
    api_timeout: float = 120.0  # seconds per API attempt
    # Speech-to-text (OpenAI audio API)
    transcription_model: str = "whisper-1"
    openai_api_key: Optional[str] = None
    # Diarization service (pyannoteAI)
    pyannote_api_key: Optional[str] = None
    pyannote_base_url: str = "https://api.pyannote.ai/v1"
    poll_interval: float = 10.0  # seconds between job status checks
    poll_max_attempts: int = 360
    poll_backoff: float = 1.0  # multiplier per attempt (1.0 = fixed interval)
    # Pipeline control
    steps: Optional[list] = None  # Run only these pipeline steps (None = all)
    skip_existing: bool = True
    dry_run: bool = False
    verbose: bool = False

    def __post_init__(self):
        for name in ("raw_video_dir", "audio_dir", "diarized_dir", "processing_dir"):
            setattr(self, name, Path(getattr(self, name)))


# Stage suffixes appended to each recording's base name
STAGE_DIARIZED = ""
STAGE_PAUSES_TRIMMED = "_pauses_trimmed"
STAGE_CLEANED = "_cleaned"
STAGE_TRIMMED = "_trimmed"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MissingArtifactError(RuntimeError):
    """An upstream artifact required by a stage does not exist."""


class DiarizationJobError(RuntimeError):
    """The diarization service reported a failed or canceled job."""


class DiarizationTimeoutError(RuntimeError):
    """The diarization job did not finish within the allowed poll attempts."""


class ToolError(RuntimeError):
    """A tool call could not be dispatched (unknown name or bad arguments)."""


# ---------------------------------------------------------------------------
# Stage artifacts (checkpoints keyed by base name and stage)
# ---------------------------------------------------------------------------

def stage_path(config: TrimConfig, base_name: str, stage: str) -> Path:
    """Path of the interval document a stage writes for one recording."""
    return config.diarized_dir / f"{base_name}{stage}.json"


def video_stage_path(config: TrimConfig, base_name: str, stage: str,
                     ext: str) -> Path:
    """Path of the video a cutting stage writes for one recording."""
    return config.processing_dir / f"{base_name}{stage}{ext}"


def find_stage_video(config: TrimConfig, base_name: str,
                     stage: str) -> Optional[Path]:
    """Find an existing stage video in the processing dir, any known extension."""
    for ext in VIDEO_EXTENSIONS:
        candidate = video_stage_path(config, base_name, stage, ext)
        if candidate.exists():
            return candidate
    return None


def list_media(directory: Path, extensions: tuple) -> list[Path]:
    """List media files in a directory, sorted by name."""
    if not directory.exists():
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in extensions
    )


# ---------------------------------------------------------------------------
# LLM client
# ---------------------------------------------------------------------------

def create_llm_client(config: TrimConfig):
    """Create either an Anthropic or OpenAI-compatible (Ollama) client."""
    if config.local:
        from openai import OpenAI
        return OpenAI(base_url=config.ollama_base_url, api_key="ollama")
    else:
        import anthropic
        api_key = config.api_key or os.environ.get("ANTHROPIC_API_KEY")
        return anthropic.Anthropic(api_key=api_key)


def llm_call_with_retry(client, config: TrimConfig, **kwargs) -> object:
    """Call the LLM with exponential backoff on transient errors.

    Supports both Anthropic and OpenAI-compatible (Ollama) clients. kwargs are
    passed through to messages.create / chat.completions.create unchanged and
    the raw provider response is returned, so callers can read tool calls.
    """
    def _retry_with_backoff(call_fn, timeout_exc, status_exc, retryable_codes, label):
        delay = config.api_initial_backoff
        for attempt in range(1, config.api_max_retries + 1):
            try:
                return call_fn()
            except timeout_exc:
                if attempt < config.api_max_retries:
                    print(f"    {label} timeout, retrying in {delay}s (attempt {attempt}/{config.api_max_retries})...")
                    time.sleep(delay)
                    delay *= 2
                else:
                    raise
            except status_exc as e:
                if e.status_code in retryable_codes and attempt < config.api_max_retries:
                    print(f"    {label} {e.status_code} error, retrying in {delay}s (attempt {attempt}/{config.api_max_retries})...")
                    time.sleep(delay)
                    delay *= 2
                else:
                    raise

    if config.local:
        # OpenAI-compatible path (Ollama)
        from openai import APITimeoutError, APIStatusError
        kwargs.setdefault("model", config.local_model)
        kwargs.setdefault("max_tokens", config.max_tokens)

        def _call_openai():
            return client.chat.completions.create(**kwargs)

        return _retry_with_backoff(
            _call_openai, APITimeoutError, APIStatusError,
            (429, 500, 502, 503), "LLM")
    else:
        # Anthropic path
        import anthropic
        kwargs.setdefault("model", config.claude_model)
        kwargs.setdefault("max_tokens", config.max_tokens)
        if "timeout" not in kwargs:
            kwargs["timeout"] = config.api_timeout

        def _call_anthropic():
            return client.messages.create(**kwargs)

        return _retry_with_backoff(
            _call_anthropic, anthropic.APITimeoutError, anthropic.APIStatusError,
            (429, 529, 500), "API")


# ---------------------------------------------------------------------------
# Pipeline utilities
# ---------------------------------------------------------------------------

def run_command(cmd: list[str], description: str, verbose: bool = False) -> subprocess.CompletedProcess:
    """Run a shell command with error handling."""
    if verbose:
        print(f"  Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return result
    except subprocess.CalledProcessError as e:
        print(f"  Error: {description}")
        print(f"  {e.stderr}")
        raise


def _save_json(path: Path, data) -> None:
    """Write data to a JSON file with standard formatting.

    The content goes to a temporary file in the same directory first and is
    then moved over the target, so readers never see a partial document.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp",
                                    dir=path.parent)
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def _load_json(path: Path):
    """Read a JSON document."""
    with open(path, 'r') as f:
        return json.load(f)


def _print_reusing(label: str) -> None:
    """Print a 'Reusing' message for a cached artifact."""
    print(f"  Reusing: {label}")


def _dry_run_skip(config: TrimConfig, action: str, output: str) -> bool:
    """In dry-run mode, print what would happen and return True to skip execution."""
    if not config.dry_run:
        return False
    print(f"  [dry-run] Would {action} → {output}")
    return True


def _should_skip(config: TrimConfig, output: Path, action: str) -> bool:
    """Check if a pipeline stage should skip: output exists or dry-run mode.

    The presence of a stage's output is its completion marker.
    Returns True if the stage should skip (and prints the reason).
    """
    if config.skip_existing and output.exists():
        _print_reusing(output.name)
        return True
    if _dry_run_skip(config, action, output.name):
        return True
    return False


def check_dependencies() -> dict[str, bool]:
    """Check for required external tools."""
    deps = {
        "ffmpeg": False,
    }
    for tool in deps:
        deps[tool] = shutil.which(tool) is not None
    return deps
