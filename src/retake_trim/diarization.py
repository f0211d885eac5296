"""
Diarization stage for the retake trimming pipeline.

Speaker turns come from the pyannoteAI web API, text spans from the
transcription service. The two are aligned into one speaker-attributed
transcript saved as <base>.json.
"""

import json
import os
import time
import urllib.request
from pathlib import Path
from typing import Callable, Optional

from retake_trim.intervals import assign_ids, save_intervals
from retake_trim.merge import align
from retake_trim.shared import (
    tprint as print,
    TrimConfig, DiarizationJobError, DiarizationTimeoutError,
    STAGE_DIARIZED, stage_path, _should_skip,
)
from retake_trim.transcription import transcribe

TERMINAL_FAILURES = ("failed", "canceled")


def poll_job(fetch_status: Callable[[], dict], max_attempts: int,
             interval: float, backoff: float = 1.0,
             sleep: Optional[Callable[[float], None]] = None) -> dict:
    """Poll a remote job until it reaches a terminal status.

    fetch_status returns the job document ({"status": ..., "output": ...}).
    Waits `interval` seconds between checks, multiplied by `backoff` after
    each one. Returns the output of a succeeded job; raises
    DiarizationJobError for failed/canceled jobs and DiarizationTimeoutError
    once max_attempts checks have not seen a terminal status.
    """
    sleep = sleep or time.sleep
    delay = interval
    for attempt in range(1, max_attempts + 1):
        job = fetch_status()
        status = job.get("status")
        if status == "succeeded":
            return job.get("output") or {}
        if status in TERMINAL_FAILURES:
            raise DiarizationJobError(f"Job {status}")
        if attempt < max_attempts:
            sleep(delay)
            delay *= backoff
    raise DiarizationTimeoutError(
        f"Diarization job not finished after {max_attempts} status checks")


class PyannoteClient:
    """Minimal client for the pyannoteAI diarization API."""

    def __init__(self, config: TrimConfig):
        self.config = config
        self.base_url = config.pyannote_base_url.rstrip("/")
        self.api_key = config.pyannote_api_key or os.environ.get("PYANNOTE_API_KEY")
        if not self.api_key:
            raise RuntimeError(
                "PYANNOTE_API_KEY environment variable (or --pyannote-api-key) "
                "required for diarization.")

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(
            f"{self.base_url}{path}", data=body, method=method,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        with urllib.request.urlopen(req, timeout=self.config.api_timeout) as response:
            return json.loads(response.read().decode("utf-8"))

    def upload(self, audio_path: Path, object_key: str) -> str:
        """Upload audio to temporary storage, return its media:// URL."""
        media_url = f"media://{object_key}"
        data = self._request("POST", "/media/input", {"url": media_url})
        presigned_url = data.get("url") or data.get("uploadUrl") or data.get("presignedUrl")
        if not presigned_url:
            raise RuntimeError(f"No upload URL in response: {json.dumps(data)}")

        req = urllib.request.Request(
            presigned_url, data=audio_path.read_bytes(), method="PUT",
            headers={"Content-Type": "application/octet-stream"},
        )
        with urllib.request.urlopen(req, timeout=self.config.api_timeout):
            pass
        return media_url

    def create_job(self, media_url: str) -> str:
        data = self._request("POST", "/diarize", {"url": media_url})
        job_id = data.get("jobId")
        if not job_id:
            raise RuntimeError(f"No job id in response: {json.dumps(data)}")
        return job_id

    def job_status(self, job_id: str) -> dict:
        return self._request("GET", f"/jobs/{job_id}")

    def diarize(self, audio_path: Path) -> list[dict]:
        """Return speaker turns [{start, end, speaker}] for an audio file."""
        print(f"  Uploading {audio_path.name}...")
        media_url = self.upload(audio_path, audio_path.stem)
        job_id = self.create_job(media_url)
        print(f"  Polling job {job_id}...")
        output = poll_job(
            lambda: self.job_status(job_id),
            max_attempts=self.config.poll_max_attempts,
            interval=self.config.poll_interval,
            backoff=self.config.poll_backoff,
        )
        return output.get("diarization") or []


def diarize_file(config: TrimConfig, audio_path: Path,
                 diarizer=None, transcriber=None) -> Optional[Path]:
    """Diarize and transcribe one audio file into <base>.json.

    diarizer(audio_path) and transcriber(audio_path) default to the
    pyannoteAI client and the OpenAI transcription API.
    Returns the output path, or None when the stage was skipped.
    """
    base_name = audio_path.stem
    output_path = stage_path(config, base_name, STAGE_DIARIZED)

    if _should_skip(config, output_path, "diarize and transcribe"):
        return None

    if diarizer is None:
        diarizer = PyannoteClient(config).diarize
    if transcriber is None:
        transcriber = lambda path: transcribe(config, path)  # noqa: E731

    speaker_spans = diarizer(audio_path)
    print(f"  Found {len(speaker_spans)} speaker segments")

    print(f"  Transcribing {audio_path.name}...")
    transcript_spans = transcriber(audio_path)
    print(f"  Found {len(transcript_spans)} transcript segments")

    print("  Merging diarization and transcription...")
    merged = assign_ids(align(speaker_spans, transcript_spans))
    save_intervals(output_path, merged)
    print(f"  Diarization + transcription complete → {output_path.name}")
    return output_path
