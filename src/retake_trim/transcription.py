"""
Speech-to-text through the OpenAI audio transcription API.
"""

import os
from pathlib import Path

from retake_trim.shared import TrimConfig


def _segment_fields(segment) -> dict:
    """Read a segment from either an SDK object or a plain dict."""
    if isinstance(segment, dict):
        return {"start": segment["start"], "end": segment["end"], "text": segment.get("text", "")}
    return {"start": segment.start, "end": segment.end, "text": segment.text or ""}


def transcribe(config: TrimConfig, audio_path: Path, client=None) -> list[dict]:
    """Transcribe an audio file into [{start, end, text}] segments."""
    if client is None:
        from openai import OpenAI
        client = OpenAI(api_key=config.openai_api_key or os.environ.get("OPENAI_API_KEY"))

    with open(audio_path, 'rb') as f:
        transcription = client.audio.transcriptions.create(
            file=f,
            model=config.transcription_model,
            response_format="verbose_json",
            timestamp_granularities=["segment"],
        )

    segments = getattr(transcription, "segments", None) or []
    return [_segment_fields(s) for s in segments]
