"""Tests for trim.py — the pause trimming stage."""

import json
from unittest.mock import patch

import pytest

from retake_trim.intervals import Interval
from retake_trim.shared import MissingArtifactError, TrimConfig
from retake_trim.trim import plan_pause_cuts, trim_pauses

from conftest import write_intervals


DIARIZED = [
    {"id": 1, "start": 0.0, "end": 1.0, "text": "hello", "speaker": "SPEAKER_00"},
    {"id": 2, "start": 1.05, "end": 2.0, "text": "there", "speaker": "SPEAKER_00"},
    {"id": 3, "start": 10.0, "end": 11.0, "text": "again", "speaker": "SPEAKER_01"},
]


@pytest.fixture
def config(tmp_path):
    return TrimConfig(raw_video_dir=tmp_path / "raw",
                      diarized_dir=tmp_path / "diarized",
                      processing_dir=tmp_path / "processing")


@pytest.fixture
def video(config):
    config.raw_video_dir.mkdir(parents=True)
    path = config.raw_video_dir / "talk.mp4"
    path.write_bytes(b"video")
    return path


class TestPlanPauseCuts:
    def test_uses_config_threshold_and_cushion(self, config):
        intervals = [Interval.from_dict(item) for item in DIARIZED]
        ranges = plan_pause_cuts(config, intervals)
        assert [(r.start, r.end) for r in ranges] == [(0.0, 2.5), (9.5, 11.5)]

    def test_overlapping_cushions_coalesced(self, config):
        config.pause_threshold_seconds = 0.5
        intervals = [Interval(0, 1), Interval(1.6, 2)]
        assert [(r.start, r.end) for r in plan_pause_cuts(config, intervals)] == [(0.0, 2.5)]


class TestTrimPauses:
    @patch("retake_trim.trim.cut_ranges")
    def test_cuts_and_remaps(self, mock_cut, config, video):
        write_intervals(config.diarized_dir / "talk.json", DIARIZED)

        output = trim_pauses(config, video)

        assert output == config.processing_dir / "talk_trimmed.mp4"
        source, ranges, output_path = mock_cut.call_args[0]
        assert source == video
        assert [(r.start, r.end) for r in ranges] == [(0.0, 2.5), (9.5, 11.5)]

        remapped = json.loads((config.diarized_dir / "talk_pauses_trimmed.json").read_text())
        assert [item["id"] for item in remapped] == [1, 2, 3]
        assert [(item["start"], item["end"]) for item in remapped] == [
            (0.0, 1.0), (1.05, 2.0), (3.0, 4.0)]
        assert remapped[2]["speaker"] == "SPEAKER_01"

    @patch("retake_trim.trim.cut_ranges")
    def test_skips_when_video_and_transcript_exist(self, mock_cut, config, video):
        write_intervals(config.diarized_dir / "talk.json", DIARIZED)
        write_intervals(config.diarized_dir / "talk_pauses_trimmed.json", [])
        config.processing_dir.mkdir(parents=True)
        (config.processing_dir / "talk_trimmed.mp4").write_bytes(b"done")

        assert trim_pauses(config, video) is None
        mock_cut.assert_not_called()

    @patch("retake_trim.trim.cut_ranges")
    def test_missing_transcript_rebuilt_without_recutting(self, mock_cut, config, video):
        write_intervals(config.diarized_dir / "talk.json", DIARIZED)
        config.processing_dir.mkdir(parents=True)
        (config.processing_dir / "talk_trimmed.mp4").write_bytes(b"done")

        output = trim_pauses(config, video)

        assert output == config.processing_dir / "talk_trimmed.mp4"
        mock_cut.assert_not_called()
        remapped = json.loads((config.diarized_dir / "talk_pauses_trimmed.json").read_text())
        assert [(item["start"], item["end"]) for item in remapped] == [
            (0.0, 1.0), (1.05, 2.0), (3.0, 4.0)]
        assert [item["id"] for item in remapped] == [1, 2, 3]

    @patch("retake_trim.trim.cut_ranges")
    def test_force_reprocesses(self, mock_cut, config, video):
        write_intervals(config.diarized_dir / "talk.json", DIARIZED)
        config.processing_dir.mkdir(parents=True)
        (config.processing_dir / "talk_trimmed.mp4").write_bytes(b"done")
        config.skip_existing = False

        assert trim_pauses(config, video) is not None
        mock_cut.assert_called_once()

    @patch("retake_trim.trim.cut_ranges")
    def test_existing_remapped_transcript_reused(self, mock_cut, config, video):
        write_intervals(config.diarized_dir / "talk.json", DIARIZED)
        existing = write_intervals(config.diarized_dir / "talk_pauses_trimmed.json",
                                   [{"id": 1, "start": 0, "end": 1, "text": "kept"}])
        trim_pauses(config, video)
        assert json.loads(existing.read_text())[0]["text"] == "kept"

    def test_missing_diarization(self, config, video):
        with pytest.raises(MissingArtifactError, match="No diarization data"):
            trim_pauses(config, video)

    def test_empty_diarization(self, config, video):
        write_intervals(config.diarized_dir / "talk.json", [])
        with pytest.raises(MissingArtifactError, match="no segments"):
            trim_pauses(config, video)

    @patch("retake_trim.trim.cut_ranges")
    def test_dry_run(self, mock_cut, config, video):
        write_intervals(config.diarized_dir / "talk.json", DIARIZED)
        config.dry_run = True
        assert trim_pauses(config, video) is None
        mock_cut.assert_not_called()
        assert not (config.diarized_dir / "talk_pauses_trimmed.json").exists()
