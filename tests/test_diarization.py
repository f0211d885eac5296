"""Tests for diarization.py — job polling, the pyannoteAI client, and diarize_file."""

import json
from unittest.mock import MagicMock, patch

import pytest

from retake_trim.diarization import PyannoteClient, diarize_file, poll_job
from retake_trim.shared import DiarizationJobError, DiarizationTimeoutError, TrimConfig


def _statuses(*docs):
    """fetch_status stand-in returning the given job documents in order."""
    queue = list(docs)
    return MagicMock(side_effect=lambda: queue.pop(0))


def _http_response(payload):
    cm = MagicMock()
    cm.__enter__.return_value.read.return_value = json.dumps(payload).encode("utf-8")
    return cm


# ---------------------------------------------------------------------------
# poll_job
# ---------------------------------------------------------------------------

class TestPollJob:
    def test_immediate_success(self):
        sleep = MagicMock()
        output = poll_job(_statuses({"status": "succeeded", "output": {"diarization": []}}),
                          max_attempts=5, interval=10, sleep=sleep)
        assert output == {"diarization": []}
        sleep.assert_not_called()

    def test_polls_until_success(self):
        sleep = MagicMock()
        fetch = _statuses({"status": "created"}, {"status": "running"},
                          {"status": "succeeded", "output": {"diarization": [1]}})
        output = poll_job(fetch, max_attempts=5, interval=10, sleep=sleep)
        assert output == {"diarization": [1]}
        assert fetch.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [10, 10]

    def test_success_without_output(self):
        assert poll_job(_statuses({"status": "succeeded"}), 1, 0, sleep=MagicMock()) == {}

    def test_failed(self):
        with pytest.raises(DiarizationJobError, match="failed"):
            poll_job(_statuses({"status": "running"}, {"status": "failed"}),
                     max_attempts=5, interval=1, sleep=MagicMock())

    def test_canceled(self):
        with pytest.raises(DiarizationJobError, match="canceled"):
            poll_job(_statuses({"status": "canceled"}), max_attempts=5, interval=1,
                     sleep=MagicMock())

    def test_timeout_after_max_attempts(self):
        sleep = MagicMock()
        fetch = MagicMock(return_value={"status": "running"})
        with pytest.raises(DiarizationTimeoutError):
            poll_job(fetch, max_attempts=3, interval=2, sleep=sleep)
        assert fetch.call_count == 3
        # No wait after the final check
        assert sleep.call_count == 2

    def test_backoff_multiplies_delay(self):
        sleep = MagicMock()
        fetch = MagicMock(return_value={"status": "running"})
        with pytest.raises(DiarizationTimeoutError):
            poll_job(fetch, max_attempts=4, interval=1, backoff=2.0, sleep=sleep)
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2, 4]

    def test_unknown_status_keeps_polling(self):
        fetch = _statuses({"status": "pending"}, {"status": "succeeded", "output": {"x": 1}})
        assert poll_job(fetch, max_attempts=3, interval=0, sleep=MagicMock()) == {"x": 1}


# ---------------------------------------------------------------------------
# PyannoteClient
# ---------------------------------------------------------------------------

class TestPyannoteClient:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("PYANNOTE_API_KEY", raising=False)
        with pytest.raises(RuntimeError, match="PYANNOTE_API_KEY"):
            PyannoteClient(TrimConfig())

    def test_key_from_env(self, monkeypatch):
        monkeypatch.setenv("PYANNOTE_API_KEY", "pa-env")
        assert PyannoteClient(TrimConfig()).api_key == "pa-env"

    @patch("retake_trim.diarization.urllib.request.urlopen")
    def test_request_sends_bearer_token(self, mock_urlopen):
        mock_urlopen.return_value = _http_response({"jobId": "job-1"})
        client = PyannoteClient(TrimConfig(pyannote_api_key="pa-key"))
        assert client.create_job("media://talk") == "job-1"

        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "https://api.pyannote.ai/v1/diarize"
        assert req.get_method() == "POST"
        assert req.get_header("Authorization") == "Bearer pa-key"
        assert json.loads(req.data) == {"url": "media://talk"}

    @patch("retake_trim.diarization.urllib.request.urlopen")
    def test_create_job_without_id(self, mock_urlopen):
        mock_urlopen.return_value = _http_response({})
        client = PyannoteClient(TrimConfig(pyannote_api_key="pa-key"))
        with pytest.raises(RuntimeError, match="No job id"):
            client.create_job("media://talk")

    @patch("retake_trim.diarization.urllib.request.urlopen")
    def test_upload_puts_audio(self, mock_urlopen, tmp_path):
        audio = tmp_path / "talk.mp3"
        audio.write_bytes(b"audio-bytes")
        mock_urlopen.side_effect = [
            _http_response({"url": "https://storage.example/put"}),
            _http_response({}),
        ]
        client = PyannoteClient(TrimConfig(pyannote_api_key="pa-key"))
        assert client.upload(audio, "talk") == "media://talk"

        put = mock_urlopen.call_args_list[1][0][0]
        assert put.full_url == "https://storage.example/put"
        assert put.get_method() == "PUT"
        assert put.data == b"audio-bytes"

    @patch("retake_trim.diarization.urllib.request.urlopen")
    def test_upload_without_url(self, mock_urlopen, tmp_path):
        audio = tmp_path / "talk.mp3"
        audio.write_bytes(b"x")
        mock_urlopen.return_value = _http_response({"error": "nope"})
        client = PyannoteClient(TrimConfig(pyannote_api_key="pa-key"))
        with pytest.raises(RuntimeError, match="No upload URL"):
            client.upload(audio, "talk")

    @patch("retake_trim.diarization.time.sleep")
    def test_diarize_returns_speaker_turns(self, mock_sleep, tmp_path):
        turns = [{"start": 0, "end": 1, "speaker": "SPEAKER_00"}]
        client = PyannoteClient(TrimConfig(pyannote_api_key="pa-key", poll_interval=10))
        with patch.object(client, "upload", return_value="media://talk"), \
                patch.object(client, "create_job", return_value="job-1"), \
                patch.object(client, "job_status", side_effect=[
                    {"status": "running"},
                    {"status": "succeeded", "output": {"diarization": turns}},
                ]) as mock_status:
            assert client.diarize(tmp_path / "talk.mp3") == turns
        mock_status.assert_called_with("job-1")
        mock_sleep.assert_called_once_with(10)


# ---------------------------------------------------------------------------
# diarize_file
# ---------------------------------------------------------------------------

class TestDiarizeFile:
    @pytest.fixture
    def config(self, tmp_path):
        return TrimConfig(diarized_dir=tmp_path / "diarized")

    def test_aligns_and_numbers(self, config, tmp_path):
        speakers = [{"start": 0, "end": 2, "speaker": "SPEAKER_00"},
                    {"start": 2, "end": 4, "speaker": "SPEAKER_01"}]
        transcript = [{"start": 0, "end": 2, "text": " hello"},
                      {"start": 2, "end": 4, "text": " world"},
                      {"start": 9, "end": 10, "text": " later"}]

        output = diarize_file(config, tmp_path / "talk.mp3",
                              diarizer=lambda path: speakers,
                              transcriber=lambda path: transcript)

        assert output == config.diarized_dir / "talk.json"
        data = json.loads(output.read_text())
        assert data == [
            {"id": 1, "start": 0.0, "end": 2.0, "text": "hello", "speaker": "SPEAKER_00"},
            {"id": 2, "start": 2.0, "end": 4.0, "text": "world", "speaker": "SPEAKER_01"},
            {"id": 3, "start": 9.0, "end": 10.0, "text": "later", "speaker": "UNKNOWN"},
        ]

    def test_skips_existing(self, config, tmp_path):
        config.diarized_dir.mkdir(parents=True)
        (config.diarized_dir / "talk.json").write_text("[]")
        diarizer = MagicMock()
        assert diarize_file(config, tmp_path / "talk.mp3", diarizer=diarizer,
                            transcriber=MagicMock()) is None
        diarizer.assert_not_called()

    def test_service_errors_propagate(self, config, tmp_path):
        diarizer = MagicMock(side_effect=DiarizationTimeoutError("too slow"))
        with pytest.raises(DiarizationTimeoutError):
            diarize_file(config, tmp_path / "talk.mp3", diarizer=diarizer,
                         transcriber=MagicMock(return_value=[]))
        assert not (config.diarized_dir / "talk.json").exists()

    def test_dry_run(self, config, tmp_path):
        config.dry_run = True
        diarizer = MagicMock()
        assert diarize_file(config, tmp_path / "talk.mp3", diarizer=diarizer,
                            transcriber=MagicMock()) is None
        diarizer.assert_not_called()
