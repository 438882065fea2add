"""Tests for the WhisperKit speech engine."""

import subprocess
import threading
import pytest
import numpy as np
from unittest.mock import Mock, MagicMock, patch

try:
    import sounddevice  # noqa: F401
except OSError:
    pytest.skip("PortAudio library not available", allow_module_level=True)

from ahs_chat.providers.stt.base import VoiceErrorKind
from ahs_chat.providers.stt.whisperkit import WhisperKitEngine, classify_audio_error


class RecordingSink:
    """Collects session events in order."""

    def __init__(self):
        self.events = []
        self.ended = threading.Event()

    def on_result(self, transcript):
        self.events.append(("result", transcript))

    def on_error(self, kind):
        self.events.append(("error", kind))

    def on_end(self):
        self.events.append(("end",))
        self.ended.set()


class TestClassifyAudioError:
    """Tests for audio error classification."""

    def test_permission(self):
        assert classify_audio_error(PermissionError("denied")) is VoiceErrorKind.PERMISSION_DENIED
        assert (
            classify_audio_error(Exception("Operation not permitted"))
            is VoiceErrorKind.PERMISSION_DENIED
        )

    def test_portaudio(self):
        error = sounddevice.PortAudioError("Error querying device -1")
        assert classify_audio_error(error) is VoiceErrorKind.MICROPHONE_UNAVAILABLE

    def test_other(self):
        assert classify_audio_error(RuntimeError("boom")) is VoiceErrorKind.OTHER


class TestWhisperKitEngine:
    """Tests for WhisperKitEngine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = WhisperKitEngine(
            whisperkit_path="/usr/local/bin/whisperkit-cli",
            model="tiny",
            language="en",
        )
        self.audio = np.zeros(16000, dtype=np.float32)

    @patch("ahs_chat.providers.stt.whisperkit.sd.query_devices")
    @patch("ahs_chat.providers.stt.whisperkit.shutil.which", return_value=None)
    @patch("ahs_chat.providers.stt.whisperkit.os.path.exists", return_value=False)
    def test_unavailable_without_cli(self, mock_exists, mock_which, mock_query):
        assert self.engine.is_available() is False
        mock_query.assert_not_called()

    @patch("ahs_chat.providers.stt.whisperkit.sd.query_devices")
    @patch("ahs_chat.providers.stt.whisperkit.os.path.exists", return_value=True)
    def test_unavailable_without_input_device(self, mock_exists, mock_query):
        mock_query.side_effect = sounddevice.PortAudioError("no device")
        assert self.engine.is_available() is False

    @patch("ahs_chat.providers.stt.whisperkit.sd.query_devices")
    @patch("ahs_chat.providers.stt.whisperkit.os.path.exists", return_value=True)
    def test_available(self, mock_exists, mock_query):
        mock_query.return_value = {"name": "Built-in Microphone"}
        assert self.engine.is_available() is True

    @patch("ahs_chat.providers.stt.whisperkit.sf.write")
    @patch("subprocess.Popen")
    def test_transcribe_success(self, mock_popen, mock_write):
        """WhisperKit output lines are joined into one transcript."""
        mock_process = MagicMock()
        mock_process.communicate.return_value = ("Hello there.\n  How are you?\n", "")
        mock_process.returncode = 0
        mock_popen.return_value = mock_process

        transcript = self.engine._transcribe(self.audio, threading.Event())

        assert transcript == "Hello there. How are you?"
        cmd = mock_popen.call_args[0][0]
        assert cmd[:2] == ["/usr/local/bin/whisperkit-cli", "transcribe"]
        assert "--audio-path" in cmd
        assert cmd[cmd.index("--model") + 1] == "tiny"
        assert cmd[cmd.index("--language") + 1] == "en"
        mock_write.assert_called_once()
        assert self.engine.process is None

    @patch("ahs_chat.providers.stt.whisperkit.sf.write")
    @patch("subprocess.Popen")
    def test_transcribe_failure(self, mock_popen, mock_write):
        mock_process = MagicMock()
        mock_process.communicate.return_value = ("", "model not found")
        mock_process.returncode = 1
        mock_popen.return_value = mock_process

        with pytest.raises(RuntimeError, match="model not found"):
            self.engine._transcribe(self.audio, threading.Event())

    @patch("ahs_chat.providers.stt.whisperkit.sf.write")
    @patch("subprocess.Popen")
    def test_transcribe_timeout(self, mock_popen, mock_write):
        mock_process = MagicMock()
        mock_process.communicate.side_effect = [
            subprocess.TimeoutExpired(cmd="whisperkit-cli", timeout=60),
            ("", ""),
        ]
        mock_popen.return_value = mock_process

        with pytest.raises(RuntimeError, match="timed out"):
            self.engine._transcribe(self.audio, threading.Event())
        mock_process.kill.assert_called_once()

    def test_session_result(self):
        """A recorded utterance is transcribed and the session ends."""
        sink = RecordingSink()
        with patch.object(self.engine, "_record_utterance", return_value=self.audio), \
                patch.object(self.engine, "_transcribe", return_value="hello"):
            self.engine.start_session(sink)
            assert sink.ended.wait(timeout=2.0)

        assert sink.events == [("result", "hello"), ("end",)]
        assert self.engine.is_listening is False

    def test_session_no_speech(self):
        sink = RecordingSink()
        with patch.object(self.engine, "_record_utterance", return_value=None):
            self.engine.start_session(sink)
            assert sink.ended.wait(timeout=2.0)

        assert sink.events == [("error", VoiceErrorKind.NO_SPEECH), ("end",)]

    def test_session_microphone_error(self):
        sink = RecordingSink()
        error = sounddevice.PortAudioError("Invalid device")
        with patch.object(self.engine, "_record_utterance", side_effect=error):
            self.engine.start_session(sink)
            assert sink.ended.wait(timeout=2.0)

        assert sink.events == [("error", VoiceErrorKind.MICROPHONE_UNAVAILABLE), ("end",)]

    def test_stop_session_suppresses_result(self):
        """A cancelled session reports only its end."""
        sink = RecordingSink()
        release = threading.Event()

        def record(stop_event, vad=None):
            release.wait(timeout=2.0)
            return self.audio

        with patch.object(self.engine, "_record_utterance", side_effect=record), \
                patch.object(self.engine, "_transcribe", return_value="ignored") as transcribe:
            self.engine.start_session(sink)
            self.engine.stop_session()
            release.set()
            assert sink.ended.wait(timeout=2.0)

        assert sink.events == [("end",)]
        transcribe.assert_not_called()

    def test_restart_right_after_stop(self):
        """A new session can start while the cancelled one is still recording."""
        first, second = RecordingSink(), RecordingSink()
        release = threading.Event()

        def record(stop_event, vad=None):
            release.wait(timeout=2.0)
            return self.audio

        with patch.object(self.engine, "_record_utterance", side_effect=record), \
                patch.object(self.engine, "_transcribe", return_value="ignored"):
            self.engine.start_session(first)
            first_vad = self.engine.vad
            self.engine.stop_session()
            assert self.engine.is_listening is False

            self.engine.start_session(second)
            assert self.engine.vad is not first_vad

            self.engine.stop_session()
            release.set()
            assert first.ended.wait(timeout=2.0)
            assert second.ended.wait(timeout=2.0)

        assert first.events == [("end",)]
        assert second.events == [("end",)]
        assert self.engine.sessions_started == 2
        assert self.engine.is_listening is False

    def test_start_while_listening(self):
        self.engine.is_listening = True
        with pytest.raises(RuntimeError, match="already active"):
            self.engine.start_session(RecordingSink())

    def test_stop_terminates_process(self):
        process = Mock()
        process.poll.return_value = None
        self.engine.process = process

        self.engine.stop_session()
        process.terminate.assert_called_once()

    def test_status(self):
        status = self.engine.get_status()
        assert status["provider"] == "whisperkit"
        assert status["model"] == "tiny"
        assert status["is_listening"] is False
        assert "vad_stats" in status
