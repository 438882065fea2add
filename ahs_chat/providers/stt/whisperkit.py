"""WhisperKit speech engine: microphone capture with sounddevice, VAD endpointing,
file transcription through the WhisperKit CLI."""

import os
import shutil
import subprocess
import tempfile
import threading
import time
from typing import List, Optional
import numpy as np
import sounddevice as sd
import soundfile as sf
import structlog

from .base import SpeechEngine, SpeechEventSink, VoiceErrorKind
from ...utils.voice_activity import VoiceActivityDetector


logger = structlog.get_logger()


def classify_audio_error(error: Exception) -> VoiceErrorKind:
    """Map an audio capture exception onto the voice failure taxonomy."""
    if isinstance(error, PermissionError):
        return VoiceErrorKind.PERMISSION_DENIED
    message = str(error).lower()
    if "permission" in message or "not permitted" in message or "denied" in message:
        return VoiceErrorKind.PERMISSION_DENIED
    if isinstance(error, sd.PortAudioError):
        return VoiceErrorKind.MICROPHONE_UNAVAILABLE
    return VoiceErrorKind.OTHER


class WhisperKitEngine(SpeechEngine):
    """
    Single-utterance speech engine.

    Each session records from the default input device until the speaker
    pauses, then transcribes the recording with ``whisperkit-cli``.
    """

    def __init__(
        self,
        model: str = "large-v3_turbo",
        compute_units: str = "cpuAndNeuralEngine",
        whisperkit_path: str = "/opt/homebrew/bin/whisperkit-cli",
        language: str = "en",
        sample_rate: int = 16000,
        channels: int = 1,
        max_seconds: float = 15.0,
        no_speech_timeout: float = 8.0,
        silence_duration_ms: int = 800,
        transcribe_timeout: float = 60.0,
    ):
        self.model = model
        self.compute_units = compute_units
        self.whisperkit_path = whisperkit_path
        self.language = language
        self.sample_rate = sample_rate
        self.channels = channels
        self.max_seconds = max_seconds
        self.no_speech_timeout = no_speech_timeout
        self.silence_duration_ms = silence_duration_ms
        self.transcribe_timeout = transcribe_timeout

        self.vad = VoiceActivityDetector(
            sample_rate=sample_rate, silence_duration_ms=silence_duration_ms
        )

        self.is_listening = False
        self.process: Optional[subprocess.Popen] = None
        self.session_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

        self.sessions_started = 0
        self.last_transcribe_ms: Optional[float] = None

    def is_available(self) -> bool:
        """Check for an input device and the WhisperKit CLI."""
        if not (os.path.exists(self.whisperkit_path) or shutil.which(self.whisperkit_path)):
            logger.warning("WhisperKit CLI not found", whisperkit_path=self.whisperkit_path)
            return False

        try:
            default_input = sd.query_devices(kind="input")
            logger.debug("Audio input device", name=default_input["name"])
        except Exception as e:
            logger.warning("No audio input device available", error=str(e))
            return False

        return True

    def start_session(self, sink: SpeechEventSink) -> None:
        """Start recording on a worker thread."""
        with self._lock:
            if self.is_listening:
                raise RuntimeError("Speech session already active")
            self.is_listening = True
            self._stop_event = stop_event = threading.Event()
            self.vad = vad = VoiceActivityDetector(
                sample_rate=self.sample_rate, silence_duration_ms=self.silence_duration_ms
            )
            self.sessions_started += 1

        self.session_thread = threading.Thread(
            target=self._run_session,
            args=(sink, stop_event, vad),
            daemon=True,
            name="Speech-Session",
        )
        self.session_thread.start()
        logger.info("Speech session started", session=self.sessions_started)

    def _run_session(
        self,
        sink: SpeechEventSink,
        stop_event: threading.Event,
        vad: Optional[VoiceActivityDetector] = None,
    ) -> None:
        try:
            audio = self._record_utterance(stop_event, vad)
            if stop_event.is_set():
                return
            if audio is None:
                sink.on_error(VoiceErrorKind.NO_SPEECH)
                return

            transcript = self._transcribe(audio, stop_event)
            if not stop_event.is_set():
                sink.on_result(transcript)

        except Exception as e:
            kind = classify_audio_error(e)
            logger.error("Speech session failed", kind=kind.value, error=str(e))
            if not stop_event.is_set():
                sink.on_error(kind)
        finally:
            with self._lock:
                # A stopped session already released the engine.
                if self._stop_event is stop_event:
                    self.is_listening = False
            sink.on_end()

    def _record_utterance(
        self, stop_event: threading.Event, vad: Optional[VoiceActivityDetector] = None
    ) -> Optional[np.ndarray]:
        """Record until the utterance ends. Returns None if nobody spoke."""
        if vad is None:
            vad = self.vad
        frame_size = vad.frame_size
        chunks: List[np.ndarray] = []

        with sd.InputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype=np.float32,
            blocksize=frame_size,
        ) as stream:
            while not stop_event.is_set():
                indata, overflowed = stream.read(frame_size)
                if overflowed:
                    logger.debug("Audio input overflow")

                if indata.ndim > 1 and indata.shape[1] > 1:
                    frame = np.mean(indata, axis=1)
                else:
                    frame = indata.flatten()

                chunks.append(frame.copy())
                vad.process_frame(frame)

                if vad.utterance_complete():
                    break
                if (
                    not vad.speech_detected
                    and vad.elapsed_ms >= self.no_speech_timeout * 1000
                ):
                    logger.info("No speech detected", elapsed_ms=vad.elapsed_ms)
                    return None
                if vad.elapsed_ms >= self.max_seconds * 1000:
                    logger.info("Maximum utterance length reached")
                    break

        if not vad.speech_detected:
            return None
        return np.concatenate(chunks)

    def _transcribe(self, audio: np.ndarray, stop_event: threading.Event) -> str:
        """Write ``audio`` to a WAV file and run WhisperKit on it."""
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as temp_file:
            temp_filename = temp_file.name

        cmd = [
            self.whisperkit_path,
            "transcribe",
            "--audio-path",
            temp_filename,
            "--model",
            self.model,
            "--language",
            self.language,
            "--audio-encoder-compute-units",
            self.compute_units,
            "--text-decoder-compute-units",
            self.compute_units,
        ]

        process = None
        try:
            sf.write(temp_filename, audio, self.sample_rate)
            start_time = time.time()

            self.process = process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
            stdout, stderr = process.communicate(timeout=self.transcribe_timeout)
            return_code = process.returncode

            if stop_event.is_set():
                return ""
            if return_code != 0:
                raise RuntimeError(f"WhisperKit failed with code {return_code}: {stderr}")

            self.last_transcribe_ms = (time.time() - start_time) * 1000
            transcript = " ".join(
                line.strip() for line in stdout.splitlines() if line.strip()
            )
            logger.info(
                "Utterance transcribed",
                transcribe_ms=self.last_transcribe_ms,
                text_length=len(transcript),
            )
            return transcript

        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise RuntimeError("WhisperKit transcription timed out")
        finally:
            if process is not None and self.process is process:
                self.process = None
            try:
                os.unlink(temp_filename)
            except OSError:
                pass

    def stop_session(self) -> None:
        """
        Cancel recording or transcription.

        The engine is free for a new session as soon as this returns; the
        cancelled session still ends with on_end from its own thread.
        """
        logger.info("Stopping speech session")
        with self._lock:
            self._stop_event.set()
            self.is_listening = False

        process = self.process
        if process and process.poll() is None:
            try:
                process.terminate()
            except Exception as e:
                logger.warning("Error stopping WhisperKit process", error=str(e))

    def get_status(self) -> dict:
        """Get WhisperKit engine status."""
        return {
            "provider": "whisperkit",
            "model": self.model,
            "language": self.language,
            "is_listening": self.is_listening,
            "process_alive": self.process is not None and self.process.poll() is None,
            "sessions_started": self.sessions_started,
            "last_transcribe_ms": self.last_transcribe_ms,
            "vad_stats": self.vad.get_voice_activity_stats(),
        }
