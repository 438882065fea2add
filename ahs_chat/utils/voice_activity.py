"""Voice activity detection used to endpoint a spoken utterance."""

import collections
from typing import Deque
import numpy as np
import webrtcvad
import structlog


logger = structlog.get_logger()


class VoiceActivityDetector:
    """Tracks speech and trailing silence across fixed-size audio frames.

    Frames are float32 mono samples in ``[-1, 1]``. A frame counts as voiced
    when webrtcvad flags it and its RMS level clears a threshold derived from
    the recent noise floor.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        frame_duration_ms: int = 30,
        vad_aggressiveness: int = 2,
        voice_threshold: float = 0.6,
        silence_duration_ms: int = 800,
    ):
        self.sample_rate = sample_rate
        self.frame_duration_ms = frame_duration_ms
        self.frame_size = int(sample_rate * frame_duration_ms / 1000)
        self.voice_threshold = voice_threshold
        self.silence_duration_ms = silence_duration_ms

        self.vad = webrtcvad.Vad(vad_aggressiveness)

        self.voice_frames: Deque[bool] = collections.deque(maxlen=10)
        self.audio_levels: Deque[float] = collections.deque(maxlen=50)
        self.noise_floor = 0.0
        self.dynamic_threshold = 0.0
        self._update_threshold_counter = 0

        self.speech_detected = False
        self.is_voice_active = False
        self.silent_frames = 0
        self.frames_processed = 0

    def process_frame(self, audio_data: np.ndarray) -> bool:
        """
        Feed one frame. Returns True while voice is considered active.
        """
        self.frames_processed += 1

        audio_level = float(np.sqrt(np.mean(audio_data.astype(np.float32) ** 2)))
        self.audio_levels.append(audio_level)

        self._update_threshold_counter += 1
        if self._update_threshold_counter % 20 == 0:
            self._update_dynamic_threshold()

        if len(audio_data) != self.frame_size:
            if len(audio_data) < self.frame_size:
                audio_data = np.pad(audio_data, (0, self.frame_size - len(audio_data)))
            else:
                audio_data = audio_data[: self.frame_size]

        audio_bytes = (np.clip(audio_data, -1.0, 1.0) * 32767).astype(np.int16).tobytes()

        try:
            is_voice = self.vad.is_speech(audio_bytes, self.sample_rate)
        except Exception as e:
            logger.error("VAD processing error", error=str(e))
            is_voice = False

        voiced = is_voice and audio_level > self.dynamic_threshold
        self.voice_frames.append(voiced)

        voice_ratio = sum(self.voice_frames) / len(self.voice_frames)
        was_voice_active = self.is_voice_active
        self.is_voice_active = voice_ratio >= self.voice_threshold

        if self.is_voice_active:
            self.silent_frames = 0
            if not was_voice_active:
                logger.debug(
                    "Voice activity started",
                    voice_ratio=voice_ratio,
                    audio_level=audio_level,
                )
            self.speech_detected = True
        else:
            self.silent_frames += 1

        return self.is_voice_active

    def _update_dynamic_threshold(self) -> None:
        """Update dynamic threshold based on recent audio levels."""
        if len(self.audio_levels) < 10:
            return

        recent_levels = sorted(self.audio_levels)
        self.noise_floor = float(np.mean(recent_levels[: len(recent_levels) // 4]))
        self.dynamic_threshold = max(float(self.noise_floor * 3.0), 0.01)

    @property
    def silence_ms(self) -> int:
        return self.silent_frames * self.frame_duration_ms

    @property
    def elapsed_ms(self) -> int:
        return self.frames_processed * self.frame_duration_ms

    def utterance_complete(self) -> bool:
        """Speech was heard and has been followed by enough silence."""
        return self.speech_detected and self.silence_ms >= self.silence_duration_ms

    def reset(self) -> None:
        """Forget all state before a new utterance."""
        self.voice_frames.clear()
        self.audio_levels.clear()
        self.noise_floor = 0.0
        self.dynamic_threshold = 0.0
        self._update_threshold_counter = 0
        self.speech_detected = False
        self.is_voice_active = False
        self.silent_frames = 0
        self.frames_processed = 0

    def get_voice_activity_stats(self) -> dict:
        """Get current voice activity statistics."""
        return {
            "speech_detected": self.speech_detected,
            "is_voice_active": self.is_voice_active,
            "silence_ms": self.silence_ms,
            "elapsed_ms": self.elapsed_ms,
            "noise_floor": self.noise_floor,
            "dynamic_threshold": self.dynamic_threshold,
        }
