"""Tests for utterance endpointing."""

import unittest
from unittest.mock import patch
import numpy as np

from ahs_chat.utils.voice_activity import VoiceActivityDetector


class TestVoiceActivityDetector(unittest.TestCase):
    """Test the VAD used to end an utterance."""

    def setUp(self):
        self.detector = VoiceActivityDetector(
            sample_rate=16000, frame_duration_ms=30, silence_duration_ms=300
        )
        self.loud = np.full(self.detector.frame_size, 0.5, dtype=np.float32)
        self.quiet = np.zeros(self.detector.frame_size, dtype=np.float32)

    def test_initialization(self):
        """Test proper initialization."""
        self.assertEqual(self.detector.frame_size, 480)  # 16000 * 30 / 1000
        self.assertFalse(self.detector.speech_detected)
        self.assertFalse(self.detector.utterance_complete())

    def test_silence_only(self):
        """Silence never counts as an utterance."""
        for _ in range(20):
            self.detector.process_frame(self.quiet)

        self.assertFalse(self.detector.speech_detected)
        self.assertFalse(self.detector.utterance_complete())
        self.assertEqual(self.detector.elapsed_ms, 600)

    def test_speech_then_silence_completes(self):
        """Speech followed by enough silence ends the utterance."""
        with patch.object(self.detector.vad, "is_speech", return_value=True):
            for _ in range(10):
                self.detector.process_frame(self.loud)
        self.assertTrue(self.detector.speech_detected)
        self.assertFalse(self.detector.utterance_complete())

        with patch.object(self.detector.vad, "is_speech", return_value=False):
            for _ in range(30):
                self.detector.process_frame(self.quiet)
                if self.detector.utterance_complete():
                    break

        self.assertTrue(self.detector.utterance_complete())
        self.assertGreaterEqual(self.detector.silence_ms, 300)

    def test_short_frames_are_padded(self):
        """Frames shorter than the VAD frame size are accepted."""
        self.detector.process_frame(np.zeros(100, dtype=np.float32))
        self.assertEqual(self.detector.frames_processed, 1)

    def test_reset(self):
        with patch.object(self.detector.vad, "is_speech", return_value=True):
            for _ in range(10):
                self.detector.process_frame(self.loud)

        self.detector.reset()
        stats = self.detector.get_voice_activity_stats()
        self.assertFalse(stats["speech_detected"])
        self.assertEqual(stats["elapsed_ms"], 0)
        self.assertEqual(stats["silence_ms"], 0)
