"""Base interface for speech recognition engines."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Protocol


class VoiceErrorKind(str, Enum):
    """Classified reasons a speech session can fail."""

    NO_SPEECH = "no_speech"
    MICROPHONE_UNAVAILABLE = "microphone_unavailable"
    PERMISSION_DENIED = "permission_denied"
    OTHER = "other"


class SpeechEventSink(Protocol):
    """Receiver for the events of one recognition session."""

    def on_result(self, transcript: str) -> None: ...

    def on_error(self, kind: VoiceErrorKind) -> None: ...

    def on_end(self) -> None: ...


class SpeechEngine(ABC):
    """Abstract base class for speech recognition engines.

    An engine runs at most one session at a time. A session reports at most one
    final transcript or one error, and always finishes with ``on_end``.
    Events may be delivered from any thread.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether speech recognition can run on this system."""
        pass

    @abstractmethod
    def start_session(self, sink: SpeechEventSink) -> None:
        """
        Begin listening for a single utterance.

        Args:
            sink: Receiver for result, error and end events
        """
        pass

    @abstractmethod
    def stop_session(self) -> None:
        """Cancel the current session without producing a transcript."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the speech engine."""
        pass
