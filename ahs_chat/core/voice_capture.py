"""Voice capture controller: one speech session at a time with an explicit lifecycle."""

import threading
from enum import Enum
from typing import Callable, Optional
import structlog

from ..providers.stt.base import SpeechEngine, VoiceErrorKind


logger = structlog.get_logger()


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    ERROR = "error"


class VoiceCaptureError(Exception):
    """Voice capture could not be started."""


class UnsupportedPlatformError(VoiceCaptureError):
    """No speech engine is available on this system."""

    def __init__(self, message: str = "Speech recognition is not supported on this system."):
        super().__init__(message)


TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[VoiceErrorKind], None]
EndCallback = Callable[[], None]


class _SessionSink:
    """Tags engine events with the session they belong to."""

    def __init__(self, controller: "VoiceCaptureController", session_id: int):
        self._controller = controller
        self.session_id = session_id

    def on_result(self, transcript: str) -> None:
        self._controller._handle_result(self.session_id, transcript)

    def on_error(self, kind: VoiceErrorKind) -> None:
        self._controller._handle_error(self.session_id, kind)

    def on_end(self) -> None:
        self._controller._handle_end(self.session_id)


class VoiceCaptureController:
    """
    Wraps a speech engine behind a start/stop/toggle surface.

    Every session produces at most one transcript or one error and then
    exactly one ``end`` event, after which the controller is idle again.
    Engine events from a session that already ended are dropped, so a late
    callback cannot reopen or double-close a session.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_end: Optional[EndCallback] = None,
    ):
        self.engine = engine
        self.on_transcript = on_transcript
        self.on_error = on_error
        self.on_end = on_end

        self.state = VoiceState.IDLE
        self._session_id = 0
        self._session_open = False
        self._lock = threading.Lock()

    @property
    def is_listening(self) -> bool:
        return self.state is VoiceState.LISTENING

    @property
    def session_id(self) -> int:
        return self._session_id

    def toggle(self) -> None:
        """Start a session when idle, stop it when listening."""
        if self._session_open:
            self.stop()
        else:
            self.start()

    def start(self) -> None:
        """
        Begin a recognition session.

        Raises:
            UnsupportedPlatformError: if the engine is not available
            VoiceCaptureError: if the engine failed to start
        """
        with self._lock:
            if self._session_open:
                already_listening = True
            else:
                already_listening = False
                if not self.engine.is_available():
                    raise UnsupportedPlatformError()
                self._session_id += 1
                session_id = self._session_id
                self._session_open = True
                self.state = VoiceState.LISTENING

        if already_listening:
            self.stop()
            return

        logger.info("Voice capture started", session_id=session_id)
        try:
            self.engine.start_session(_SessionSink(self, session_id))
        except Exception as e:
            logger.error("Could not start speech session", error=str(e))
            with self._lock:
                if self._session_id == session_id:
                    self._session_open = False
                    self.state = VoiceState.IDLE
            raise VoiceCaptureError(str(e)) from e

    def stop(self) -> None:
        """Cancel the current session without a transcript."""
        with self._lock:
            if not self._session_open:
                return
            session_id = self._session_id

        logger.info("Voice capture stopped", session_id=session_id)
        try:
            self.engine.stop_session()
        except Exception as e:
            logger.warning("Error stopping speech engine", error=str(e))

        # Close here as well; the engine's own end event will be stale.
        self._finish(session_id)

    def _claim(self, session_id: int) -> bool:
        if session_id != self._session_id or not self._session_open:
            logger.debug(
                "Dropping stale speech event",
                event_session=session_id,
                current_session=self._session_id,
            )
            return False
        return True

    def _handle_result(self, session_id: int, transcript: str) -> None:
        with self._lock:
            if not self._claim(session_id):
                return
            # Closed before emitting so a second result cannot slip through.
            self._session_open = False

        logger.info("Voice transcript received", length=len(transcript))
        if self.on_transcript:
            self.on_transcript(transcript)
        self._close(session_id)

    def _handle_error(self, session_id: int, kind: VoiceErrorKind) -> None:
        with self._lock:
            if not self._claim(session_id):
                return
            self._session_open = False
            self.state = VoiceState.ERROR

        logger.warning("Voice capture error", kind=kind.value)
        if self.on_error:
            self.on_error(kind)
        self._close(session_id)

    def _handle_end(self, session_id: int) -> None:
        self._finish(session_id)

    def _finish(self, session_id: int) -> None:
        with self._lock:
            if not self._claim(session_id):
                return
            self._session_open = False
        self._close(session_id)

    def _close(self, session_id: int) -> None:
        with self._lock:
            if session_id == self._session_id:
                self.state = VoiceState.IDLE
        logger.debug("Voice session ended", session_id=session_id)
        if self.on_end:
            self.on_end()

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "session_id": self._session_id,
            "engine": self.engine.get_status(),
        }
