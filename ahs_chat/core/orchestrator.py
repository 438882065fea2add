"""
Conversation orchestrator: owns the message log and turn-taking state, and
arbitrates between typed drafts and voice transcripts while a reply is pending.
"""

import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Queue
from typing import Callable, List, Optional, Tuple
import structlog

from .commands import ImageRequest, decode_intent
from .messages import CodeBlock, Message, MessageImage, MessageLog, Sender
from .response_parser import parse_response
from .voice_capture import (
    UnsupportedPlatformError,
    VoiceCaptureController,
    VoiceCaptureError,
)
from ..metrics.collector import MetricsCollector
from ..providers.ai.base import GenerationError, GenerationGateway
from ..providers.registry import registry
from ..providers.stt.base import SpeechEngine, VoiceErrorKind
from ..config.settings import settings


logger = structlog.get_logger()


IMAGE_PROMPT_REQUEST = "Please provide a description for the image after /image."
EMPTY_RESPONSE_NOTICE = "Received an empty response from AI."
UNEXPECTED_ERROR = "An unexpected error occurred. Please try again."
IMAGE_ACKNOWLEDGEMENT = "Okay, generating an image of: {prompt}"

VOICE_UNSUPPORTED = "Speech recognition is not supported on this system."
VOICE_START_FAILED = "Could not start voice listening. Please try again."
VOICE_ERROR_MESSAGES = {
    VoiceErrorKind.NO_SPEECH: "No speech detected. Please try again.",
    VoiceErrorKind.MICROPHONE_UNAVAILABLE: "Microphone error. Please check your microphone.",
    VoiceErrorKind.PERMISSION_DENIED: "Microphone access denied. Please allow microphone access.",
    VoiceErrorKind.OTHER: "Speech recognition error.",
}


class ConversationState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_RESPONSE = "awaiting_response"


class InputMode(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


@dataclass(frozen=True)
class Reply:
    """Content of one AI message produced by a turn."""

    text: Optional[str] = None
    image: Optional[MessageImage] = None
    code_block: Optional[CodeBlock] = None


# Actions. Every external event goes through the action queue.


@dataclass(frozen=True)
class SubmitDraft:
    pass


@dataclass(frozen=True)
class ToggleVoice:
    pass


@dataclass(frozen=True)
class UpdateDraft:
    text: str


@dataclass(frozen=True)
class VoiceTranscript:
    text: str


@dataclass(frozen=True)
class VoiceFailed:
    kind: VoiceErrorKind


@dataclass(frozen=True)
class VoiceEnded:
    pass


@dataclass(frozen=True)
class AppendReply:
    turn_id: int
    reply: Reply


@dataclass(frozen=True)
class TurnSettled:
    turn_id: int
    replies: Tuple[Reply, ...]
    outcome: str
    latency_ms: float


@dataclass
class ConversationConfig:
    """Configuration for a conversation session."""

    ai_provider: str = "gemini"
    speech_provider: Optional[str] = "whisperkit"
    enable_metrics: bool = True
    mock_mode: bool = False


Listener = Callable[["ConversationOrchestrator"], None]


class ConversationOrchestrator:
    """
    Single owner of conversation state.

    User actions, voice events and generation results are turned into actions
    and handled one at a time by ``_drain``. Generation calls run on the
    executor and report back with ``AppendReply``/``TurnSettled`` actions, so
    the handler never blocks and input arriving mid-turn is rejected at once.
    A public action has been handled by the time its method returns.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        speech_engine: Optional[SpeechEngine] = None,
        executor: Optional[Executor] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        image_mime_type: str = "image/jpeg",
    ):
        self.gateway = gateway
        self.metrics_collector = metrics_collector
        self.image_mime_type = image_mime_type

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="Generation-Worker"
        )

        self.voice: Optional[VoiceCaptureController] = None
        if speech_engine is not None:
            self.voice = VoiceCaptureController(
                speech_engine,
                on_transcript=lambda text: self.dispatch(VoiceTranscript(text)),
                on_error=lambda kind: self.dispatch(VoiceFailed(kind)),
                on_end=lambda: self.dispatch(VoiceEnded()),
            )

        self._log = MessageLog()
        self._state = ConversationState.IDLE
        self._draft = ""
        self._turn_id = 0
        self._listen_started_at: Optional[float] = None

        self._actions: Queue = Queue()
        self._drain_lock = threading.Lock()
        self._drain_owner: Optional[int] = None
        self._settled = threading.Event()
        self._settled.set()
        self._listeners: List[Listener] = []
        self._closed = False

        self._handlers = {
            SubmitDraft: self._on_submit_draft,
            ToggleVoice: self._on_toggle_voice,
            UpdateDraft: self._on_update_draft,
            VoiceTranscript: self._on_voice_transcript,
            VoiceFailed: self._on_voice_failed,
            VoiceEnded: self._on_voice_ended,
            AppendReply: self._on_append_reply,
            TurnSettled: self._on_turn_settled,
        }

    @classmethod
    def from_config(cls, config: ConversationConfig) -> "ConversationOrchestrator":
        """Build an orchestrator with providers looked up in the registry."""
        if config.mock_mode:
            gateway = registry.get_gateway("mock")
            speech_engine = (
                registry.get_speech_engine("mock") if config.speech_provider else None
            )
        else:
            gateway = registry.get_gateway(config.ai_provider)
            speech_engine = (
                registry.get_speech_engine(config.speech_provider)
                if config.speech_provider
                else None
            )

        metrics_collector = MetricsCollector() if config.enable_metrics else None
        return cls(
            gateway,
            speech_engine=speech_engine,
            metrics_collector=metrics_collector,
            image_mime_type=settings.providers.image_mime_type,
        )

    # Presentation boundary

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self._log.snapshot()

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def pending_response(self) -> bool:
        return self._state is ConversationState.AWAITING_RESPONSE

    @property
    def input_mode(self) -> InputMode:
        if self._state is ConversationState.LISTENING:
            return InputMode.LISTENING
        return InputMode.IDLE

    @property
    def draft(self) -> str:
        return self._draft

    def submit_draft(self) -> None:
        """Send the current draft."""
        self.dispatch(SubmitDraft())

    def toggle_voice(self) -> None:
        """Start or stop voice capture."""
        self.dispatch(ToggleVoice())

    def update_draft(self, text: str) -> None:
        """Replace the draft buffer."""
        self.dispatch(UpdateDraft(text))

    def subscribe(self, listener: Listener) -> None:
        """Register a callback run after every handled action."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no reply is pending. Returns False on timeout."""
        return self._settled.wait(timeout)

    # Action handling

    def dispatch(self, action) -> None:
        """
        Queue an action and return once it has been handled.

        Called from the thread that is already handling an action (a handler
        or an inline executor), the action is queued behind the current one.
        """
        if self._closed:
            logger.debug("Dropping action after close", action=type(action).__name__)
            return
        self._actions.put(action)
        if self._drain_owner == threading.get_ident():
            return
        self._drain()

    def _drain(self) -> None:
        with self._drain_lock:
            self._drain_owner = threading.get_ident()
            try:
                while True:
                    try:
                        action = self._actions.get_nowait()
                    except Empty:
                        break
                    self._handle(action)
            finally:
                self._drain_owner = None

    def _handle(self, action) -> None:
        handler = self._handlers.get(type(action))
        if handler is None:
            logger.warning("Unknown action", action=type(action).__name__)
            return

        handler(action)

        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error("Conversation listener error", error=str(e))

        # Waiters wake only after listeners have seen the settled turn.
        if not self.pending_response:
            self._settled.set()

    def _reject(self, action_name: str, reason: str) -> None:
        logger.debug("Input rejected", action=action_name, reason=reason, state=self._state.value)
        if self.metrics_collector:
            self.metrics_collector.record_rejected_input()

    def _append_ai(self, text: Optional[str] = None, **content) -> Message:
        return self._log.append(Sender.AI, text=text, **content)

    def _on_submit_draft(self, action: SubmitDraft) -> None:
        if self._state is not ConversationState.IDLE:
            self._reject("submit_draft", "busy")
            return

        text = self._draft.strip()
        if not text:
            self._reject("submit_draft", "empty draft")
            return

        self._begin_turn(text)

    def _on_update_draft(self, action: UpdateDraft) -> None:
        if self._state is not ConversationState.IDLE:
            self._reject("update_draft", "input disabled")
            return
        self._draft = action.text

    def _on_toggle_voice(self, action: ToggleVoice) -> None:
        if self._state is ConversationState.AWAITING_RESPONSE:
            self._reject("toggle_voice", "busy")
            return

        if self._state is ConversationState.LISTENING:
            # The controller reports the end, which moves us back to idle.
            self.voice.stop()
            return

        if self.voice is None:
            self._append_ai(VOICE_UNSUPPORTED)
            return

        try:
            self.voice.start()
        except UnsupportedPlatformError:
            logger.warning("Speech recognition unsupported")
            self._append_ai(VOICE_UNSUPPORTED)
            return
        except VoiceCaptureError as e:
            logger.error("Error starting speech recognition", error=str(e))
            self._append_ai(VOICE_START_FAILED)
            return

        self._state = ConversationState.LISTENING
        self._draft = ""
        self._listen_started_at = time.time()

    def _on_voice_transcript(self, action: VoiceTranscript) -> None:
        if self._state is not ConversationState.LISTENING:
            logger.debug("Ignoring transcript outside listening state", state=self._state.value)
            return

        if self.metrics_collector and self._listen_started_at:
            self.metrics_collector.record_voice_latency(
                (time.time() - self._listen_started_at) * 1000
            )

        text = action.text.strip()
        if not text:
            logger.info("Empty transcript, returning to idle")
            self._state = ConversationState.IDLE
            return

        self._begin_turn(text)

    def _on_voice_failed(self, action: VoiceFailed) -> None:
        if self._state is not ConversationState.LISTENING:
            logger.debug("Ignoring voice error outside listening state", kind=action.kind.value)
            return

        if self.metrics_collector:
            self.metrics_collector.record_error("voice", action.kind.value)
        self._append_ai(VOICE_ERROR_MESSAGES[action.kind])

    def _on_voice_ended(self, action: VoiceEnded) -> None:
        if self._state is ConversationState.LISTENING:
            self._state = ConversationState.IDLE

    def _begin_turn(self, text: str) -> None:
        self._log.append(Sender.USER, text=text)
        self._draft = ""
        self._state = ConversationState.AWAITING_RESPONSE
        self._settled.clear()
        self._turn_id += 1
        turn_id = self._turn_id

        logger.info("Turn started", turn_id=turn_id, text=text[:50])
        try:
            self._executor.submit(self._run_turn, turn_id, text)
        except RuntimeError as e:
            logger.error("Could not dispatch turn", turn_id=turn_id, error=str(e))
            self._on_turn_settled(
                TurnSettled(turn_id, (Reply(text=f"Error: {UNEXPECTED_ERROR}"),), "error", 0.0)
            )

    def _on_append_reply(self, action: AppendReply) -> None:
        if action.turn_id != self._turn_id or not self.pending_response:
            return
        reply = action.reply
        self._append_ai(reply.text, image=reply.image, code_block=reply.code_block)

    def _on_turn_settled(self, action: TurnSettled) -> None:
        if action.turn_id != self._turn_id or not self.pending_response:
            logger.warning("Ignoring settlement of stale turn", turn_id=action.turn_id)
            return

        for reply in action.replies:
            self._append_ai(reply.text, image=reply.image, code_block=reply.code_block)

        self._state = ConversationState.IDLE

        logger.info(
            "Turn settled",
            turn_id=action.turn_id,
            outcome=action.outcome,
            latency_ms=action.latency_ms,
        )
        if self.metrics_collector:
            self.metrics_collector.record_turn(action.outcome)
            self.metrics_collector.record_generation_latency(action.latency_ms)

    # Turn execution, runs on the executor

    def _run_turn(self, turn_id: int, text: str) -> None:
        replies: List[Reply] = []
        outcome = "error"
        start_time = time.time()

        try:
            outcome = self._respond(turn_id, text, replies)
        except GenerationError as e:
            logger.warning("Generation failed", turn_id=turn_id, kind=e.kind.value)
            if self.metrics_collector:
                self.metrics_collector.record_error("generation", e.kind.value, {"detail": e.detail})
            replies = [Reply(text=f"Error: {e.description}")]
        except Exception as e:
            logger.error("Error processing message", turn_id=turn_id, error=str(e), exc_info=True)
            if self.metrics_collector:
                self.metrics_collector.record_error("orchestrator", str(e))
            replies = [Reply(text=f"Error: {UNEXPECTED_ERROR}")]
        finally:
            self.dispatch(
                TurnSettled(
                    turn_id=turn_id,
                    replies=tuple(replies),
                    outcome=outcome,
                    latency_ms=(time.time() - start_time) * 1000,
                )
            )

    def _respond(self, turn_id: int, text: str, replies: List[Reply]) -> str:
        intent = decode_intent(text)
        if isinstance(intent, ImageRequest):
            return self._respond_with_image(intent.prompt, replies)

        raw = self.gateway.generate_text(text)

        # The backend answers image requests with the /image command.
        reply_intent = decode_intent(raw)
        if isinstance(reply_intent, ImageRequest):
            if reply_intent.prompt:
                self.dispatch(
                    AppendReply(
                        turn_id,
                        Reply(text=IMAGE_ACKNOWLEDGEMENT.format(prompt=reply_intent.prompt)),
                    )
                )
            return self._respond_with_image(reply_intent.prompt, replies)

        parsed = parse_response(raw)
        if parsed.is_empty:
            replies.append(Reply(text=EMPTY_RESPONSE_NOTICE))
            return "empty"

        replies.append(Reply(text=parsed.text, code_block=parsed.code_block))
        return "code" if parsed.code_block else "text"

    def _respond_with_image(self, prompt: str, replies: List[Reply]) -> str:
        if not prompt:
            replies.append(Reply(text=IMAGE_PROMPT_REQUEST))
            return "image_prompt_missing"

        data = self.gateway.generate_image(prompt)
        replies.append(
            Reply(image=MessageImage.from_bytes(data, prompt, self.image_mime_type))
        )
        return "image"

    # Lifecycle

    def start(self, session_id: Optional[str] = None) -> None:
        """Start metrics collection for this conversation."""
        if self.metrics_collector:
            self.metrics_collector.start_session(session_id or f"conv_{int(time.time())}")

    def close(self) -> None:
        """Tear down: force-stop voice capture and stop accepting actions."""
        if self._closed:
            return
        logger.info("Closing conversation", messages=len(self._log))
        self._closed = True

        if self.voice:
            self.voice.stop()

        if self._owns_executor:
            self._executor.shutdown(wait=False)

        if self.metrics_collector and self.metrics_collector.current_session:
            self.metrics_collector.end_session()

    def get_status(self) -> dict:
        """Get current conversation status."""
        return {
            "state": self._state.value,
            "pending_response": self.pending_response,
            "input_mode": self.input_mode.value,
            "draft_length": len(self._draft),
            "message_count": len(self._log),
            "turn_id": self._turn_id,
            "closed": self._closed,
            "voice": self.voice.get_status() if self.voice else None,
            "gateway": self.gateway.get_status(),
        }
