"""
Mock provider implementations for running the chat without API keys or a microphone.
"""

import threading
import time
from typing import List, Optional, Sequence, Union

from .ai.base import GenerationGateway
from .stt.base import SpeechEngine, SpeechEventSink, VoiceErrorKind


# Not a decodable picture; stands in for Imagen output in mock runs.
MOCK_IMAGE_BYTES = b"\xff\xd8\xff\xe0mock_image_data\xff\xd9"


class MockGateway(GenerationGateway):
    """Mock gateway with canned replies that exercise every reply shape."""

    def __init__(self, system_prompt: str = "", delay: float = 0.2):
        super().__init__(system_prompt)
        self.delay = delay
        self.mock_responses = [
            "I'm doing great, thank you for asking! How can I help you today?",
            "Here's a quick example:\n```python\nprint(\"Hello, world!\")\n```",
            "Sure, happy to chat. What would you like to talk about?",
        ]
        self.response_index = 0
        self.images_generated = 0

    def initialize(self) -> None:
        """Initialize mock gateway."""
        pass

    def generate_text(self, prompt: str) -> str:
        """Return the next canned reply, or an /image command for image requests."""
        time.sleep(self.delay)

        lowered = prompt.lower()
        if any(word in lowered for word in ("picture", "photo", "draw")):
            return f"/image {prompt}"
        if "your name" in lowered:
            return "my name is Abdul Hadi."

        response = self.mock_responses[self.response_index % len(self.mock_responses)]
        self.response_index += 1
        return response

    def generate_image(self, prompt: str) -> bytes:
        """Return placeholder image bytes."""
        time.sleep(self.delay)
        self.images_generated += 1
        return MOCK_IMAGE_BYTES

    def stop(self) -> None:
        """Stop mock gateway."""
        pass

    def get_status(self) -> dict:
        """Get mock gateway status."""
        return {
            "provider": "mock_ai",
            "responses_generated": self.response_index,
            "images_generated": self.images_generated,
        }


ScriptItem = Union[str, VoiceErrorKind]


class MockSpeechEngine(SpeechEngine):
    """Mock speech engine that 'hears' scripted utterances after a short delay."""

    def __init__(
        self,
        script: Optional[Sequence[ScriptItem]] = None,
        delay: float = 1.5,
        available: bool = True,
    ):
        self.script: List[ScriptItem] = list(
            script
            or [
                "Hello, how are you today?",
                "Can you show me some Python code?",
                "Draw a picture of a red bicycle",
            ]
        )
        self.delay = delay
        self.available = available
        self.index = 0
        self.is_listening = False
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.available

    def start_session(self, sink: SpeechEventSink) -> None:
        """Emit the next scripted item from a background thread."""
        with self._lock:
            if self.is_listening:
                raise RuntimeError("Speech session already active")
            self.is_listening = True
            self._stop_event = stop_event = threading.Event()

            item = self.script[self.index % len(self.script)]
            self.index += 1

        thread = threading.Thread(
            target=self._run_session,
            args=(sink, item, stop_event),
            daemon=True,
            name="Mock-Speech-Session",
        )
        thread.start()

    def _run_session(
        self, sink: SpeechEventSink, item: ScriptItem, stop_event: threading.Event
    ) -> None:
        try:
            if stop_event.wait(self.delay):
                return
            if isinstance(item, VoiceErrorKind):
                sink.on_error(item)
            else:
                sink.on_result(item)
        finally:
            with self._lock:
                # A stopped session already released the engine.
                if self._stop_event is stop_event:
                    self.is_listening = False
            sink.on_end()

    def stop_session(self) -> None:
        """Cancel the pending utterance; a new session may start right away."""
        with self._lock:
            self._stop_event.set()
            self.is_listening = False

    def get_status(self) -> dict:
        """Get mock speech engine status."""
        return {
            "provider": "mock_stt",
            "is_listening": self.is_listening,
            "utterances_played": self.index,
        }
