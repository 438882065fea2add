"""Conversation message model and the append-only message log."""

import base64
import itertools
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional, Tuple


class Sender(str, Enum):
    """Who authored a message."""

    USER = "user"
    AI = "ai"


@dataclass(frozen=True)
class CodeBlock:
    """A fenced code sample extracted from a reply."""

    content: str
    language: Optional[str] = None


@dataclass(frozen=True)
class MessageImage:
    """A generated image attached to an AI message."""

    src: str
    alt: str
    prompt: str
    data: bytes = field(default=b"", repr=False)
    mime_type: str = "image/jpeg"

    @classmethod
    def from_bytes(
        cls, data: bytes, prompt: str, mime_type: str = "image/jpeg"
    ) -> "MessageImage":
        """Build an image whose source is an inline data URI."""
        encoded = base64.b64encode(data).decode("ascii")
        return cls(
            src=f"data:{mime_type};base64,{encoded}",
            alt=prompt,
            prompt=prompt,
            data=data,
            mime_type=mime_type,
        )

    @property
    def download_name(self) -> str:
        """File name derived from the prompt, e.g. ``a_red_bike.jpeg``."""
        stem = re.sub(r"[^a-z0-9]", "_", self.prompt, flags=re.IGNORECASE).lower()
        return f"{stem or 'generated-image'}.jpeg"


@dataclass(frozen=True)
class Message:
    """A single conversation entry. Immutable once created."""

    id: int
    sender: Sender
    text: Optional[str] = None
    image: Optional[MessageImage] = None
    code_block: Optional[CodeBlock] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.text is None and self.image is None and self.code_block is None:
            raise ValueError("Message needs text, an image or a code block")

    def to_dict(self) -> dict:
        """Convert message to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "sender": self.sender.value,
            "text": self.text,
            "image": {
                "src": self.image.src,
                "alt": self.image.alt,
                "prompt": self.image.prompt,
            }
            if self.image
            else None,
            "code_block": {
                "language": self.code_block.language,
                "content": self.code_block.content,
            }
            if self.code_block
            else None,
            "timestamp": self.timestamp.isoformat(),
        }


class MessageLog:
    """Ordered, append-only sequence of messages.

    Ids come from a monotonic counter owned by the log, so insertion order and
    id order always agree.
    """

    def __init__(self):
        self._messages: List[Message] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def append(
        self,
        sender: Sender,
        text: Optional[str] = None,
        image: Optional[MessageImage] = None,
        code_block: Optional[CodeBlock] = None,
    ) -> Message:
        """Create a message and append it to the log."""
        with self._lock:
            message = Message(
                id=next(self._ids),
                sender=sender,
                text=text,
                image=image,
                code_block=code_block,
            )
            self._messages.append(message)
        return message

    def snapshot(self) -> Tuple[Message, ...]:
        """Return the messages as an immutable tuple."""
        with self._lock:
            return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]
