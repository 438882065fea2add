"""Decode user input and backend replies into structured intents.

The backend is instructed to answer image requests with the literal
``/image <description>`` token (see ``SystemPrompts`` in the settings), and
users may type the same command directly. Everything else is plain chat.
"""

import re
from dataclasses import dataclass
from typing import Union


IMAGE_COMMAND = "/image"

_IMAGE_PATTERN = re.compile(r"^/image(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ImageRequest:
    """Request to generate an image; ``prompt`` may be empty."""

    prompt: str


@dataclass(frozen=True)
class ChatText:
    """Anything that is not a command."""

    text: str


Intent = Union[ImageRequest, ChatText]


def decode_intent(raw: str) -> Intent:
    """Classify ``raw`` as an image command or plain text."""
    stripped = raw.strip()
    match = _IMAGE_PATTERN.match(stripped)
    if match:
        return ImageRequest(prompt=(match.group(1) or "").strip())
    return ChatText(text=stripped)
