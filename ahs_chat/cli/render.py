"""Plain-text echo of conversation messages for the terminal."""

import threading
from pathlib import Path
from typing import Optional
import click
import structlog

from ..core.messages import Message, Sender


logger = structlog.get_logger()


def format_message(message: Message, image_path: Optional[Path] = None) -> str:
    """Render a message as terminal text."""
    label = "You" if message.sender is Sender.USER else "AI"
    parts = []
    if message.text:
        parts.append(message.text)
    if message.code_block:
        language = message.code_block.language or ""
        parts.append(f"```{language}\n{message.code_block.content}\n```")
    if message.image:
        location = str(image_path) if image_path else message.image.download_name
        parts.append(f"[image: {message.image.prompt}] -> {location}")
    return f"{label}: " + "\n".join(parts)


def save_image(message: Message, image_dir: Path) -> Optional[Path]:
    """Write an image message's bytes to ``image_dir``."""
    if not message.image or not message.image.data:
        return None
    image_dir.mkdir(parents=True, exist_ok=True)
    path = image_dir / message.image.download_name
    path.write_bytes(message.image.data)
    logger.info("Image saved", path=str(path))
    return path


class MessagePrinter:
    """Conversation listener that echoes each new message once."""

    def __init__(self, image_dir: Optional[Path] = None, show_user: bool = False):
        self.image_dir = image_dir
        self.show_user = show_user
        self.printed = 0
        self._lock = threading.Lock()

    def __call__(self, orchestrator) -> None:
        with self._lock:
            messages = orchestrator.messages
            for message in messages[self.printed:]:
                if message.sender is Sender.USER and not self.show_user:
                    continue
                image_path = save_image(message, self.image_dir) if self.image_dir else None
                color = "cyan" if message.sender is Sender.USER else "green"
                click.echo(click.style(format_message(message, image_path), fg=color))
            self.printed = len(messages)
