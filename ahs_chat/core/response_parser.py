"""Split raw model output into prose and a fenced code block."""

import re
from dataclasses import dataclass
from typing import Optional

from .messages import CodeBlock


# Opener with optional language tag, then the body, then the closer.
# Only the first fence is used; anything after its closer is dropped.
FENCE_PATTERN = re.compile(r"```([^\n`]*)\n(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class ParsedResponse:
    """Structured segments of a model reply."""

    text: Optional[str] = None
    code_block: Optional[CodeBlock] = None

    @property
    def is_empty(self) -> bool:
        return self.text is None and self.code_block is None


def parse_response(raw: str) -> ParsedResponse:
    """
    Parse a raw model reply.

    Args:
        raw: Text returned by the generation backend

    Returns:
        ParsedResponse with the prose before the first fenced block and the
        block itself, or the whole trimmed reply as text when there is no
        fence. Blank input gives an empty result.
    """
    if not raw or not raw.strip():
        return ParsedResponse()

    match = FENCE_PATTERN.search(raw)
    if not match:
        return ParsedResponse(text=raw.strip())

    language = match.group(1).strip() or None
    content = match.group(2).strip()
    prefix = raw[: match.start()].strip()

    return ParsedResponse(
        text=prefix or None,
        code_block=CodeBlock(content=content, language=language),
    )
