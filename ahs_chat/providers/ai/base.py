"""Base interface for generation gateways."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Classified reasons a generation call can fail."""

    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    CONTENT_BLOCKED = "content_blocked"
    UNKNOWN = "unknown"


class Operation(str, Enum):
    TEXT = "text"
    IMAGE = "image"


_DESCRIPTIONS = {
    (FailureKind.INVALID_CREDENTIAL, Operation.TEXT): (
        "Invalid API Key. Please check your Gemini API key."
    ),
    (FailureKind.INVALID_CREDENTIAL, Operation.IMAGE): (
        "Invalid API Key. Please check your Gemini API key."
    ),
    (FailureKind.RATE_LIMITED, Operation.TEXT): (
        "API rate limit exceeded or quota reached. Please try again later."
    ),
    (FailureKind.RATE_LIMITED, Operation.IMAGE): (
        "API rate limit exceeded or quota reached for image generation. "
        "Please try again later."
    ),
    (FailureKind.CONTENT_BLOCKED, Operation.IMAGE): (
        "The image prompt was blocked due to safety policies. "
        "Please try a different prompt."
    ),
    (FailureKind.UNKNOWN, Operation.TEXT): "Failed to generate text content from AI.",
    (FailureKind.UNKNOWN, Operation.IMAGE): "Failed to generate image from AI.",
}


def describe_failure(kind: FailureKind, operation: Operation) -> str:
    """Human-readable description of a failure for the given operation."""
    return _DESCRIPTIONS.get((kind, operation), _DESCRIPTIONS[(FailureKind.UNKNOWN, operation)])


class GenerationError(Exception):
    """A classified failure raised by a generation gateway."""

    def __init__(
        self,
        kind: FailureKind,
        operation: Operation = Operation.TEXT,
        detail: Optional[str] = None,
    ):
        self.kind = kind
        self.operation = operation
        self.detail = detail
        super().__init__(describe_failure(kind, operation))

    @property
    def description(self) -> str:
        return str(self)


class GenerationGateway(ABC):
    """Abstract base class for text and image generation backends.

    Implementations make exactly one backend call per invocation and raise
    ``GenerationError`` for every failure. They never retry.
    """

    def __init__(self, system_prompt: str):
        self.system_prompt = system_prompt

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the gateway."""
        pass

    @abstractmethod
    def generate_text(self, prompt: str) -> str:
        """
        Generate a text reply.

        Args:
            prompt: The user's text input

        Returns:
            The trimmed model output

        Raises:
            GenerationError: if the backend call fails
        """
        pass

    @abstractmethod
    def generate_image(self, prompt: str) -> bytes:
        """
        Generate an image.

        Args:
            prompt: Description of the image

        Returns:
            Encoded image bytes

        Raises:
            GenerationError: if the backend call fails
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Release clients and clean up resources."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the gateway."""
        pass
