"""Gemini text and Imagen image generation gateway."""

import os
import time
from typing import Optional
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
import structlog

from .base import FailureKind, GenerationError, GenerationGateway, Operation


logger = structlog.get_logger()


def classify_error(error: Exception, operation: Operation) -> FailureKind:
    """Map a backend exception onto the gateway failure taxonomy."""
    if isinstance(error, GenerationError):
        return error.kind

    message = str(error).lower()

    if "api key not valid" in message or "api_key_invalid" in message:
        return FailureKind.INVALID_CREDENTIAL
    if isinstance(error, google_exceptions.Unauthenticated):
        return FailureKind.INVALID_CREDENTIAL
    if isinstance(error, google_exceptions.PermissionDenied) and "api key" in message:
        return FailureKind.INVALID_CREDENTIAL

    if isinstance(
        error, (google_exceptions.ResourceExhausted, google_exceptions.TooManyRequests)
    ):
        return FailureKind.RATE_LIMITED
    if "429" in message or "quota" in message:
        return FailureKind.RATE_LIMITED

    if operation is Operation.IMAGE and (
        "prompt blocked" in message or "safety" in message
    ):
        return FailureKind.CONTENT_BLOCKED

    return FailureKind.UNKNOWN


def _extract_image_bytes(image) -> Optional[bytes]:
    """Pull raw bytes out of an Imagen result image."""
    data = getattr(image, "image_bytes", None)
    if data is None:
        data = getattr(image, "_image_bytes", None)
    return data


class GeminiGateway(GenerationGateway):
    """
    Generation gateway backed by the Gemini API.

    Text goes to a Gemini model configured with the system instruction,
    images to an Imagen model. One backend call per request, no retries.
    """

    def __init__(
        self,
        system_prompt: str,
        text_model_name: str = "gemini-1.5-flash",
        image_model_name: str = "imagen-3.0-generate-001",
        temperature: float = 0.7,
        top_k: int = 40,
        top_p: float = 0.95,
        timeout: float = 60.0,
    ):
        super().__init__(system_prompt)
        self.text_model_name = text_model_name
        self.image_model_name = image_model_name
        self.temperature = temperature
        self.top_k = top_k
        self.top_p = top_p
        self.timeout = timeout
        self.text_model: Optional[genai.GenerativeModel] = None
        self.image_model = None
        self.request_count = 0
        self.last_latency_ms: Optional[float] = None

    def initialize(self) -> None:
        """Configure the Gemini client and create both models."""
        logger.info(
            "Initializing Gemini gateway",
            text_model=self.text_model_name,
            image_model=self.image_model_name,
        )

        api_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")

        try:
            genai.configure(api_key=api_key)

            self.text_model = genai.GenerativeModel(
                model_name=self.text_model_name,
                system_instruction=self.system_prompt,
            )
            self.image_model = genai.ImageGenerationModel(self.image_model_name)

            logger.info("Gemini client initialized")

        except Exception as e:
            logger.error("Failed to initialize Gemini", error=str(e))
            raise

    @property
    def generation_config(self) -> genai.GenerationConfig:
        return genai.GenerationConfig(
            temperature=self.temperature,
            top_k=self.top_k,
            top_p=self.top_p,
        )

    def generate_text(self, prompt: str) -> str:
        """Generate a text reply for ``prompt``."""
        if not self.text_model:
            raise RuntimeError("Gemini not initialized")

        start_time = time.time()
        self.request_count += 1

        try:
            response = self.text_model.generate_content(
                prompt,
                generation_config=self.generation_config,
                request_options={"timeout": self.timeout},
            )
            text = response.text
        except Exception as e:
            kind = classify_error(e, Operation.TEXT)
            logger.error("Error generating text content", kind=kind.value, error=str(e))
            raise GenerationError(kind, Operation.TEXT, detail=str(e)) from e

        self.last_latency_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Text generated", latency_ms=self.last_latency_ms, length=len(text or "")
        )
        return (text or "").strip()

    def generate_image(self, prompt: str) -> bytes:
        """Generate one image for ``prompt`` and return its bytes."""
        if not self.image_model:
            raise RuntimeError("Gemini not initialized")

        start_time = time.time()
        self.request_count += 1

        try:
            result = self.image_model.generate_images(
                prompt=prompt,
                number_of_images=1,
            )
        except Exception as e:
            kind = classify_error(e, Operation.IMAGE)
            logger.error("Error generating image", kind=kind.value, error=str(e))
            raise GenerationError(kind, Operation.IMAGE, detail=str(e)) from e

        images = list(getattr(result, "images", None) or [])
        data = _extract_image_bytes(images[0]) if images else None
        if not data:
            # Imagen returns no images when its safety filters reject a prompt
            logger.warning("Image generation returned no image", prompt=prompt[:50])
            raise GenerationError(
                FailureKind.CONTENT_BLOCKED, Operation.IMAGE, detail="no image returned"
            )

        self.last_latency_ms = (time.time() - start_time) * 1000
        logger.debug("Image generated", latency_ms=self.last_latency_ms, size=len(data))
        return data

    def stop(self) -> None:
        """Stop Gemini gateway."""
        logger.info("Stopping Gemini gateway")
        self.text_model = None
        self.image_model = None

    def get_status(self) -> dict:
        """Get Gemini gateway status."""
        return {
            "provider": "gemini",
            "text_model": self.text_model_name,
            "image_model": self.image_model_name,
            "initialized": self.text_model is not None,
            "request_count": self.request_count,
            "last_latency_ms": self.last_latency_ms,
        }
