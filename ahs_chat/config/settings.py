"""Configuration settings for the chat system."""

import os
from pathlib import Path
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, asdict
import json
import structlog
from dotenv import load_dotenv
import threading


logger = structlog.get_logger()


DEFAULT_SYSTEM_INSTRUCTION = """You are an AI assistant.
If the user asks you to generate, create, or make an image, photo, or picture of something, respond *only* with the text '/image' followed by a detailed description of the image they want.
For example, if they ask for 'a picture of a cat wearing a hat', you should respond with '/image a detailed, photorealistic image of a small tabby cat wearing a tiny blue knitted hat, sitting on a sunlit windowsill'.
Do not add any other conversational text or apologies before or after the /image command.

When providing code examples, you MUST use Markdown code blocks. Start the block with triple backticks and the language (e.g., ```javascript). End the block with triple backticks. Any explanatory text should precede the code block. No text should follow the code block's closing triple backticks.

If asked "What is your name?", respond with "my name is Abdul Hadi." and nothing else.
If asked who made you, or who your creator is, respond with 'Abdul Hadi.' and nothing else.

For all other queries, respond naturally and helpfully."""


@dataclass
class SystemPrompts:
    """System instruction sent with every text generation request."""
    default: str = DEFAULT_SYSTEM_INSTRUCTION


@dataclass
class ProviderSettings:
    """Provider-specific settings."""
    # Gemini
    gemini_text_model: str = "gemini-1.5-flash"
    gemini_image_model: str = "imagen-3.0-generate-001"
    gemini_temperature: float = 0.7
    gemini_top_k: int = 40
    gemini_top_p: float = 0.95
    gemini_timeout: float = 60.0
    image_mime_type: str = "image/jpeg"

    # WhisperKit
    whisperkit_path: str = "/opt/homebrew/bin/whisperkit-cli"
    whisperkit_model: str = "large-v3_turbo"
    whisperkit_compute_units: str = "cpuAndNeuralEngine"


@dataclass
class VoiceSettings:
    """Speech capture settings."""
    language: str = "en"
    sample_rate: int = 16000
    channels: int = 1
    max_seconds: float = 15.0
    no_speech_timeout: float = 8.0
    silence_duration_ms: int = 800


@dataclass
class MetricsSettings:
    """Metrics collection settings."""
    enabled: bool = True
    storage_path: Optional[str] = None


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "json"
    file_enabled: bool = True
    file_rotation_mb: int = 10
    file_backup_count: int = 7


_SECTIONS = ("system_prompts", "providers", "voice", "metrics", "logging")


class Settings:
    """Main settings class for the chat system."""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self.config_file = Path(config_file) if config_file else None
        self._lock = threading.RLock()
        self._env_loaded = False

        # Initialize sub-settings
        self.system_prompts = SystemPrompts()
        self.providers = ProviderSettings()
        self.voice = VoiceSettings()
        self.metrics = MetricsSettings()
        self.logging = LoggingSettings()
        self.ai_provider = "gemini"
        self.speech_provider = "whisperkit"

        # Load .env file first
        self._load_env_file()

        # Load from file if provided
        if self.config_file and self.config_file.exists():
            self.load_from_file()

        # Override with environment variables
        self.load_from_env()

    def _load_env_file(self) -> None:
        """Load environment variables from .env file."""
        if not self._env_loaded:
            # Look for .env in current directory and parent directories
            current_dir = Path.cwd()
            for parent in [current_dir] + list(current_dir.parents):
                env_file = parent / ".env"
                if env_file.exists():
                    load_dotenv(env_file)
                    logger.debug("Loaded .env file", path=str(env_file))
                    break
            self._env_loaded = True

    def load_from_file(self) -> None:
        """Load settings from configuration file."""
        if not self.config_file or not self.config_file.exists():
            return

        try:
            with self._lock:
                with open(self.config_file, "r") as f:
                    config = json.load(f)

                for section_name in _SECTIONS:
                    if section_name not in config:
                        continue
                    section = getattr(self, section_name)
                    for key, value in config[section_name].items():
                        if hasattr(section, key):
                            setattr(section, key, value)

                self.ai_provider = config.get("ai_provider", self.ai_provider)
                self.speech_provider = config.get("speech_provider", self.speech_provider)

                logger.info("Loaded settings from file", file=str(self.config_file))

        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load settings from file",
                        file=str(self.config_file),
                        error=str(e))

    def load_from_env(self) -> None:
        """Load settings from environment variables."""
        with self._lock:
            # Provider selection
            self.ai_provider = os.getenv("AI_PROVIDER", self.ai_provider)
            self.speech_provider = os.getenv("SPEECH_PROVIDER", self.speech_provider)

            if os.getenv("SYSTEM_PROMPT_DEFAULT"):
                self.system_prompts.default = os.getenv("SYSTEM_PROMPT_DEFAULT")

            # Gemini
            if os.getenv("GEMINI_TEXT_MODEL"):
                self.providers.gemini_text_model = os.getenv("GEMINI_TEXT_MODEL")
            if os.getenv("GEMINI_IMAGE_MODEL"):
                self.providers.gemini_image_model = os.getenv("GEMINI_IMAGE_MODEL")
            if os.getenv("GEMINI_TEMPERATURE"):
                self.providers.gemini_temperature = float(os.getenv("GEMINI_TEMPERATURE"))
            if os.getenv("GEMINI_TOP_K"):
                self.providers.gemini_top_k = int(os.getenv("GEMINI_TOP_K"))
            if os.getenv("GEMINI_TIMEOUT"):
                self.providers.gemini_timeout = float(os.getenv("GEMINI_TIMEOUT"))
            if os.getenv("GEMINI_TOP_P"):
                self.providers.gemini_top_p = float(os.getenv("GEMINI_TOP_P"))

            # WhisperKit
            if os.getenv("WHISPERKIT_PATH"):
                self.providers.whisperkit_path = os.getenv("WHISPERKIT_PATH")
            if os.getenv("WHISPERKIT_MODEL"):
                self.providers.whisperkit_model = os.getenv("WHISPERKIT_MODEL")

            # Voice capture
            if os.getenv("VOICE_LANGUAGE"):
                self.voice.language = os.getenv("VOICE_LANGUAGE")
            if os.getenv("VOICE_MAX_SECONDS"):
                self.voice.max_seconds = float(os.getenv("VOICE_MAX_SECONDS"))
            if os.getenv("VOICE_NO_SPEECH_TIMEOUT"):
                self.voice.no_speech_timeout = float(os.getenv("VOICE_NO_SPEECH_TIMEOUT"))

            # Metrics settings
            if os.getenv("METRICS_ENABLED"):
                self.metrics.enabled = os.getenv("METRICS_ENABLED").lower() == "true"
            if os.getenv("METRICS_STORAGE_PATH"):
                self.metrics.storage_path = os.getenv("METRICS_STORAGE_PATH")

            # Logging settings
            if os.getenv("LOG_LEVEL"):
                self.logging.level = os.getenv("LOG_LEVEL")
            if os.getenv("LOG_FORMAT"):
                self.logging.format = os.getenv("LOG_FORMAT")
            if os.getenv("LOG_FILE_ENABLED"):
                self.logging.file_enabled = os.getenv("LOG_FILE_ENABLED").lower() == "true"

    def save_to_file(self, file_path: Optional[Union[str, Path]] = None) -> None:
        """Save current settings to file."""
        save_path = Path(file_path) if file_path else self.config_file
        if not save_path:
            raise ValueError("No file path provided")

        try:
            with self._lock:
                save_path.parent.mkdir(parents=True, exist_ok=True)
                with open(save_path, "w") as f:
                    json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

                logger.info("Saved settings to file", file=str(save_path))

        except OSError as e:
            logger.error("Failed to save settings to file",
                        file=str(save_path), error=str(e))
            raise

    def get_provider_config(self, provider_type: str) -> Dict[str, Any]:
        """Get configuration for a specific provider."""
        if provider_type == "gemini":
            return {
                "system_prompt": self.system_prompts.default,
                "text_model_name": self.providers.gemini_text_model,
                "image_model_name": self.providers.gemini_image_model,
                "temperature": self.providers.gemini_temperature,
                "top_k": self.providers.gemini_top_k,
                "top_p": self.providers.gemini_top_p,
                "timeout": self.providers.gemini_timeout,
            }
        elif provider_type == "whisperkit":
            return {
                "whisperkit_path": self.providers.whisperkit_path,
                "model": self.providers.whisperkit_model,
                "compute_units": self.providers.whisperkit_compute_units,
                "language": self.voice.language,
                "sample_rate": self.voice.sample_rate,
                "channels": self.voice.channels,
                "max_seconds": self.voice.max_seconds,
                "no_speech_timeout": self.voice.no_speech_timeout,
                "silence_duration_ms": self.voice.silence_duration_ms,
            }
        elif provider_type == "mock":
            return {"system_prompt": self.system_prompts.default}
        else:
            raise ValueError(f"Unknown provider type: {provider_type}")

    def reload(self) -> None:
        """Reload settings from file and environment."""
        with self._lock:
            if self.config_file and self.config_file.exists():
                self.load_from_file()
            self.load_from_env()
            logger.info("Settings reloaded")

    def validate(self) -> list[str]:
        """Validate current settings and return list of issues."""
        issues = []

        if not 0.0 <= self.providers.gemini_temperature <= 2.0:
            issues.append(f"Invalid temperature: {self.providers.gemini_temperature}")
        if self.providers.gemini_top_k <= 0:
            issues.append(f"Invalid top_k: {self.providers.gemini_top_k}")
        if not 0.0 < self.providers.gemini_top_p <= 1.0:
            issues.append(f"Invalid top_p: {self.providers.gemini_top_p}")

        if self.voice.sample_rate not in [8000, 16000, 32000, 48000]:
            issues.append(f"Invalid sample rate: {self.voice.sample_rate}")
        if self.voice.channels not in [1, 2]:
            issues.append(f"Invalid channels: {self.voice.channels}")
        if self.voice.no_speech_timeout <= 0:
            issues.append(f"Invalid no-speech timeout: {self.voice.no_speech_timeout}")
        if self.voice.max_seconds <= 0:
            issues.append(f"Invalid max utterance length: {self.voice.max_seconds}")

        if "/image" not in self.system_prompts.default:
            issues.append("System prompt does not mention the /image command")

        if self.ai_provider not in ["gemini", "mock"]:
            issues.append(f"Unknown AI provider: {self.ai_provider}")
        if self.speech_provider not in ["whisperkit", "mock", "none"]:
            issues.append(f"Unknown speech provider: {self.speech_provider}")

        return issues

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        data = {
            "ai_provider": self.ai_provider,
            "speech_provider": self.speech_provider,
        }
        for section_name in _SECTIONS:
            data[section_name] = asdict(getattr(self, section_name))
        return data


# Global settings instance
settings = Settings()
