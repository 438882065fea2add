"""Speech recognition engines."""

def register_providers():
    """Register all speech engines."""
    # Import at function level to avoid circular imports
    from ..registry import registry
    from ...config.settings import settings
    from ..mock import MockSpeechEngine

    # sounddevice needs PortAudio at import time, so load WhisperKit lazily
    registry.register_speech_engine(
        "whisperkit",
        "ahs_chat.providers.stt.whisperkit.WhisperKitEngine",
        lambda: settings.get_provider_config("whisperkit"),
    )
    registry.register_speech_engine("mock", MockSpeechEngine)
