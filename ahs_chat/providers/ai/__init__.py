"""Generation gateways."""


def register_providers():
    """Register all generation gateways."""
    # Import at function level to avoid circular imports
    from ..registry import registry
    from ...config.settings import settings
    from .gemini import GeminiGateway
    from ..mock import MockGateway

    registry.register_gateway(
        "gemini", GeminiGateway, lambda: settings.get_provider_config("gemini")
    )
    registry.register_gateway(
        "mock", MockGateway, lambda: settings.get_provider_config("mock")
    )
