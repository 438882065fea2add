"""Provider interfaces and implementations for generation and speech."""

from .registry import registry

# Defer provider registration to avoid circular imports
def _register_all_providers():
    """Register all provider types."""
    from . import ai, stt
    ai.register_providers()
    stt.register_providers()

# Register providers after module initialization
_register_all_providers()

__all__ = ['registry']
