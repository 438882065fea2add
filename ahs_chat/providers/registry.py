"""Provider registry for dynamic provider loading."""

import importlib
from typing import Dict, Type, Callable, Any, Union
import structlog

from .ai.base import GenerationGateway
from .stt.base import SpeechEngine


logger = structlog.get_logger()


# A provider is either a class or a "package.module.ClassName" path that is
# imported on first use. Speech engines with native audio dependencies are
# registered by path so the registry can be imported without them.
ProviderRef = Union[type, str]


def _resolve(provider: ProviderRef) -> type:
    if isinstance(provider, str):
        module_name, _, class_name = provider.rpartition(".")
        module = importlib.import_module(module_name)
        return getattr(module, class_name)
    return provider


def _provider_name(provider: ProviderRef) -> str:
    return provider if isinstance(provider, str) else provider.__name__


class ProviderRegistry:
    """Registry for managing provider implementations."""

    def __init__(self):
        self._gateways: Dict[str, ProviderRef] = {}
        self._speech_engines: Dict[str, ProviderRef] = {}
        self._provider_configs: Dict[str, Callable[[], Dict[str, Any]]] = {}

    def register_gateway(
        self,
        name: str,
        provider_class: Union[Type[GenerationGateway], str],
        config_getter: Callable[[], Dict[str, Any]] = None,
    ) -> None:
        """Register a generation gateway."""
        self._gateways[name] = provider_class
        if config_getter:
            self._provider_configs[f"ai:{name}"] = config_getter
        logger.debug(
            "Registered generation gateway",
            name=name,
            class_name=_provider_name(provider_class),
        )

    def register_speech_engine(
        self,
        name: str,
        provider_class: Union[Type[SpeechEngine], str],
        config_getter: Callable[[], Dict[str, Any]] = None,
    ) -> None:
        """Register a speech engine."""
        self._speech_engines[name] = provider_class
        if config_getter:
            self._provider_configs[f"stt:{name}"] = config_getter
        logger.debug(
            "Registered speech engine",
            name=name,
            class_name=_provider_name(provider_class),
        )

    def get_gateway(self, name: str, **kwargs) -> GenerationGateway:
        """Get a generation gateway instance."""
        if name not in self._gateways:
            raise ValueError(f"Unknown AI provider: {name}")

        provider_class = _resolve(self._gateways[name])
        config_key = f"ai:{name}"

        # Get provider-specific configuration
        if config_key in self._provider_configs:
            config = self._provider_configs[config_key]()
            config.update(kwargs)
            kwargs = config

        return provider_class(**kwargs)

    def get_speech_engine(self, name: str, **kwargs) -> SpeechEngine:
        """Get a speech engine instance."""
        if name not in self._speech_engines:
            raise ValueError(f"Unknown speech provider: {name}")

        provider_class = _resolve(self._speech_engines[name])
        config_key = f"stt:{name}"

        if config_key in self._provider_configs:
            config = self._provider_configs[config_key]()
            config.update(kwargs)
            kwargs = config

        return provider_class(**kwargs)

    def list_gateways(self) -> list[str]:
        """List available generation gateways."""
        return list(self._gateways.keys())

    def list_speech_engines(self) -> list[str]:
        """List available speech engines."""
        return list(self._speech_engines.keys())

    def clear(self) -> None:
        """Clear all registered providers."""
        self._gateways.clear()
        self._speech_engines.clear()
        self._provider_configs.clear()


# Global registry instance
registry = ProviderRegistry()
