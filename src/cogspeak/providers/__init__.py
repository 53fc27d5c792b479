"""Engine abstraction for speech synthesis backends.

This module provides a registry that resolves an ``EngineIdentity`` to a
concrete engine. Backends are imported only when selected, so optional
dependencies (kokoro, torch) are never loaded for other engines.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, ClassVar

from ..tts.errors import ConfigurationError, EngineUnavailableError
from ..tts.models import EngineIdentity, EngineKind
from ..validation import validate_voice_name
from .base import TTSEngine

if TYPE_CHECKING:
    from ..config import SpeechConfig

__all__ = ["EngineFactory", "EngineRegistry", "TTSEngine"]

logger = logging.getLogger(__name__)

EngineFactory = Callable[["SpeechConfig"], TTSEngine]


def _native(config: "SpeechConfig") -> TTSEngine:
    from .system import NativeEngine

    return NativeEngine(config.prosody)


def _openai(config: "SpeechConfig") -> TTSEngine:
    from .api import OpenAIEngine

    return OpenAIEngine(_require_api(config), config.prosody)


def _google_cloud(config: "SpeechConfig") -> TTSEngine:
    from .api import GoogleCloudEngine

    return GoogleCloudEngine(_require_api(config), config.prosody)


def _amazon_polly(config: "SpeechConfig") -> TTSEngine:
    from .api import AmazonPollyEngine

    return AmazonPollyEngine(_require_api(config), config.prosody)


def _elevenlabs(config: "SpeechConfig") -> TTSEngine:
    from .elevenlabs import ElevenLabsEngine

    api = config.api
    return ElevenLabsEngine(
        config.prosody,
        api_key=api.api_key if api else None,
        model_id=api.model if api else None,
    )


def _piper(config: "SpeechConfig") -> TTSEngine:
    from .piper import PiperEngine

    return PiperEngine(config.piper, config.prosody)


def _kokoro(config: "SpeechConfig") -> TTSEngine:
    from .kokoro import KokoroEngine

    return KokoroEngine(config.kokoro, config.prosody)


def _require_api(config: "SpeechConfig"):  # type: ignore[no-untyped-def]
    if config.api is None:
        raise ConfigurationError(
            f"Engine {config.engine} requires an [api] section with an endpoint",
            field="api",
        )
    return config.api


class EngineRegistry:
    """Registry resolving engine identities to engine instances.

    Built-in kinds map to factories; custom engines are registered by name
    with ``register_custom``. An unregistered ``custom:<name>`` engine falls
    back to the generic HTTP engine when the config has an ``[api]`` section.
    """

    _factories: ClassVar[dict[EngineKind, EngineFactory]] = {
        EngineKind.NATIVE: _native,
        EngineKind.OPENAI: _openai,
        EngineKind.GOOGLE_CLOUD: _google_cloud,
        EngineKind.AMAZON_POLLY: _amazon_polly,
        EngineKind.ELEVENLABS: _elevenlabs,
        EngineKind.PIPER: _piper,
        EngineKind.KOKORO: _kokoro,
    }
    _custom: ClassVar[dict[str, EngineFactory]] = {}

    @classmethod
    def register(cls, kind: EngineKind, factory: EngineFactory) -> None:
        """Replace the factory for a built-in engine kind."""
        if kind is EngineKind.CUSTOM:
            raise ValueError("Use register_custom() for custom engines")
        cls._factories[kind] = factory

    @classmethod
    def register_custom(cls, name: str, factory: EngineFactory) -> None:
        """Register a custom engine under ``custom:<name>``.

        Args:
            name: Engine name (same charset rules as voice names)
            factory: Called with the SpeechConfig, returns a TTSEngine
        """
        validate_voice_name(name, field="engine")
        cls._custom[name] = factory

    @classmethod
    def unregister_custom(cls, name: str) -> None:
        cls._custom.pop(name, None)

    @classmethod
    def custom_names(cls) -> list[str]:
        return sorted(cls._custom)

    @classmethod
    def create(cls, identity: EngineIdentity, config: "SpeechConfig") -> TTSEngine:
        """Build the engine for ``identity``.

        Raises:
            ConfigurationError: If the engine needs settings the config lacks
            EngineUnavailableError: If the engine's optional dependencies are
                not installed
        """
        if identity.kind is EngineKind.CUSTOM:
            factory = cls._custom.get(identity.custom_name)
            if factory is None:
                if config.api is None:
                    available = ", ".join(cls.custom_names()) or "none"
                    raise ConfigurationError(
                        f"Custom engine '{identity.custom_name}' is not registered and no "
                        f"[api] endpoint is configured. Registered custom engines: {available}",
                        field="speech.engine",
                    )
                from .api import CustomHTTPEngine

                return CustomHTTPEngine(identity.custom_name, config.api, config.prosody)
        else:
            factory = cls._factories[identity.kind]

        try:
            engine = factory(config)
        except ImportError as e:
            raise EngineUnavailableError(
                f"Engine {identity} needs optional dependencies that are not installed "
                f"(try: pip install 'cogspeak[{identity.kind.value}]'): {e}",
                engine=str(identity),
                original_error=e,
            ) from e

        logger.debug(f"Created engine {engine.name()} for {identity}")
        return engine
