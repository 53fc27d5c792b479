"""Speech data model, error taxonomy and retry policy for cogspeak.

Models and the retry policy are loaded on first access; ``cogspeak.validation``
imports the error types from here while the models import the validators.
"""

from .errors import (
    ConfigurationError,
    EngineAPIError,
    EngineAuthError,
    EngineError,
    EngineTimeoutError,
    EngineUnavailableError,
    ResourceExhausted,
    SpeechError,
    ValidationError,
)

_MODELS = {
    "EngineIdentity",
    "EngineKind",
    "Prosody",
    "SynthesisRequest",
    "SynthesisResult",
    "VoiceAge",
    "VoiceConfig",
    "VoiceGender",
}
_RETRY = {"RetryPolicy", "RetryResult", "is_retryable"}

__all__ = [
    "ConfigurationError",
    "EngineAPIError",
    "EngineAuthError",
    "EngineError",
    "EngineIdentity",
    "EngineKind",
    "EngineTimeoutError",
    "EngineUnavailableError",
    "Prosody",
    "ResourceExhausted",
    "RetryPolicy",
    "RetryResult",
    "SpeechError",
    "SynthesisRequest",
    "SynthesisResult",
    "ValidationError",
    "VoiceAge",
    "VoiceConfig",
    "VoiceGender",
    "is_retryable",
]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    if name in _MODELS:
        from . import models

        return getattr(models, name)
    if name in _RETRY:
        from . import retry

        return getattr(retry, name)
    raise AttributeError(f"module 'cogspeak.tts' has no attribute {name!r}")
