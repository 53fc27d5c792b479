"""Speech data models with validation."""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum

from ..validation import (
    MAX_TEXT_LENGTH,
    validate_language,
    validate_pitch,
    validate_rate,
    validate_text,
    validate_voice_name,
    validate_volume,
)
from .errors import ValidationError


class VoiceGender(str, Enum):
    """Gender hint for voice selection."""

    MALE = "male"
    FEMALE = "female"
    NEUTRAL = "neutral"


class VoiceAge(str, Enum):
    """Age category hint for voice selection."""

    CHILD = "child"
    YOUNG = "young"
    ADULT = "adult"
    ELDERLY = "elderly"


class EngineKind(str, Enum):
    """Closed set of synthesis backends."""

    NATIVE = "native"
    OPENAI = "openai"
    GOOGLE_CLOUD = "google_cloud"
    AMAZON_POLLY = "amazon_polly"
    ELEVENLABS = "elevenlabs"
    PIPER = "piper"
    KOKORO = "kokoro"
    CUSTOM = "custom"


CLOUD_ENGINES = frozenset(
    {EngineKind.OPENAI, EngineKind.GOOGLE_CLOUD, EngineKind.AMAZON_POLLY, EngineKind.ELEVENLABS}
)
LOCAL_NEURAL_ENGINES = frozenset({EngineKind.PIPER, EngineKind.KOKORO})


@dataclass(frozen=True)
class EngineIdentity:
    """Identity of a synthesis backend.

    Selects the backend at synthesizer construction and takes part in the
    cache fingerprint, so the same text spoken by two engines never shares
    a cache entry.

    Args:
        kind: Backend variant
        custom_name: Caller-chosen name, required for (and only for) custom engines
    """

    kind: EngineKind
    custom_name: str | None = None

    def __post_init__(self) -> None:
        """Validate engine identity."""
        if not isinstance(self.kind, EngineKind):
            object.__setattr__(self, "kind", _parse_kind(self.kind))
        if self.kind is EngineKind.CUSTOM:
            if self.custom_name is None:
                raise ValidationError(
                    "Custom engines require a name (e.g. 'custom:my-engine')",
                    rule="engine_custom_name",
                    field="engine",
                )
            validate_voice_name(self.custom_name, field="engine")
        elif self.custom_name is not None:
            raise ValidationError(
                f"Only custom engines take a name, got {self.kind.value}:{self.custom_name}",
                rule="engine_custom_name",
                field="engine",
            )

    @classmethod
    def parse(cls, value: "str | EngineIdentity") -> "EngineIdentity":
        """Parse ``"native"``, ``"openai"``, ``"custom:<name>"`` and so on."""
        if isinstance(value, EngineIdentity):
            return value
        if not isinstance(value, str) or not value:
            raise ValidationError(
                "Engine cannot be empty", rule="engine_empty", field="engine"
            )
        kind, sep, name = value.partition(":")
        return cls(_parse_kind(kind.strip().lower()), name if sep else None)

    @property
    def is_cloud(self) -> bool:
        return self.kind in CLOUD_ENGINES

    @property
    def is_local_neural(self) -> bool:
        return self.kind in LOCAL_NEURAL_ENGINES

    def __str__(self) -> str:
        if self.kind is EngineKind.CUSTOM:
            return f"custom:{self.custom_name}"
        return self.kind.value


def _parse_kind(value: object) -> EngineKind:
    try:
        return EngineKind(value)
    except ValueError:
        available = ", ".join(k.value for k in EngineKind)
        raise ValidationError(
            f"Unknown engine {value!r}. Available engines: {available}",
            rule="engine_unknown",
            field="engine",
        ) from None


@dataclass(frozen=True)
class VoiceConfig:
    """Voice selection settings.

    Args:
        language: Language tag (e.g. "en-US", "es-ES")
        name: Optional engine-specific voice name
        gender: Optional gender preference
        age: Optional age preference
    """

    language: str = "en-US"
    name: str | None = None
    gender: VoiceGender | None = None
    age: VoiceAge | None = None

    def __post_init__(self) -> None:
        """Validate voice configuration."""
        validate_language(self.language)
        if self.name is not None:
            validate_voice_name(self.name)
        if self.gender is not None and not isinstance(self.gender, VoiceGender):
            object.__setattr__(
                self, "gender", _coerce_enum(VoiceGender, self.gender, "voice.gender")
            )
        if self.age is not None and not isinstance(self.age, VoiceAge):
            object.__setattr__(self, "age", _coerce_enum(VoiceAge, self.age, "voice.age"))

    @classmethod
    def from_dict(cls, data: dict) -> "VoiceConfig":
        """Build a voice configuration from a plain mapping."""
        unknown = set(data) - {"language", "name", "gender", "age"}
        if unknown:
            raise ValidationError(
                f"Unknown voice settings: {', '.join(sorted(unknown))}",
                rule="voice_unknown_field",
                field="voice",
            )
        return cls(
            language=data.get("language", "en-US"),
            name=data.get("name"),
            gender=data.get("gender"),
            age=data.get("age"),
        )

    def to_dict(self) -> dict:
        return {
            "language": self.language,
            "name": self.name,
            "gender": self.gender.value if self.gender else None,
            "age": self.age.value if self.age else None,
        }


def _coerce_enum(enum_type: type[Enum], value: object, field_name: str) -> Enum:
    try:
        return enum_type(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise ValidationError(
            f"{field_name} must be one of: {allowed}, got {value!r}",
            rule=f"{field_name.replace('.', '_')}_value",
            field=field_name,
        ) from None


@dataclass(frozen=True)
class Prosody:
    """Engine-agnostic speaking parameters.

    Args:
        rate: Speaking rate in words per minute (0-500)
        volume: Gain as a fraction of full scale (0.0-1.0)
        pitch: Pitch offset in semitones (-20.0 to 20.0)
    """

    rate: int = 150
    volume: float = 0.8
    pitch: float = 0.0

    def __post_init__(self) -> None:
        """Validate prosody settings."""
        validate_rate(self.rate)
        validate_volume(self.volume)
        validate_pitch(self.pitch)


@dataclass(frozen=True)
class SynthesisRequest:
    """A fully validated request to synthesize speech.

    Construction fails with ``ValidationError`` if any field is out of
    bounds, so every request that exists is safe to dispatch.
    """

    text: str
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    prosody: Prosody = field(default_factory=Prosody)
    engine: EngineIdentity = field(
        default_factory=lambda: EngineIdentity(EngineKind.NATIVE)
    )
    max_text_length: int = field(default=MAX_TEXT_LENGTH, compare=False)

    def __post_init__(self) -> None:
        """Validate request text against the configured limit."""
        validate_text(self.text, self.max_text_length)

    def fingerprint(self) -> str:
        """Deterministic cache key covering every field of the request.

        Returns:
            64-character SHA-256 hex digest
        """
        payload = {
            "engine": str(self.engine),
            "text": self.text,
            "voice": self.voice.to_dict(),
            "rate": int(self.prosody.rate),
            "volume": float(self.prosody.volume),
            "pitch": float(self.prosody.pitch),
        }
        canonical = json.dumps(
            payload, sort_keys=True, ensure_ascii=False, separators=(",", ":")
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SynthesisResult:
    """Outcome of one synthesis request.

    Args:
        audio: Synthesized audio bytes (never empty)
        engine: Name of the engine that produced the audio
        attempts: Backend attempts made for this request (0 on a cache hit)
        cached: True if the audio was served from the cache
        coalesced: True if the audio came from an identical in-flight request
    """

    audio: bytes
    engine: str
    attempts: int = 0
    cached: bool = False
    coalesced: bool = False
