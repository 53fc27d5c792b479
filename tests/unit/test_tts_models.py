"""Unit tests for speech data models."""

import dataclasses
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from cogspeak.tts.errors import ValidationError
from cogspeak.tts.models import (
    EngineIdentity,
    EngineKind,
    Prosody,
    SynthesisRequest,
    SynthesisResult,
    VoiceAge,
    VoiceConfig,
    VoiceGender,
)


class TestEngineIdentity:
    """Test engine identity parsing and validation."""

    def test_parse_builtin_engines(self) -> None:
        """Test parsing every built-in engine name."""
        for kind in EngineKind:
            if kind is EngineKind.CUSTOM:
                continue
            identity = EngineIdentity.parse(kind.value)
            assert identity.kind is kind
            assert identity.custom_name is None
            assert str(identity) == kind.value

    def test_parse_is_case_insensitive(self) -> None:
        """Test that engine names are normalized."""
        assert EngineIdentity.parse("OpenAI").kind is EngineKind.OPENAI

    def test_parse_custom_engine(self) -> None:
        """Test parsing custom:<name>."""
        identity = EngineIdentity.parse("custom:studio-voice")
        assert identity.kind is EngineKind.CUSTOM
        assert identity.custom_name == "studio-voice"
        assert str(identity) == "custom:studio-voice"

    def test_custom_without_name_rejected(self) -> None:
        """Test that custom engines need a name."""
        with pytest.raises(ValidationError) as exc_info:
            EngineIdentity(EngineKind.CUSTOM)
        assert exc_info.value.rule == "engine_custom_name"

    def test_builtin_with_name_rejected(self) -> None:
        """Test that only custom engines take a name."""
        with pytest.raises(ValidationError) as exc_info:
            EngineIdentity.parse("openai:extra")
        assert exc_info.value.rule == "engine_custom_name"

    def test_unknown_engine_rejected(self) -> None:
        """Test that unknown engines list the alternatives."""
        with pytest.raises(ValidationError, match="Available engines") as exc_info:
            EngineIdentity.parse("festival")
        assert exc_info.value.rule == "engine_unknown"

    def test_invalid_custom_name_rejected(self) -> None:
        """Test that custom names follow the voice name charset."""
        with pytest.raises(ValidationError):
            EngineIdentity.parse("custom:bad;name")

    def test_empty_engine_rejected(self) -> None:
        """Test that an empty engine string is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            EngineIdentity.parse("")
        assert exc_info.value.rule == "engine_empty"

    def test_string_kind_coerced(self) -> None:
        """Test that a plain string kind is converted to the enum."""
        assert EngineIdentity("piper").kind is EngineKind.PIPER  # type: ignore[arg-type]

    def test_engine_categories(self) -> None:
        """Test cloud and local neural classification."""
        assert EngineIdentity.parse("google_cloud").is_cloud
        assert EngineIdentity.parse("elevenlabs").is_cloud
        assert EngineIdentity.parse("kokoro").is_local_neural
        native = EngineIdentity.parse("native")
        assert not native.is_cloud
        assert not native.is_local_neural


class TestVoiceConfig:
    """Test voice configuration validation."""

    def test_defaults(self) -> None:
        """Test default voice settings."""
        voice = VoiceConfig()
        assert voice.language == "en-US"
        assert voice.name is None
        assert voice.gender is None
        assert voice.age is None

    def test_gender_and_age_coerced_from_strings(self) -> None:
        """Test that string hints become enum members."""
        voice = VoiceConfig(gender="Female", age="adult")  # type: ignore[arg-type]
        assert voice.gender is VoiceGender.FEMALE
        assert voice.age is VoiceAge.ADULT

    def test_invalid_gender_rejected(self) -> None:
        """Test that unknown gender hints are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            VoiceConfig(gender="robot")  # type: ignore[arg-type]
        assert exc_info.value.field == "voice.gender"

    def test_invalid_language_rejected(self) -> None:
        """Test that malformed language tags are rejected."""
        with pytest.raises(ValidationError):
            VoiceConfig(language="english please")

    def test_invalid_name_rejected(self) -> None:
        """Test that unsafe voice names are rejected."""
        with pytest.raises(ValidationError):
            VoiceConfig(name="$(reboot)")

    def test_from_dict_round_trip(self) -> None:
        """Test building from and converting to plain mappings."""
        data = {"language": "en-GB", "name": "Daniel", "gender": "male", "age": None}
        voice = VoiceConfig.from_dict(data)
        assert voice.to_dict() == data

    def test_from_dict_unknown_field_rejected(self) -> None:
        """Test that unknown voice settings are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            VoiceConfig.from_dict({"language": "en-US", "accent": "posh"})
        assert exc_info.value.rule == "voice_unknown_field"

    def test_frozen(self) -> None:
        """Test that voice settings are immutable."""
        voice = VoiceConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            voice.language = "fr-FR"  # type: ignore[misc]


class TestProsody:
    """Test prosody validation."""

    def test_defaults(self) -> None:
        """Test default prosody values."""
        prosody = Prosody()
        assert (prosody.rate, prosody.volume, prosody.pitch) == (150, 0.8, 0.0)

    def test_out_of_range_rejected(self) -> None:
        """Test that each field enforces its range."""
        with pytest.raises(ValidationError):
            Prosody(rate=501)
        with pytest.raises(ValidationError):
            Prosody(volume=1.5)
        with pytest.raises(ValidationError):
            Prosody(pitch=-25.0)

    def test_extremes_accepted(self) -> None:
        """Test inclusive bounds."""
        Prosody(rate=0, volume=0.0, pitch=-20.0)
        Prosody(rate=500, volume=1.0, pitch=20.0)


class TestSynthesisRequest:
    """Test request construction and fingerprints."""

    def test_defaults(self) -> None:
        """Test default request fields."""
        request = SynthesisRequest(text="Hello")
        assert request.voice == VoiceConfig()
        assert request.prosody == Prosody()
        assert request.engine == EngineIdentity(EngineKind.NATIVE)

    def test_invalid_text_rejected(self) -> None:
        """Test that requests cannot be built with invalid text."""
        with pytest.raises(ValidationError):
            SynthesisRequest(text="")
        with pytest.raises(ValidationError) as exc_info:
            SynthesisRequest(text="too long", max_text_length=3)
        assert exc_info.value.rule == "text_too_long"

    def test_fingerprint_is_sha256_hex(self) -> None:
        """Test fingerprint format."""
        key = SynthesisRequest(text="Hello").fingerprint()
        assert len(key) == 64
        int(key, 16)

    def test_fingerprint_deterministic(self) -> None:
        """Test that equal requests share a fingerprint."""
        first = SynthesisRequest(text="Hello", voice=VoiceConfig(name="Alex"))
        second = SynthesisRequest(text="Hello", voice=VoiceConfig(name="Alex"))
        assert first.fingerprint() == second.fingerprint()

    def test_fingerprint_ignores_max_text_length(self) -> None:
        """Test that the validation limit is not part of the key."""
        first = SynthesisRequest(text="Hello", max_text_length=10)
        second = SynthesisRequest(text="Hello", max_text_length=1000)
        assert first == second
        assert first.fingerprint() == second.fingerprint()

    def test_fingerprint_covers_every_field(self) -> None:
        """Test that changing any field changes the key."""
        base = SynthesisRequest(text="Hello")
        variants = [
            dataclasses.replace(base, text="Hello!"),
            dataclasses.replace(base, voice=VoiceConfig(language="en-GB")),
            dataclasses.replace(base, voice=VoiceConfig(name="Alex")),
            dataclasses.replace(base, voice=VoiceConfig(gender="male")),  # type: ignore[arg-type]
            dataclasses.replace(base, voice=VoiceConfig(age="child")),  # type: ignore[arg-type]
            dataclasses.replace(base, prosody=Prosody(rate=151)),
            dataclasses.replace(base, prosody=Prosody(volume=0.5)),
            dataclasses.replace(base, prosody=Prosody(pitch=1.0)),
            dataclasses.replace(base, engine=EngineIdentity.parse("piper")),
            dataclasses.replace(base, engine=EngineIdentity.parse("custom:a")),
        ]
        keys = {base.fingerprint(), *(v.fingerprint() for v in variants)}
        assert len(keys) == len(variants) + 1

    def test_custom_engine_names_distinguish_keys(self) -> None:
        """Test that two custom engines never share cache entries."""
        first = SynthesisRequest(text="Hi", engine=EngineIdentity.parse("custom:a"))
        second = SynthesisRequest(text="Hi", engine=EngineIdentity.parse("custom:b"))
        assert first.fingerprint() != second.fingerprint()


class TestSynthesisResult:
    """Test result defaults."""

    def test_defaults(self) -> None:
        """Test that results default to a fresh, uncoalesced dispatch."""
        result = SynthesisResult(audio=b"RIFF", engine="native")
        assert result.attempts == 0
        assert result.cached is False
        assert result.coalesced is False
