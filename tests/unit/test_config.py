"""Unit tests for configuration loading and validation."""

import dataclasses
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from cogspeak import config as config_module
from cogspeak.config import (
    ApiConfig,
    CacheConfig,
    KokoroConfig,
    PiperConfig,
    QueueConfig,
    RetryConfig,
    SpeechConfig,
    config_from_mapping,
    generate_config,
    load_config,
)
from cogspeak.tts.errors import ConfigurationError
from cogspeak.tts.models import EngineKind, Prosody, VoiceGender


class TestSpeechConfigDefaults:
    """Test default configuration values."""

    def test_defaults_are_valid(self) -> None:
        """Test that the default configuration validates."""
        config = SpeechConfig()
        config.validate()
        assert config.enabled is False
        assert config.engine.kind is EngineKind.NATIVE
        assert config.rate == 150
        assert config.volume == 0.8
        assert config.pitch == 0.0
        assert config.queue.max_concurrent == 8
        assert config.cache.max_entries == 1000

    def test_prosody_property(self) -> None:
        """Test that prosody mirrors the top-level fields."""
        config = SpeechConfig(rate=200, volume=0.5, pitch=2.0)
        assert config.prosody == Prosody(rate=200, volume=0.5, pitch=2.0)

    def test_cache_max_bytes(self) -> None:
        """Test megabyte to byte conversion."""
        assert CacheConfig(max_size_mb=2).max_bytes == 2 * 1024 * 1024

    def test_api_key_hidden_from_repr(self) -> None:
        """Test that API keys never appear in reprs."""
        api = ApiConfig(endpoint="https://api.example.com", api_key="sk-secret")
        assert "sk-secret" not in repr(api)


class TestSectionValidation:
    """Test range checks on every section."""

    @pytest.mark.parametrize(
        ("config", "field"),
        [
            (SpeechConfig(rate=501), "speech.rate"),
            (SpeechConfig(volume=-0.1), "speech.volume"),
            (SpeechConfig(pitch=30.0), "speech.pitch"),
            (SpeechConfig(max_text_length=0), "speech.max_text_length"),
            (SpeechConfig(cache=CacheConfig(max_entries=0)), "cache.max_entries"),
            (SpeechConfig(cache=CacheConfig(max_size_mb=0)), "cache.max_size_mb"),
            (SpeechConfig(cache=CacheConfig(cleanup_fraction=0.0)), "cache.cleanup_fraction"),
            (SpeechConfig(queue=QueueConfig(max_concurrent=0)), "queue.max_concurrent"),
            (SpeechConfig(queue=QueueConfig(policy="drop")), "queue.policy"),
            (SpeechConfig(queue=QueueConfig(acquire_timeout=0.0)), "queue.acquire_timeout"),
            (SpeechConfig(retry=RetryConfig(max_attempts=0)), "retry.max_attempts"),
            (
                SpeechConfig(retry=RetryConfig(base_delay_ms=500, max_delay_ms=100)),
                "retry.base_delay_ms",
            ),
            (SpeechConfig(retry=RetryConfig(jitter=2.0)), "retry.jitter"),
            (SpeechConfig(retry=RetryConfig(attempt_timeout_secs=0)), "retry.attempt_timeout_secs"),
            (SpeechConfig(kokoro=KokoroConfig(device="tpu")), "kokoro.device"),
            (SpeechConfig(piper=PiperConfig(voices_dir=Path("voices"))), "piper.voices_dir"),
            (
                SpeechConfig(piper=PiperConfig(model_path=Path("/opt/../etc/model.onnx"))),
                "piper.model_path",
            ),
        ],
    )
    def test_out_of_range_values_rejected(self, config: SpeechConfig, field: str) -> None:
        """Test that each invalid value names its field."""
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()
        assert exc_info.value.field == field

    def test_boolean_is_not_a_number(self) -> None:
        """Test that booleans are rejected for numeric fields."""
        with pytest.raises(ConfigurationError):
            CacheConfig(max_entries=True).validate()  # type: ignore[arg-type]

    def test_fractional_integer_field_rejected(self) -> None:
        """Test whole-number fields."""
        with pytest.raises(ConfigurationError, match="whole number"):
            QueueConfig(max_concurrent=2.5).validate()  # type: ignore[arg-type]

    def test_ftp_endpoint_rejected(self) -> None:
        """Test that non-HTTPS endpoints fail at load time."""
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping(
                {"speech": {"engine": "openai"}, "api": {"endpoint": "ftp://example.com"}}
            )
        assert exc_info.value.field == "api.endpoint"

    def test_http_endpoint_needs_opt_in(self) -> None:
        """Test that plain http is accepted only with allow_http."""
        with pytest.raises(ConfigurationError):
            ApiConfig(endpoint="http://localhost:5002").validate()
        ApiConfig(endpoint="http://localhost:5002", allow_http=True).validate()

    def test_string_allow_http_rejected(self) -> None:
        """Test that a quoted allow_http does not open plain http."""
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping(
                {
                    "speech": {"engine": "openai"},
                    "api": {"endpoint": "http://tts.example.com", "allow_http": "false"},
                }
            )
        assert exc_info.value.field == "api.allow_http"

    @pytest.mark.parametrize(
        ("data", "field"),
        [
            ({"speech": {"enabled": "false"}}, "speech.enabled"),
            ({"speech": {"enabled": 1}}, "speech.enabled"),
            ({"cache": {"enabled": "no"}}, "cache.enabled"),
        ],
    )
    def test_boolean_fields_require_booleans(self, data: dict, field: str) -> None:
        """Test that switches accept only true or false."""
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping(data)
        assert exc_info.value.field == field

    def test_http_engine_requires_api_section(self) -> None:
        """Test that HTTP cloud engines need an endpoint."""
        config = config_from_mapping({"speech": {"engine": "native"}})
        with pytest.raises(ConfigurationError) as exc_info:
            dataclasses.replace(config, engine=config.engine.parse("openai")).validate()
        assert exc_info.value.field == "api"

    def test_api_timeout_range(self) -> None:
        """Test API timeout bounds."""
        with pytest.raises(ConfigurationError):
            ApiConfig(endpoint="https://x.example", timeout_secs=0.5).validate()


class TestConfigFromMapping:
    """Test building configuration from parsed mappings."""

    def test_empty_mapping_gives_defaults(self) -> None:
        """Test that an empty mapping is the default configuration."""
        assert config_from_mapping({}) == SpeechConfig()

    def test_full_mapping(self) -> None:
        """Test every section."""
        config = config_from_mapping(
            {
                "speech": {
                    "enabled": True,
                    "engine": "custom:studio",
                    "rate": 180,
                    "volume": 0.6,
                    "pitch": -2.5,
                    "voice": {"language": "en-GB", "name": "Daniel", "gender": "male"},
                },
                "cache": {"max_entries": 50, "max_size_mb": 5},
                "queue": {"max_concurrent": 2, "policy": "reject"},
                "retry": {"max_attempts": 4, "base_delay_ms": 10, "max_delay_ms": 100},
                "api": {"endpoint": "https://tts.example.com", "model": "studio-v2"},
                "piper": {"voices_dir": "/opt/piper/voices"},
                "kokoro": {"device": "cpu"},
            }
        )
        assert config.enabled is True
        assert str(config.engine) == "custom:studio"
        assert config.prosody == Prosody(rate=180, volume=0.6, pitch=-2.5)
        assert config.voice.language == "en-GB"
        assert config.voice.gender is VoiceGender.MALE
        assert config.cache.max_entries == 50
        assert config.queue.policy == "reject"
        assert config.retry.max_attempts == 4
        assert config.api is not None
        assert config.api.model == "studio-v2"
        assert config.piper.voices_dir == Path("/opt/piper/voices")
        assert config.kokoro.device == "cpu"

    def test_unknown_section_rejected(self) -> None:
        """Test that misspelled sections are reported."""
        with pytest.raises(ConfigurationError, match="Unknown configuration section"):
            config_from_mapping({"speach": {}})

    def test_unknown_key_rejected(self) -> None:
        """Test that misspelled keys are reported with their field."""
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping({"cache": {"max_entires": 10}})
        assert exc_info.value.field == "cache.max_entires"

    def test_section_must_be_table(self) -> None:
        """Test that scalar sections are rejected."""
        with pytest.raises(ConfigurationError, match="must be a table"):
            config_from_mapping({"queue": 5})

    @pytest.mark.parametrize(
        ("data", "field"),
        [
            ({"speech": "x"}, "speech"),
            ({"speech": 5}, "speech"),
            ({"piper": 5}, "piper"),
            ({"speech": {"voice": "en-GB"}}, "speech.voice"),
            ({"api": ["https://tts.example.com"]}, "api"),
        ],
    )
    def test_scalar_sections_rejected(self, data: dict, field: str) -> None:
        """Test that every section must be a table."""
        with pytest.raises(ConfigurationError, match="must be a table") as exc_info:
            config_from_mapping(data)
        assert exc_info.value.field == field

    def test_unknown_engine_rejected(self) -> None:
        """Test engine parsing errors become configuration errors."""
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping({"speech": {"engine": "festival"}})
        assert exc_info.value.field == "speech.engine"

    def test_invalid_voice_rejected(self) -> None:
        """Test voice errors become configuration errors."""
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_mapping({"speech": {"voice": {"name": "bad;name"}}})
        assert exc_info.value.field == "voice.name"

    def test_api_missing_endpoint_rejected(self) -> None:
        """Test that an [api] section needs an endpoint."""
        with pytest.raises(ConfigurationError, match="Invalid \\[api\\] section"):
            config_from_mapping({"api": {"model": "tts-1"}})


class TestLoadConfig:
    """Test loading configuration files."""

    def test_missing_default_file_uses_defaults(self, isolate_config: Path) -> None:
        """Test that an absent default file yields defaults."""
        assert not isolate_config.exists()
        assert load_config() == SpeechConfig()

    def test_explicit_missing_file_rejected(self, tmp_path: Path) -> None:
        """Test that a named but missing file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_load_toml_file(self, tmp_path: Path) -> None:
        """Test reading a TOML file."""
        path = tmp_path / "config.toml"
        path.write_text(
            '[speech]\nenabled = true\nengine = "piper"\nrate = 200\n\n'
            '[speech.voice]\nlanguage = "de-DE"\n\n'
            '[queue]\nmax_concurrent = 3\n'
        )
        config = load_config(path)
        assert config.enabled is True
        assert config.engine.kind is EngineKind.PIPER
        assert config.rate == 200
        assert config.voice.language == "de-DE"
        assert config.queue.max_concurrent == 3

    def test_invalid_toml_rejected(self, tmp_path: Path) -> None:
        """Test that TOML syntax errors are configuration errors."""
        path = tmp_path / "config.toml"
        path.write_text("[speech\nrate = ")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_config(path)

    def test_scalar_speech_section_in_file_rejected(self, tmp_path: Path) -> None:
        """Test that a non-table [speech] in TOML is a configuration error."""
        path = tmp_path / "config.toml"
        path.write_text('speech = "on"\n')
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.field == "speech"

    def test_scalar_voice_with_env_override_rejected(
        self, tmp_path: Path, monkeypatch
    ) -> None:
        """Test that env overrides do not mask a malformed voice table."""
        path = tmp_path / "config.toml"
        path.write_text('[speech]\nvoice = "Daniel"\n')
        monkeypatch.setenv("COGSPEAK_LANGUAGE", "en-GB")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.field == "speech.voice"

    def test_out_of_range_file_value_rejected(self, tmp_path: Path) -> None:
        """Test that range errors surface at load time."""
        path = tmp_path / "config.toml"
        path.write_text("[speech]\nvolume = 3.0\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.field == "speech.volume"

    def test_generated_config_loads(self, tmp_path: Path) -> None:
        """Test that the commented default file is valid."""
        path = generate_config(tmp_path / "sub" / "config.toml")
        assert path.exists()
        config = load_config(path)
        assert config.enabled is True
        assert config.engine.kind is EngineKind.NATIVE
        assert config.retry == RetryConfig()

    def test_default_path_is_cached(self, isolate_config: Path) -> None:
        """Test that repeated default loads return the same object."""
        first = load_config()
        assert load_config() is first
        config_module.reset_config_cache()
        assert load_config() is not first


class TestEnvironmentOverrides:
    """Test COGSPEAK_* environment variables."""

    def test_env_overrides_file_values(self, tmp_path: Path, monkeypatch) -> None:
        """Test that env vars take priority over the file."""
        path = tmp_path / "config.toml"
        path.write_text('[speech]\nrate = 120\n[speech.voice]\nlanguage = "en-GB"\n')
        monkeypatch.setenv("COGSPEAK_RATE", "220")
        monkeypatch.setenv("COGSPEAK_VOLUME", "0.3")
        monkeypatch.setenv("COGSPEAK_PITCH", "-4")
        monkeypatch.setenv("COGSPEAK_ENABLED", "yes")
        monkeypatch.setenv("COGSPEAK_VOICE", "Daniel")

        config = load_config(path)
        assert config.rate == 220
        assert config.volume == 0.3
        assert config.pitch == -4.0
        assert config.enabled is True
        assert config.voice.name == "Daniel"
        assert config.voice.language == "en-GB"

    def test_env_ignored_when_disabled(self, tmp_path: Path, monkeypatch) -> None:
        """Test use_env=False."""
        path = tmp_path / "config.toml"
        path.write_text("[speech]\nrate = 120\n")
        monkeypatch.setenv("COGSPEAK_RATE", "220")
        assert load_config(path, use_env=False).rate == 120

    def test_non_numeric_env_rejected(self, monkeypatch) -> None:
        """Test that malformed numeric env vars are configuration errors."""
        monkeypatch.setenv("COGSPEAK_RATE", "fast")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config()
        assert exc_info.value.field == "speech.rate"

    def test_engine_and_endpoint_from_env(self, monkeypatch) -> None:
        """Test selecting an HTTP engine purely from the environment."""
        monkeypatch.setenv("COGSPEAK_ENGINE", "openai")
        monkeypatch.setenv("COGSPEAK_API_ENDPOINT", "https://api.openai.com")
        config = load_config()
        assert config.engine.kind is EngineKind.OPENAI
        assert config.api is not None
        assert config.api.endpoint == "https://api.openai.com"

    def test_invalid_env_endpoint_rejected(self, monkeypatch) -> None:
        """Test that env endpoints are validated like file endpoints."""
        monkeypatch.setenv("COGSPEAK_API_ENDPOINT", "ftp://example.com")
        with pytest.raises(ConfigurationError):
            load_config()
