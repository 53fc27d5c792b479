"""Configuration management for cogspeak.

Loads configuration from ~/.config/cogspeak/config.toml.
Priority chain: explicit arguments > env vars > config file > defaults.

Every field carries an explicit valid range. Out-of-range values fail with
``ConfigurationError`` when the configuration is loaded, never at first use.
"""

import dataclasses
import math
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .tts.errors import ConfigurationError, ValidationError
from .tts.models import EngineIdentity, EngineKind, Prosody, VoiceConfig
from .validation import (
    MAX_TEXT_LENGTH,
    validate_endpoint,
    validate_model_name,
    validate_pitch,
    validate_rate,
    validate_volume,
)

CONFIG_DIR = Path.home() / ".config" / "cogspeak"
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_CONFIG = """\
# cogspeak configuration

[speech]
# Speech synthesis is off unless enabled here
enabled = true

# Engine: "native" (OS voices), "openai", "google_cloud", "amazon_polly",
# "elevenlabs" (cloud), "piper", "kokoro" (local neural), "custom:<name>"
engine = "native"

# Words per minute (0-500)
rate = 150

# Gain fraction (0.0-1.0)
volume = 0.8

# Pitch offset in semitones (-20.0 to 20.0)
pitch = 0.0

# Longest accepted text, in characters
max_text_length = 10000

[speech.voice]
language = "en-US"
# name = "Samantha"
# gender = "female"

[cache]
enabled = true
max_entries = 1000
max_size_mb = 100
# Minimum fraction of entries removed per cleanup pass
cleanup_fraction = 0.1

[queue]
# Maximum concurrent backend calls
max_concurrent = 8
# "wait" blocks callers when full, "reject" fails fast with ResourceExhausted
policy = "wait"
# acquire_timeout = 30.0

[retry]
max_attempts = 3
base_delay_ms = 100
max_delay_ms = 5000
jitter = 0.2
attempt_timeout_secs = 30.0

# HTTP engines (openai, google_cloud, amazon_polly) need an [api] section
# [api]
# endpoint = "https://api.openai.com"
# model = "tts-1"
# timeout_secs = 30

# [piper]
# executable = "piper"
# voices_dir = "/opt/piper/voices"

# API keys are read from environment variables, not this file:
#   OPENAI_API_KEY, GOOGLE_CLOUD_API_KEY, AWS_ACCESS_KEY_ID,
#   ELEVENLABS_API_KEY, CUSTOM_TTS_API_KEY
"""

QUEUE_POLICIES = ("wait", "reject")
HTTP_ENGINES = frozenset({EngineKind.OPENAI, EngineKind.GOOGLE_CLOUD, EngineKind.AMAZON_POLLY})


def _check_range(
    value: Any,
    low: float,
    high: float,
    name: str,
    *,
    integer: bool = False,
    low_inclusive: bool = True,
) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(
            f"{name} must be a number, got {type(value).__name__}", field=name
        )
    if integer and isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"{name} must be a whole number, got {value}", field=name)
    if math.isnan(value):
        raise ConfigurationError(f"{name} cannot be NaN", field=name)
    too_low = value < low if low_inclusive else value <= low
    if too_low or value > high:
        bracket = "[" if low_inclusive else "("
        raise ConfigurationError(
            f"{name} must be in {bracket}{low}, {high}], got {value}", field=name
        )



def _check_bool(value: Any, name: str) -> None:
    if not isinstance(value, bool):
        raise ConfigurationError(
            f"{name} must be true or false, got {type(value).__name__}", field=name
        )


@dataclass(frozen=True)
class CacheConfig:
    """In-memory audio cache limits."""

    enabled: bool = True
    max_entries: int = 1000
    max_size_mb: int = 100
    cleanup_fraction: float = 0.1

    @property
    def max_bytes(self) -> int:
        return self.max_size_mb * 1024 * 1024

    def validate(self) -> None:
        _check_bool(self.enabled, "cache.enabled")
        _check_range(self.max_entries, 1, 100_000, "cache.max_entries", integer=True)
        _check_range(self.max_size_mb, 1, 10_000, "cache.max_size_mb", integer=True)
        _check_range(
            self.cleanup_fraction, 0.0, 1.0, "cache.cleanup_fraction", low_inclusive=False
        )


@dataclass(frozen=True)
class QueueConfig:
    """Concurrency ceiling for backend calls."""

    max_concurrent: int = 8
    policy: str = "wait"
    acquire_timeout: float | None = None

    def validate(self) -> None:
        _check_range(self.max_concurrent, 1, 10_000, "queue.max_concurrent", integer=True)
        if self.policy not in QUEUE_POLICIES:
            raise ConfigurationError(
                f"queue.policy must be one of {', '.join(QUEUE_POLICIES)}, got {self.policy!r}",
                field="queue.policy",
            )
        if self.acquire_timeout is not None:
            _check_range(
                self.acquire_timeout, 0.0, 3600.0, "queue.acquire_timeout", low_inclusive=False
            )


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy parameters."""

    max_attempts: int = 3
    base_delay_ms: int = 100
    max_delay_ms: int = 5000
    jitter: float = 0.2
    attempt_timeout_secs: float = 30.0

    def validate(self) -> None:
        _check_range(self.max_attempts, 1, 100, "retry.max_attempts", integer=True)
        _check_range(self.base_delay_ms, 0, 60_000, "retry.base_delay_ms", integer=True)
        _check_range(self.max_delay_ms, 0, 300_000, "retry.max_delay_ms", integer=True)
        if self.base_delay_ms > self.max_delay_ms:
            raise ConfigurationError(
                "retry.base_delay_ms cannot be greater than retry.max_delay_ms",
                field="retry.base_delay_ms",
            )
        _check_range(self.jitter, 0.0, 1.0, "retry.jitter")
        _check_range(
            self.attempt_timeout_secs,
            0.0,
            300.0,
            "retry.attempt_timeout_secs",
            low_inclusive=False,
        )


@dataclass(frozen=True)
class ApiConfig:
    """Network backend settings."""

    endpoint: str
    api_key: str | None = field(default=None, repr=False)
    model: str | None = None
    timeout_secs: float = 30.0
    allow_http: bool = False

    def validate(self) -> None:
        _check_bool(self.allow_http, "api.allow_http")
        _validated(validate_endpoint, self.endpoint, self.allow_http, field="api.endpoint")
        if self.model is not None:
            _validated(validate_model_name, self.model, field="api.model")
        _check_range(self.timeout_secs, 1, 300, "api.timeout_secs")


@dataclass(frozen=True)
class PiperConfig:
    """Piper local neural engine settings."""

    executable: str = "piper"
    model_path: Path | None = None
    voices_dir: Path | None = None

    def validate(self) -> None:
        if not self.executable:
            raise ConfigurationError("piper.executable cannot be empty", field="piper.executable")
        if self.voices_dir is not None and not Path(self.voices_dir).is_absolute():
            raise ConfigurationError(
                "piper.voices_dir must be an absolute path", field="piper.voices_dir"
            )
        for name in ("model_path", "voices_dir"):
            value = getattr(self, name)
            if value is not None and ".." in Path(value).parts:
                raise ConfigurationError(
                    f"piper.{name} cannot contain '..'", field=f"piper.{name}"
                )


@dataclass(frozen=True)
class KokoroConfig:
    """Kokoro local neural engine settings."""

    device: str = "auto"
    pronunciation: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        if self.device not in ("auto", "cpu", "cuda", "mps"):
            raise ConfigurationError(
                f"kokoro.device must be auto, cpu, cuda or mps, got {self.device!r}",
                field="kokoro.device",
            )


@dataclass(frozen=True)
class SpeechConfig:
    """Top-level speech synthesis configuration."""

    enabled: bool = False
    engine: EngineIdentity = field(default_factory=lambda: EngineIdentity(EngineKind.NATIVE))
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    rate: int = 150
    volume: float = 0.8
    pitch: float = 0.0
    max_text_length: int = 10_000
    cache: CacheConfig = field(default_factory=CacheConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    api: ApiConfig | None = None
    piper: PiperConfig = field(default_factory=PiperConfig)
    kokoro: KokoroConfig = field(default_factory=KokoroConfig)

    @property
    def prosody(self) -> Prosody:
        return Prosody(rate=self.rate, volume=self.volume, pitch=self.pitch)

    def validate(self) -> None:
        """Validate every section.

        Raises:
            ConfigurationError: Naming the first invalid field
        """
        _check_bool(self.enabled, "speech.enabled")
        if not isinstance(self.engine, EngineIdentity):
            raise ConfigurationError("engine must be an EngineIdentity", field="speech.engine")
        if not isinstance(self.voice, VoiceConfig):
            raise ConfigurationError("voice must be a VoiceConfig", field="speech.voice")
        _validated(validate_rate, self.rate, field="speech.rate")
        _validated(validate_volume, self.volume, field="speech.volume")
        _validated(validate_pitch, self.pitch, field="speech.pitch")
        _check_range(
            self.max_text_length, 1, MAX_TEXT_LENGTH, "speech.max_text_length", integer=True
        )
        self.cache.validate()
        self.queue.validate()
        self.retry.validate()
        if self.api is not None:
            self.api.validate()
        elif self.engine.kind in HTTP_ENGINES:
            raise ConfigurationError(
                f"Engine {self.engine} requires an [api] section with an endpoint",
                field="api",
            )
        self.piper.validate()
        self.kokoro.validate()


def _validated(check, *args, field: str) -> None:
    try:
        check(*args)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {field}: {e}", field=field, original_error=e) from e


def _table(data: Any, name: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ConfigurationError(f"[{name}] must be a table", field=name)
    return data


def _build_section(cls: type, data: Any, name: str, **extra: Any) -> Any:
    _table(data, name)
    allowed = {f.name for f in dataclasses.fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(
            f"Unknown setting(s) in [{name}]: {', '.join(sorted(unknown))}",
            field=f"{name}.{sorted(unknown)[0]}",
        )
    try:
        return cls(**{**data, **extra})
    except TypeError as e:
        raise ConfigurationError(f"Invalid [{name}] section: {e}", field=name) from e


def config_from_mapping(data: dict[str, Any]) -> SpeechConfig:
    """Build and validate a SpeechConfig from a parsed TOML/JSON mapping.

    Args:
        data: Mapping with optional ``speech``, ``cache``, ``queue``, ``retry``,
            ``api``, ``piper`` and ``kokoro`` tables

    Returns:
        Validated SpeechConfig

    Raises:
        ConfigurationError: If any section is malformed or out of range
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a table")
    known = {"speech", "cache", "queue", "retry", "api", "piper", "kokoro"}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration section(s): {', '.join(sorted(unknown))}",
            field=sorted(unknown)[0],
        )

    speech = dict(_table(data.get("speech", {}), "speech"))
    voice_data = speech.pop("voice", {})
    engine_value = speech.pop("engine", "native")

    try:
        engine = EngineIdentity.parse(engine_value)
    except ValidationError as e:
        raise ConfigurationError(str(e), field="speech.engine", original_error=e) from e
    try:
        if not isinstance(voice_data, dict):
            raise ConfigurationError("[speech.voice] must be a table", field="speech.voice")
        voice = VoiceConfig.from_dict(voice_data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid [speech.voice]: {e}", field=e.field or "speech.voice", original_error=e
        ) from e

    piper_data = dict(_table(data.get("piper", {}), "piper"))
    for key in ("model_path", "voices_dir"):
        if piper_data.get(key) is not None:
            piper_data[key] = Path(piper_data[key]).expanduser()

    config = _build_section(
        SpeechConfig,
        speech,
        "speech",
        engine=engine,
        voice=voice,
        cache=_build_section(CacheConfig, data.get("cache", {}), "cache"),
        queue=_build_section(QueueConfig, data.get("queue", {}), "queue"),
        retry=_build_section(RetryConfig, data.get("retry", {}), "retry"),
        api=_build_section(ApiConfig, data["api"], "api") if "api" in data else None,
        piper=_build_section(PiperConfig, piper_data, "piper"),
        kokoro=_build_section(KokoroConfig, data.get("kokoro", {}), "kokoro"),
    )
    config.validate()
    return config


def _env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply COGSPEAK_* environment variables on top of file values."""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in data.items()}
    speech = _table(merged.setdefault("speech", {}), "speech")
    voice = dict(_table(speech.get("voice", {}), "speech.voice"))

    converters = {
        "COGSPEAK_RATE": ("rate", int),
        "COGSPEAK_VOLUME": ("volume", float),
        "COGSPEAK_PITCH": ("pitch", float),
    }
    for env_name, (key, convert) in converters.items():
        raw = os.getenv(env_name)
        if raw is not None:
            try:
                speech[key] = convert(raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"{env_name} must be a number, got {raw!r}", field=f"speech.{key}"
                ) from e

    if (enabled := os.getenv("COGSPEAK_ENABLED")) is not None:
        speech["enabled"] = enabled.strip().lower() in ("1", "true", "yes", "on")
    if engine := os.getenv("COGSPEAK_ENGINE"):
        speech["engine"] = engine
    if name := os.getenv("COGSPEAK_VOICE"):
        voice["name"] = name
    if language := os.getenv("COGSPEAK_LANGUAGE"):
        voice["language"] = language
    if voice:
        speech["voice"] = voice
    if endpoint := os.getenv("COGSPEAK_API_ENDPOINT"):
        api = dict(_table(merged.get("api", {}), "api"))
        api["endpoint"] = endpoint
        merged["api"] = api
    return merged


_cached_config: SpeechConfig | None = None


def generate_config(path: Path = CONFIG_PATH) -> Path:
    """Write the commented default config file and return its path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG)
    return path


def load_config(path: Path | None = None, use_env: bool = True) -> SpeechConfig:
    """Load configuration from a TOML file with env var overrides.

    Args:
        path: Config file to read. Defaults to ~/.config/cogspeak/config.toml;
            when the default file is absent the built-in defaults are used.
        use_env: Whether COGSPEAK_* environment variables override the file

    Returns:
        Loaded and validated SpeechConfig.

    Raises:
        ConfigurationError: If an explicit path is missing, the file is not
            valid TOML, or any value is out of range.
    """
    global _cached_config
    use_cache = path is None and use_env
    if use_cache and _cached_config is not None:
        return _cached_config

    config_path = path or CONFIG_PATH
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(
                f"Invalid TOML in {config_path}: {e}", original_error=e
            ) from e
    elif path is not None:
        raise ConfigurationError(f"Config file not found: {config_path}")

    if use_env:
        data = _env_overrides(data)

    config = config_from_mapping(data)
    if use_cache:
        _cached_config = config
    return config


def reset_config_cache() -> None:
    """Forget the cached default configuration."""
    global _cached_config
    _cached_config = None
