"""Input validation for synthesis requests and speech settings.

All checks are pure functions of their inputs. Each one raises
``ValidationError`` carrying the name of the violated rule, so callers and
logs always see exactly what was wrong with a request.
"""

import math
import re
import unicodedata
from urllib.parse import urlsplit

from .tts.errors import ValidationError

MAX_TEXT_LENGTH = 100_000
MAX_TEXT_BYTES = 100_000
MAX_VOICE_NAME_LENGTH = 256
MAX_LANGUAGE_LENGTH = 32
MAX_MODEL_NAME_LENGTH = 256
MAX_URL_LENGTH = 2048
MAX_AUDIO_BYTES = 10 * 1024 * 1024

MIN_RATE, MAX_RATE = 0, 500
MIN_VOLUME, MAX_VOLUME = 0.0, 1.0
MIN_PITCH, MAX_PITCH = -20.0, 20.0

_ALLOWED_WHITESPACE = frozenset("\n\r\t")
# Bidirectional overrides and isolates can disguise text shown in logs/UIs
_BIDI_CONTROLS = frozenset(
    "\u202a\u202b\u202c\u202d\u202e\u2066\u2067\u2068\u2069\u200e\u200f"
)

_VOICE_NAME_RE = re.compile(r"[A-Za-z0-9 _.+\-]+")
_LANGUAGE_RE = re.compile(r"[A-Za-z]{2,8}(?:-[A-Za-z0-9]{1,8})*")


def validate_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> None:
    """Validate text submitted for synthesis.

    Args:
        text: Text to speak
        max_length: Maximum number of characters accepted

    Raises:
        ValidationError: If the text is empty, too long, or contains
            null bytes or disallowed control characters
    """
    if not isinstance(text, str):
        raise ValidationError(
            f"Text must be a string, got {type(text).__name__}",
            rule="text_type",
            field="text",
        )
    if not text or not text.strip():
        raise ValidationError("Text cannot be empty", rule="text_empty", field="text")
    if len(text) > max_length:
        raise ValidationError(
            f"Text too long ({len(text)} characters, max {max_length})",
            rule="text_too_long",
            field="text",
        )
    size = len(text.encode("utf-8", errors="surrogatepass"))
    if size > MAX_TEXT_BYTES:
        raise ValidationError(
            f"Text too large ({size} bytes, max {MAX_TEXT_BYTES})",
            rule="text_too_large",
            field="text",
        )
    if "\0" in text:
        raise ValidationError(
            "Text contains null bytes", rule="text_null_byte", field="text"
        )
    for index, char in enumerate(text):
        if char in _ALLOWED_WHITESPACE:
            continue
        if char in _BIDI_CONTROLS:
            raise ValidationError(
                f"Text contains bidirectional control character U+{ord(char):04X} "
                f"at position {index}",
                rule="text_bidi_control",
                field="text",
            )
        category = unicodedata.category(char)
        if category == "Cc":
            raise ValidationError(
                f"Text contains control character U+{ord(char):04X} at position {index}",
                rule="text_control_character",
                field="text",
            )
        if category == "Cs":
            raise ValidationError(
                f"Text contains unpaired surrogate at position {index}",
                rule="text_invalid_unicode",
                field="text",
            )


def validate_voice_name(name: str, field: str = "voice.name") -> None:
    """Validate a voice name against the restrictive allow-list.

    Voice names end up in subprocess arguments and file paths, so only
    letters, digits, space, ``_ . + -`` are accepted, the name may not start
    with ``-`` and may not contain ``..``.
    """
    if not isinstance(name, str) or not name:
        raise ValidationError(
            "Voice name cannot be empty if provided", rule="voice_name_empty", field=field
        )
    if len(name) > MAX_VOICE_NAME_LENGTH:
        raise ValidationError(
            f"Voice name too long (max {MAX_VOICE_NAME_LENGTH} chars)",
            rule="voice_name_too_long",
            field=field,
        )
    if not _VOICE_NAME_RE.fullmatch(name):
        raise ValidationError(
            "Voice name contains invalid characters "
            "(only letters, digits, space and _ . + - allowed)",
            rule="voice_name_charset",
            field=field,
        )
    if name.startswith("-"):
        raise ValidationError(
            "Voice name cannot start with '-'", rule="voice_name_option", field=field
        )
    if ".." in name:
        raise ValidationError(
            "Voice name cannot contain '..'", rule="voice_name_traversal", field=field
        )


def validate_language(tag: str, field: str = "voice.language") -> None:
    """Validate a language tag such as ``en`` or ``en-US``."""
    if not isinstance(tag, str) or not tag:
        raise ValidationError(
            "Language code cannot be empty", rule="language_empty", field=field
        )
    if len(tag) > MAX_LANGUAGE_LENGTH:
        raise ValidationError(
            f"Language code too long (max {MAX_LANGUAGE_LENGTH} chars)",
            rule="language_too_long",
            field=field,
        )
    if not _LANGUAGE_RE.fullmatch(tag):
        raise ValidationError(
            f"Language code {tag!r} is not a valid tag (expected e.g. 'en' or 'en-US')",
            rule="language_format",
            field=field,
        )


def validate_model_name(name: str, field: str = "api.model") -> None:
    """Validate an API model identifier."""
    if not isinstance(name, str) or not name:
        raise ValidationError(
            "Model name cannot be empty if provided", rule="model_empty", field=field
        )
    if len(name) > MAX_MODEL_NAME_LENGTH:
        raise ValidationError(
            f"Model name too long (max {MAX_MODEL_NAME_LENGTH} chars)",
            rule="model_too_long",
            field=field,
        )
    if not _VOICE_NAME_RE.fullmatch(name) or name.startswith("-") or ".." in name:
        raise ValidationError(
            "Model name contains invalid characters", rule="model_charset", field=field
        )


def _check_number(value: object, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"{field} must be a number, got {type(value).__name__}",
            rule=f"{field}_type",
            field=field,
        )
    if math.isnan(value):
        raise ValidationError(f"{field} cannot be NaN", rule=f"{field}_nan", field=field)
    return float(value)


def validate_rate(rate: int) -> None:
    """Validate speech rate in words per minute (0-500)."""
    if isinstance(rate, float) and not rate.is_integer():
        raise ValidationError(
            "Speech rate must be a whole number of words per minute",
            rule="rate_type",
            field="rate",
        )
    value = _check_number(rate, "rate")
    if not MIN_RATE <= value <= MAX_RATE:
        raise ValidationError(
            f"Speech rate must be between {MIN_RATE} and {MAX_RATE} WPM, got {rate}",
            rule="rate_range",
            field="rate",
        )


def validate_volume(volume: float) -> None:
    """Validate volume as a gain fraction (0.0-1.0)."""
    value = _check_number(volume, "volume")
    if not MIN_VOLUME <= value <= MAX_VOLUME:
        raise ValidationError(
            f"Volume must be between {MIN_VOLUME} and {MAX_VOLUME}, got {volume}",
            rule="volume_range",
            field="volume",
        )


def validate_pitch(pitch: float) -> None:
    """Validate pitch as a semitone offset (-20.0 to 20.0)."""
    value = _check_number(pitch, "pitch")
    if not MIN_PITCH <= value <= MAX_PITCH:
        raise ValidationError(
            f"Pitch must be between {MIN_PITCH} and {MAX_PITCH} semitones, got {pitch}",
            rule="pitch_range",
            field="pitch",
        )


def validate_endpoint(
    url: str, allow_http: bool = False, field: str = "api.endpoint"
) -> None:
    """Validate a network endpoint URL.

    Args:
        url: Endpoint URL
        allow_http: Permit plain ``http`` in addition to ``https``
        field: Field name reported on failure

    Raises:
        ValidationError: If the URL is empty, oversized, malformed or uses
            a scheme other than https (or http when explicitly allowed)
    """
    if not isinstance(url, str) or not url:
        raise ValidationError(
            "API endpoint cannot be empty", rule="endpoint_empty", field=field
        )
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(
            f"API endpoint URL too long (max {MAX_URL_LENGTH} chars)",
            rule="endpoint_too_long",
            field=field,
        )
    if any(c.isspace() or unicodedata.category(c) == "Cc" for c in url):
        raise ValidationError(
            "API endpoint contains whitespace or control characters",
            rule="endpoint_characters",
            field=field,
        )
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as e:
        raise ValidationError(
            f"API endpoint is not a valid URL: {e}", rule="endpoint_format", field=field
        ) from e

    allowed = ("https", "http") if allow_http else ("https",)
    if parts.scheme not in allowed:
        expected = "https:// or http://" if allow_http else "https://"
        raise ValidationError(
            f"API endpoint must use {expected}, got scheme {parts.scheme or '(none)'!r}",
            rule="endpoint_scheme",
            field=field,
        )
    if not hostname:
        raise ValidationError(
            "API endpoint is missing a host", rule="endpoint_host", field=field
        )
    if parts.username is not None or parts.password is not None:
        raise ValidationError(
            "API endpoint must not embed credentials",
            rule="endpoint_credentials",
            field=field,
        )


def validate_request_fields(
    text: str,
    language: str,
    name: str | None,
    rate: int,
    volume: float,
    pitch: float,
    max_text_length: int = MAX_TEXT_LENGTH,
) -> None:
    """Validate every field of a synthesis request."""
    validate_text(text, max_text_length)
    validate_language(language)
    if name is not None:
        validate_voice_name(name)
    validate_rate(rate)
    validate_volume(volume)
    validate_pitch(pitch)


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Truncate text to at most ``max_bytes`` UTF-8 bytes.

    The cut always lands on a code-point boundary, never inside a
    multi-byte sequence.
    """
    if max_bytes <= 0:
        return ""
    encoded = text.encode("utf-8", errors="surrogatepass")
    if len(encoded) <= max_bytes:
        return text
    cut = max_bytes
    # Step back over continuation bytes (0b10xxxxxx)
    while cut > 0 and (encoded[cut] & 0xC0) == 0x80:
        cut -= 1
    return encoded[:cut].decode("utf-8", errors="surrogatepass")


def preview(text: str, max_bytes: int = 50) -> str:
    """Short, log-safe preview of request text."""
    short = truncate_utf8(text, max_bytes)
    short = "".join(c if c.isprintable() else " " for c in short)
    return f"{short}..." if len(short) < len(text) else short
