"""HTTP cloud engines: OpenAI, Google Cloud, Amazon Polly and custom endpoints.

All engines share one ``httpx.AsyncClient`` per instance and classify
failures by status code:
- 401/403 are authentication failures (terminal)
- 408, 429, 5xx, transport errors and timeouts are transient (retryable)
- any other 4xx means the request was rejected (terminal)
"""

import base64
import binascii
import json
import logging
import os
from typing import Any, ClassVar
from urllib.parse import urlsplit
from xml.sax.saxutils import escape

import httpx

from ..config import ApiConfig
from ..tts.errors import (
    EngineAPIError,
    EngineAuthError,
    EngineError,
    EngineTimeoutError,
    ResourceExhausted,
)
from ..tts.models import EngineKind, Prosody, VoiceConfig, VoiceGender
from ..validation import MAX_AUDIO_BYTES, preview, truncate_utf8
from .base import TTSEngine
from .prosody import (
    speed_multiplier,
    ssml_pitch,
    ssml_rate,
    ssml_volume,
    volume_gain_db,
)

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_BYTES = 1000
AUDIO_JSON_FIELDS = ("audio", "data", "audioContent")


class HTTPEngine(TTSEngine):
    """Base class for engines that talk to a JSON-over-HTTPS API.

    Args:
        config: Endpoint, key, model and timeout settings
        prosody: Speaking parameters mapped onto the API's units
        client: Optional pre-built client (tests inject one with a mock transport)
    """

    kind: ClassVar[EngineKind]
    api_key_env: ClassVar[str | None] = None
    requires_api_key: ClassVar[bool] = True

    def __init__(
        self,
        config: ApiConfig,
        prosody: Prosody | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(prosody)
        self.config = config
        self.endpoint = config.endpoint.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_secs)

    @property
    def api_key(self) -> str | None:
        if self.config.api_key:
            return self.config.api_key
        return os.getenv(self.api_key_env) if self.api_key_env else None

    def name(self) -> str:
        return self.kind.value

    def is_available(self) -> bool:
        return not self.requires_api_key or bool(self.api_key)

    def _require_key(self) -> str:
        key = self.api_key
        if not key:
            raise EngineAuthError(
                f"{self.name()} API key not found. Set {self.api_key_env} environment "
                "variable or api.api_key in the config file.",
                engine=self.name(),
            )
        return key

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        """Send one request and return the body, bounded by MAX_AUDIO_BYTES.

        Raises:
            EngineAuthError: On 401/403
            EngineAPIError: On other error statuses or transport failures
            EngineTimeoutError: If the request timed out
            ResourceExhausted: If the body exceeds MAX_AUDIO_BYTES
        """
        try:
            async with self._client.stream(
                method, url, json=json_body, headers=headers
            ) as response:
                if response.status_code >= 400:
                    body = await _read_limited(response, MAX_ERROR_BODY_BYTES)
                    raise self._status_error(response.status_code, body)

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > MAX_AUDIO_BYTES:
                    raise ResourceExhausted(
                        f"Response too large ({declared} bytes, max {MAX_AUDIO_BYTES} bytes)",
                        resource="audio",
                    )
                body = await _read_limited(response, MAX_AUDIO_BYTES + 1)
        except httpx.TimeoutException as e:
            raise EngineTimeoutError(
                f"{self.name()} request timed out: {e}", engine=self.name(), original_error=e
            ) from e
        except httpx.TransportError as e:
            raise EngineAPIError(
                f"{self.name()} request failed: {e}", engine=self.name(), original_error=e
            ) from e

        if len(body) > MAX_AUDIO_BYTES:
            raise ResourceExhausted(
                f"Response too large (max {MAX_AUDIO_BYTES} bytes)", resource="audio"
            )
        return body

    def _status_error(self, status_code: int, body: bytes) -> EngineError:
        detail = truncate_utf8(body.decode("utf-8", errors="replace"), MAX_ERROR_BODY_BYTES)
        message = f"{self.name()} API error ({status_code}): {detail or 'no details'}"
        if status_code in (401, 403):
            return EngineAuthError(
                f"Authentication failed: {message}", engine=self.name(), status_code=status_code
            )
        return EngineAPIError(message, status_code, engine=self.name())

    def _parse_json(self, body: bytes) -> Any:
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EngineAPIError(
                f"Malformed {self.name()} response: {e}",
                engine=self.name(),
                retryable=False,
                original_error=e,
            ) from e

    def _decode_audio(self, encoded: str) -> bytes:
        """Decode base64 audio carried in a JSON response."""
        if len(encoded) > MAX_AUDIO_BYTES * 4 // 3 + 4:
            raise ResourceExhausted("Base64 audio string too long", resource="audio")
        try:
            audio = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EngineAPIError(
                f"Failed to decode base64 audio from {self.name()}: {e}",
                engine=self.name(),
                retryable=False,
                original_error=e,
            ) from e
        if len(audio) > MAX_AUDIO_BYTES:
            raise ResourceExhausted("Decoded audio too large", resource="audio")
        return audio

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


async def _read_limited(response: httpx.Response, limit: int) -> bytes:
    chunks = bytearray()
    async for chunk in response.aiter_bytes():
        chunks.extend(chunk)
        if len(chunks) >= limit:
            break
    return bytes(chunks[:limit])


class OpenAIEngine(HTTPEngine):
    """OpenAI ``/v1/audio/speech`` engine (MP3 output)."""

    kind = EngineKind.OPENAI
    api_key_env = "OPENAI_API_KEY"
    voices: ClassVar[list[str]] = ["alloy", "echo", "fable", "onyx", "nova", "shimmer"]

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        key = self._require_key()
        voice_name = voice.name or ("echo" if voice.gender is VoiceGender.MALE else "alloy")
        body = {
            "model": self.config.model or "tts-1",
            "input": text,
            "voice": voice_name,
            "response_format": "mp3",
            "speed": speed_multiplier(self.prosody.rate),
        }
        logger.debug(f"OpenAI synthesis with voice {voice_name}: '{preview(text)}'")
        return await self._request(
            "POST",
            f"{self.endpoint}/v1/audio/speech",
            json_body=body,
            headers={"Authorization": f"Bearer {key}"},
        )

    async def list_voices(self) -> list[str]:
        return list(self.voices)


class GoogleCloudEngine(HTTPEngine):
    """Google Cloud ``text:synthesize`` engine.

    The key travels in the ``X-Goog-Api-Key`` header so it never appears in
    URLs or logs.
    """

    kind = EngineKind.GOOGLE_CLOUD
    api_key_env = "GOOGLE_CLOUD_API_KEY"
    default_voices: ClassVar[list[str]] = [
        "en-US-Standard-A",
        "en-US-Standard-B",
        "en-US-Standard-C",
        "en-US-Standard-D",
    ]

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        key = self._require_key()
        male = voice.gender is VoiceGender.MALE
        voice_name = voice.name or f"{voice.language}-Standard-{'B' if male else 'A'}"
        ssml_gender = {
            VoiceGender.FEMALE: "FEMALE",
            VoiceGender.MALE: "MALE",
        }.get(voice.gender, "NEUTRAL")
        body = {
            "input": {"text": text},
            "voice": {
                "languageCode": voice.language,
                "name": voice_name,
                "ssmlGender": ssml_gender,
            },
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": speed_multiplier(self.prosody.rate),
                "volumeGainDb": volume_gain_db(self.prosody.volume),
                "pitch": float(self.prosody.pitch),
            },
        }
        raw = await self._request(
            "POST",
            f"{self.endpoint}/v1/text:synthesize",
            json_body=body,
            headers={"X-Goog-Api-Key": key},
        )
        data = self._parse_json(raw)
        audio_content = data.get("audioContent") if isinstance(data, dict) else None
        if not isinstance(audio_content, str):
            raise EngineAPIError(
                "Missing audioContent in Google Cloud response",
                engine=self.name(),
                retryable=False,
            )
        return self._decode_audio(audio_content)

    async def list_voices(self) -> list[str]:
        """List voices from the API, falling back to a static list."""
        key = self.api_key
        if not key:
            return list(self.default_voices)
        try:
            raw = await self._request(
                "GET", f"{self.endpoint}/v1/voices", headers={"X-Goog-Api-Key": key}
            )
            data = self._parse_json(raw)
        except (EngineError, ResourceExhausted) as e:
            logger.warning(f"Google Cloud voice listing failed, using defaults: {e}")
            return list(self.default_voices)

        voices = [
            # Names may be fully qualified: "projects/.../voices/<name>"
            v["name"].rsplit("/", 1)[-1]
            for v in (data.get("voices") or [] if isinstance(data, dict) else [])
            if isinstance(v, dict) and isinstance(v.get("name"), str)
        ]
        return voices or list(self.default_voices)


class AmazonPollyEngine(HTTPEngine):
    """Amazon Polly engine for Polly-compatible endpoints accepting bearer keys.

    Prosody is sent as SSML ``<prosody>`` attributes. Native AWS endpoints
    need Signature V4, which this engine does not perform.
    """

    kind = EngineKind.AMAZON_POLLY
    api_key_env = "AWS_ACCESS_KEY_ID"
    default_voices: ClassVar[list[str]] = ["Joanna", "Matthew", "Amy", "Brian"]

    def ssml(self, text: str) -> str:
        escaped = escape(text, {'"': "&quot;", "'": "&apos;"})
        return (
            f'<speak><prosody rate="{ssml_rate(self.prosody.rate)}" '
            f'volume="{ssml_volume(self.prosody.volume)}" '
            f'pitch="{ssml_pitch(self.prosody.pitch)}">{escaped}</prosody></speak>'
        )

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        key = self._require_key()
        voice_id = voice.name or ("Matthew" if voice.gender is VoiceGender.MALE else "Joanna")
        body = {
            "Text": self.ssml(text),
            "OutputFormat": "mp3",
            "VoiceId": voice_id,
            "LanguageCode": voice.language,
            "TextType": "ssml",
            "SampleRate": "22050",
            "Engine": "neural",
        }
        try:
            return await self._request(
                "POST",
                f"{self.endpoint}/v1/speech",
                json_body=body,
                headers={"Authorization": f"Bearer {key}"},
            )
        except EngineAuthError as e:
            raise EngineAuthError(
                f"{e.message}. Native AWS Polly endpoints require Signature V4 signing.",
                engine=self.name(),
                status_code=e.status_code,
                original_error=e,
            ) from e

    async def list_voices(self) -> list[str]:
        key = self.api_key
        if not key:
            return list(self.default_voices)
        try:
            raw = await self._request(
                "GET", f"{self.endpoint}/v1/voices", headers={"Authorization": f"Bearer {key}"}
            )
            data = self._parse_json(raw)
        except (EngineError, ResourceExhausted):
            logger.debug("Amazon Polly voices API call failed, using defaults")
            return list(self.default_voices)

        voices = [
            v["Id"]
            for v in (data.get("Voices") or [] if isinstance(data, dict) else [])
            if isinstance(v, dict) and isinstance(v.get("Id"), str)
        ]
        return voices or list(self.default_voices)


class CustomHTTPEngine(HTTPEngine):
    """Generic JSON TTS endpoint.

    Posts ``{"text", "format", "language", "voice"?, "model"?}`` and accepts
    either raw audio or a JSON object carrying base64 audio in one of the
    ``audio``, ``data`` or ``audioContent`` fields.
    """

    kind = EngineKind.CUSTOM
    api_key_env = "CUSTOM_TTS_API_KEY"
    requires_api_key = False

    def __init__(
        self,
        custom_name: str,
        config: ApiConfig,
        prosody: Prosody | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config, prosody, client)
        self.custom_name = custom_name

    def name(self) -> str:
        return f"custom:{self.custom_name}"

    @property
    def url(self) -> str:
        """Endpoint URL, with ``/v1/synthesize`` appended when no API path is given."""
        path = urlsplit(self.endpoint).path
        if any(marker in path for marker in ("/v1/", "/api/", "/tts")):
            return self.endpoint
        return f"{self.endpoint}/v1/synthesize"

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        body: dict[str, Any] = {"text": text, "format": "mp3", "language": voice.language}
        if voice.name:
            body["voice"] = voice.name
        if self.config.model:
            body["model"] = self.config.model

        headers = {}
        if key := self.api_key:
            headers["Authorization"] = f"Bearer {key}"

        raw = await self._request("POST", self.url, json_body=body, headers=headers)
        return self.extract_audio(raw)

    def extract_audio(self, raw: bytes) -> bytes:
        """Return base64 audio from a JSON body, or the body itself."""
        if len(raw) > 2 and raw[:1] == b"{" and raw[-1:] == b"}":
            try:
                data = json.loads(raw)
            except (UnicodeDecodeError, json.JSONDecodeError):
                return raw
            if isinstance(data, dict):
                for field in AUDIO_JSON_FIELDS:
                    if isinstance(data.get(field), str):
                        return self._decode_audio(data[field])
        return raw

    async def list_voices(self) -> list[str]:
        # Voice discovery is not standardized for custom endpoints
        return ["default"]
