"""ElevenLabs text-to-speech engine implementation."""

import asyncio
import logging
import os
from typing import Any

from elevenlabs.client import ElevenLabs

from ..tts.errors import EngineAPIError, EngineAuthError, EngineError
from ..tts.models import EngineKind, Prosody, VoiceConfig
from .base import TTSEngine
from .prosody import speed_multiplier

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "eleven_turbo_v2_5"


class ElevenLabsEngine(TTSEngine):
    """ElevenLabs engine over the official SDK.

    The SDK is synchronous, so every call runs in a worker thread to keep
    the event loop free.
    """

    def __init__(
        self,
        prosody: Prosody | None = None,
        api_key: str | None = None,
        model_id: str | None = None,
        client: Any | None = None,
    ) -> None:
        """Initialize ElevenLabs engine.

        Args:
            prosody: Speaking parameters; rate maps onto the SDK's speed setting
            api_key: ElevenLabs API key. If not provided, reads from
                    ELEVENLABS_API_KEY environment variable.
            model_id: ElevenLabs model ID to use
            client: Pre-built SDK client (tests inject a mock)
        """
        super().__init__(prosody)
        self._api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        self.model_id = model_id or DEFAULT_MODEL
        self._client = client
        # Cache for voices to avoid repeated API calls
        self._voices_cache: list[str] | None = None

    def name(self) -> str:
        return EngineKind.ELEVENLABS.value

    def is_available(self) -> bool:
        return self._client is not None or bool(self._api_key)

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise EngineAuthError(
                    "ElevenLabs API key not found. Set ELEVENLABS_API_KEY environment "
                    "variable or api.api_key in the config file.",
                    engine=self.name(),
                )
            try:
                self._client = ElevenLabs(api_key=self._api_key)
            except Exception as e:
                raise EngineAuthError(
                    f"Failed to initialize ElevenLabs client: {e}",
                    engine=self.name(),
                    original_error=e,
                ) from e
        return self._client

    def voice_settings(self) -> dict[str, Any]:
        # v3 models only accept stability 0.0, 0.5 or 1.0
        is_v3 = self.model_id.startswith("eleven_v3")
        return {
            "stability": 0.5 if is_v3 else 0.65,
            "similarity_boost": 0.75,
            "style": 0.4,
            "use_speaker_boost": True,
            "speed": min(max(speed_multiplier(self.prosody.rate), 0.7), 1.2),
        }

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """Convert text to speech audio bytes.

        Args:
            text: Text to convert to speech
            voice: ``voice.name`` is the ElevenLabs voice ID; the first
                available voice is used when it is not set

        Returns:
            Audio data as bytes (MP3 format)

        Raises:
            EngineAPIError: If API call fails
            EngineAuthError: If authentication fails
        """
        client = self.client
        voice_id = voice.name
        if not voice_id:
            voices = await self.list_voices()
            if not voices:
                raise EngineAPIError("No voices available", engine=self.name(), retryable=False)
            voice_id = voices[0]

        settings = self.voice_settings()

        def _sync_convert() -> bytes:
            audio_generator = client.text_to_speech.convert(
                text=text,
                voice_id=voice_id,
                model_id=self.model_id,
                voice_settings=settings,
            )
            return b"".join(audio_generator)

        try:
            return await asyncio.to_thread(_sync_convert)
        except Exception as e:
            raise self._classify(e, "API call failed") from e

    async def list_voices(self) -> list[str]:
        """Get voice IDs, cached after the first successful call."""
        if self._voices_cache is not None:
            return self._voices_cache

        client = self.client

        def _sync_get_voices() -> list[str]:
            response = client.voices.get_all()
            return [voice.voice_id for voice in response.voices]

        try:
            voices = await asyncio.to_thread(_sync_get_voices)
        except Exception as e:
            raise self._classify(e, "Failed to list voices") from e

        self._voices_cache = voices
        return voices

    def _classify(self, error: Exception, context: str) -> EngineError:
        status = getattr(error, "status_code", None)
        if not isinstance(status, int):
            text = str(error).lower()
            if "unauthorized" in text or "401" in text:
                status = 401
            elif "429" in text:
                status = 429
        if status in (401, 403):
            return EngineAuthError(
                f"Authentication failed: {error}",
                engine=self.name(),
                status_code=status,
                original_error=error,
            )
        return EngineAPIError(
            f"{context}: {error}", status, engine=self.name(), original_error=error
        )
