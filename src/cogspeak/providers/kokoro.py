"""Kokoro text-to-speech engine implementation."""

import asyncio
import io
import logging
import re

import soundfile as sf
import torch
from kokoro import KPipeline

from ..config import KokoroConfig
from ..tts.models import EngineKind, Prosody, VoiceConfig, VoiceGender
from .base import TTSEngine
from .prosody import speed_multiplier

logger = logging.getLogger(__name__)

SAMPLE_RATE = 24000

# Voice prefix -> lang_code mapping
LANG_CODES = {"a": "a", "b": "b"}

VOICES = [
    "af_heart",
    "af_alloy",
    "af_aoede",
    "af_bella",
    "af_jessica",
    "af_kore",
    "af_nicole",
    "af_nova",
    "af_river",
    "af_sarah",
    "af_sky",
    "am_adam",
    "am_echo",
    "am_eric",
    "am_fenrir",
    "am_liam",
    "am_michael",
    "am_onyx",
    "am_puck",
    "am_santa",
    "bf_alice",
    "bf_emma",
    "bf_isabella",
    "bf_lily",
    "bm_daniel",
    "bm_fable",
    "bm_george",
    "bm_lewis",
]


class KokoroEngine(TTSEngine):
    """Kokoro engine using local neural speech synthesis.

    Uses the Kokoro-82M model for GPU-accelerated (MPS/CUDA) or CPU-based
    text-to-speech generation. No API key required, runs entirely locally.

    Automatically selects American or British phonemizer based on voice prefix.
    """

    def __init__(self, config: KokoroConfig | None = None, prosody: Prosody | None = None) -> None:
        """Initialize Kokoro engine with lazy pipeline creation."""
        super().__init__(prosody)
        self.config = config or KokoroConfig()
        self._device = self._resolve_device(self.config.device)
        self._pipelines: dict[str, KPipeline] = {}
        logger.info(f"Kokoro using device: {self._device}")

    def name(self) -> str:
        return EngineKind.KOKORO.value

    def is_available(self) -> bool:
        return True

    def _get_pipeline(self, voice: str) -> KPipeline:
        """Get or create a KPipeline for the given voice's language.

        Pipelines are cached by lang_code so switching between American
        and British voices doesn't reload the model unnecessarily.
        """
        lang_code = LANG_CODES.get(voice[0], "a")
        if lang_code not in self._pipelines:
            logger.info(f"Creating Kokoro pipeline for lang_code='{lang_code}'")
            self._pipelines[lang_code] = KPipeline(lang_code=lang_code, device=self._device)
        return self._pipelines[lang_code]

    @staticmethod
    def _resolve_device(device: str) -> str:
        """'auto' selects the best available device; explicit values pass through."""
        if device == "auto":
            if torch.cuda.is_available():
                return "cuda"
            if torch.backends.mps.is_available():
                return "mps"
            return "cpu"
        return device

    def _preprocess_text(self, text: str) -> str:
        """Apply pronunciation overrides using misaki's inline IPA syntax: [word](/IPA/)."""
        for word, ipa in self.config.pronunciation.items():
            text = re.sub(rf"\b{re.escape(word)}\b", f"[{word}](/{ipa}/)", text)
        return text

    @staticmethod
    def default_voice(voice: VoiceConfig) -> str:
        british = voice.language.lower() == "en-gb"
        male = voice.gender is VoiceGender.MALE
        if british:
            return "bm_george" if male else "bf_isabella"
        return "am_adam" if male else "af_heart"

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """Convert text to speech using Kokoro neural TTS.

        Returns:
            Audio data as bytes (WAV format, 24kHz)
        """
        voice_id = voice.name or self.default_voice(voice)
        text = self._preprocess_text(text)
        pipeline = self._get_pipeline(voice_id)
        speed = min(max(speed_multiplier(self.prosody.rate), 0.5), 2.0)

        def _generate() -> bytes:
            segments = [
                audio
                for _, _, audio in pipeline(text, voice=voice_id, speed=speed)
                if audio is not None
            ]
            if not segments:
                return b""
            buf = io.BytesIO()
            sf.write(buf, torch.cat(segments).cpu().numpy(), SAMPLE_RATE, format="WAV")
            return buf.getvalue()

        return await asyncio.to_thread(_generate)

    async def list_voices(self) -> list[str]:
        return list(VOICES)
