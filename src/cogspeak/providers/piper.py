"""Piper local neural engine.

Runs the ``piper`` executable with text on stdin and reads the WAV file it
writes. Voice models are ``.onnx`` files, either configured explicitly or
looked up by voice name (or language) inside a voices directory.
"""

import logging
import re
import shutil
import tempfile
from pathlib import Path

from ..config import PiperConfig
from ..tts.errors import EngineError, EngineUnavailableError
from ..tts.models import EngineKind, Prosody, VoiceConfig
from .base import TTSEngine
from .prosody import piper_length_scale
from .system import run_command

logger = logging.getLogger(__name__)

COMMON_MODELS = (
    "en_US-lessac-medium.onnx",
    "en_US-lessac-high.onnx",
    "en_US-libritts-high.onnx",
)

_UNSAFE_MODEL_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class PiperEngine(TTSEngine):
    """Local neural synthesis with Piper."""

    def __init__(self, config: PiperConfig | None = None, prosody: Prosody | None = None) -> None:
        super().__init__(prosody)
        self.config = config or PiperConfig()

    def name(self) -> str:
        return EngineKind.PIPER.value

    def _executable(self) -> str | None:
        return shutil.which(self.config.executable)

    def is_available(self) -> bool:
        if self._executable() is None:
            return False
        if self.config.model_path is not None:
            return Path(self.config.model_path).is_file()
        return self.config.voices_dir is not None and Path(self.config.voices_dir).is_dir()

    def find_model(self, voice: VoiceConfig) -> Path:
        """Resolve the model file for ``voice``.

        Raises:
            EngineError: If no model exists or the lookup escapes voices_dir
        """
        if self.config.model_path is not None and Path(self.config.model_path).is_file():
            return Path(self.config.model_path)

        voices_dir = self.config.voices_dir
        if voices_dir is not None:
            voices_dir = Path(voices_dir)
            stem = voice.name or voice.language.replace("-", "_")
            model_name = _UNSAFE_MODEL_CHARS.sub("", stem)[:256] + ".onnx"
            if ".." in model_name:
                raise EngineError(
                    "Invalid model name (path traversal detected)", engine=self.name()
                )

            candidate = voices_dir / model_name
            if not candidate.resolve().is_relative_to(voices_dir.resolve()):
                raise EngineError("Model path traversal detected", engine=self.name())
            if candidate.is_file():
                return candidate

            for common in COMMON_MODELS:
                if (voices_dir / common).is_file():
                    logger.debug(f"No Piper model for {stem}, using {common}")
                    return voices_dir / common

        raise EngineError(
            f"Piper model not found for voice {voice.name or voice.language}. "
            "Set piper.model_path or piper.voices_dir in the config file.",
            engine=self.name(),
        )

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """Convert text to speech with Piper.

        Returns:
            Audio data as bytes (WAV format)
        """
        executable = self._executable()
        if executable is None:
            raise EngineUnavailableError(
                f"Piper executable '{self.config.executable}' not found",
                engine=self.name(),
            )
        model = self.find_model(voice)

        with tempfile.TemporaryDirectory(prefix="cogspeak-piper-") as tmp:
            output_path = Path(tmp) / "speech.wav"
            cmd = [
                executable,
                "--model",
                str(model),
                "--output_file",
                str(output_path),
                "--length_scale",
                f"{piper_length_scale(self.prosody.rate):.3f}",
            ]
            await run_command(cmd, engine=self.name(), stdin=text.encode("utf-8"))

            if not output_path.exists():
                raise EngineError("Piper produced no audio", engine=self.name())
            return output_path.read_bytes()

    async def list_voices(self) -> list[str]:
        """Model stems found in the voices directory."""
        voices_dir = self.config.voices_dir
        if voices_dir is None or not Path(voices_dir).is_dir():
            if self.config.model_path is not None:
                return [Path(self.config.model_path).stem]
            return []
        return sorted(path.stem for path in Path(voices_dir).glob("*.onnx"))
