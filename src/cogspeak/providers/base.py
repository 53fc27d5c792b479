"""Abstract base class for speech synthesis engines.

This module defines the interface that all engines must implement,
ensuring consistent behavior across different TTS backends.
"""

from abc import ABC, abstractmethod

from ..tts.models import Prosody, VoiceConfig


class TTSEngine(ABC):
    """Abstract base class for speech synthesis engines.

    All engines must inherit from this class and implement the four
    required operations. ``synthesize`` performs exactly one attempt and
    must be safe to call again after a retryable failure; retries, caching
    and concurrency limits are applied by the synthesizer, not the engine.

    Engines map the engine-agnostic ``Prosody`` (words per minute, gain
    fraction, semitone offset) onto their own parameter units.
    """

    def __init__(self, prosody: Prosody | None = None) -> None:
        self.prosody = prosody or Prosody()

    @abstractmethod
    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """Convert text to audio bytes.

        Args:
            text: Validated text to convert to speech
            voice: Voice selection to use for synthesis

        Returns:
            Audio data as bytes (format is engine-specific)

        Raises:
            EngineError: If synthesis fails; ``retryable`` tells the
                synthesizer whether another attempt may succeed
        """
        pass

    @abstractmethod
    async def list_voices(self) -> list[str]:
        """Return voice names this engine can use.

        Best effort: engines without discovery return a static list.
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap check that the engine can run here (binary, model or key present)."""
        pass

    @abstractmethod
    def name(self) -> str:
        """Stable identifier used in logs and results."""
        pass

    async def aclose(self) -> None:
        """Release network clients or other resources held by the engine."""
        return None
