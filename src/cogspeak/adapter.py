"""Message-bus adapter exposing the synthesizer as the "speech" protocol.

The host runtime delivers actions such as::

    {"type": "actuator_command", "target": "speech",
     "command": {"text": "Hello", "voice": {"language": "en-GB"}}}

and receives events on queues returned by ``subscribe()``::

    {"source": "speech", "type": "audio", "status": "synthesized",
     "text": "Hello", "text_length": 5, "audio_size": 18432, "audio": b"...",
     "timestamp": 1718035200000000000}
"""

import asyncio
import json
import logging
import time
import unicodedata
from collections.abc import Mapping
from typing import Any

from .config import SpeechConfig
from .core import Synthesizer
from .tts.errors import SpeechError, ValidationError
from .tts.models import VoiceConfig
from .validation import MAX_TEXT_BYTES, preview, truncate_utf8

logger = logging.getLogger(__name__)

EVENT_BUFFER_SIZE = 1000
MAX_TARGET_LENGTH = 256
MAX_COMMAND_BYTES = 200_000
MAX_EVENT_TEXT_CHARS = 1000


class SpeechAdapter:
    """Routes ``actuator_command`` actions aimed at speech targets to a Synthesizer.

    Targets named ``speech`` or ``speech_*`` are handled; every other action
    is ignored. Malformed commands are logged and dropped, never raised, so a
    bad message cannot take down the host's dispatch loop.
    """

    protocol_name = "speech"

    def __init__(self, config: SpeechConfig, synthesizer: Synthesizer | None = None) -> None:
        """Initialize adapter.

        Args:
            config: Speech configuration
            synthesizer: Synthesizer to use; built from ``config`` when omitted

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config.validate()
        self.config = config
        self._owns_synthesizer = synthesizer is None
        self._synthesizer = synthesizer

        if synthesizer is None:
            if config.enabled:
                try:
                    self._synthesizer = Synthesizer(config)
                    logger.info("Speech synthesizer initialized")
                except SpeechError as e:
                    logger.warning(f"Failed to initialize speech synthesizer: {e}")
            else:
                logger.info("Speech synthesis disabled in config")

        self._running = False
        self._subscribers: list[asyncio.Queue[dict[str, Any]]] = []

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def synthesizer(self) -> Synthesizer | None:
        return self._synthesizer

    async def start(self) -> None:
        """Start accepting subscribers.

        Raises:
            RuntimeError: If the adapter is already running
        """
        if self._running:
            raise RuntimeError("Speech adapter already running")
        self._running = True
        if self._synthesizer is not None:
            logger.info(f"Speech adapter started with engine {self._synthesizer.engine_name}")
        else:
            logger.info("Speech adapter started without a synthesizer")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._subscribers.clear()
        if self._owns_synthesizer and self._synthesizer is not None:
            await self._synthesizer.aclose()
        logger.info("Speech adapter stopped")

    def subscribe(self, maxsize: int = EVENT_BUFFER_SIZE) -> "asyncio.Queue[dict[str, Any]]":
        """Return a queue receiving speech events.

        Queues handed out before ``start()`` or after ``stop()`` never
        receive events.
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        if self._running:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[dict[str, Any]]") -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def send_action(self, action: Mapping[str, Any]) -> None:
        """Handle one action from the host runtime."""
        if not isinstance(action, Mapping) or action.get("type") != "actuator_command":
            return

        target = action.get("target")
        if not isinstance(target, str):
            return
        if len(target) > MAX_TARGET_LENGTH:
            logger.warning("Target name too long, ignoring")
            return
        if target != "speech" and not target.startswith("speech_"):
            return

        text, voice = self._parse_command(action.get("command"))
        if text is None:
            return

        if self._synthesizer is None:
            logger.warning("Speech synthesizer not available")
            return

        try:
            audio = await self._synthesizer.speak_with_config(text, voice or self.config.voice)
        except SpeechError as e:
            logger.error(f"Speech synthesis failed for '{preview(text)}': {e}")
            self._emit(
                {
                    "status": "failed",
                    "text": _event_text(text),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return

        logger.info(f"Speech synthesized successfully: {len(audio)} bytes")
        self._emit(
            {
                "status": "synthesized",
                "text": _event_text(text),
                "text_length": len(text.encode("utf-8")),
                "audio_size": len(audio),
                "audio": audio,
            }
        )

    def _parse_command(self, command: Any) -> tuple[str | None, VoiceConfig | None]:
        if not isinstance(command, Mapping):
            logger.warning("Speech command must be an object, ignoring")
            return None, None

        try:
            size = len(json.dumps(command, ensure_ascii=False).encode("utf-8"))
        except (TypeError, ValueError):
            logger.warning("Speech command is not JSON serializable, ignoring")
            return None, None
        if size > MAX_COMMAND_BYTES:
            logger.warning(
                f"Command too large ({size} bytes, max {MAX_COMMAND_BYTES} bytes), ignoring"
            )
            return None, None

        text = command.get("text")
        if not isinstance(text, str):
            text = command.get("message")
        if not isinstance(text, str):
            logger.warning("Speech command missing 'text' or 'message' field")
            return None, None
        if not text:
            logger.warning("Empty text in speech command, ignoring")
            return None, None
        if "\0" in text:
            logger.warning("Text contains null bytes, ignoring")
            return None, None

        encoded_length = len(text.encode("utf-8"))
        if encoded_length > MAX_TEXT_BYTES:
            logger.warning(
                f"Text too long ({encoded_length} bytes, max {MAX_TEXT_BYTES}), truncating"
            )
            text = truncate_utf8(text, MAX_TEXT_BYTES)

        voice = None
        voice_data = command.get("voice")
        if voice_data is not None:
            if not isinstance(voice_data, Mapping):
                logger.warning("Speech command 'voice' must be an object, ignoring")
                return None, None
            try:
                voice = VoiceConfig.from_dict(dict(voice_data))
            except ValidationError as e:
                logger.warning(f"Invalid voice in speech command, ignoring: {e}")
                return None, None

        return text, voice

    def _emit(self, data: dict[str, Any]) -> None:
        timestamp = time.time_ns()
        event = {"source": self.protocol_name, "type": "audio", **data, "timestamp": timestamp}
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Failed to send speech event (subscriber queue full)")


def _event_text(text: str) -> str:
    """Text for events: control characters removed, at most 1000 characters."""
    kept = (
        c for c in text if c in "\n\r\t" or unicodedata.category(c) != "Cc"
    )
    return "".join(kept)[:MAX_EVENT_TEXT_CHARS]
