"""Engine backed by caller-supplied callables."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from ..tts.errors import EngineError
from ..tts.models import Prosody, VoiceConfig
from ..validation import validate_voice_name
from .base import TTSEngine

SynthesizeFn = Callable[[str, VoiceConfig], "bytes | Awaitable[bytes]"]
ListVoicesFn = Callable[[], "list[str] | Awaitable[list[str]]"]


class CustomEngine(TTSEngine):
    """Wraps plain functions or coroutine functions as a synthesis engine.

    Synchronous callables run in a worker thread so they never block the
    event loop. Exceptions raised by the callables propagate unchanged; the
    retry policy treats ``TimeoutError``/``ConnectionError`` and retryable
    ``EngineError`` as transient.

    Example:
        async def synth(text: str, voice: VoiceConfig) -> bytes:
            return await my_backend.render(text, voice.language)

        engine = CustomEngine("studio", synth, list_voices=lambda: ["narrator"])
    """

    def __init__(
        self,
        name: str,
        synthesize: SynthesizeFn,
        list_voices: ListVoicesFn | None = None,
        is_available: Callable[[], bool] | None = None,
        prosody: Prosody | None = None,
    ) -> None:
        super().__init__(prosody)
        validate_voice_name(name, field="engine")
        self._name = name
        self._synthesize = synthesize
        self._list_voices = list_voices
        self._is_available = is_available

    def name(self) -> str:
        return f"custom:{self._name}"

    def is_available(self) -> bool:
        return self._is_available() if self._is_available else True

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        audio = await _call(self._synthesize, text, voice)
        if not isinstance(audio, (bytes, bytearray, memoryview)):
            raise EngineError(
                f"Custom engine returned {type(audio).__name__}, expected bytes",
                engine=self.name(),
            )
        return bytes(audio)

    async def list_voices(self) -> list[str]:
        if self._list_voices is None:
            return ["default"]
        return list(await _call(self._list_voices))


async def _call(fn: Callable, *args):  # type: ignore[no-untyped-def]
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result
