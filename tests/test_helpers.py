"""Shared test doubles for cogspeak tests."""

import asyncio
import dataclasses
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cogspeak.config import CacheConfig, QueueConfig, RetryConfig, SpeechConfig
from cogspeak.providers.base import TTSEngine
from cogspeak.tts.models import VoiceConfig


class FakeEngine(TTSEngine):
    """In-memory engine that records every call.

    Args:
        audio: Bytes returned on success; defaults to ``b"audio:" + text``
        failures: Exceptions raised by successive calls before succeeding
        gate: When set, each call waits for the event before returning
        available: Value reported by ``is_available()``
    """

    def __init__(
        self,
        audio: bytes | None = None,
        failures: list[BaseException] | None = None,
        gate: asyncio.Event | None = None,
        available: bool = True,
    ) -> None:
        super().__init__()
        self.audio = audio
        self.failures = list(failures or [])
        self.gate = gate
        self.available = available
        self.calls: list[tuple[str, VoiceConfig]] = []
        self.active = 0
        self.max_active = 0
        self.cancelled = 0
        self.closed = False

    def name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return self.available

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        self.calls.append((text, voice))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.failures:
                raise self.failures.pop(0)
            if self.audio is not None:
                return self.audio
            return b"audio:" + text.encode("utf-8")
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1

    async def list_voices(self) -> list[str]:
        return ["fake-voice"]

    async def aclose(self) -> None:
        self.closed = True


def make_config(**overrides) -> SpeechConfig:
    """Enabled config with instant retries, for driving a Synthesizer."""
    base = SpeechConfig(
        enabled=True,
        cache=CacheConfig(),
        queue=QueueConfig(),
        retry=RetryConfig(max_attempts=3, base_delay_ms=0, max_delay_ms=0, jitter=0.0),
    )
    return dataclasses.replace(base, **overrides)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0)
