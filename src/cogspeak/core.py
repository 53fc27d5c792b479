"""Synthesis dispatch core - cache, permit pool, retry and engine dispatch.

Every request follows the same path:

    validate -> cache lookup -> (miss) acquire permit -> engine call under the
    retry policy -> release permit -> store in cache -> return

A cache hit costs no permit and no backend call. Concurrent requests with
the same fingerprint share one dispatch.
"""

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from .cache.manager import AudioCache
from .config import SpeechConfig
from .providers import EngineRegistry
from .providers.base import TTSEngine
from .tts.errors import (
    ConfigurationError,
    EngineError,
    EngineUnavailableError,
    ResourceExhausted,
    SpeechError,
    ValidationError,
)
from .tts.models import SynthesisRequest, SynthesisResult, VoiceConfig
from .tts.retry import RetryPolicy
from .validation import MAX_AUDIO_BYTES, preview, validate_text

logger = logging.getLogger(__name__)


@dataclass
class _Flight:
    """One in-progress dispatch shared by every caller waiting on it."""

    task: "asyncio.Task[SynthesisResult]"
    waiters: int = 0


class Synthesizer:
    """Turns text into audio through the configured engine.

    Callers are tasks on one event loop. Code running in other threads should
    submit coroutines with ``asyncio.run_coroutine_threadsafe``.

    Example:
        config = load_config()
        async with Synthesizer(config) as synth:
            audio = await synth.speak("Deploy complete")
    """

    def __init__(
        self,
        config: SpeechConfig,
        engine: TTSEngine | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Validate configuration and resolve the engine once.

        Args:
            config: Speech configuration
            engine: Engine to use instead of the one ``config.engine`` names.
                Cache keys still carry ``config.engine``; the cache belongs to
                this instance, so keys never meet another engine's audio.
            retry_policy: Policy to use instead of one built from ``config.retry``

        Raises:
            ConfigurationError: If the config is invalid or speech is disabled
            EngineUnavailableError: If the engine cannot run on this host
        """
        config.validate()
        if not config.enabled:
            raise ConfigurationError(
                "Speech synthesis is disabled (set speech.enabled = true)",
                field="speech.enabled",
            )

        self.config = config
        self.engine = engine or EngineRegistry.create(config.engine, config)
        if not self.engine.is_available():
            raise EngineUnavailableError(
                f"Engine {self.engine.name()} is not available on this host",
                engine=self.engine.name(),
            )

        self.cache: AudioCache | None = None
        if config.cache.enabled:
            self.cache = AudioCache(
                max_entries=config.cache.max_entries,
                max_bytes=config.cache.max_bytes,
                cleanup_fraction=config.cache.cleanup_fraction,
            )
        self.retry_policy = retry_policy or RetryPolicy.from_config(config.retry)

        self._capacity = config.queue.max_concurrent
        self._permits = asyncio.Semaphore(self._capacity)
        self._in_use = 0
        self._in_flight: dict[str, _Flight] = {}
        self._counters = {"dispatched": 0, "coalesced": 0, "failed": 0, "rejected": 0}

        logger.info(
            f"Synthesizer ready: engine={self.engine.name()} "
            f"max_concurrent={self._capacity} cache={'on' if self.cache else 'off'}"
        )

    @property
    def engine_name(self) -> str:
        return self.engine.name()

    def request(self, text: str, voice: VoiceConfig | None = None) -> SynthesisRequest:
        """Build a validated request using the configured prosody and engine."""
        return SynthesisRequest(
            text=text,
            voice=voice or self.config.voice,
            prosody=self.config.prosody,
            engine=self.config.engine,
            max_text_length=self.config.max_text_length,
        )

    async def speak(self, text: str) -> bytes:
        """Synthesize ``text`` with the configured default voice."""
        return await self.speak_with_config(text, self.config.voice)

    async def speak_with_config(self, text: str, voice: VoiceConfig) -> bytes:
        """Synthesize ``text`` with an explicit voice.

        Returns:
            Audio bytes (never empty)

        Raises:
            ValidationError: If the text or voice is invalid
            EngineError: If the engine failed terminally or retries ran out
            ResourceExhausted: If the queue rejected the request or the audio
                exceeded the size limit
        """
        result = await self.synthesize(self.request(text, voice))
        return result.audio

    async def synthesize(self, request: SynthesisRequest) -> SynthesisResult:
        """Synthesize a prepared request and report how it was served."""
        validate_text(request.text, self.config.max_text_length)
        if request.engine != self.config.engine:
            raise ValidationError(
                f"Request targets engine {request.engine}, synthesizer uses {self.config.engine}",
                rule="engine_mismatch",
                field="engine",
            )
        if request.prosody != self.config.prosody:
            raise ValidationError(
                "Request prosody differs from the synthesizer's configured prosody",
                rule="prosody_mismatch",
                field="prosody",
            )

        key = request.fingerprint()
        if self.cache is not None:
            audio = self.cache.get(key)
            if audio is not None:
                return SynthesisResult(
                    audio=audio, engine=self.engine_name, attempts=0, cached=True
                )

        flight = self._in_flight.get(key)
        leader = flight is None
        if flight is None:
            task = asyncio.create_task(
                self._dispatch(request, key), name=f"cogspeak-dispatch-{key[:12]}"
            )
            flight = _Flight(task)
            self._in_flight[key] = flight
            task.add_done_callback(lambda t: self._flight_done(key, flight))
        else:
            self._counters["coalesced"] += 1
            logger.debug(f"Joining in-flight dispatch for {key[:12]}")

        flight.waiters += 1
        try:
            result = await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.waiters == 1 and not flight.task.done():
                # Last caller gone: stop the dispatch, which releases its permit
                if self._in_flight.get(key) is flight:
                    del self._in_flight[key]
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1

        return result if leader else dataclasses.replace(result, coalesced=True)

    def _flight_done(self, key: str, flight: _Flight) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]
        if not flight.task.cancelled():
            # Mark the exception retrieved even when every waiter has left
            flight.task.exception()

    async def _dispatch(self, request: SynthesisRequest, key: str) -> SynthesisResult:
        name = self.engine_name
        try:
            async with self._permit():
                self._counters["dispatched"] += 1
                logger.debug(f"Dispatching '{preview(request.text)}' to {name}")
                outcome = await self.retry_policy.execute(
                    lambda: self.engine.synthesize(request.text, request.voice), engine=name
                )
            audio = outcome.value
            if not audio:
                raise EngineError(f"Engine {name} returned no audio", engine=name)
            if len(audio) > MAX_AUDIO_BYTES:
                raise ResourceExhausted(
                    f"Engine {name} returned {len(audio)} bytes of audio "
                    f"(max {MAX_AUDIO_BYTES})",
                    resource="audio",
                )
        except SpeechError as e:
            self._counters["failed"] += 1
            logger.error(f"Synthesis failed for '{preview(request.text)}' on {name}: {e}")
            raise

        if self.cache is not None:
            self.cache.put(key, audio)
        return SynthesisResult(audio=audio, engine=name, attempts=outcome.attempts)

    @asynccontextmanager
    async def _permit(self) -> AsyncIterator[None]:
        """Hold one queue permit for the duration of a backend call."""
        queue = self.config.queue
        if queue.policy == "reject" and self._permits.locked():
            self._counters["rejected"] += 1
            raise ResourceExhausted(
                f"Request queue is full ({self._capacity} requests in flight)",
                resource="queue",
            )
        if queue.acquire_timeout is not None:
            try:
                await asyncio.wait_for(self._permits.acquire(), timeout=queue.acquire_timeout)
            except TimeoutError as e:
                self._counters["rejected"] += 1
                raise ResourceExhausted(
                    f"Timed out after {queue.acquire_timeout}s waiting for a queue permit",
                    resource="queue",
                ) from e
        else:
            await self._permits.acquire()

        self._in_use += 1
        try:
            yield
        finally:
            self._in_use -= 1
            self._permits.release()

    def queue_usage(self) -> int:
        """Number of permits currently held by backend calls."""
        return self._in_use

    def queue_capacity(self) -> int:
        return self._capacity

    def is_queue_full(self) -> bool:
        return self._in_use >= self._capacity

    async def list_voices(self) -> list[str]:
        return await self.engine.list_voices()

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def stats(self) -> dict[str, Any]:
        """Counters for dispatches, queue occupancy and the cache."""
        stats: dict[str, Any] = {
            "engine": self.engine_name,
            "queue_usage": self._in_use,
            "queue_capacity": self._capacity,
            "in_flight": len(self._in_flight),
            **self._counters,
        }
        if self.cache is not None:
            cache_stats = self.cache.stats()
            stats["cache"] = dataclasses.asdict(cache_stats) | {"hit_rate": cache_stats.hit_rate}
        return stats

    async def aclose(self) -> None:
        """Cancel outstanding dispatches and release engine resources."""
        tasks = [flight.task for flight in self._in_flight.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        await self.engine.aclose()

    async def __aenter__(self) -> "Synthesizer":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
