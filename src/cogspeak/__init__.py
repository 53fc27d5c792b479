"""cogspeak - speech synthesis dispatch for embedded agent runtimes."""

__version__ = "0.1.0"
__all__ = ["SpeechAdapter", "Synthesizer"]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    if name == "Synthesizer":
        from .core import Synthesizer

        return Synthesizer
    if name == "SpeechAdapter":
        from .adapter import SpeechAdapter

        return SpeechAdapter
    raise AttributeError(f"module 'cogspeak' has no attribute {name!r}")
