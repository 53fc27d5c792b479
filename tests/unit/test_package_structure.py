"""Test package structure and imports."""

import sys
from pathlib import Path

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))


def test_package_imports() -> None:
    """Test that cogspeak package can be imported."""
    import cogspeak

    assert cogspeak.__version__ == "0.1.0"


def test_lazy_top_level_exports() -> None:
    """Test the Synthesizer and SpeechAdapter exports."""
    import cogspeak
    from cogspeak.adapter import SpeechAdapter
    from cogspeak.core import Synthesizer

    assert cogspeak.Synthesizer is Synthesizer
    assert cogspeak.SpeechAdapter is SpeechAdapter


def test_tts_package_exports() -> None:
    """Test that every name in cogspeak.tts.__all__ resolves."""
    import cogspeak.tts as tts

    for name in tts.__all__:
        assert getattr(tts, name) is not None


def test_validation_imports_first() -> None:
    """Test that the validation module imports on its own."""
    import importlib

    validation = importlib.import_module("cogspeak.validation")
    assert validation.MAX_TEXT_LENGTH == 100_000


def test_main_module_imports() -> None:
    """Test that main module can be imported without error."""
    from cogspeak.__main__ import main

    # Should be able to import the main function
    assert callable(main)
