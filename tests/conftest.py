"""Pytest configuration and fixtures for cogspeak tests."""

import sys
from collections.abc import Generator
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cogspeak import config as config_module
from cogspeak.providers import EngineRegistry

ENV_VARS = (
    "COGSPEAK_RATE",
    "COGSPEAK_VOLUME",
    "COGSPEAK_PITCH",
    "COGSPEAK_ENABLED",
    "COGSPEAK_ENGINE",
    "COGSPEAK_VOICE",
    "COGSPEAK_LANGUAGE",
    "COGSPEAK_API_ENDPOINT",
    "OPENAI_API_KEY",
    "GOOGLE_CLOUD_API_KEY",
    "AWS_ACCESS_KEY_ID",
    "ELEVENLABS_API_KEY",
    "CUSTOM_TTS_API_KEY",
)


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch, tmp_path) -> Generator[Path, None, None]:
    """Keep every test away from the user's config file and environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    config_path = tmp_path / "cogspeak" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_PATH", config_path)
    config_module.reset_config_cache()

    custom = dict(EngineRegistry._custom)
    factories = dict(EngineRegistry._factories)
    yield config_path

    EngineRegistry._custom.clear()
    EngineRegistry._custom.update(custom)
    EngineRegistry._factories.clear()
    EngineRegistry._factories.update(factories)
    config_module.reset_config_cache()
