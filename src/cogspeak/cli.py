"""Typer CLI definition for cogspeak."""

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import typer

from .config import CONFIG_PATH, SpeechConfig, generate_config, load_config
from .core import Synthesizer
from .providers import EngineRegistry
from .tts.errors import ConfigurationError, SpeechError, ValidationError
from .tts.models import EngineIdentity, SynthesisResult

app = typer.Typer(help="Synthesize speech through native, cloud or local neural engines")


def _configure_logging(debug: bool) -> None:
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def _fail(message: str, error: BaseException | None, debug: bool) -> typer.Exit:
    if debug and error is not None:
        typer.echo(f"Debug - {message}: {error!r}", err=True)
    else:
        typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def resolve_config(
    config_path: Path | None,
    engine: str | None = None,
    voice: str | None = None,
    language: str | None = None,
) -> SpeechConfig:
    """Load configuration and apply command-line overrides.

    Speech is always enabled for CLI invocations.

    Raises:
        ConfigurationError: If the file or an override is invalid
    """
    config = load_config(config_path)
    changes: dict = {"enabled": True}
    try:
        if engine:
            changes["engine"] = EngineIdentity.parse(engine)
        if voice or language:
            changes["voice"] = dataclasses.replace(
                config.voice,
                **{k: v for k, v in (("name", voice), ("language", language)) if v},
            )
    except ValidationError as e:
        raise ConfigurationError(str(e), field=e.field, original_error=e) from e

    config = dataclasses.replace(config, **changes)
    config.validate()
    return config


def read_text_input(text: str | None, file: Path | None) -> str:
    """Text from the argument, a file or stdin (in priority order).

    Raises:
        ValueError: If no text is provided
    """
    if text is None and file is not None:
        text = file.read_text(encoding="utf-8")
    elif text is None and not sys.stdin.isatty():
        text = sys.stdin.read().strip()
    if not text:
        raise ValueError("No text provided")
    return text


async def synthesize_text(config: SpeechConfig, text: str) -> SynthesisResult:
    async with Synthesizer(config) as synth:
        return await synth.synthesize(synth.request(text))


async def list_engine_voices(config: SpeechConfig) -> list[str]:
    engine = EngineRegistry.create(config.engine, config)
    try:
        return await engine.list_voices()
    finally:
        await engine.aclose()


@app.command()
def speak(
    text: str | None = typer.Argument(None, help="Text to convert to speech"),
    file: Path | None = typer.Option(None, "-f", "--file", help="Read text from file"),
    output: Path | None = typer.Option(
        None, "-o", "--output", help="Write audio to file (stdout when piped)"
    ),
    engine: str | None = typer.Option(
        None, "-e", "--engine", help="Engine, e.g. native, openai, custom:name (from config if omitted)"
    ),
    voice: str | None = typer.Option(None, "-v", "--voice", help="Voice name"),
    language: str | None = typer.Option(None, "-l", "--language", help="Language tag, e.g. en-GB"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    debug: bool = typer.Option(False, "--debug", help="Show verbose errors and dispatch activity"),
) -> None:
    """Convert text to speech and write the audio."""
    _configure_logging(debug)

    if output is None and sys.stdout.isatty():
        typer.echo("Error: Refusing to write audio to a terminal; use -o FILE", err=True)
        raise typer.Exit(1)

    try:
        input_text = read_text_input(text, file)
    except (OSError, UnicodeDecodeError) as e:
        raise _fail(f"Unable to read text from {file}", e, debug) from None
    except ValueError as e:
        raise _fail(str(e), e, debug) from None

    try:
        config = resolve_config(config_path, engine, voice, language)
        result = asyncio.run(synthesize_text(config, input_text))
    except SpeechError as e:
        raise _fail(str(e), e, debug) from None

    try:
        if output is not None:
            output.write_bytes(result.audio)
        else:
            sys.stdout.buffer.write(result.audio)
            sys.stdout.buffer.flush()
    except OSError as e:
        raise _fail(f"Failed to save audio file: {e}", e, debug) from None

    if debug:
        typer.echo(
            f"Debug - engine={result.engine} attempts={result.attempts} cached={result.cached}",
            err=True,
        )
    if output is not None:
        typer.echo(f"Audio saved to {output}", err=True)


@app.command()
def voices(
    engine: str | None = typer.Option(None, "-e", "--engine", help="Engine to query"),
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
    debug: bool = typer.Option(False, "--debug", help="Show verbose errors"),
) -> None:
    """List voices available to an engine."""
    _configure_logging(debug)
    try:
        config = resolve_config(config_path, engine)
        names = asyncio.run(list_engine_voices(config))
    except SpeechError as e:
        raise _fail(f"Failed to list voices: {e}", e, debug) from None

    for name in names:
        typer.echo(name)


@app.command("check-config")
def check_config(
    config_path: Path | None = typer.Option(None, "--config", help="Config file path"),
) -> None:
    """Validate the configuration file and print the effective settings."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        typer.echo(f"✗ {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(f"✓ Configuration valid ({config_path or CONFIG_PATH})")
    typer.echo(f"  enabled: {config.enabled}")
    typer.echo(f"  engine: {config.engine}")
    typer.echo(f"  voice: {config.voice.name or 'default'} ({config.voice.language})")
    typer.echo(f"  rate/volume/pitch: {config.rate} / {config.volume} / {config.pitch}")
    typer.echo(f"  queue: {config.queue.max_concurrent} ({config.queue.policy})")
    typer.echo(
        f"  cache: {'on' if config.cache.enabled else 'off'} "
        f"({config.cache.max_entries} entries, {config.cache.max_size_mb} MB)"
    )
    if config.api is not None:
        typer.echo(f"  api: {config.api.endpoint}")


@app.command("init-config")
def init_config(
    path: Path = typer.Option(CONFIG_PATH, "--path", help="Where to write the config file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a commented default configuration file."""
    if path.exists() and not force:
        typer.echo(f"Error: {path} already exists (use --force to overwrite)", err=True)
        raise typer.Exit(1)
    written = generate_config(path)
    typer.echo(f"Wrote default configuration to {written}")
