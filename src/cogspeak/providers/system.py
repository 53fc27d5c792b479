"""Native engine using operating-system text-to-speech commands.

This module provides text-to-speech using the built-in TTS capabilities of
the operating system (say on macOS, espeak-ng/espeak on Linux, SAPI on
Windows). Text is always handed to the command through a file or an
environment variable and is never part of a command line or script.
"""

import asyncio
import logging
import os
import platform
import shutil
import tempfile
from pathlib import Path

from ..tts.errors import EngineError, EngineUnavailableError
from ..tts.models import Prosody, VoiceConfig
from ..validation import preview
from .base import TTSEngine
from .prosody import espeak_amplitude, espeak_pitch, sapi_rate, sapi_volume

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = ("Darwin", "Linux", "Windows")

# Parameters arrive through COGSPEAK_TTS_* environment variables
SAPI_SCRIPT = """
Add-Type -AssemblyName System.Speech
$speak = New-Object System.Speech.Synthesis.SpeechSynthesizer
$speak.Rate = [int]$env:COGSPEAK_TTS_RATE
$speak.Volume = [int]$env:COGSPEAK_TTS_VOLUME
if ($env:COGSPEAK_TTS_VOICE) { $speak.SelectVoice($env:COGSPEAK_TTS_VOICE) }
$speak.SetOutputToWaveFile($env:COGSPEAK_TTS_OUTPUT)
$text = [System.IO.File]::ReadAllText($env:COGSPEAK_TTS_INPUT, [System.Text.Encoding]::UTF8)
$speak.Speak($text)
$speak.Dispose()
"""

SAPI_LIST_SCRIPT = """
Add-Type -AssemblyName System.Speech
$speak = New-Object System.Speech.Synthesis.SpeechSynthesizer
$speak.GetInstalledVoices() | ForEach-Object { $_.VoiceInfo.Name }
"""

POWERSHELL_ARGS = ["-NoProfile", "-NonInteractive", "-Command"]


class NativeEngine(TTSEngine):
    """Engine using native OS speech commands.

    Provides text-to-speech without external APIs. Audio quality is robotic
    compared to the cloud and neural engines.
    """

    def __init__(
        self, prosody: Prosody | None = None, platform_name: str | None = None
    ) -> None:
        """Initialize native engine and detect platform.

        Raises:
            EngineUnavailableError: If the platform has no supported TTS command
        """
        super().__init__(prosody)
        self.platform = platform_name or platform.system()
        if self.platform not in SUPPORTED_PLATFORMS:
            raise EngineUnavailableError(
                f"Unsupported platform: {self.platform}", engine=self.name()
            )

    def name(self) -> str:
        return "native"

    def _command(self) -> str | None:
        if self.platform == "Darwin":
            return shutil.which("say")
        if self.platform == "Linux":
            return shutil.which("espeak-ng") or shutil.which("espeak")
        return shutil.which("powershell") or shutil.which("pwsh")

    def is_available(self) -> bool:
        return self._command() is not None

    async def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """Convert text to speech using native OS commands.

        Args:
            text: Text to convert to speech
            voice: Voice selection; ``voice.name`` is passed to the OS command

        Returns:
            Audio data as bytes in WAV format

        Raises:
            EngineUnavailableError: If the TTS command is missing
            EngineError: If the TTS command fails
        """
        command = self._command()
        if command is None:
            raise EngineUnavailableError(
                f"No native TTS command found on {self.platform}", engine=self.name()
            )

        with tempfile.TemporaryDirectory(prefix="cogspeak-") as tmp:
            input_path = Path(tmp) / "input.txt"
            input_path.write_text(text, encoding="utf-8")
            output_path = Path(tmp) / "speech.wav"

            if self.platform == "Darwin":
                aiff_path = Path(tmp) / "speech.aiff"
                cmd = [command, "-f", str(input_path), "-o", str(aiff_path)]
                cmd.extend(["-r", str(self.prosody.rate)])
                if voice.name:
                    cmd.extend(["-v", voice.name])
                await run_command(cmd, engine=self.name())

                # Convert AIFF to WAV for compatibility
                await run_command(
                    ["afconvert", "-f", "WAVE", "-d", "LEI16", str(aiff_path), str(output_path)],
                    engine=self.name(),
                )

            elif self.platform == "Linux":
                cmd = [
                    command,
                    "-f",
                    str(input_path),
                    "-w",
                    str(output_path),
                    "-s",
                    str(self.prosody.rate),
                    "-a",
                    str(espeak_amplitude(self.prosody.volume)),
                    "-p",
                    str(espeak_pitch(self.prosody.pitch)),
                    "-v",
                    voice.name or voice.language.lower(),
                ]
                await run_command(cmd, engine=self.name())

            else:
                env = {
                    **os.environ,
                    "COGSPEAK_TTS_INPUT": str(input_path),
                    "COGSPEAK_TTS_OUTPUT": str(output_path),
                    "COGSPEAK_TTS_VOICE": voice.name or "",
                    "COGSPEAK_TTS_RATE": str(sapi_rate(self.prosody.rate)),
                    "COGSPEAK_TTS_VOLUME": str(sapi_volume(self.prosody.volume)),
                }
                await run_command(
                    [command, *POWERSHELL_ARGS, SAPI_SCRIPT], engine=self.name(), env=env
                )

            if not output_path.exists():
                raise EngineError(
                    f"{Path(command).name} produced no audio for '{preview(text)}'",
                    engine=self.name(),
                )
            return output_path.read_bytes()

    async def list_voices(self) -> list[str]:
        """List available system voices.

        Returns:
            Voice names, or ``["default"]`` when none can be discovered
        """
        command = self._command()
        voices: list[str] = []

        try:
            if command is None:
                pass
            elif self.platform == "Darwin":
                # Format: "Voice Name     Language  # Description"
                output = await run_command([command, "-v", "?"], engine=self.name())
                for line in output.decode(errors="replace").splitlines():
                    if line and not line.startswith("#"):
                        parts = line.split()
                        if parts:
                            voices.append(parts[0])

            elif self.platform == "Linux":
                output = await run_command([command, "--voices"], engine=self.name())
                # Skip the header line; voice ID is in the second column
                for line in output.decode(errors="replace").splitlines()[1:]:
                    parts = line.split()
                    if len(parts) >= 2:
                        voices.append(parts[1])

            else:
                output = await run_command(
                    [command, *POWERSHELL_ARGS, SAPI_LIST_SCRIPT], engine=self.name()
                )
                voices.extend(
                    line.strip()
                    for line in output.decode(errors="replace").splitlines()
                    if line.strip()
                )

        except EngineError as e:
            logger.warning(f"Failed to list {self.platform} voices: {e}")

        if not voices:
            voices.append("default")
        return voices


async def run_command(
    cmd: list[str],
    *,
    engine: str,
    env: dict[str, str] | None = None,
    stdin: bytes | None = None,
) -> bytes:
    """Run a command without blocking the event loop and return stdout.

    The child is killed if the awaiting task is cancelled (for example by a
    per-attempt timeout).

    Raises:
        EngineUnavailableError: If the executable does not exist
        EngineError: On a non-zero exit; retryable when killed by a signal
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.PIPE if stdin is not None else None,
            env=env,
        )
    except FileNotFoundError as e:
        raise EngineUnavailableError(
            f"{cmd[0]} not found", engine=engine, original_error=e
        ) from e

    try:
        stdout, stderr = await proc.communicate(stdin)
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise

    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip()[:1000]
        if proc.returncode < 0:
            raise EngineError(
                f"{Path(cmd[0]).name} was terminated by signal {-proc.returncode}",
                engine=engine,
                retryable=True,
            )
        raise EngineError(
            f"{Path(cmd[0]).name} failed with code {proc.returncode}: {message}",
            engine=engine,
        )
    return stdout
