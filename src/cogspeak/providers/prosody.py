"""Mappings from engine-agnostic prosody onto each backend's units.

Rate is in words per minute (150 is a normal speaking rate), volume is a
gain fraction and pitch is a semitone offset.
"""

NORMAL_RATE = 150


def speed_multiplier(rate: int) -> float:
    """Map 0-500 WPM onto the 0.25-4.0 speed scale (150 WPM -> 1.0).

    Used by OpenAI ``speed`` and Google Cloud ``speakingRate``.
    """
    if rate <= NORMAL_RATE:
        speed = 0.25 + (rate / NORMAL_RATE) * 0.75
    else:
        speed = 1.0 + ((rate - NORMAL_RATE) / 350) * 3.0
    return min(max(speed, 0.25), 4.0)


def volume_gain_db(volume: float) -> float:
    """Map 0.0-1.0 onto Google Cloud's -96.0 to 16.0 dB gain range."""
    return -96.0 + volume * 112.0


def espeak_amplitude(volume: float) -> int:
    """espeak ``-a`` amplitude, 0-200."""
    return round(volume * 200)


def espeak_pitch(semitones: float) -> int:
    """espeak ``-p`` pitch, 0-99 with 50 as the voice default."""
    return min(max(round(50 + semitones / 20 * 49), 0), 99)


def piper_length_scale(rate: int) -> float:
    """Piper ``--length_scale``: larger is slower, 1.0 at 150 WPM."""
    if rate <= NORMAL_RATE:
        scale = 2.0 - rate / NORMAL_RATE
    else:
        scale = 1.0 - (rate - NORMAL_RATE) / 350 * 0.5
    return min(max(scale, 0.5), 2.0)


def sapi_rate(rate: int) -> int:
    """Windows SAPI ``Rate``, -10..10 with 0 at 150 WPM."""
    if rate <= NORMAL_RATE:
        value = (rate - NORMAL_RATE) / NORMAL_RATE * 10
    else:
        value = (rate - NORMAL_RATE) / 350 * 10
    return min(max(round(value), -10), 10)


def sapi_volume(volume: float) -> int:
    """Windows SAPI ``Volume``, 0-100."""
    return round(volume * 100)


def ssml_rate(rate: int) -> str:
    if rate == 0:
        return "x-slow"
    if rate < 100:
        return "slow"
    if rate <= NORMAL_RATE:
        return "medium"
    if rate <= 250:
        return "fast"
    return "x-fast"


def ssml_volume(volume: float) -> str:
    if volume <= 0.0:
        return "silent"
    if volume < 0.3:
        return "x-soft"
    if volume < 0.6:
        return "soft"
    if volume <= 0.8:
        return "medium"
    if volume < 0.95:
        return "loud"
    return "x-loud"


def ssml_pitch(semitones: float) -> str:
    if semitones <= -14:
        return "x-low"
    if semitones < -6:
        return "low"
    if semitones <= 6:
        return "medium"
    if semitones < 14:
        return "high"
    return "x-high"
