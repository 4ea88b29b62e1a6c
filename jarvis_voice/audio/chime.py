"""Two-tone activation chime played when the wake word is heard."""

from __future__ import annotations

import numpy as np

from .playback import AudioPlayer

SAMPLE_RATE = 44_100
DURATION_S = 0.3
BASE_HZ = 880.0
PEAK_HZ = 1760.0
START_GAIN = 0.3
END_GAIN = 0.01


def _exp_ramp(start: float, end: float, t: np.ndarray, t0: float, t1: float) -> np.ndarray:
    ratio = np.clip((t - t0) / (t1 - t0), 0.0, 1.0)
    return start * (end / start) ** ratio


def build_activation_chime(sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Sine sweep 880 -> 1760 -> 880 Hz over 300 ms with an exponential fade."""
    t = np.arange(int(sample_rate * DURATION_S), dtype=np.float64) / sample_rate
    freq = np.where(
        t < 0.1,
        _exp_ramp(BASE_HZ, PEAK_HZ, t, 0.0, 0.1),
        _exp_ramp(PEAK_HZ, BASE_HZ, t, 0.1, 0.2),
    )
    phase = 2.0 * np.pi * np.cumsum(freq) / sample_rate
    gain = _exp_ramp(START_GAIN, END_GAIN, t, 0.0, DURATION_S)
    return (np.sin(phase) * gain).astype(np.float32)


async def play_activation_chime(player: AudioPlayer, sample_rate: int = SAMPLE_RATE) -> None:
    await player.play_samples(build_activation_chime(sample_rate), sample_rate)
