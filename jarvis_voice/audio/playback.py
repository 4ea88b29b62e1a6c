"""Audio output for synthesized speech and the activation chime."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any

import numpy as np

from ..core.errors import CapabilityUnavailable


def load_sounddevice() -> Any:
    """Import sounddevice, which needs PortAudio on the host."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as exc:
        raise CapabilityUnavailable(f"sounddevice unavailable: {exc}") from exc
    return sd


@dataclass(slots=True)
class PlaybackConfig:
    """Playback configuration."""

    device_name: str | None = None


class AudioPlayer:
    """Play PCM buffers and wait for them to finish without blocking the loop."""

    def __init__(self, config: PlaybackConfig | None = None) -> None:
        self.config = config or PlaybackConfig()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def play(self, pcm_data: bytes, sample_rate: int, channels: int = 1) -> None:
        """Play 16-bit PCM and return once playback completes."""
        if not pcm_data:
            return
        usable = len(pcm_data) - len(pcm_data) % (2 * channels)
        samples = np.frombuffer(pcm_data[:usable], dtype=np.int16)
        if channels > 1:
            samples = samples.reshape(-1, channels)
        await self.play_samples(samples, sample_rate)

    async def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        """Play a numpy buffer (int16 or float32) and wait for completion."""
        if samples.size == 0:
            return
        await asyncio.to_thread(self._play_blocking, samples, sample_rate)

    def stop(self) -> None:
        """Abort the current playback, if any."""
        try:
            sd = load_sounddevice()
        except CapabilityUnavailable:
            return
        sd.stop()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _play_blocking(self, samples: np.ndarray, sample_rate: int) -> None:
        sd = load_sounddevice()
        with self._lock:
            sd.play(samples, samplerate=sample_rate, device=self.config.device_name)
            sd.wait()
