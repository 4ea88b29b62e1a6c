"""Voice activity detection for the microphone backend."""

from __future__ import annotations

from dataclasses import dataclass

import webrtcvad


_VALID_SAMPLE_RATES = (8000, 16_000, 32_000, 48_000)
_VALID_FRAME_DURATIONS_MS = (10, 20, 30)


@dataclass(slots=True)
class VADConfig:
    """WebRTC VAD configuration."""

    aggressiveness: int = 2  # 0 (sensitive) to 3 (strict)


class VoiceActivityDetector:
    """Wrapper around the WebRTC VAD implementation."""

    def __init__(self, config: VADConfig | None = None) -> None:
        self.config = config or VADConfig()
        self.config.aggressiveness = max(0, min(3, self.config.aggressiveness))
        self._vad = webrtcvad.Vad(self.config.aggressiveness)

    def is_speech(self, frame: bytes, sample_rate: int) -> bool:
        """Return True when the frame contains speech."""
        return self._vad.is_speech(normalize_frame(frame, sample_rate), sample_rate)


def normalize_frame(frame: bytes, sample_rate: int) -> bytes:
    """Pad or trim a mono s16le frame to the closest length WebRTC VAD accepts."""
    if not frame or sample_rate not in _VALID_SAMPLE_RATES:
        return frame
    frame_samples = len(frame) // 2
    if frame_samples == 0:
        return frame
    expected = [sample_rate * duration // 1000 for duration in _VALID_FRAME_DURATIONS_MS]
    target_bytes = min(expected, key=lambda samples: abs(samples - frame_samples)) * 2
    if len(frame) == target_bytes:
        return frame
    if len(frame) > target_bytes:
        return frame[:target_bytes]
    return frame + bytes(target_bytes - len(frame))
