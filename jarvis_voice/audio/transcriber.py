"""ASR utilities powered by faster-whisper."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..core.errors import CapabilityUnavailable


@dataclass(slots=True)
class WhisperConfig:
    """Configuration for the faster-whisper engine."""

    model: str = "small"
    device: str = "cpu"
    compute_type: str = "int8"
    language: str = "pt"


class FasterWhisperEngine:
    """Thin wrapper around WhisperModel."""

    def __init__(self, config: WhisperConfig) -> None:
        self.config = config
        try:
            from faster_whisper import WhisperModel
        except ImportError as exc:
            raise CapabilityUnavailable("faster-whisper is not installed") from exc
        try:
            self.model = WhisperModel(
                config.model,
                device=config.device,
                compute_type=config.compute_type,
            )
        except Exception as exc:
            raise CapabilityUnavailable(f"Whisper model {config.model!r} failed to load: {exc}") from exc

    def transcribe(self, pcm: bytes) -> str:
        """Transcribe 16 kHz mono s16le audio into text."""
        audio = np.frombuffer(pcm, dtype=np.int16).astype(np.float32) / 32768.0
        segments, _ = self.model.transcribe(
            audio,
            language=self.config.language,
            beam_size=1,
            condition_on_previous_text=False,
        )
        return " ".join(segment.text.strip() for segment in segments).strip()
