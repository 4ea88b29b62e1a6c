"""On-device text-to-speech using Piper voices."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Protocol

from ..core.errors import CapabilityUnavailable, SynthesisError
from ..services.schemas import (
    SynthesisBoundary,
    SynthesisEnded,
    SynthesisEvent,
    SynthesisFailed,
    SynthesisStarted,
)
from .playback import AudioPlayer

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class VoiceDescriptor:
    """Installed voice, as enumerated by the engine."""

    name: str
    lang: str
    model_path: Path | None = None
    config_path: Path | None = None


@dataclass(slots=True)
class Utterance:
    """Text to speak plus its prosody."""

    text: str
    lang: str
    rate: float = 1.0
    pitch: float = 1.0
    voice: VoiceDescriptor | None = None


class UtterancePlayer(Protocol):
    """On-device synthesis capability."""

    def voices(self) -> list[VoiceDescriptor]: ...

    async def speak(self, utterance: Utterance, on_event: Callable[[SynthesisEvent], None]) -> None: ...


def sanitize_text(text: str) -> str:
    """Drop markdown symbols the engine would read aloud."""
    cleaned = re.sub(r"[*_`#<>]", " ", text)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip()


def _normalize_lang(code: str) -> str:
    return code.replace("_", "-")


class PiperSynthesizer:
    """Piper-backed utterance player; one boundary event per synthesized sentence."""

    def __init__(self, voices_dir: Path, player: AudioPlayer) -> None:
        self.voices_dir = Path(voices_dir)
        self.player = player
        self._loaded: dict[Path, Any] = {}

    # ------------------------------------------------------------------ #
    # UtterancePlayer protocol
    # ------------------------------------------------------------------ #
    def voices(self) -> list[VoiceDescriptor]:
        if not self.voices_dir.exists():
            return []
        found: list[VoiceDescriptor] = []
        for model_path in sorted(self.voices_dir.rglob("*.onnx")):
            config_path = model_path.with_suffix(".onnx.json")
            if not config_path.exists():
                continue
            found.append(
                VoiceDescriptor(
                    name=model_path.stem,
                    lang=self._read_lang(model_path, config_path),
                    model_path=model_path,
                    config_path=config_path,
                )
            )
        return found

    async def speak(self, utterance: Utterance, on_event: Callable[[SynthesisEvent], None]) -> None:
        try:
            await self._speak(utterance, on_event)
        except Exception as exc:
            LOGGER.warning("On-device synthesis failed: %s", exc)
            on_event(SynthesisFailed(exc))
        else:
            on_event(SynthesisEnded())

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _speak(self, utterance: Utterance, on_event: Callable[[SynthesisEvent], None]) -> None:
        voice = utterance.voice or self._first_voice_for(utterance.lang)
        if voice is None or voice.model_path is None:
            raise CapabilityUnavailable(f"No Piper voice installed for {utterance.lang}")
        text = sanitize_text(utterance.text)
        if not text:
            return
        piper_voice = await asyncio.to_thread(self._load_voice, voice)
        rate = max(0.1, utterance.rate)
        pitch = max(0.1, utterance.pitch)
        # Pitch comes from slowing the playback clock; the length scale
        # compensates so the speaking rate stays at ``rate``.
        chunks = await asyncio.to_thread(self._synthesize, piper_voice, text, pitch / rate)
        if not chunks:
            raise SynthesisError("Piper produced no audio")
        on_event(SynthesisStarted())
        for index, (pcm, sample_rate, channels) in enumerate(chunks):
            on_event(SynthesisBoundary(index))
            await self.player.play(pcm, int(sample_rate * pitch), channels)

    def _first_voice_for(self, lang: str) -> VoiceDescriptor | None:
        prefix = lang.split("-")[0].lower()
        for voice in self.voices():
            if voice.lang.lower().startswith(prefix):
                return voice
        return None

    def _load_voice(self, voice: VoiceDescriptor) -> Any:
        assert voice.model_path is not None
        cached = self._loaded.get(voice.model_path)
        if cached is not None:
            return cached
        try:
            from piper import PiperVoice
        except ImportError as exc:
            raise CapabilityUnavailable("piper-tts is not installed") from exc
        loaded = PiperVoice.load(str(voice.model_path), config_path=str(voice.config_path))
        LOGGER.info("Loaded Piper voice: %s", voice.name)
        self._loaded[voice.model_path] = loaded
        return loaded

    @staticmethod
    def _synthesize(piper_voice: Any, text: str, length_scale: float) -> list[tuple[bytes, int, int]]:
        from piper import SynthesisConfig

        syn_config = SynthesisConfig(length_scale=length_scale)
        return [
            (chunk.audio_int16_bytes, chunk.sample_rate, chunk.sample_channels or 1)
            for chunk in piper_voice.synthesize(text, syn_config=syn_config)
        ]

    @staticmethod
    def _read_lang(model_path: Path, config_path: Path) -> str:
        try:
            config = json.loads(config_path.read_text(encoding="utf-8"))
            code = config.get("language", {}).get("code")
        except (OSError, ValueError, AttributeError):
            code = None
        if not code:
            # Piper names voices <lang>_<REGION>-<name>-<quality>
            code = model_path.stem.split("-")[0]
        return _normalize_lang(code)
