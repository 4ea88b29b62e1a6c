"""Speak replies through the cloud voice, falling back to the on-device engine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from typing import Callable, Optional, Sequence

from ..services.elevenlabs import ElevenLabsClient
from ..services.schemas import SynthesisBoundary, SynthesisEvent, SynthesisFailed
from ..state.app_state import ConversationState, InteractionState
from .playback import AudioPlayer
from .tts import Utterance, UtterancePlayer, VoiceDescriptor

LOGGER = logging.getLogger(__name__)

PULSE_INTERVAL_S = 0.12


def pick_voice(
    voices: Sequence[VoiceDescriptor],
    lang: str,
    hints: Sequence[str],
) -> Optional[VoiceDescriptor]:
    """Return the first voice of the language whose name matches a preference hint."""
    prefix = lang.split("-")[0].lower()
    lowered = [hint.lower() for hint in hints]
    for voice in voices:
        if not voice.lang.lower().startswith(prefix):
            continue
        name = voice.name.lower()
        if any(hint in name for hint in lowered):
            return voice
    return None


class SpeechOutputService:
    """Turn reply text into audible speech while driving the intensity signal."""

    def __init__(
        self,
        state: ConversationState,
        *,
        synthesizer: UtterancePlayer,
        player: AudioPlayer,
        cloud: Optional[ElevenLabsClient] = None,
        language: str = "pt-BR",
        rate: float = 0.9,
        pitch: float = 0.8,
        preferred_voices: Sequence[str] = ("male",),
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.state = state
        self.synthesizer = synthesizer
        self.player = player
        self.cloud = cloud
        self.language = language
        self.rate = rate
        self.pitch = pitch
        self.preferred_voices = tuple(preferred_voices)
        self._rng = rng

    async def speak(self, text: str) -> None:
        """Return once the utterance finished playing (or failed)."""
        self.state.transition(InteractionState.RESPONDING)
        try:
            if self.cloud is not None and self.cloud.configured:
                try:
                    await self._speak_cloud(text)
                    return
                except Exception as exc:
                    LOGGER.warning("Cloud speech failed, using on-device voice: %s", exc)
            await self._speak_on_device(text)
        finally:
            self.state.set_intensity(0.0)
            self.state.transition(InteractionState.IDLE)

    # ------------------------------------------------------------------ #
    # Cloud path
    # ------------------------------------------------------------------ #
    async def _speak_cloud(self, text: str) -> None:
        assert self.cloud is not None
        audio = await self.cloud.synthesize(text)
        pulse = asyncio.create_task(self._pulse())
        try:
            await self.player.play(audio, self.cloud.sample_rate)
        finally:
            pulse.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pulse

    async def _pulse(self) -> None:
        while True:
            self.state.set_intensity(self._random_level())
            await asyncio.sleep(PULSE_INTERVAL_S)

    # ------------------------------------------------------------------ #
    # On-device path
    # ------------------------------------------------------------------ #
    async def _speak_on_device(self, text: str) -> None:
        utterance = Utterance(
            text=text,
            lang=self.language,
            rate=self.rate,
            pitch=self.pitch,
            voice=pick_voice(self.synthesizer.voices(), self.language, self.preferred_voices),
        )
        await self.synthesizer.speak(utterance, self._on_synthesis_event)

    def _on_synthesis_event(self, event: SynthesisEvent) -> None:
        if isinstance(event, SynthesisBoundary):
            self.state.set_intensity(self._random_level())
        elif isinstance(event, SynthesisFailed):
            LOGGER.error("Speech synthesis failed: %s", event.error)

    def _random_level(self) -> float:
        return self._rng() * 0.5 + 0.5
