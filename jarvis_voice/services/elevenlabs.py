"""Cloud text-to-speech via the ElevenLabs API."""

from __future__ import annotations

import logging

import httpx

from ..config.settings import Settings
from ..core.errors import SynthesisError

LOGGER = logging.getLogger(__name__)

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}


class ElevenLabsClient:
    """Request raw PCM speech for a text from ElevenLabs.

    ``output_format`` is pinned to ``pcm_22050`` so the returned bytes are
    16-bit mono PCM at 22.05 kHz and can be played without decoding.
    """

    output_format = "pcm_22050"
    sample_rate = 22_050

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = settings.elevenlabs_api_key
        self.voice_id = settings.elevenlabs_voice_id
        self.model_id = settings.elevenlabs_model_id
        self._client = httpx.AsyncClient(
            base_url=settings.elevenlabs_base_url,
            timeout=httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=None),
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        """Both the credential and the voice are needed for the cloud path."""
        return bool(self.api_key and self.voice_id)

    async def synthesize(self, text: str) -> bytes:
        """Return PCM bytes for ``text``; raises :class:`SynthesisError` on failure."""
        if not self.configured:
            raise SynthesisError("ElevenLabs is not configured")
        try:
            response = await self._client.post(
                f"/v1/text-to-speech/{self.voice_id}",
                params={"output_format": self.output_format},
                headers={"xi-api-key": self.api_key or "", "Content-Type": "application/json"},
                json={
                    "text": text,
                    "model_id": self.model_id,
                    "voice_settings": dict(VOICE_SETTINGS),
                },
            )
        except httpx.HTTPError as exc:
            raise SynthesisError(f"ElevenLabs request failed: {exc}") from exc
        if not response.is_success:
            raise SynthesisError(f"ElevenLabs returned status {response.status_code}")
        if not response.content:
            raise SynthesisError("ElevenLabs returned no audio")
        LOGGER.debug("ElevenLabs audio: %d bytes", len(response.content))
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()
