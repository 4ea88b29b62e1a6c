"""Configuration record for the voice front-end."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _home() -> Path:
    return Path.home() / ".jarvis-voice"


class Settings(BaseSettings):
    """Settings resolved once at startup from ``JARVIS_*`` variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="JARVIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Chat endpoint
    chat_url: str = "https://your-vps-url.com/api/chat"
    chat_token: str | None = None
    chat_session_id: str = "jarvis-voice"
    chat_model: str = "gpt-4o-mini"
    chat_max_tokens: int = 500

    # Cloud speech (ElevenLabs)
    elevenlabs_api_key: str | None = None
    elevenlabs_voice_id: str | None = None
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_base_url: str = "https://api.elevenlabs.io"

    # Conversation
    wake_word: str = "jarvis"
    language: str = "pt-BR"

    # Storage and logs
    data_dir: Path = _home() / "data"
    log_dir: Path = _home() / "logs"
    log_level: str = "INFO"
    log_rotate_mb: int = 5
    log_retention_days: int = 7

    # On-device speech
    tts_voices_dir: Path = _home() / "voices"
    tts_rate: float = 0.9
    tts_pitch: float = 0.8
    tts_preferred_voices: list[str] = ["male", "faber", "daniel", "google"]

    # Capture / ASR
    asr_model: str = "small"
    asr_device: str = "cpu"
    asr_compute_type: str = "int8"
    vad_aggressiveness: int = 2
    input_device: str | None = None
    output_device: str | None = None
    capture_restart_delay_ms: int = 300
    capture_partial_interval_ms: int = 600
    capture_end_silence_ms: int = 900
    capture_session_timeout_s: float = 8.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
