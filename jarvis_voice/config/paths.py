"""Filesystem helpers for the voice front-end."""

from __future__ import annotations

from pathlib import Path

from .settings import Settings


def data_dir(settings: Settings) -> Path:
    """Directory holding the persisted conversation state."""
    root = Path(settings.data_dir).expanduser()
    root.mkdir(parents=True, exist_ok=True)
    return root


def log_dir(settings: Settings) -> Path:
    """Directory receiving the rotating JSON logs."""
    root = Path(settings.log_dir).expanduser()
    root.mkdir(parents=True, exist_ok=True)
    return root


def voices_dir(settings: Settings) -> Path:
    """Directory storing Piper voice models (not created on demand)."""
    return Path(settings.tts_voices_dir).expanduser()
