"""J.A.R.V.I.S. voice front-end package."""

from __future__ import annotations

from typing import Any

__all__ = ["run"]


def run(*args: Any, **kwargs: Any) -> Any:
    """Entrypoint to start the voice assistant (lazy import)."""
    from .app import run as _run

    return _run(*args, **kwargs)
