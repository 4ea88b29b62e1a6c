from __future__ import annotations

import asyncio
import json

import typer

from .app import build_store, run as run_assistant
from .audio.chime import play_activation_chime
from .audio.playback import AudioPlayer, PlaybackConfig
from .audio.tts import PiperSynthesizer
from .config.paths import voices_dir
from .config.settings import get_settings
from .core.errors import CapabilityUnavailable
from .services.schemas import LogEntry

cli = typer.Typer(name="jarvis-voice", help="J.A.R.V.I.S. voice front-end")

_PREFIX = {"system": "[SYS]", "user": "[YOU]", "assistant": "[JARVIS]"}


def format_entry(entry: LogEntry) -> str:
    stamp = entry.timestamp.astimezone().strftime("%H:%M:%S")
    return f"{stamp} {_PREFIX.get(entry.category, '[?]')} {entry.text}"


@cli.command()
def run(
    stdin: bool = typer.Option(True, "--stdin/--no-stdin", help="Read typed commands from stdin"),
) -> None:
    """Start listening; lines typed on stdin are sent as commands."""
    run_assistant(on_log=lambda entry: typer.echo(format_entry(entry)), read_stdin=stdin)


@cli.command()
def history(limit: int = typer.Option(50, "--limit", "-n", help="Entries to show")) -> None:
    """Print the persisted conversation log as JSON."""
    logs = build_store(get_settings()).load_logs()
    items = [entry.to_payload() for entry in logs[-limit:]] if limit > 0 else []
    typer.echo(json.dumps({"logs": items}, ensure_ascii=False, indent=2))


@cli.command()
def reset(yes: bool = typer.Option(False, "--yes", help="Skip confirmation")) -> None:
    """Forget the persisted log and chat history."""
    if not yes and not typer.confirm("Apagar o histórico da conversa?"):
        raise typer.Exit(code=1)
    build_store(get_settings()).clear()
    typer.echo("Histórico apagado.")


@cli.command()
def voices() -> None:
    """List the installed on-device voices."""
    settings = get_settings()
    player = AudioPlayer(PlaybackConfig(device_name=settings.output_device))
    found = PiperSynthesizer(voices_dir(settings), player).voices()
    if not found:
        typer.echo(f"Nenhuma voz encontrada em {voices_dir(settings)}")
        return
    for voice in found:
        typer.echo(f"{voice.lang}\t{voice.name}")


@cli.command()
def chime() -> None:
    """Play the activation chime."""
    settings = get_settings()
    player = AudioPlayer(PlaybackConfig(device_name=settings.output_device))
    try:
        asyncio.run(play_activation_chime(player))
    except CapabilityUnavailable as exc:
        typer.echo(f"Saída de áudio indisponível: {exc}")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
