"""Continuous transcript source built on the microphone, WebRTC VAD and Whisper.

The source behaves like a browser speech-recognition session: it emits
interim transcripts while the user speaks, a final transcript once they
pause, and closes the session after a stretch of silence so the capture
service can restart it.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from ..config.settings import Settings
from ..core.errors import CapabilityUnavailable
from ..services.schemas import (
    CaptureEvent,
    FinalTranscript,
    PartialTranscript,
    SessionEnded,
    SessionError,
)
from .playback import load_sounddevice
from .transcriber import FasterWhisperEngine, WhisperConfig
from .vad import VADConfig, VoiceActivityDetector

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CaptureConfig:
    """Microphone capture configuration."""

    sample_rate: int = 16_000
    channels: int = 1
    frame_duration_ms: int = 30
    device_name: str | None = None
    partial_interval_ms: int = 600
    end_silence_ms: int = 900
    session_timeout_s: float = 8.0


class WhisperTranscriptSource:
    """Microphone session producing interim and final transcripts."""

    def __init__(
        self,
        config: CaptureConfig,
        engine: FasterWhisperEngine,
        vad: VoiceActivityDetector,
    ) -> None:
        self.config = config
        self.engine = engine
        self.vad = vad
        self._frames: queue.Queue[bytes] = queue.Queue(maxsize=512)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._stream: Any = None

    # ------------------------------------------------------------------ #
    # TranscriptSource protocol
    # ------------------------------------------------------------------ #
    def start(self, emit: Callable[[CaptureEvent], None]) -> None:
        # A finishing session closes its stream before announcing the end.
        if self._stream is not None:
            raise RuntimeError("capture session already started")
        sd = load_sounddevice()
        frame_size = int(self.config.sample_rate * self.config.frame_duration_ms / 1000)
        self._stop.clear()
        self._drain()
        self._stream = sd.RawInputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype="int16",
            blocksize=frame_size,
            callback=self._on_frame,
            device=self.config.device_name,
        )
        self._stream.start()
        self._thread = threading.Thread(target=self._run, args=(emit,), daemon=True, name="jarvis-capture")
        self._thread.start()
        LOGGER.debug("Capture session started")

    def stop(self) -> None:
        self._stop.set()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _on_frame(self, indata: bytes, frames: int, time_info, status) -> None:  # noqa: ANN001
        if status:  # pragma: no cover
            LOGGER.warning("Microphone status: %s", status)
        try:
            self._frames.put_nowait(bytes(indata))
        except queue.Full:
            pass

    def _drain(self) -> None:
        while True:
            try:
                self._frames.get_nowait()
            except queue.Empty:
                return

    def _run(self, emit: Callable[[CaptureEvent], None]) -> None:
        try:
            self._session_loop(emit)
        except Exception as exc:
            LOGGER.exception("Capture session crashed")
            emit(SessionError("audio-capture", str(exc)))
        finally:
            self._close_stream()
            emit(SessionEnded())

    def _session_loop(self, emit: Callable[[CaptureEvent], None]) -> None:
        cfg = self.config
        frame_s = cfg.frame_duration_ms / 1000
        end_silence_frames = max(1, int(cfg.end_silence_ms / cfg.frame_duration_ms))
        partial_frames = max(1, int(cfg.partial_interval_ms / cfg.frame_duration_ms))

        buffer = bytearray()
        speech_frames = 0
        silent_frames = 0
        since_partial = 0
        heard_anything = False
        last_activity = time.monotonic()

        while not self._stop.is_set():
            try:
                frame = self._frames.get(timeout=frame_s * 4)
            except queue.Empty:
                frame = None

            if frame is not None:
                if self.vad.is_speech(frame, cfg.sample_rate):
                    buffer.extend(frame)
                    speech_frames += 1
                    since_partial += 1
                    silent_frames = 0
                    last_activity = time.monotonic()
                elif buffer:
                    buffer.extend(frame)
                    silent_frames += 1

            if buffer and since_partial >= partial_frames and silent_frames == 0:
                since_partial = 0
                text = self._transcribe(bytes(buffer), emit)
                if text:
                    emit(PartialTranscript(text))

            if buffer and silent_frames >= end_silence_frames:
                text = self._transcribe(bytes(buffer), emit)
                buffer.clear()
                speech_frames = silent_frames = since_partial = 0
                if text:
                    heard_anything = True
                    emit(FinalTranscript(text))
                last_activity = time.monotonic()

            if not buffer and time.monotonic() - last_activity >= cfg.session_timeout_s:
                if not heard_anything:
                    emit(SessionError("no-speech"))
                return

        emit(SessionError("aborted"))

    def _transcribe(self, pcm: bytes, emit: Callable[[CaptureEvent], None]) -> str:
        try:
            return self.engine.transcribe(pcm)
        except Exception as exc:
            LOGGER.warning("Transcription failed: %s", exc)
            emit(SessionError("transcription", str(exc)))
            return ""

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:  # pragma: no cover
            LOGGER.debug("Closing microphone stream failed: %s", exc)


def create_transcript_source(settings: Settings) -> WhisperTranscriptSource:
    """Build the microphone source; raises CapabilityUnavailable when the host can't capture."""
    sd = load_sounddevice()
    try:
        devices = sd.query_devices()
    except Exception as exc:
        raise CapabilityUnavailable(f"Audio devices unavailable: {exc}") from exc
    if not any(int(device.get("max_input_channels", 0)) > 0 for device in devices):
        raise CapabilityUnavailable("No input device found")

    config = CaptureConfig(
        device_name=settings.input_device,
        partial_interval_ms=settings.capture_partial_interval_ms,
        end_silence_ms=settings.capture_end_silence_ms,
        session_timeout_s=settings.capture_session_timeout_s,
    )
    engine = FasterWhisperEngine(
        WhisperConfig(
            model=settings.asr_model,
            device=settings.asr_device,
            compute_type=settings.asr_compute_type,
            language=settings.language.split("-")[0].lower(),
        )
    )
    vad = VoiceActivityDetector(VADConfig(aggressiveness=settings.vad_aggressiveness))
    return WhisperTranscriptSource(config, engine, vad)
