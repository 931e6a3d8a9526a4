"""VAD-driven recording controller.

One :class:`CaptureController` owns at most one :class:`CaptureSession`. The
session is installed, sampled, fed with encoder chunks and torn down on the
scheduler's loop; ``start()`` and ``stop()`` serialize on a controller lock so
a ``stop()`` issued while ``start()`` is still acquiring the device waits for
it and then stops the fresh session. A ``start()`` made from a loop callback
such as ``on_complete`` runs without the lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, List, Optional

from ..config import CaptureConfig
from ..metrics import CHUNK_COUNTER, RECORDING_DURATION, SESSION_COUNTER, START_FAILURE_COUNTER
from .encoder import Encoder, PcmEncoder
from .energy import EnergyMonitor
from .errors import CaptureError, TeardownFault, UnsupportedEnvironment
from .scheduler import ThreadScheduler, Ticker
from .sink import RecordingSink
from .source import AudioSource, LiveStream, SoundDeviceSource
from .types import AudioChunk, Blob, Phase, StopReason
from .vad import VADStateMachine

LOGGER = logging.getLogger("voxgate.capture")

DEFAULT_ERROR_MESSAGE = "Unable to access your microphone."
UNSUPPORTED_MESSAGE = "Microphone recording is not supported in this environment."
CLOSED_MESSAGE = "Capture controller is closed."


def _default_monitor(stream: LiveStream, clock: Callable[[], float]) -> EnergyMonitor:
    return EnergyMonitor(stream, clock)


def _default_encoder(stream: LiveStream, scheduler, config: CaptureConfig) -> Encoder:
    return PcmEncoder(stream, scheduler, config.chunk_interval_ms)


@dataclass
class CaptureSession:
    """State of the one live recording attempt."""

    config: CaptureConfig
    stream: LiveStream
    monitor: EnergyMonitor
    encoder: Encoder
    sink: RecordingSink
    vad: VADStateMachine
    started_at_ms: float
    ticker: Optional[Ticker] = None
    failure: Optional[Exception] = None
    faults: List[TeardownFault] = field(default_factory=list)

    @property
    def phase(self) -> Phase:
        return self.vad.phase


class CaptureController:
    def __init__(
        self,
        source: Optional[AudioSource] = None,
        *,
        scheduler: Any = None,
        on_chunk: Optional[Callable[[Blob], None]] = None,
        on_complete: Optional[Callable[[Optional[Blob]], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        monitor_factory: Callable[..., EnergyMonitor] = _default_monitor,
        encoder_factory: Callable[..., Encoder] = _default_encoder,
    ) -> None:
        self.source = source or SoundDeviceSource()
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or ThreadScheduler()
        self.on_chunk = on_chunk
        self.on_complete = on_complete
        self.on_error = on_error
        self.monitor_factory = monitor_factory
        self.encoder_factory = encoder_factory
        self.last_session: Optional[CaptureSession] = None
        self._session: Optional[CaptureSession] = None
        self._start_lock = threading.RLock()
        self._closed = False
        self.supports_recording = self._probe_support()

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    @property
    def phase(self) -> Phase:
        session = self._session
        return session.phase if session else Phase.IDLE

    def start(self, config: Optional[CaptureConfig] = None, **options: Any) -> bool:
        if self._closed:
            self._fail_start(CaptureError(CLOSED_MESSAGE))
            return False
        if not self.supports_recording:
            self._fail_start(UnsupportedEnvironment(UNSUPPORTED_MESSAGE))
            return False
        # A start() issued from a loop callback is already serialized by the loop.
        guard = nullcontext() if self.scheduler.in_loop() else self._start_lock
        with guard:
            stream = monitor = encoder = None
            try:
                if self.scheduler.call(self._has_session):
                    return True
                config = self._resolve_config(config, options)
                stream = self.source.acquire()
                monitor = self.monitor_factory(stream, self.scheduler.now)
                encoder = self.encoder_factory(stream, self.scheduler, config)
                installed = self.scheduler.call(self._begin, config, stream, monitor, encoder)
            except Exception as exc:
                self._rollback(stream, monitor, encoder)
                self._fail_start(exc)
                return False
            if not installed:
                self._rollback(stream, monitor, encoder)
        return True

    def stop(self) -> Optional[Blob]:
        """Stop the active session; returns after teardown with its final blob."""
        if self._closed:
            return None
        return self._stop()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop()
        if self._owns_scheduler:
            self.scheduler.shutdown()

    def _stop(self) -> Optional[Blob]:
        if self.scheduler.in_loop():
            return self._stop_in_loop()
        with self._start_lock:
            return self.scheduler.call(self._stop_in_loop)

    def _probe_support(self) -> bool:
        try:
            return bool(self.source.is_supported())
        except Exception as exc:
            LOGGER.warning("Recording capability probe failed: %s", exc)
            return False

    @staticmethod
    def _resolve_config(config: Optional[CaptureConfig], options: dict) -> CaptureConfig:
        if config is None:
            return CaptureConfig(**options)
        if options:
            return CaptureConfig(**{**config.model_dump(), **options})
        return config

    def _has_session(self) -> bool:
        return self._session is not None

    def _begin(self, config: CaptureConfig, stream: LiveStream, monitor: EnergyMonitor, encoder: Encoder) -> bool:
        if self._session is not None:
            LOGGER.debug("Session already installed; discarding duplicate start")
            return False
        now = self.scheduler.now()
        vad = VADStateMachine(config)
        vad.begin(now)
        session = CaptureSession(
            config=config,
            stream=stream,
            monitor=monitor,
            encoder=encoder,
            sink=RecordingSink(encoder.mime_type),
            vad=vad,
            started_at_ms=now,
        )
        encoder.start(
            on_data=partial(self._on_chunk, session),
            on_error=partial(self._on_encoder_error, session),
        )
        session.ticker = self.scheduler.every(
            config.sample_interval_ms, partial(self._tick, session), name="vad-sample"
        )
        self._session = session
        LOGGER.info(
            "Recording started (max=%sms, threshold=%s)", config.max_duration_ms, config.energy_threshold
        )
        return True

    def _tick(self, session: CaptureSession) -> None:
        if session is not self._session:
            return
        if session.failure is not None:
            self._finish(session, StopReason.ENCODER_FAILURE)
            return
        if session.encoder.state != "recording":
            return
        sample = session.monitor.sample()
        previous = session.vad.phase
        reason = session.vad.observe(sample)
        if previous is Phase.AWAITING_SPEECH and session.vad.phase is Phase.SPEAKING:
            LOGGER.debug("Speech detected (rms=%.4f)", sample.energy)
        if reason is not None:
            self._finish(session, reason)

    def _on_chunk(self, session: CaptureSession, chunk: AudioChunk) -> None:
        if session is not self._session:
            return
        session.sink.append(chunk)
        CHUNK_COUNTER.inc()
        if session.vad.phase is Phase.SPEAKING:
            self._emit(self.on_chunk, session.sink.snapshot())

    def _on_encoder_error(self, session: CaptureSession, exc: Exception) -> None:
        # Called from the audio thread; the next sampling tick stops the session.
        session.failure = exc

    def _stop_in_loop(self) -> Optional[Blob]:
        session = self._session
        if session is None:
            return None
        return self._finish(session, StopReason.CALLER)

    def _finish(self, session: CaptureSession, reason: StopReason) -> Optional[Blob]:
        now = self.scheduler.now()
        reason = session.vad.force_stop(now, reason)
        if session.ticker is not None:
            self._teardown_step(session.faults, "sampling timer", session.ticker.cancel)
        self._teardown_step(session.faults, "encoder", session.encoder.stop)
        blob = session.sink.finalize(session.vad.has_speech)
        self._teardown_step(session.faults, "stream", partial(self.source.release, session.stream))
        self._teardown_step(session.faults, "energy monitor", session.monitor.close)
        session.sink.clear()
        self._session = None
        self.last_session = session

        SESSION_COUNTER.labels(reason=reason.value).inc()
        RECORDING_DURATION.observe(max(0.0, now - session.started_at_ms) / 1000.0)
        LOGGER.info("Recording stopped (%s, %s bytes)", reason.value, len(blob) if blob else 0)
        if reason is StopReason.ENCODER_FAILURE and session.failure is not None:
            self._report_error(session.failure)
        self._emit(self.on_complete, blob)
        return blob

    def _rollback(
        self,
        stream: Optional[LiveStream],
        monitor: Optional[EnergyMonitor],
        encoder: Optional[Encoder],
    ) -> None:
        faults: List[TeardownFault] = []
        if encoder is not None and encoder.state != "inactive":
            self._teardown_step(faults, "encoder", encoder.stop)
        if stream is not None:
            self._teardown_step(faults, "stream", partial(self.source.release, stream))
        if monitor is not None:
            self._teardown_step(faults, "energy monitor", monitor.close)

    @staticmethod
    def _teardown_step(faults: List[TeardownFault], label: str, step: Callable[[], Any]) -> None:
        try:
            step()
        except Exception as exc:
            LOGGER.warning("Teardown of %s failed: %s", label, exc)
            faults.append(TeardownFault(f"{label}: {exc}"))

    def _fail_start(self, exc: Exception) -> None:
        START_FAILURE_COUNTER.labels(kind=type(exc).__name__).inc()
        LOGGER.warning("Recording start failed: %s", exc)
        self._report_error(exc)

    def _report_error(self, exc: Exception) -> None:
        message = str(exc).strip() or DEFAULT_ERROR_MESSAGE
        self._emit(self.on_error, message)

    @staticmethod
    def _emit(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            LOGGER.exception("Capture callback %s failed", getattr(callback, "__name__", callback))


__all__ = ["CaptureController", "CaptureSession"]
