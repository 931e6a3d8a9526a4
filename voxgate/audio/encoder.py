"""Chunked encoders fed by the live stream."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import numpy as np

from .errors import EncoderFailure
from .source import LiveStream
from .types import AudioChunk, pcm_mime_type

LOGGER = logging.getLogger("voxgate.capture")

DataCallback = Callable[[AudioChunk], None]
StopCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


class Encoder(ABC):
    """Produces ordered chunks every ``chunk_interval_ms`` between start and stop."""

    mime_type: str

    @property
    @abstractmethod
    def state(self) -> str:
        """``inactive``, ``recording`` or ``failed``."""

    @abstractmethod
    def start(
        self,
        on_data: DataCallback,
        on_stop: Optional[StopCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...


class PcmEncoder(Encoder):
    """Emits 16-bit little-endian mono PCM on the scheduler's loop."""

    def __init__(self, stream: LiveStream, scheduler, chunk_interval_ms: int) -> None:
        self.stream = stream
        self.scheduler = scheduler
        self.chunk_interval_ms = chunk_interval_ms
        self.mime_type = pcm_mime_type(stream.sample_rate, 1)
        self._lock = threading.Lock()
        self._pending: List[bytes] = []
        self._state = "inactive"
        self._sequence = 0
        self._ticker = None
        self._on_data: Optional[DataCallback] = None
        self._on_stop: Optional[StopCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    @property
    def state(self) -> str:
        return self._state

    def start(
        self,
        on_data: DataCallback,
        on_stop: Optional[StopCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        if self._state != "inactive":
            raise RuntimeError(f"Encoder already {self._state}")
        self._on_data = on_data
        self._on_stop = on_stop
        self._on_error = on_error
        self._state = "recording"
        self.stream.subscribe(self._on_frame)
        self.stream.on_end(self._on_stream_end)
        self._ticker = self.scheduler.every(self.chunk_interval_ms, self.flush, name="encoder-flush")

    def flush(self) -> None:
        if self._state == "recording":
            self._emit()

    def stop(self) -> None:
        with self._lock:
            if self._state == "inactive":
                return
            self._state = "inactive"
        self._detach()
        self._emit()
        if self._on_stop:
            self._on_stop()

    def _on_frame(self, frame: np.ndarray) -> None:
        try:
            pcm = (np.clip(frame, -1.0, 1.0) * 32767.0).astype("<i2").tobytes()
        except Exception as exc:
            self._fail(EncoderFailure(f"PCM conversion failed: {exc}"))
            return
        with self._lock:
            if self._state == "recording":
                self._pending.append(pcm)

    def _on_stream_end(self) -> None:
        self._fail(EncoderFailure("Input stream ended unexpectedly"))

    def _fail(self, exc: EncoderFailure) -> None:
        with self._lock:
            if self._state != "recording":
                return
            self._state = "failed"
        LOGGER.warning("Encoder failed: %s", exc)
        self._detach()
        if self._on_error:
            self._on_error(exc)

    def _detach(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
        self.stream.unsubscribe(self._on_frame)

    def _emit(self) -> None:
        with self._lock:
            data = b"".join(self._pending)
            self._pending = []
        if not data:
            return
        self._sequence += 1
        chunk = AudioChunk(
            data=data,
            mime_type=self.mime_type,
            sequence=self._sequence,
            captured_at_ms=self.scheduler.now(),
        )
        if self._on_data:
            self._on_data(chunk)


__all__ = ["Encoder", "PcmEncoder"]
