"""Microphone acquisition and the live stream shared by monitor and encoder."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

import numpy as np

from .errors import DeviceUnavailable, TeardownFault, UnsupportedEnvironment

LOGGER = logging.getLogger("voxgate.capture")

ANALYSIS_WINDOW = 2048

FrameListener = Callable[[np.ndarray], None]


class LiveStream:
    """An open capture stream.

    The device backend pushes frames through :meth:`feed`. The stream keeps
    the most recent ``window_size`` mono samples for energy analysis and hands
    every mono frame to its subscribers. ``tracks`` are the backend handles
    released by :meth:`close`.
    """

    def __init__(self, sample_rate: int, channels: int = 1, window_size: int = ANALYSIS_WINDOW) -> None:
        self.sample_rate = int(sample_rate)
        self.channels = max(1, int(channels))
        self.window_size = max(1, int(window_size))
        self.frames_seen = 0
        self._lock = threading.Lock()
        self._window = np.zeros(self.window_size, dtype=np.float32)
        self._listeners: List[FrameListener] = []
        self._end_listeners: List[Callable[[], None]] = []
        self._tracks: List[Any] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tracks(self) -> List[Any]:
        return list(self._tracks)

    def attach(self, track: Any) -> None:
        self._tracks.append(track)

    def subscribe(self, listener: FrameListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: FrameListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def on_end(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._end_listeners.append(listener)

    def feed(self, indata: np.ndarray) -> None:
        if self._closed:
            return
        mono = _to_mono_array(np.asarray(indata))
        if mono.size == 0:
            return
        with self._lock:
            self._push_window(mono)
            self.frames_seen += len(mono)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(mono)

    def latest_window(self) -> np.ndarray:
        with self._lock:
            return self._window.copy()

    def end(self) -> None:
        """Device-side end of stream; ignored once :meth:`close` was called."""
        if self._closed:
            return
        with self._lock:
            listeners = list(self._end_listeners)
        for listener in listeners:
            listener()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self._listeners.clear()
            self._end_listeners.clear()
        errors: list[str] = []
        for track in self._tracks:
            try:
                track.stop()
                track.close()
            except Exception as exc:
                errors.append(str(exc))
        self._tracks.clear()
        if errors:
            raise TeardownFault("; ".join(errors))

    def _push_window(self, mono: np.ndarray) -> None:
        size = self.window_size
        if len(mono) >= size:
            self._window = mono[-size:].astype(np.float32, copy=True)
            return
        self._window = np.concatenate([self._window[len(mono):], mono.astype(np.float32, copy=False)])


class AudioSource(ABC):
    """Capability probe plus exclusive access to one input device."""

    @abstractmethod
    def is_supported(self) -> bool: ...

    @abstractmethod
    def acquire(self) -> LiveStream: ...

    def release(self, stream: Optional[LiveStream]) -> None:
        if stream is not None:
            stream.close()


class SoundDeviceSource(AudioSource):
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[str] = None,
        *,
        window_size: int = ANALYSIS_WINDOW,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self.window_size = window_size
        self._sd = self._try_import_sounddevice()

    def _try_import_sounddevice(self):
        try:
            import sounddevice as sd  # type: ignore

            return sd
        except Exception as exc:
            LOGGER.warning("sounddevice unavailable: %s", exc)
            return None

    def is_supported(self) -> bool:
        if self._sd is None:
            return False
        try:
            return any(device["max_input_channels"] > 0 for device in self._sd.query_devices())
        except Exception as exc:
            LOGGER.warning("Input device probe failed: %s", exc)
            return False

    def acquire(self) -> LiveStream:
        if self._sd is None:
            raise UnsupportedEnvironment("sounddevice is not installed")
        stream = LiveStream(self.sample_rate, self.channels, self.window_size)

        def callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                LOGGER.debug("Input status: %s", status)
            stream.feed(indata.copy())

        try:
            handle = self._sd.InputStream(
                samplerate=float(self.sample_rate),
                channels=self.channels,
                dtype="float32",
                device=self._get_device_index(),
                callback=callback,
                finished_callback=stream.end,
            )
            handle.start()
        except self._sd.PortAudioError as exc:
            raise DeviceUnavailable(f"Audio device error: {exc}") from exc
        except Exception as exc:
            raise DeviceUnavailable(f"Unable to access the microphone: {exc}") from exc
        stream.attach(handle)
        LOGGER.info("Microphone opened (device=%s, rate=%s)", self.device or "default", self.sample_rate)
        return stream

    def _get_device_index(self) -> Optional[int]:
        if self.device is None:
            return None
        if str(self.device).isdigit():
            return int(self.device)
        for index, device in enumerate(self._sd.query_devices()):
            if device["name"] == self.device and device["max_input_channels"] > 0:
                return index
        raise DeviceUnavailable(f"Input device not found: {self.device}")


def _to_mono_array(data: np.ndarray) -> np.ndarray:
    if data.ndim == 1:
        return data
    return data[:, 0]


__all__ = ["ANALYSIS_WINDOW", "AudioSource", "LiveStream", "SoundDeviceSource"]
