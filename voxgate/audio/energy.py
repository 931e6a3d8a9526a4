"""RMS loudness estimate over the latest analysis window."""

from __future__ import annotations

from typing import Callable

import numpy as np

from .source import ANALYSIS_WINDOW, LiveStream
from .types import EnergySample


def compute_rms(samples: np.ndarray) -> float:
    """Return sqrt(mean(x^2)) in ``[0, 1]``; integer PCM is scaled to full range."""
    data = np.asarray(samples)
    if data.size == 0:
        return 0.0
    if np.issubdtype(data.dtype, np.integer):
        data = data.astype(np.float64) / float(np.iinfo(data.dtype).max + 1)
    else:
        data = data.astype(np.float64, copy=False)
    level = float(np.sqrt(np.mean(np.square(data))))
    if not np.isfinite(level):
        return 0.0
    return max(0.0, min(1.0, level))


class EnergyMonitor:
    def __init__(
        self,
        stream: LiveStream,
        clock: Callable[[], float],
        window_size: int = ANALYSIS_WINDOW,
    ) -> None:
        self.stream = stream
        self.clock = clock
        self.window_size = max(1, int(window_size))
        self.last_sample: EnergySample | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def sample(self) -> EnergySample:
        now = self.clock()
        if self._closed:
            energy = 0.0
        else:
            energy = compute_rms(self.stream.latest_window()[-self.window_size:])
        self.last_sample = EnergySample(energy=energy, timestamp_ms=now)
        return self.last_sample

    def close(self) -> None:
        self._closed = True


__all__ = ["EnergyMonitor", "compute_rms"]
