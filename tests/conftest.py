"""Pytest configuration helpers."""

from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without installing the package."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from voxgate.audio import AudioSource, CaptureController, LiveStream, ManualScheduler  # noqa: E402

FRAME = 2048


class FakeTrack:
    def __init__(self, fail_on_stop: bool = False) -> None:
        self.fail_on_stop = fail_on_stop
        self.stopped = 0
        self.closed = 0

    def stop(self) -> None:
        self.stopped += 1
        if self.fail_on_stop:
            raise RuntimeError("track refused to stop")

    def close(self) -> None:
        self.closed += 1


class FakeSource(AudioSource):
    """In-memory microphone; tests push frames through ``stream.feed``."""

    def __init__(self, *, supported: bool = True, error: Exception | None = None, fail_track: bool = False) -> None:
        self.supported = supported
        self.error = error
        self.fail_track = fail_track
        self.acquired = 0
        self.released = 0
        self.streams: list[LiveStream] = []
        self.tracks: list[FakeTrack] = []

    def is_supported(self) -> bool:
        return self.supported

    def acquire(self) -> LiveStream:
        self.acquired += 1
        if self.error is not None:
            raise self.error
        stream = LiveStream(sample_rate=16000)
        track = FakeTrack(fail_on_stop=self.fail_track)
        stream.attach(track)
        self.streams.append(stream)
        self.tracks.append(track)
        return stream

    def release(self, stream) -> None:
        self.released += 1
        super().release(stream)


class Rig:
    """Controller wired to a fake source and a manual clock."""

    def __init__(self, source: FakeSource | None = None, **controller_kwargs) -> None:
        self.scheduler = ManualScheduler()
        self.source = source or FakeSource()
        self.snapshots = []
        self.completed = []
        self.errors: list[str] = []
        self.controller = CaptureController(
            self.source,
            scheduler=self.scheduler,
            on_chunk=self.snapshots.append,
            on_complete=self.completed.append,
            on_error=self.errors.append,
            **controller_kwargs,
        )

    @property
    def stream(self) -> LiveStream:
        return self.source.streams[-1]

    def play(self, level: float, duration_ms: int, step_ms: int = 100) -> None:
        """Feed a constant-level frame before every ``step_ms`` of clock advance."""
        for _ in range(int(duration_ms // step_ms)):
            if self.controller.is_recording:
                self.stream.feed(np.full(FRAME, level, dtype=np.float32))
            self.scheduler.advance(step_ms)


@pytest.fixture()
def fake_source():
    return FakeSource()


@pytest.fixture()
def rig():
    return Rig()


@pytest.fixture()
def make_rig():
    return Rig
