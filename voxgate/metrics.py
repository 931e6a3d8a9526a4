"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

SESSION_COUNTER = Counter(
    "voxgate_capture_sessions_total",
    "Completed capture sessions",
    labelnames=("reason",),
)

START_FAILURE_COUNTER = Counter(
    "voxgate_capture_start_failures_total",
    "Capture starts that were rolled back",
    labelnames=("kind",),
)

CHUNK_COUNTER = Counter(
    "voxgate_capture_chunks_total",
    "Encoder chunks received by the recording sink",
)

RECORDING_DURATION = Histogram(
    "voxgate_capture_recording_seconds",
    "Wall time between session start and stop",
    buckets=(0.5, 1, 2, 4, 8, 12, 20, 30, 60),
)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = [
    "CHUNK_COUNTER",
    "RECORDING_DURATION",
    "SESSION_COUNTER",
    "START_FAILURE_COUNTER",
    "render_latest",
]
