"""Dataclasses shared across capture helpers."""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import soundfile as sf

PCM_MIME_PREFIX = "audio/L16"


class Phase(str, enum.Enum):
    IDLE = "idle"
    AWAITING_SPEECH = "awaiting_speech"
    SPEAKING = "speaking"
    STOPPED = "stopped"


class StopReason(str, enum.Enum):
    NO_SPEECH = "no-speech"
    MAX_DURATION = "max-duration"
    SILENCE = "silence"
    CALLER = "caller"
    ENCODER_FAILURE = "encoder-failure"


@dataclass(frozen=True, slots=True)
class EnergySample:
    """RMS level of the latest analysis window and when it was taken."""

    energy: float
    timestamp_ms: float


@dataclass(frozen=True, slots=True)
class AudioChunk:
    """One encoder flush; ``sequence`` follows capture order."""

    data: bytes
    mime_type: str
    sequence: int
    captured_at_ms: float

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class Blob:
    """Concatenated recording bytes handed to callers."""

    data: bytes
    mime_type: str
    chunk_count: int = 0

    def __len__(self) -> int:
        return len(self.data)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_pcm(self) -> bool:
        return self.mime_type.split(";", 1)[0].strip().lower() == PCM_MIME_PREFIX.lower()

    def to_wav(self) -> "Blob":
        """Wrap raw 16-bit PCM into a WAV container; other types pass through."""
        if not self.is_pcm:
            return self
        rate, channels = parse_pcm_mime(self.mime_type)
        samples = np.frombuffer(self.data, dtype="<i2")
        usable = len(samples) - (len(samples) % channels)
        frames = samples[:usable].reshape(-1, channels)
        buffer = io.BytesIO()
        sf.write(buffer, frames, rate, format="WAV", subtype="PCM_16")
        return Blob(data=buffer.getvalue(), mime_type="audio/wav", chunk_count=self.chunk_count)


def pcm_mime_type(sample_rate: int, channels: int = 1) -> str:
    return f"{PCM_MIME_PREFIX};rate={int(sample_rate)};channels={int(channels)}"


def parse_pcm_mime(mime_type: str) -> Tuple[int, int]:
    rate = 16000
    channels = 1
    for part in mime_type.split(";")[1:]:
        key, _, value = part.partition("=")
        key = key.strip().lower()
        try:
            if key == "rate":
                rate = int(value)
            elif key == "channels":
                channels = max(1, int(value))
        except ValueError:
            continue
    return rate, channels
