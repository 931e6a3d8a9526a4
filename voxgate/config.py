"""Capture knobs and client settings resolved from the environment."""

from __future__ import annotations

import math
import os
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# Lower bounds applied to every capture knob before a session uses it.
_DURATION_FLOORS = {
    "max_duration_ms": 1000,
    "min_duration_ms": 0,
    "end_silence_ms": 100,
    "sample_interval_ms": 30,
    "chunk_interval_ms": 120,
}
_ENERGY_FLOOR = 0.0001


class CaptureConfig(BaseModel):
    """Validated, immutable knobs for one capture session."""

    model_config = ConfigDict(frozen=True)

    max_duration_ms: int = 12000
    min_duration_ms: int = 500
    end_silence_ms: int = 600
    energy_threshold: float = 0.015
    sample_interval_ms: int = 100
    chunk_interval_ms: int = 250

    @field_validator(*_DURATION_FLOORS, mode="before")
    @classmethod
    def _clamp_duration(cls, value: Any, info: ValidationInfo) -> int:
        if value is None:
            value = cls.model_fields[info.field_name].default
        rounded = int(math.floor(float(value) + 0.5))
        return max(_DURATION_FLOORS[info.field_name], rounded)

    @field_validator("energy_threshold", mode="before")
    @classmethod
    def _clamp_energy(cls, value: Any) -> float:
        if value is None:
            value = cls.model_fields["energy_threshold"].default
        return max(_ENERGY_FLOOR, float(value))


def _env_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _capture_from_env() -> CaptureConfig:
    return CaptureConfig(
        max_duration_ms=_env_float("VOXGATE_MAX_DURATION_MS"),
        min_duration_ms=_env_float("VOXGATE_MIN_DURATION_MS"),
        end_silence_ms=_env_float("VOXGATE_END_SILENCE_MS"),
        energy_threshold=_env_float("VOXGATE_ENERGY_THRESHOLD"),
        sample_interval_ms=_env_float("VOXGATE_SAMPLE_INTERVAL_MS"),
        chunk_interval_ms=_env_float("VOXGATE_CHUNK_INTERVAL_MS"),
    )


class Settings(BaseModel):
    api_url: str = Field(default=os.getenv("VOXGATE_API_URL", "http://127.0.0.1:8000"))
    request_timeout: float = Field(default=float(os.getenv("VOXGATE_REQUEST_TIMEOUT", "30")))
    input_device: str | None = Field(default=os.getenv("VOXGATE_INPUT_DEVICE"))
    sample_rate: int = Field(default=int(os.getenv("VOXGATE_SAMPLE_RATE", "16000")))
    channels: int = Field(default=int(os.getenv("VOXGATE_CHANNELS", "1")))
    log_level: str = Field(default=os.getenv("VOXGATE_LOG_LEVEL", "INFO"))
    capture: CaptureConfig = Field(default_factory=_capture_from_env)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["CaptureConfig", "Settings", "get_settings"]
