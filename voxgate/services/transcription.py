"""HTTP client for the external transcription service."""

from __future__ import annotations

import logging
from typing import Literal, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..audio.types import Blob
from ..config import CaptureConfig

LOGGER = logging.getLogger("voxgate.transcription")

TranscribeMode = Literal["default", "speculative"]
MODE_HEADER = "X-Vivy-Transcribe-Mode"


class TranscriptionError(Exception):
    pass


class FasterWhisperConfig(BaseModel):
    chunk_sec: float | None = None
    min_recording_sec: float | None = None
    max_recording_sec: float | None = None
    end_silence_sec: float | None = None
    energy_threshold: float | None = None


class BackendSpeechConfig(BaseModel):
    stt_provider: str
    mic_toggle_hotkey: str | None = None
    faster_whisper: FasterWhisperConfig | None = None

    def to_capture_config(self, base: Optional[CaptureConfig] = None) -> CaptureConfig:
        """Overlay the backend's seconds-based knobs on ``base`` (defaults when omitted)."""
        values = (base or CaptureConfig()).model_dump()
        fw = self.faster_whisper
        if fw is None:
            return CaptureConfig(**values)
        for field, seconds in (
            ("chunk_interval_ms", fw.chunk_sec),
            ("min_duration_ms", fw.min_recording_sec),
            ("max_duration_ms", fw.max_recording_sec),
            ("end_silence_ms", fw.end_silence_sec),
        ):
            if seconds is not None:
                values[field] = seconds * 1000.0
        if fw.energy_threshold is not None:
            values["energy_threshold"] = fw.energy_threshold
        return CaptureConfig(**values)


class TranscriptionClient:
    def __init__(self, api_url: str, *, timeout: float = 30.0, client: Optional[httpx.Client] = None) -> None:
        self.api_url = api_url.strip().rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _url(self, path: str) -> str:
        if not self.api_url:
            raise TranscriptionError("Server URL missing")
        return f"{self.api_url}{path}"

    def transcribe(self, blob: Blob, *, mode: TranscribeMode = "default", allow_empty: bool = False) -> str:
        payload = blob.to_wav()
        headers = {
            "Content-Type": payload.mime_type or "application/octet-stream",
            MODE_HEADER: mode,
        }
        try:
            resp = self._client.post(self._url("/transcribe"), headers=headers, content=payload.data)
        except httpx.HTTPError as exc:
            raise TranscriptionError(str(exc)) from exc
        if resp.is_error:
            raise TranscriptionError(self._error_detail(resp, "Transcription request failed."))
        try:
            body = resp.json()
        except ValueError as exc:
            raise TranscriptionError(f"Invalid response: {exc}") from exc
        text = body.get("text") if isinstance(body, dict) else None
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            if allow_empty:
                return ""
            raise TranscriptionError("Speech recognition returned empty text.")
        LOGGER.debug("Transcribed %s bytes (%s): %d chars", len(payload), mode, len(text))
        return text

    def fetch_speech_config(self) -> BackendSpeechConfig:
        try:
            resp = self._client.get(self._url("/speech/config"))
        except httpx.HTTPError as exc:
            raise TranscriptionError(str(exc)) from exc
        if resp.is_error:
            raise TranscriptionError("Failed to load speech config.")
        try:
            return BackendSpeechConfig.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise TranscriptionError(f"Invalid speech config: {exc}") from exc

    @staticmethod
    def _error_detail(resp: httpx.Response, fallback: str) -> str:
        try:
            payload = resp.json()
        except ValueError:
            return fallback
        detail = payload.get("detail") if isinstance(payload, dict) else None
        if isinstance(detail, str) and detail.strip():
            return detail
        return fallback

    def close(self) -> None:
        self._client.close()


__all__ = [
    "BackendSpeechConfig",
    "FasterWhisperConfig",
    "TranscriptionClient",
    "TranscriptionError",
]
