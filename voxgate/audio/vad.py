"""Energy-driven start/stop decisions for one capture session."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..config import CaptureConfig
from .types import EnergySample, Phase, StopReason


class VADStateMachine:
    """Phase tracker fed one :class:`EnergySample` per sampling tick.

    ``observe`` returns ``None`` to keep recording or the reason the session
    has to stop. The outcome depends only on the config and the ordered
    samples, never on wall-clock time.

    The silence rule requires the voiced span (first to latest voiced sample)
    to reach ``min_duration_ms`` so that a short burst followed by silence
    keeps the session open until ``max_duration_ms`` or renewed speech.
    """

    def __init__(self, config: CaptureConfig) -> None:
        self.config = config
        self.phase = Phase.IDLE
        self.session_start: Optional[float] = None
        self.speech_start: Optional[float] = None
        self.last_voice: Optional[float] = None
        self.stop_reason: Optional[StopReason] = None
        self.stopped_at: Optional[float] = None
        self.transitions: List[Tuple[float, Phase]] = []

    @property
    def active(self) -> bool:
        return self.phase in (Phase.AWAITING_SPEECH, Phase.SPEAKING)

    @property
    def has_speech(self) -> bool:
        return self.speech_start is not None

    def begin(self, now_ms: float) -> None:
        if self.phase is not Phase.IDLE:
            raise RuntimeError(f"Cannot begin a session from phase {self.phase.value}")
        self.session_start = now_ms
        self._enter(Phase.AWAITING_SPEECH, now_ms)

    def observe(self, sample: EnergySample) -> Optional[StopReason]:
        if not self.active:
            return None
        cfg = self.config
        now = sample.timestamp_ms
        if now - self.session_start >= cfg.max_duration_ms:
            reason = StopReason.MAX_DURATION if self.has_speech else StopReason.NO_SPEECH
            return self._stop(now, reason)

        voiced = sample.energy >= cfg.energy_threshold
        if self.phase is Phase.AWAITING_SPEECH:
            if voiced:
                self.speech_start = now
                self.last_voice = now
                self._enter(Phase.SPEAKING, now)
            return None

        if voiced:
            self.last_voice = now
        if now - self.speech_start >= cfg.max_duration_ms:
            return self._stop(now, StopReason.MAX_DURATION)
        voiced_span = self.last_voice - self.speech_start
        silence = now - self.last_voice
        if voiced_span >= cfg.min_duration_ms and silence >= cfg.end_silence_ms:
            return self._stop(now, StopReason.SILENCE)
        return None

    def force_stop(self, now_ms: float, reason: StopReason = StopReason.CALLER) -> StopReason:
        if self.phase is Phase.STOPPED:
            return self.stop_reason
        return self._stop(now_ms, reason)

    def _stop(self, now_ms: float, reason: StopReason) -> StopReason:
        self.stop_reason = reason
        self.stopped_at = now_ms
        self._enter(Phase.STOPPED, now_ms)
        return reason

    def _enter(self, phase: Phase, now_ms: float) -> None:
        self.phase = phase
        self.transitions.append((now_ms, phase))


__all__ = ["VADStateMachine"]
