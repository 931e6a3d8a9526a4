"""Background worker that transcribes capture snapshots and final recordings."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from ..audio.types import Blob
from .transcription import TranscriptionClient, TranscriptionError

LOGGER = logging.getLogger("voxgate.dictation")


class DictationWorker:
    """Speculative transcription of the newest snapshot, then the final blob.

    Only the latest partial snapshot is kept; a final recording supersedes any
    partial still waiting. ``on_final`` receives ``""`` when the session ended
    without speech.
    """

    def __init__(
        self,
        client: TranscriptionClient,
        *,
        on_partial: Optional[Callable[[str], None]] = None,
        on_final: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.client = client
        self.on_partial = on_partial
        self.on_final = on_final
        self.on_error = on_error
        self._lock = threading.Lock()
        self._partial: Optional[Blob] = None
        self._finals: Deque[Optional[Blob]] = deque()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._idle_event = threading.Event()
        self._idle_event.set()
        self._thread: threading.Thread | None = None

    def attach(self, controller) -> None:
        controller.on_chunk = self.submit_partial
        controller.on_complete = self.submit_final

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="voxgate-dictation", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._thread:
            self._thread.join(timeout=2)

    def submit_partial(self, blob: Blob) -> None:
        with self._lock:
            self._partial = blob
            self._idle_event.clear()
        self._wake_event.set()

    def submit_final(self, blob: Optional[Blob]) -> None:
        with self._lock:
            self._partial = None
            self._finals.append(blob)
            self._idle_event.clear()
        self._wake_event.set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return self._idle_event.wait(timeout)

    def _next_job(self) -> Optional[Tuple[str, Optional[Blob]]]:
        with self._lock:
            if self._finals:
                return "final", self._finals.popleft()
            if self._partial is not None:
                blob, self._partial = self._partial, None
                return "partial", blob
            self._idle_event.set()
            return None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            job = self._next_job()
            if job is None:
                self._wake_event.wait(timeout=2)
                self._wake_event.clear()
                continue
            kind, blob = job
            if kind == "final":
                self._transcribe_final(blob)
            else:
                self._transcribe_partial(blob)

    def _transcribe_partial(self, blob: Blob) -> None:
        try:
            text = self.client.transcribe(blob, mode="speculative", allow_empty=True)
        except TranscriptionError as exc:
            LOGGER.info("Speculative transcription skipped: %s", exc)
            return
        if text:
            self._notify(self.on_partial, text)

    def _transcribe_final(self, blob: Optional[Blob]) -> None:
        if blob is None:
            self._notify(self.on_final, "")
            return
        try:
            text = self.client.transcribe(blob, mode="default")
        except TranscriptionError as exc:
            LOGGER.warning("Transcription failed: %s", exc)
            self._notify(self.on_error, str(exc))
            return
        self._notify(self.on_final, text)

    @staticmethod
    def _notify(callback: Optional[Callable[[str], None]], text: str) -> None:
        if callback is None:
            return
        try:
            callback(text)
        except Exception:
            LOGGER.exception("Dictation callback failed")


__all__ = ["DictationWorker"]
