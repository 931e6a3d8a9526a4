"""Ordered chunk accumulator behind snapshots and the final recording."""

from __future__ import annotations

from typing import List, Optional

from .types import AudioChunk, Blob


class RecordingSink:
    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        self._chunks: List[AudioChunk] = []
        self._byte_length = 0

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def byte_length(self) -> int:
        return self._byte_length

    def append(self, chunk: AudioChunk) -> None:
        if not chunk.data:
            return
        self._chunks.append(chunk)
        self._byte_length += len(chunk.data)

    def snapshot(self) -> Blob:
        """Everything captured so far, including the chunk that just arrived."""
        data = b"".join(chunk.data for chunk in self._chunks)
        return Blob(data=data, mime_type=self.mime_type, chunk_count=len(self._chunks))

    def finalize(self, has_speech: bool) -> Optional[Blob]:
        if not has_speech or not self._chunks:
            return None
        return self.snapshot()

    def clear(self) -> None:
        self._chunks = []
        self._byte_length = 0


__all__ = ["RecordingSink"]
