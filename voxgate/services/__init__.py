"""Collaborators that consume finished recordings."""

from .dictation import DictationWorker
from .transcription import BackendSpeechConfig, TranscriptionClient, TranscriptionError

__all__ = ["BackendSpeechConfig", "DictationWorker", "TranscriptionClient", "TranscriptionError"]
