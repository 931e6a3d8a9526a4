"""Microphone capture with energy-based voice activity detection."""

from .controller import CaptureController, CaptureSession
from .encoder import Encoder, PcmEncoder
from .energy import EnergyMonitor, compute_rms
from .errors import CaptureError, DeviceUnavailable, EncoderFailure, TeardownFault, UnsupportedEnvironment
from .scheduler import ManualScheduler, ThreadScheduler
from .sink import RecordingSink
from .source import AudioSource, LiveStream, SoundDeviceSource
from .types import AudioChunk, Blob, EnergySample, Phase, StopReason
from .vad import VADStateMachine

__all__ = [
    "AudioChunk",
    "AudioSource",
    "Blob",
    "CaptureController",
    "CaptureError",
    "CaptureSession",
    "DeviceUnavailable",
    "Encoder",
    "EncoderFailure",
    "EnergyMonitor",
    "EnergySample",
    "LiveStream",
    "ManualScheduler",
    "PcmEncoder",
    "Phase",
    "RecordingSink",
    "SoundDeviceSource",
    "StopReason",
    "TeardownFault",
    "ThreadScheduler",
    "UnsupportedEnvironment",
    "VADStateMachine",
    "compute_rms",
]
