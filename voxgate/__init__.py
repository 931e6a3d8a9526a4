"""voxgate: voice-activity-gated microphone capture."""

__version__ = "0.1.0"
