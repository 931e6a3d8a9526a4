"""Capture failure kinds reported through the controller's error channel."""

from __future__ import annotations


class CaptureError(Exception):
    """Base class for every capture failure."""


class UnsupportedEnvironment(CaptureError):
    """The platform lacks a usable capture backend."""


class DeviceUnavailable(CaptureError):
    """Permission denied, no input device, or the device refused to open."""


class EncoderFailure(CaptureError):
    """The encoder stopped producing chunks on its own."""


class TeardownFault(CaptureError):
    """A resource-release step failed while tearing a session down."""


__all__ = [
    "CaptureError",
    "UnsupportedEnvironment",
    "DeviceUnavailable",
    "EncoderFailure",
    "TeardownFault",
]
