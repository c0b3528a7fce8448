"""Detection-layer exceptions."""

from __future__ import annotations


class DetectionError(Exception):
    """Base exception for detection errors."""


class MetricSourceError(DetectionError):
    """A metric source could not supply data."""


class UnknownDetectorError(DetectionError):
    """No detector is registered for the requested alert type."""
