"""Error taxonomy shared by the capture, analysis and sync stages."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Tag describing which stage of a scan produced an error."""

    CAPTURE = "capture"
    ANALYSIS = "analysis"
    SYNC = "sync"


class ScanError(Exception):
    """Base class for failures surfaced to the user as a short message."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CaptureError(ScanError):
    """Raised when the image source cannot produce an image (device or file)."""

    kind = ErrorKind.CAPTURE


class AnalysisError(ScanError):
    """Raised when the analysis service fails or replies with an unusable payload."""

    kind = ErrorKind.ANALYSIS


class SyncError(ScanError):
    """Raised when the approved address cannot be delivered downstream."""

    kind = ErrorKind.SYNC


class CaptureCancelled(Exception):
    """Raised by an image source when the user aborts before capturing."""


class InvalidTransitionError(RuntimeError):
    """Raised when an event is not legal in the controller's current phase."""

    def __init__(self, phase: str, event: str, reason: str | None = None) -> None:
        detail = f"Event '{event}' is not allowed in phase '{phase}'"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)
        self.phase = phase
        self.event = event
