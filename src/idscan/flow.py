"""Capture, analyze, review and sync flow for a single scanner.

The controller owns exactly one :class:`CaptureSession` at a time and
moves it through :class:`Phase` values using the :data:`TRANSITIONS`
table. Events that are not in the table for the current phase raise
:class:`~idscan.errors.InvalidTransitionError` and leave the session
untouched, so a review can never start without an analysis and a sync
can never start without an approved review.

Only one analysis or sync call is in flight at a time: the phase is
advanced to ``ANALYZING``/``SYNCING`` before the call is awaited, and
neither phase accepts user events.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .analysis import AnalysisClient
from .capture import ImageSource
from .classifier import classify, is_sync_eligible
from .errors import (
    AnalysisError,
    CaptureCancelled,
    CaptureError,
    ErrorKind,
    InvalidTransitionError,
    SyncError,
)
from .schemas import AnalysisRecord, Outcome, SessionView
from .sync import SyncDispatcher

logger = logging.getLogger(__name__)

ANALYSIS_ERROR_MESSAGE = "Failed to analyze the image. Please try again."
SYNC_ERROR_MESSAGE = "Failed to send data. Please try again."


class Phase(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"
    SYNCING = "syncing"
    SYNCED = "synced"


class Event(str, Enum):
    START_SCAN = "start_scan"
    IMAGE_CAPTURED = "image_captured"
    CANCEL = "cancel"
    CAPTURE_FAILED = "capture_failed"
    ANALYSIS_SUCCEEDED = "analysis_succeeded"
    ANALYSIS_FAILED = "analysis_failed"
    RETAKE = "retake"
    APPROVE = "approve"
    SYNC_SUCCEEDED = "sync_succeeded"
    SYNC_FAILED = "sync_failed"
    NEW_SCAN = "new_scan"


TRANSITIONS: Dict[Tuple[Phase, Event], Phase] = {
    (Phase.IDLE, Event.START_SCAN): Phase.CAPTURING,
    (Phase.CAPTURING, Event.IMAGE_CAPTURED): Phase.ANALYZING,
    (Phase.CAPTURING, Event.CANCEL): Phase.IDLE,
    (Phase.CAPTURING, Event.CAPTURE_FAILED): Phase.IDLE,
    (Phase.ANALYZING, Event.ANALYSIS_SUCCEEDED): Phase.REVIEWING,
    (Phase.ANALYZING, Event.ANALYSIS_FAILED): Phase.IDLE,
    (Phase.REVIEWING, Event.RETAKE): Phase.CAPTURING,
    (Phase.REVIEWING, Event.APPROVE): Phase.SYNCING,
    (Phase.SYNCING, Event.SYNC_SUCCEEDED): Phase.SYNCED,
    (Phase.SYNCING, Event.SYNC_FAILED): Phase.REVIEWING,
    (Phase.SYNCED, Event.NEW_SCAN): Phase.IDLE,
}


def next_phase(phase: Phase, event: Event) -> Optional[Phase]:
    """Return the phase reached from ``phase`` on ``event``, or ``None`` if illegal."""

    return TRANSITIONS.get((phase, event))


@dataclass
class CaptureSession:
    """State of one scan attempt."""

    phase: Phase = Phase.IDLE
    image: Optional[bytes] = None
    record: Optional[AnalysisRecord] = None
    outcome: Optional[Outcome] = None
    last_error: Optional[ErrorKind] = None
    error_message: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _take_image(source: ImageSource) -> bytes:
    with source:
        return source.capture()


class FlowController:
    """Sequences a scan from capture to sync and owns the current session."""

    def __init__(
        self,
        analysis_client: AnalysisClient,
        dispatcher: SyncDispatcher,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.analysis_client = analysis_client
        self.dispatcher = dispatcher
        self.clock = clock
        self._session = CaptureSession()

    @property
    def phase(self) -> Phase:
        return self._session.phase

    @property
    def session(self) -> CaptureSession:
        return self._session

    def view(self) -> SessionView:
        session = self._session
        return SessionView(
            phase=session.phase.value,
            record=session.record,
            outcome=session.outcome,
            error=session.error_message,
            error_kind=session.last_error.value if session.last_error else None,
            has_image=session.image is not None,
        )

    # ------------------------------------------------------------------
    # transitions

    def _target(self, event: Event) -> Phase:
        target = next_phase(self._session.phase, event)
        if target is None:
            raise InvalidTransitionError(self._session.phase.value, event.value)
        return target

    def _fire(self, event: Event) -> Phase:
        current = self._session.phase
        target = self._target(event)
        logger.info("Scan flow %s -> %s on %s", current.value, target.value, event.value)
        self._session.phase = target
        return target

    def _fire_fresh(self, event: Event, **fields) -> None:
        """Fire ``event`` and replace the session with a new one in the target phase."""

        current = self._session.phase
        target = self._target(event)
        logger.info("Scan flow %s -> %s on %s (new session)", current.value, target.value, event.value)
        self._session = CaptureSession(phase=target, **fields)

    # ------------------------------------------------------------------
    # user and completion events

    def start_scan(self) -> None:
        self._fire_fresh(Event.START_SCAN)

    def cancel(self) -> None:
        self._fire_fresh(Event.CANCEL)

    async def capture(self, source: ImageSource) -> None:
        """Take one image from ``source`` and analyze it.

        The source is released before analysis starts, including when the
        user cancels or the device fails. Capture runs in a worker thread so
        decoding a large upload does not block the event loop.
        """

        self._target(Event.IMAGE_CAPTURED)
        try:
            image = await asyncio.to_thread(_take_image, source)
        except CaptureCancelled:
            logger.info("Capture cancelled by user")
            self.cancel()
            return
        except CaptureError as exc:
            logger.warning("Capture failed: %s", exc.message)
            self._fire_fresh(Event.CAPTURE_FAILED, last_error=exc.kind, error_message=exc.message)
            return

        await self.submit_image(image)

    async def submit_image(self, image: bytes) -> None:
        self._fire(Event.IMAGE_CAPTURED)
        self._session.image = image

        try:
            record = await self.analysis_client.analyze(image)
        except AnalysisError as exc:
            logger.warning("Analysis failed: %s", exc.message)
            self._fire_fresh(
                Event.ANALYSIS_FAILED,
                last_error=ErrorKind.ANALYSIS,
                error_message=ANALYSIS_ERROR_MESSAGE,
            )
            return
        except Exception:
            self._fire_fresh(
                Event.ANALYSIS_FAILED,
                last_error=ErrorKind.ANALYSIS,
                error_message=ANALYSIS_ERROR_MESSAGE,
            )
            raise

        self._fire(Event.ANALYSIS_SUCCEEDED)
        self._session.record = record
        self._session.outcome = classify(record)

    def retake(self) -> None:
        self._fire_fresh(Event.RETAKE)

    async def approve(self) -> None:
        """Send the reviewed address downstream.

        Only legal while reviewing a record that classifies as a success
        and carries a non-empty address.
        """

        self._target(Event.APPROVE)
        record = self._session.record
        if record is None or not is_sync_eligible(record):
            raise InvalidTransitionError(
                self._session.phase.value,
                Event.APPROVE.value,
                "the record needs a retake before it can be sent",
            )

        self._fire(Event.APPROVE)
        self._session.last_error = None
        self._session.error_message = None

        try:
            await self.dispatcher.sync(record.id_type, record.extracted_address, self.clock())
        except SyncError as exc:
            logger.warning("Sync failed: %s", exc.message)
            self._fail_sync(exc.message)
            return
        except Exception:
            self._fail_sync(SYNC_ERROR_MESSAGE)
            raise

        self._fire(Event.SYNC_SUCCEEDED)

    def _fail_sync(self, message: str) -> None:
        self._fire(Event.SYNC_FAILED)
        self._session.last_error = ErrorKind.SYNC
        self._session.error_message = message or SYNC_ERROR_MESSAGE

    def new_scan(self) -> None:
        self._fire_fresh(Event.NEW_SCAN)
