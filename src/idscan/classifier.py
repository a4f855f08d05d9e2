"""Decide whether an analysis record is a success or needs a retake."""

from __future__ import annotations

from .schemas import AnalysisRecord, IssueType, Outcome


def classify(record: AnalysisRecord) -> Outcome:
    """Return the :class:`Outcome` for ``record``.

    A record is successful only when it is an Indian ID, the address is
    visible and no issue was reported. Otherwise the service's own user
    instruction is passed through unchanged as guidance.
    """

    success = (
        record.is_indian_id
        and record.address_visible
        and record.issue_detected == IssueType.NONE
    )
    if success:
        return Outcome(success=True, guidance="")
    return Outcome(success=False, guidance=record.user_instruction)


def is_sync_eligible(record: AnalysisRecord) -> bool:
    """Return ``True`` when the record may be sent to the downstream application."""

    address = (record.extracted_address or "").strip()
    return classify(record).success and bool(address)
