"""Pydantic models used by the ID address scanner."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IssueType(str, Enum):
    """Primary issue preventing address extraction."""

    NONE = "none"
    WRONG_SIDE = "wrong_side"
    BLUR = "blur"
    GLARE = "glare"
    OBSCURED = "obscured"
    NOT_AN_ID = "not_an_id"


class AnalysisRecord(BaseModel):
    """Structured reply from the analysis service for a single captured image."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id_type: str = Field(..., alias="idType", description="Free-text document label; may be empty.")
    is_indian_id: bool = Field(..., alias="isIndianID", description="Whether the image is an Indian government ID.")
    address_visible: bool = Field(
        ..., alias="addressVisible", description="Whether an address is readable in the image."
    )
    extracted_address: Optional[str] = Field(
        None, alias="extractedAddress", description="Address text as printed on the document."
    )
    confidence_score: float = Field(
        ..., alias="confidenceScore", ge=0.0, le=1.0, description="Extraction confidence in [0, 1]."
    )
    issue_detected: IssueType = Field(..., alias="issueDetected", description="Primary quality issue, if any.")
    user_instruction: str = Field(
        ..., alias="userInstruction", description="Guidance shown when the scan is not fully successful."
    )


class Outcome(BaseModel):
    """Disposition of an analysis record as shown to the user."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="True when the address can be sent downstream.")
    guidance: str = Field("", description="Instruction for the user when a retake is needed.")


class SyncPayload(BaseModel):
    """Body sent to the downstream application on approval."""

    model_config = ConfigDict(populate_by_name=True)

    id_type: str = Field(..., alias="idType")
    address: str
    timestamp: datetime


class AnalysisResponse(BaseModel):
    """Response envelope returned by the stateless extraction endpoint."""

    record: AnalysisRecord = Field(..., description="Parsed reply from the analysis service.")
    outcome: Outcome = Field(..., description="Success or the retake guidance for the record.")


class SessionView(BaseModel):
    """Snapshot of the scan flow rendered by clients."""

    phase: str = Field(..., description="Current phase of the scan flow.")
    record: Optional[AnalysisRecord] = Field(None, description="Record under review, if any.")
    outcome: Optional[Outcome] = Field(None, description="Classification of the record, if any.")
    error: Optional[str] = Field(None, description="Human-readable message for the last failure.")
    error_kind: Optional[str] = Field(None, description="Stage that produced the last failure.")
    has_image: bool = Field(False, description="Whether an image has been captured for this session.")
