"""Client for the hosted vision-language model that reads ID cards.

The service receives the image with a fixed instruction prompt and
replies with a JSON object constrained to :data:`ANALYSIS_SCHEMA`. This
module normalises the outgoing image, parses the reply into an
:class:`~idscan.schemas.AnalysisRecord` and collapses every failure into
:class:`~idscan.errors.AnalysisError`.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional, Union

from google import genai
from google.genai import types
from pydantic import ValidationError

from .errors import AnalysisError
from .schemas import AnalysisRecord, IssueType

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPE = "image/jpeg"
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.1

ANALYSIS_FAILED_MESSAGE = "Failed to analyze ID card. Please try again."

_DATA_URI_PREFIX = re.compile(r"^data:image/(png|jpeg|jpg|webp);base64,")
_DATA_URI_PREFIX_BYTES = re.compile(rb"^data:image/(png|jpeg|jpg|webp);base64,")

ANALYSIS_PROMPT = """Analyze this image to extract a physical address from an Indian ID card.
Common Indian IDs: Aadhaar Card (Address usually on BACK), Voter ID (Address usually on BACK), Driving License (Address varies), Passport (Address on LAST page).

1. Identify if it is a valid ID.
2. Specific check: If it is an Aadhaar card or Voter ID showing the FRONT (Photo/Name side), usually the address is NOT there. Mark issueDetected as 'wrong_side'.
3. Extract the address strictly as it appears.
4. If text is blurry or glare blocks the address, report the issue.
"""

ANALYSIS_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "isIndianID": types.Schema(
            type=types.Type.BOOLEAN,
            description=(
                "True if the image looks like an Indian government issued ID card "
                "(Aadhaar, Voter ID, Driving License, Passport, etc)."
            ),
        ),
        "idType": types.Schema(
            type=types.Type.STRING,
            description="The type of ID detected (e.g., 'Aadhaar Card', 'Driving License', 'Voter ID', 'Passport').",
        ),
        "addressVisible": types.Schema(
            type=types.Type.BOOLEAN,
            description="True if a full or partial address is clearly readable in the image.",
        ),
        "extractedAddress": types.Schema(
            type=types.Type.STRING,
            nullable=True,
            description="The full address text extracted from the card. Null if not visible.",
        ),
        "confidenceScore": types.Schema(
            type=types.Type.NUMBER,
            description="Confidence score between 0 and 1 regarding the extraction.",
        ),
        "issueDetected": types.Schema(
            type=types.Type.STRING,
            enum=[issue.value for issue in IssueType],
            description=(
                "The primary issue preventing extraction. 'wrong_side' if it's the front of an ID "
                "where address is on the back (like Aadhaar)."
            ),
        ),
        "userInstruction": types.Schema(
            type=types.Type.STRING,
            description=(
                "A helpful instruction for the user. E.g., 'Please flip the card to the back side "
                "to see the address' or 'Image is blurry, please hold steady'."
            ),
        ),
    },
    required=[
        "isIndianID",
        "idType",
        "addressVisible",
        "extractedAddress",
        "issueDetected",
        "userInstruction",
        "confidenceScore",
    ],
)


def _b64decode(data: Union[bytes, str]) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AnalysisError("The captured image is not valid base64 data.") from exc


def normalize_image(image: Union[bytes, str]) -> bytes:
    """Return raw encoded image bytes, decoding a ``data:image/...;base64,`` URI if given."""

    if isinstance(image, bytes):
        match = _DATA_URI_PREFIX_BYTES.match(image)
        if match:
            image = _b64decode(image[match.end():])
    elif isinstance(image, str):
        image = _b64decode(_DATA_URI_PREFIX.sub("", image, count=1))

    if not image:
        raise AnalysisError("The captured image is empty.")
    return image


def parse_analysis_payload(text: Optional[str]) -> AnalysisRecord:
    """Validate the service's JSON reply and convert it into an :class:`AnalysisRecord`."""

    if not text or not text.strip():
        raise AnalysisError("No response from the analysis service.")
    try:
        return AnalysisRecord.model_validate_json(text)
    except ValidationError as exc:
        logger.warning("Analysis payload rejected: %s", exc.errors(include_url=False))
        raise AnalysisError("The analysis service returned an unexpected response.") from exc


class AnalysisClient:
    """Interface for anything that turns an image into an :class:`AnalysisRecord`."""

    async def analyze(self, image: bytes) -> AnalysisRecord:
        raise NotImplementedError


class GeminiAnalysisClient(AnalysisClient):
    """Analysis client backed by the Gemini API (``google-genai``)."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        client: Optional[genai.Client] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self._client = client
        if self._client is None and api_key:
            self._client = genai.Client(api_key=api_key)
        if self._client is None:
            logger.error("Gemini API key is missing; set GEMINI_API_KEY. Analysis requests will fail.")

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def analyze(self, image: Union[bytes, str]) -> AnalysisRecord:
        if self._client is None:
            raise AnalysisError("The analysis service is not configured (missing API key).")

        data = normalize_image(image)
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=data, mime_type=IMAGE_MIME_TYPE),
                    ANALYSIS_PROMPT,
                ],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=ANALYSIS_SCHEMA,
                    temperature=self.temperature,
                ),
            )
        except Exception as exc:
            logger.exception("Gemini analysis request failed")
            raise AnalysisError(ANALYSIS_FAILED_MESSAGE) from exc

        record = parse_analysis_payload(response.text)
        logger.info(
            "Analysis complete: id_type=%r issue=%s confidence=%.2f",
            record.id_type,
            record.issue_detected.value,
            record.confidence_score,
        )
        return record
