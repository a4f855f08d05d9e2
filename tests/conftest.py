"""Shared fixtures for the scanner tests."""

from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from fakes import WRONG_SIDE_PAYLOAD, make_record
from idscan.schemas import AnalysisRecord


@pytest.fixture()
def sample_image_bytes() -> bytes:
    """Return an in-memory PNG image standing in for a photographed card."""

    image = Image.new("RGB", (320, 200), color=(240, 240, 240))
    with BytesIO() as buffer:
        image.save(buffer, format="PNG")
        return buffer.getvalue()


@pytest.fixture()
def success_record() -> AnalysisRecord:
    return make_record()


@pytest.fixture()
def wrong_side_record() -> AnalysisRecord:
    return AnalysisRecord.model_validate(WRONG_SIDE_PAYLOAD)
