"""Tests for the image sources."""

from __future__ import annotations

import asyncio
import itertools
import sys
import types
from io import BytesIO
from types import SimpleNamespace

import pytest
from PIL import Image

import idscan.capture as capture_mod
from fakes import FakeAnalysisClient, FakeDispatcher
from idscan.capture import BytesImageSource, CameraImageSource, FileImageSource, encode_jpeg
from idscan.errors import CaptureCancelled, CaptureError
from idscan.flow import FlowController, Phase


def _open(data: bytes) -> Image.Image:
    return Image.open(BytesIO(data))


def test_encode_jpeg_converts_png(sample_image_bytes: bytes) -> None:
    jpeg = encode_jpeg(sample_image_bytes)

    with _open(jpeg) as img:
        assert img.format == "JPEG"
        assert img.mode == "RGB"
        assert img.size == (320, 200)


def test_encode_jpeg_flattens_alpha() -> None:
    image = Image.new("RGBA", (10, 10), color=(10, 20, 30, 128))
    with BytesIO() as buffer:
        image.save(buffer, format="PNG")
        data = buffer.getvalue()

    with _open(encode_jpeg(data)) as img:
        assert img.mode == "RGB"


def test_bytes_source_rejects_empty_upload() -> None:
    with pytest.raises(CaptureError, match="empty"):
        with BytesImageSource(b"") as source:
            source.capture()


def test_bytes_source_rejects_non_images() -> None:
    with pytest.raises(CaptureError):
        with BytesImageSource(b"%PDF-1.7 not an image") as source:
            source.capture()


def test_file_source_reads_from_disk(tmp_path, sample_image_bytes: bytes) -> None:
    path = tmp_path / "card.png"
    path.write_bytes(sample_image_bytes)

    with FileImageSource(path) as source:
        jpeg = source.capture()

    with _open(jpeg) as img:
        assert img.format == "JPEG"


def test_file_source_missing_file(tmp_path) -> None:
    with pytest.raises(CaptureError, match="missing.jpg"):
        with FileImageSource(tmp_path / "missing.jpg") as source:
            source.capture()


class _FakeFrame:
    def tobytes(self) -> bytes:
        return b"\xff\xd8camera-frame"


class _FakeVideoCapture:
    def __init__(self, cv2, index):
        self._cv2 = cv2
        self.index = index
        self.released = False
        cv2.opened.append(self)

    def isOpened(self) -> bool:
        return len(self._cv2.opened) > self._cv2.fail_opens

    def read(self):
        return True, object()

    def release(self) -> None:
        self.released = True


@pytest.fixture()
def fake_cv2(monkeypatch):
    """Stand-in ``cv2`` module; the camera opens after ``fail_opens`` failed attempts."""

    cv2 = types.ModuleType("cv2")
    cv2.opened = []
    cv2.fail_opens = 0
    cv2.IMWRITE_JPEG_QUALITY = 1
    cv2.VideoCapture = lambda index: _FakeVideoCapture(cv2, index)
    cv2.imencode = lambda ext, frame, params: (True, _FakeFrame())
    monkeypatch.setitem(sys.modules, "cv2", cv2)

    ticks = itertools.count()
    monkeypatch.setattr(
        capture_mod,
        "time",
        SimpleNamespace(time=lambda: next(ticks) * 0.2, sleep=lambda seconds: None),
    )
    return cv2


def test_camera_retries_open_and_releases(fake_cv2) -> None:
    fake_cv2.fail_opens = 2

    with CameraImageSource(0, open_timeout_s=5.0) as source:
        frame = source.capture()

    assert frame == b"\xff\xd8camera-frame"
    assert len(fake_cv2.opened) == 3
    assert all(cam.released for cam in fake_cv2.opened)


def test_camera_open_failure_is_capture_error(fake_cv2) -> None:
    fake_cv2.fail_opens = 1000

    with pytest.raises(CaptureError, match="Unable to access camera"):
        with CameraImageSource(0, open_timeout_s=1.0):
            pass

    assert fake_cv2.opened
    assert all(cam.released for cam in fake_cv2.opened)


def test_camera_confirm_false_cancels_and_releases(fake_cv2) -> None:
    with pytest.raises(CaptureCancelled):
        with CameraImageSource(0, confirm=lambda: False) as source:
            source.capture()

    assert fake_cv2.opened[-1].released is True


def test_controller_releases_camera_on_cancel(fake_cv2) -> None:
    controller = FlowController(FakeAnalysisClient(), FakeDispatcher())
    controller.start_scan()

    asyncio.run(controller.capture(CameraImageSource(0, confirm=lambda: False)))

    assert controller.phase is Phase.IDLE
    assert fake_cv2.opened[-1].released is True
