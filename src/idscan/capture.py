"""Image sources producing a single JPEG still for analysis.

Sources are context managers: the underlying device or file is acquired
in ``__enter__`` and released in ``__exit__`` regardless of how the
capture ended. ``capture`` raises :class:`~idscan.errors.CaptureError`
for device, permission or decoding failures and
:class:`~idscan.errors.CaptureCancelled` when the user aborts.
"""

from __future__ import annotations

import io
import logging
import time
from pathlib import Path
from typing import Callable, Optional

from PIL import Image, UnidentifiedImageError

from .errors import CaptureCancelled, CaptureError

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90


def encode_jpeg(image_bytes: bytes) -> bytes:
    """Decode any Pillow-readable image and re-encode it as an RGB JPEG."""

    if not image_bytes:
        raise CaptureError("The selected file appears to be empty.")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            rgb_image = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise CaptureError("Unable to read the selected image.") from exc

    with io.BytesIO() as buffer:
        rgb_image.save(buffer, format="JPEG", quality=JPEG_QUALITY)
        return buffer.getvalue()


class ImageSource:
    """Base class for anything that can produce one still image."""

    def __enter__(self) -> "ImageSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def open(self) -> None:
        """Acquire the underlying device or file."""

    def release(self) -> None:
        """Release the underlying device or file."""

    def capture(self) -> bytes:
        raise NotImplementedError


class BytesImageSource(ImageSource):
    """Image already held in memory, e.g. the contents of an uploaded file."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    def capture(self) -> bytes:
        return encode_jpeg(self._data)


class FileImageSource(ImageSource):
    """Image read from a file on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def capture(self) -> bytes:
        try:
            data = self.path.read_bytes()
        except OSError as exc:
            raise CaptureError(f"Unable to open {self.path.name}.") from exc
        return encode_jpeg(data)


class CameraImageSource(ImageSource):
    """Live camera read through OpenCV.

    ``confirm`` is called once the device is open; returning ``False``
    cancels the capture before a frame is taken.
    """

    def __init__(
        self,
        camera_index: int = 0,
        *,
        confirm: Optional[Callable[[], bool]] = None,
        open_timeout_s: float = 5.0,
    ) -> None:
        self.camera_index = camera_index
        self.confirm = confirm
        self.open_timeout_s = open_timeout_s
        self._cam = None

    def open(self) -> None:
        try:
            import cv2
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise CaptureError("OpenCV is required for camera capture; use file upload instead.") from exc

        deadline = time.time() + max(self.open_timeout_s, 0.5)
        while time.time() < deadline:
            cam = cv2.VideoCapture(self.camera_index)
            if cam.isOpened():
                self._cam = cam
                logger.info("Camera %s opened", self.camera_index)
                return
            cam.release()
            time.sleep(0.35)
        raise CaptureError("Unable to access camera. Please verify permissions or use file upload.")

    def release(self) -> None:
        if self._cam is not None:
            self._cam.release()
            self._cam = None
            logger.info("Camera %s released", self.camera_index)

    def capture(self) -> bytes:
        import cv2

        if self._cam is None:
            raise CaptureError("Camera is not open.")
        if self.confirm is not None and not self.confirm():
            raise CaptureCancelled()

        ok, frame = self._cam.read()
        if not ok or frame is None:
            raise CaptureError("Unable to read a frame from the camera.")

        ok, encoded = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
        if not ok:
            raise CaptureError("Unable to encode the captured frame.")
        return encoded.tobytes()
