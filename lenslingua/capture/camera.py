"""Camera capture using OpenCV."""

from __future__ import annotations

import logging

from ..errors import CaptureError, PermissionDenied
from . import CapturedMedia
from .image import DEFAULT_JPEG_QUALITY, DEFAULT_MAX_DIMENSION, _require_cv2, encode_frame

logger = logging.getLogger(__name__)


class CameraSession:
    """An open camera device.

    Use as a context manager; the device is released on every exit path.
    """

    def __init__(
        self,
        camera_index: int = 0,
        *,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self._camera_index = camera_index
        self._max_dimension = max_dimension
        self._jpeg_quality = jpeg_quality
        self._cap = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        if self._cap is not None:
            return
        cv2 = _require_cv2()
        cap = cv2.VideoCapture(self._camera_index)
        if not cap.isOpened():
            cap.release()
            raise PermissionDenied(
                "Could not access camera. Please check permissions."
            )
        self._cap = cap
        logger.debug("Camera %d opened", self._camera_index)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug("Camera %d released", self._camera_index)

    def __enter__(self) -> CameraSession:
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def capture_frame(self) -> CapturedMedia:
        """Grab one frame and return it as a normalized JPEG."""
        if self._cap is None:
            raise CaptureError("Camera is not open.")
        ret, frame = self._cap.read()
        if not ret or frame is None:
            raise CaptureError("Failed to capture image.")
        return encode_frame(
            frame,
            max_dimension=self._max_dimension,
            jpeg_quality=self._jpeg_quality,
        )

    @staticmethod
    def list_cameras(max_check: int = 10) -> list[int]:
        """List available camera indices by probing."""
        cv2 = _require_cv2()

        available: list[int] = []
        for i in range(max_check):
            cap = cv2.VideoCapture(i)
            if cap.isOpened():
                available.append(i)
            cap.release()
        return available

