"""Image decoding, downscaling and JPEG re-encoding using OpenCV."""

from __future__ import annotations

from pathlib import Path

from ..errors import ValidationError
from . import CapturedMedia, read_limited

DEFAULT_MAX_DIMENSION = 1024
DEFAULT_JPEG_QUALITY = 85


def _require_cv2():
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python is required: pip install opencv-python"
        ) from None
    return cv2


def encode_frame(
    frame,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> CapturedMedia:
    """Downscale a BGR frame so its longest side fits ``max_dimension`` and encode as JPEG."""
    cv2 = _require_cv2()

    height, width = frame.shape[:2]
    if width == 0 or height == 0:
        raise ValidationError(
            "We couldn't detect the size of your image. "
            "Please try another file or retake the photo."
        )

    longest = max(width, height)
    if longest > max_dimension:
        scale = max_dimension / longest
        size = (max(1, round(width * scale)), max(1, round(height * scale)))
        frame = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)

    ok, buf = cv2.imencode(
        ".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), jpeg_quality]
    )
    if not ok:
        raise ValidationError("Failed to encode image. Please try a different format.")
    return CapturedMedia(data=buf.tobytes(), mime_type="image/jpeg")


def normalize_image(
    data: bytes,
    *,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> CapturedMedia:
    """Decode arbitrary image bytes and re-encode them as a bounded JPEG."""
    cv2 = _require_cv2()
    import numpy as np

    if not data:
        raise ValidationError("The image is empty.")
    frame = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise ValidationError(
            "Failed to process image data. The file might be corrupted."
        )
    return encode_frame(frame, max_dimension=max_dimension, jpeg_quality=jpeg_quality)


def load_image_file(
    path: str | Path,
    *,
    max_upload_mb: float = 10.0,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> CapturedMedia:
    data = read_limited(path, max_upload_mb)
    return normalize_image(data, max_dimension=max_dimension, jpeg_quality=jpeg_quality)
