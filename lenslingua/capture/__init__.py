"""Media capture: camera frames, microphone clips and local files."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ..errors import ValidationError


@dataclass
class CapturedMedia:
    data: bytes
    mime_type: str
    captured_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


def read_limited(path: str | Path, max_upload_mb: float) -> bytes:
    """Read a local file, enforcing the upload size limit.

    Raises:
        ValidationError: If the file is missing, empty or too large.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        raise ValidationError(f"File not found: {p}")
    size = p.stat().st_size
    if size == 0:
        raise ValidationError(f"File is empty: {p}")
    if size > max_upload_mb * 1024 * 1024:
        raise ValidationError(f"File is too large. Max size is {max_upload_mb:g}MB.")
    return p.read_bytes()


__all__ = ["CapturedMedia", "read_limited"]
