"""Extraction backend base class and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..errors import ValidationError
from ..models import ExtractionResult

if TYPE_CHECKING:
    from ..config import LensLinguaConfig


class ExtractionBackend(ABC):
    """Turns an image or audio payload into transcribed and translated items.

    Backends never retry on their own: a failed call costs quota, and the user
    decides whether to try again.
    """

    def __init__(self, max_upload_mb: float = 10.0) -> None:
        self._max_upload_mb = max_upload_mb

    @abstractmethod
    async def extract_from_image(
        self, image_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        ...

    @abstractmethod
    async def extract_from_audio(
        self, audio_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        ...

    def _check_payload(self, data: bytes, mime_type: str, media: str) -> None:
        """Reject empty, oversized or mislabelled payloads before any network call."""
        if not data:
            raise ValidationError(f"The {media} is empty.")
        limit = int(self._max_upload_mb * 1024 * 1024)
        if len(data) > limit:
            raise ValidationError(
                f"File is too large. Max size is {self._max_upload_mb:g}MB."
            )
        if not (mime_type or "").lower().startswith(media + "/"):
            raise ValidationError(f"Unsupported {media} type: {mime_type!r}")


def create_backend(config: LensLinguaConfig) -> ExtractionBackend:
    """Create an extraction backend based on configuration."""
    ext = config.extraction
    backend_name = ext.backend

    match backend_name:
        case "openrouter":
            from .openrouter import OpenRouterBackend

            return OpenRouterBackend(
                api_key=ext.openrouter.api_key,
                model=ext.openrouter.model,
                base_url=ext.openrouter.base_url,
                referer=ext.openrouter.referer,
                title=ext.openrouter.title,
                timeout=ext.timeout,
                max_upload_mb=ext.max_upload_mb,
            )
        case "gemini":
            from .gemini import GeminiBackend

            return GeminiBackend(
                api_key=ext.gemini.api_key,
                model=ext.gemini.model,
                max_upload_mb=ext.max_upload_mb,
            )
        case "claude":
            from .claude import ClaudeBackend

            return ClaudeBackend(
                api_key=ext.claude.api_key,
                model=ext.claude.model,
                timeout=ext.timeout,
                max_upload_mb=ext.max_upload_mb,
            )
        case _:
            raise ValueError(
                f"Unknown extraction backend: {backend_name!r} "
                f"(choose openrouter / gemini / claude)"
            )


__all__ = ["ExtractionBackend", "create_backend"]
