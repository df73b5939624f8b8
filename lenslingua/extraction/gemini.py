"""Gemini API extraction backend."""

from __future__ import annotations

import logging

from ..errors import ProviderError
from ..models import ExtractionResult
from . import ExtractionBackend
from .parsing import SYSTEM_PROMPT, audio_prompt, image_prompt, parse_response

logger = logging.getLogger(__name__)


class GeminiBackend(ExtractionBackend):
    """Extract and translate using Google Gemini's multimodal input."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.0-flash",
        max_upload_mb: float = 10.0,
    ) -> None:
        super().__init__(max_upload_mb)
        self._api_key = api_key
        self._model = model

    async def extract_from_image(
        self, image_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        self._check_payload(image_bytes, mime_type, "image")
        return await self._generate(image_bytes, mime_type, image_prompt(target_language))

    async def extract_from_audio(
        self, audio_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        self._check_payload(audio_bytes, mime_type, "audio")
        # Gemini takes the container from the mime type itself, without codec parameters.
        base_mime = mime_type.split(";", 1)[0].strip()
        return await self._generate(audio_bytes, base_mime, audio_prompt(target_language))

    async def _generate(self, data: bytes, mime_type: str, prompt: str) -> ExtractionResult:
        if not self._api_key:
            raise ProviderError(
                "Gemini API key is not configured. "
                "Set it in the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
            from google.api_core import exceptions as google_exceptions
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model, system_instruction=SYSTEM_PROMPT)

        parts: list = [{"mime_type": mime_type, "data": data}, prompt]
        try:
            response = await model.generate_content_async(
                parts,
                generation_config={"response_mime_type": "application/json"},
            )
        except google_exceptions.GoogleAPIError as e:
            logger.error("Gemini request failed: %s", e)
            raise ProviderError(
                getattr(e, "message", "") or str(e),
                status_code=getattr(e, "code", None),
            ) from e

        try:
            text = response.text
        except ValueError as e:
            # Raised when the candidate was blocked and carries no text.
            logger.error("Gemini returned no text: %s", e)
            raise ProviderError(str(e)) from e

        return parse_response(text)
