"""Claude API extraction backend (images only)."""

from __future__ import annotations

import base64
import logging

from ..errors import ProviderError, ValidationError
from ..models import ExtractionResult
from . import ExtractionBackend
from .parsing import SYSTEM_PROMPT, image_prompt, parse_response

logger = logging.getLogger(__name__)


class ClaudeBackend(ExtractionBackend):
    """Extract and translate using Claude's vision capability."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-sonnet-4-5-20250929",
        timeout: float = 60.0,
        max_upload_mb: float = 10.0,
    ) -> None:
        super().__init__(max_upload_mb)
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    async def extract_from_image(
        self, image_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        self._check_payload(image_bytes, mime_type, "image")
        if not self._api_key:
            raise ProviderError(
                "Anthropic API key is not configured. "
                "Set it in the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.standard_b64encode(image_bytes).decode(),
                },
            },
            {"type": "text", "text": image_prompt(target_language)},
        ]

        client = anthropic.AsyncAnthropic(
            api_key=self._api_key, timeout=self._timeout, max_retries=0
        )
        async with client:
            try:
                response = await client.messages.create(
                    model=self._model,
                    max_tokens=4096,
                    system=SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": content}],
                )
            except anthropic.APIStatusError as e:
                logger.error("Claude returned HTTP %s: %s", e.status_code, e.message)
                raise ProviderError(e.message, status_code=e.status_code) from e
            except anthropic.APIError as e:
                logger.error("Claude request failed: %s", e)
                raise ProviderError(str(e)) from e

        text = "".join(
            getattr(block, "text", "") for block in response.content
        )
        return parse_response(text)

    async def extract_from_audio(
        self, audio_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        raise ValidationError(
            "The Claude backend cannot translate audio. Choose openrouter or gemini."
        )
