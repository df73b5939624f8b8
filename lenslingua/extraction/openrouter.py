"""OpenRouter (OpenAI-compatible chat completions) extraction backend."""

from __future__ import annotations

import base64
import logging

from ..errors import ProviderError
from ..models import ExtractionResult
from . import ExtractionBackend
from .parsing import SYSTEM_PROMPT, audio_format, audio_prompt, image_prompt, parse_response

logger = logging.getLogger(__name__)


class OpenRouterBackend(ExtractionBackend):
    """Extract and translate via any chat-completions endpoint (OpenRouter by default)."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "google/gemini-2.0-flash-exp:free",
        base_url: str = "https://openrouter.ai/api/v1",
        referer: str = "",
        title: str = "LensLingua",
        timeout: float = 60.0,
        max_upload_mb: float = 10.0,
    ) -> None:
        super().__init__(max_upload_mb)
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._referer = referer
        self._title = title
        self._timeout = timeout

    async def extract_from_image(
        self, image_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        self._check_payload(image_bytes, mime_type, "image")
        encoded = base64.b64encode(image_bytes).decode()
        media_part = {
            "type": "image_url",
            "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
        }
        return await self._complete(image_prompt(target_language), media_part)

    async def extract_from_audio(
        self, audio_bytes: bytes, mime_type: str, target_language: str
    ) -> ExtractionResult:
        self._check_payload(audio_bytes, mime_type, "audio")
        media_part = {
            "type": "input_audio",
            "input_audio": {
                "data": base64.b64encode(audio_bytes).decode(),
                "format": audio_format(mime_type),
            },
        }
        return await self._complete(audio_prompt(target_language), media_part)

    async def _complete(self, prompt: str, media_part: dict) -> ExtractionResult:
        if not self._api_key:
            raise ProviderError(
                "API key is not configured. "
                "Set it in the config file or the OPENROUTER_API_KEY environment variable."
            )

        try:
            import openai
        except ImportError:
            raise ImportError("openai SDK is required: pip install openai") from None

        headers = {"X-Title": self._title}
        if self._referer:
            headers["HTTP-Referer"] = self._referer

        client = openai.AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=0,
            default_headers=headers,
        )

        async with client:
            try:
                completion = await client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": [{"type": "text", "text": prompt}, media_part],
                        },
                    ],
                    response_format={"type": "json_object"},
                )
            except openai.APIStatusError as e:
                logger.error("Provider returned HTTP %s: %s", e.status_code, e.message)
                raise ProviderError(_upstream_message(e), status_code=e.status_code) from e
            except openai.APIError as e:
                logger.error("Provider request failed: %s", e)
                raise ProviderError(str(e) or "") from e

        choices = getattr(completion, "choices", None) or []
        if not choices:
            # OpenRouter reports some upstream failures in-band with HTTP 200.
            error = getattr(completion, "error", None)
            message = error.get("message", "") if isinstance(error, dict) else ""
            raise ProviderError(message or "The provider returned no answer.")

        content = choices[0].message.content
        return parse_response(content)


def _upstream_message(error) -> str:
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
        if body.get("message"):
            return str(body["message"])
    return getattr(error, "message", "") or ""
