"""Prompt construction and defensive parsing of model output."""

from __future__ import annotations

import json
import logging

from ..errors import MalformedResponseError
from ..models import ExtractedItem, ExtractionResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
Act as a professional bilingual interpreter and cultural guide.
Always answer with a single JSON object and nothing else.
"""

_FORMAT = """\
Format: {"items": [{"originalText": "...", "translatedText": "...", \
"context": "...", "allergens": "..."}]}
Use one item per distinct phrase or dish. "context" is a short cultural or \
culinary explanation. "allergens" lists likely allergens, or "" if none."""

# Substring → upstream audio format name. Checked in order.
_AUDIO_FORMATS: list[tuple[str, str]] = [
    ("webm", "webm"),
    ("ogg", "ogg"),
    ("opus", "ogg"),
    ("wav", "wav"),
    ("wave", "wav"),
    ("mpeg", "mp3"),
    ("mp3", "mp3"),
    ("mp4", "m4a"),
    ("m4a", "m4a"),
    ("aac", "aac"),
    ("flac", "flac"),
    ("aiff", "aiff"),
]


def image_prompt(target_language: str) -> str:
    return (
        "Return a JSON object with an 'items' array. Extract all text from this "
        f"image and translate it into {target_language}. Provide cultural context "
        f"and identify allergens.\n{_FORMAT}"
    )


def audio_prompt(target_language: str) -> str:
    return (
        "Return a JSON object with an 'items' array. Transcribe this audio and "
        f"translate it into {target_language}. Provide cultural context and "
        f"identify allergens.\n{_FORMAT}"
    )


def audio_format(mime_type: str) -> str:
    """Map an audio mime type (``audio/webm;codecs=opus``) to a container format name.

    Unknown subtypes are passed through as-is rather than guessed.
    """
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    subtype = base.split("/", 1)[1] if "/" in base else base
    for needle, fmt in _AUDIO_FORMATS:
        if needle in subtype:
            return fmt
    return subtype.removeprefix("x-")


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        # Drop the opening fence line and any closing fence line
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned.strip()


def parse_response(text: str | None) -> ExtractionResult:
    """Parse the model's reply into an ExtractionResult.

    Tolerates code fences and commentary around the JSON object by parsing
    only the span from the first ``{`` to the last ``}``; the object must
    then have an ``items`` array of item objects.

    Raises:
        MalformedResponseError: If no valid object can be recovered.
    """
    if not text:
        raise MalformedResponseError()

    cleaned = _strip_fences(text)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        logger.error("No JSON object in model response: %.200r", text)
        raise MalformedResponseError()

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        logger.error("JSON parse error in model response: %s", e)
        raise MalformedResponseError() from e

    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        logger.error("Model response has no 'items' array")
        raise MalformedResponseError()

    items: list[ExtractedItem] = []
    for raw in data["items"]:
        item = _to_item(raw)
        if item is not None:
            items.append(item)
    return ExtractionResult(items=items)


def _to_item(raw: object) -> ExtractedItem | None:
    if not isinstance(raw, dict):
        return None
    fields = {}
    for key in ("originalText", "translatedText", "context", "allergens"):
        value = raw.get(key, "")
        if value is None:
            value = ""
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        if not isinstance(value, str):
            value = str(value)
        fields[key] = value.strip()
    if not fields["originalText"] and not fields["translatedText"]:
        return None
    return ExtractedItem(
        original_text=fields["originalText"],
        translated_text=fields["translatedText"],
        context=fields["context"],
        allergens=fields["allergens"],
    )
