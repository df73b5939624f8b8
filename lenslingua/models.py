"""Domain data types for extraction results, history records and users."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class AppStatus(str, Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


SUPPORTED_LANGUAGES: list[tuple[str, str]] = [
    ("en", "English"),
    ("es", "Spanish"),
    ("fr", "French"),
    ("de", "German"),
    ("it", "Italian"),
    ("pt", "Portuguese"),
    ("zh", "Chinese (Simplified)"),
    ("ja", "Japanese"),
    ("ko", "Korean"),
    ("hi", "Hindi"),
    ("ar", "Arabic"),
    ("ru", "Russian"),
]

DEFAULT_TARGET_LANGUAGE = "English"

HISTORY_KINDS = ("scan", "audio")


def resolve_language(value: str) -> str | None:
    """Resolve a language code or name (case-insensitive) to its display name."""
    needle = value.strip().lower()
    for code, name in SUPPORTED_LANGUAGES:
        if needle in (code, name.lower()):
            return name
    return None


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class ExtractedItem:
    original_text: str
    translated_text: str
    context: str = ""
    allergens: str = ""  # empty means none detected

    def to_dict(self) -> dict:
        return {
            "originalText": self.original_text,
            "translatedText": self.translated_text,
            "context": self.context,
            "allergens": self.allergens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExtractedItem:
        return cls(
            original_text=data.get("originalText", ""),
            translated_text=data.get("translatedText", ""),
            context=data.get("context", "") or "",
            allergens=data.get("allergens", "") or "",
        )


@dataclass
class ExtractionResult:
    items: list[ExtractedItem] = field(default_factory=list)


@dataclass
class HistoryItem:
    """One persisted extraction event, owned by a single user."""

    id: str
    owner_email: str
    kind: str  # "scan" | "audio"
    created_at: str  # ISO8601, UTC
    target_language: str
    items: list[ExtractedItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        # Key names follow the stored layout (email/type/timestamp).
        return {
            "id": self.id,
            "email": self.owner_email,
            "type": self.kind,
            "timestamp": self.created_at,
            "targetLanguage": self.target_language,
            "items": [i.to_dict() for i in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryItem:
        return cls(
            id=data["id"],
            owner_email=data.get("email") or "",
            kind=data.get("type", "scan"),
            created_at=data.get("timestamp", ""),
            target_language=data.get("targetLanguage", DEFAULT_TARGET_LANGUAGE),
            items=[ExtractedItem.from_dict(i) for i in data.get("items", [])],
        )


@dataclass
class UserRecord:
    email: str  # normalized
    password: str  # salted hash, see db.users
