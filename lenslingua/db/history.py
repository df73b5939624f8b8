"""Per-user translation history storage."""

from __future__ import annotations

import logging
import random
import string
import uuid
from datetime import datetime, timezone
from typing import Callable

from ..errors import ValidationError
from ..models import HISTORY_KINDS, ExtractedItem, HistoryItem, normalize_email
from .kv import KeyValueStore, load_json_list, update_json_list

logger = logging.getLogger(__name__)

HISTORY_KEY = "lenslingua_user_history"

_ID_ALPHABET = string.ascii_lowercase + string.digits
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def generate_id() -> str:
    """Return a fresh record id.

    Uses the OS randomness source; if that is unavailable, falls back to a
    26-character base-36 string from the ``random`` module.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        return "".join(random.choice(_ID_ALPHABET) for _ in range(26))


def _owner(entry: dict) -> str:
    return normalize_email(entry.get("email") if isinstance(entry.get("email"), str) else "")


def _created(item: HistoryItem) -> datetime:
    try:
        ts = datetime.fromisoformat(item.created_at.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return _EPOCH
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class HistoryStore:
    """Manages the history list entry of the key-value store.

    Every query and mutation compares owners by normalized email, so records
    written as ``"A@X.com "`` still belong to ``"a@x.com"``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] = generate_id,
        max_write_attempts: int = 5,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory
        self._max_write_attempts = max_write_attempts

    def save(
        self,
        owner_email: str,
        kind: str,
        target_language: str,
        items: list[ExtractedItem],
    ) -> str:
        """Append a new history record and return its id.

        Raises:
            ValidationError: If the owner is blank or ``kind`` is unknown.
        """
        normalized = normalize_email(owner_email)
        if not normalized:
            raise ValidationError("Please sign in first.")
        if kind not in HISTORY_KINDS:
            raise ValidationError(f"Unknown history kind: {kind!r}")

        created_at = self._clock().isoformat()

        def mutate(records: list) -> tuple[list, str]:
            taken = {e.get("id") for e in records if isinstance(e, dict)}
            new_id = self._id_factory()
            while new_id in taken:
                new_id = self._id_factory()
            entry = HistoryItem(
                id=new_id,
                owner_email=normalized,
                kind=kind,
                created_at=created_at,
                target_language=target_language,
                items=list(items),
            )
            return records + [entry.to_dict()], new_id

        new_id = update_json_list(
            self._store, HISTORY_KEY, mutate, max_attempts=self._max_write_attempts
        )
        logger.debug("Record saved with ID %s", new_id)
        return new_id

    def list_for_user(self, email: str) -> list[HistoryItem]:
        """Return the user's records, most recent first."""
        normalized = normalize_email(email)
        if not normalized:
            return []
        raw, _ = load_json_list(self._store, HISTORY_KEY)
        owned: list[HistoryItem] = []
        # Reversed so that records with equal timestamps list later saves first.
        for entry in reversed(raw):
            if not isinstance(entry, dict) or _owner(entry) != normalized:
                continue
            try:
                owned.append(HistoryItem.from_dict(entry))
            except (KeyError, TypeError, AttributeError) as e:
                logger.error("Skipping unreadable history record: %s", e)
        return sorted(owned, key=_created, reverse=True)

    def get(self, email: str, item_id: str) -> HistoryItem | None:
        for item in self.list_for_user(email):
            if item.id == item_id:
                return item
        return None

    def clear_for_user(self, email: str) -> int:
        """Delete every record owned by ``email``.

        Returns:
            Number of records removed.
        """
        normalized = normalize_email(email)
        if not normalized:
            return 0

        def mutate(records: list) -> tuple[list | None, int]:
            kept = [
                e for e in records
                if not (isinstance(e, dict) and _owner(e) == normalized)
            ]
            removed = len(records) - len(kept)
            return (kept if removed else None), removed

        removed = update_json_list(
            self._store, HISTORY_KEY, mutate, max_attempts=self._max_write_attempts
        )
        logger.info("Cleared %d history record(s) for %s", removed, normalized)
        return removed

    def delete_one(self, email: str, item_id: str) -> bool:
        """Delete the record with ``item_id`` if ``email`` owns it.

        A missing id or a record owned by someone else is a no-op.

        Returns:
            True if a record was removed.
        """
        normalized = normalize_email(email)
        if not normalized or not item_id:
            return False

        def mutate(records: list) -> tuple[list | None, bool]:
            for index, entry in enumerate(records):
                if (
                    isinstance(entry, dict)
                    and entry.get("id") == item_id
                    and _owner(entry) == normalized
                ):
                    return records[:index] + records[index + 1:], True
            return None, False

        removed = update_json_list(
            self._store, HISTORY_KEY, mutate, max_attempts=self._max_write_attempts
        )
        if removed:
            logger.debug("Record %s deleted", item_id)
        else:
            logger.warning("Failed to find record %s for deletion", item_id)
        return removed
