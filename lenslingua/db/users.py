"""User registration and credential checks."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os

from ..errors import DuplicateUserError, StorageConflictError, ValidationError
from ..models import UserRecord, normalize_email
from .kv import KeyValueStore, load_json_list, update_json_list

logger = logging.getLogger(__name__)

USERS_KEY = "lenslingua_users"

_HASH_SCHEME = "pbkdf2_sha256"
_DEFAULT_ITERATIONS = 200_000


def hash_password(password: str, *, iterations: int = _DEFAULT_ITERATIONS) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt>$<digest>`` for ``password``."""
    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return f"{_HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def check_password(password: str, stored: str) -> bool:
    """Check ``password`` against a stored hash string.

    Entries written before hashing was introduced hold the plain password;
    those are compared directly so existing accounts keep working.
    """
    if not stored.startswith(_HASH_SCHEME + "$"):
        return hmac.compare_digest(password.encode(), stored.encode())
    try:
        _, iterations, salt_hex, digest_hex = stored.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        rounds = int(iterations)
    except ValueError:
        logger.error("Unreadable password hash in user store")
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, rounds)
    return hmac.compare_digest(digest, expected)


class UserStore:
    """Manages the user list entry of the key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        iterations: int = _DEFAULT_ITERATIONS,
        max_write_attempts: int = 5,
    ) -> None:
        self._store = store
        self._iterations = iterations
        self._max_write_attempts = max_write_attempts

    def _records(self) -> list[UserRecord]:
        raw, _ = load_json_list(self._store, USERS_KEY)
        users: list[UserRecord] = []
        for entry in raw:
            if isinstance(entry, dict) and isinstance(entry.get("email"), str):
                users.append(
                    UserRecord(email=entry["email"], password=str(entry.get("password", "")))
                )
        return users

    def _find(self, email: str) -> UserRecord | None:
        normalized = normalize_email(email)
        for user in self._records():
            if normalize_email(user.email) == normalized:
                return user
        return None

    def register(self, email: str, password: str) -> None:
        """Create an account.

        Raises:
            ValidationError: If email or password is blank.
            DuplicateUserError: If the normalized email is already registered.
        """
        normalized = normalize_email(email)
        if not normalized or "@" not in normalized:
            raise ValidationError("Please enter a valid email address.")
        if not password:
            raise ValidationError("Please enter a password.")

        hashed = hash_password(password, iterations=self._iterations)

        def mutate(records: list) -> tuple[list | None, None]:
            for entry in records:
                if isinstance(entry, dict) and normalize_email(entry.get("email")) == normalized:
                    raise DuplicateUserError()
            return records + [{"email": normalized, "password": hashed}], None

        update_json_list(
            self._store, USERS_KEY, mutate, max_attempts=self._max_write_attempts
        )
        logger.info("Registered user %s", normalized)

    def verify(self, email: str, password: str) -> bool:
        user = self._find(email)
        if user is None:
            return False
        if not check_password(password, user.password):
            return False
        if not user.password.startswith(_HASH_SCHEME + "$"):
            try:
                self._rehash(user.email, password)
            except StorageConflictError:
                # The legacy entry stays valid; the upgrade is retried next login.
                logger.warning("Could not upgrade stored password for %s", user.email)
        return True

    def _rehash(self, email: str, password: str) -> None:
        """Replace a legacy plain-text password with a salted hash."""
        normalized = normalize_email(email)
        hashed = hash_password(password, iterations=self._iterations)

        def mutate(records: list) -> tuple[list | None, None]:
            updated = []
            for entry in records:
                if isinstance(entry, dict) and normalize_email(entry.get("email")) == normalized:
                    entry = {**entry, "email": normalized, "password": hashed}
                updated.append(entry)
            return updated, None

        update_json_list(
            self._store, USERS_KEY, mutate, max_attempts=self._max_write_attempts
        )
        logger.info("Upgraded stored password for %s", normalized)
