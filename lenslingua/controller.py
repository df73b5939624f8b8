"""Application controller: session, status machine and the translate flow."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from .capture.camera import CameraSession
from .capture.image import load_image_file, normalize_image
from .capture.microphone import Microphone, load_audio_file
from .db import HistoryStore, UserStore
from .errors import (
    BusyError,
    LensLinguaError,
    NoTextFoundError,
    ValidationError,
)
from .extraction import ExtractionBackend
from .models import (
    DEFAULT_TARGET_LANGUAGE,
    AppStatus,
    ExtractedItem,
    ExtractionResult,
    HistoryItem,
    normalize_email,
    resolve_language,
)

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    """Result of a controller operation: either items or an error kind + message."""

    ok: bool
    items: list[ExtractedItem] = field(default_factory=list)
    record_id: str | None = None
    error_kind: str | None = None
    message: str | None = None
    removed: int = 0

    @classmethod
    def success(
        cls, items: list[ExtractedItem] | None = None, record_id: str | None = None
    ) -> Outcome:
        return cls(ok=True, items=list(items or []), record_id=record_id)

    @classmethod
    def failure(cls, kind: str, message: str) -> Outcome:
        return cls(ok=False, error_kind=kind, message=message)


class AppController:
    """Drives one user session.

    Status moves ``IDLE -> PROCESSING -> SUCCESS | ERROR`` and back to
    ``IDLE`` on :meth:`reset`. At most one translation runs at a time. Every
    failure is turned into an :class:`Outcome`; nothing raises out of the
    public methods except programming errors in collaborators.

    ``reset`` does not abort a pending provider call; the call keeps running
    and its result is dropped when it arrives.
    """

    def __init__(
        self,
        users: UserStore,
        history: HistoryStore,
        backend: ExtractionBackend | None = None,
        *,
        camera_factory: Callable[[], CameraSession] | None = None,
        microphone: Microphone | None = None,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        max_upload_mb: float = 10.0,
        max_dimension: int = 1024,
        jpeg_quality: int = 85,
    ) -> None:
        self._users = users
        self._history = history
        self._backend = backend
        self._camera_factory = camera_factory or (
            lambda: CameraSession(0, max_dimension=max_dimension, jpeg_quality=jpeg_quality)
        )
        self._microphone = microphone or Microphone()
        self._max_upload_mb = max_upload_mb
        self._max_dimension = max_dimension
        self._jpeg_quality = jpeg_quality

        self.target_language = resolve_language(target_language) or DEFAULT_TARGET_LANGUAGE
        self.user_email: str | None = None
        self.status = AppStatus.IDLE
        self.results: list[ExtractedItem] = []
        self.active_record_id: str | None = None
        self.error_kind: str | None = None
        self.error_message: str | None = None
        self._generation = 0

    # ── Session ──

    @property
    def is_signed_in(self) -> bool:
        return self.user_email is not None

    @property
    def can_start(self) -> bool:
        return self.status is not AppStatus.PROCESSING

    def sign_up(self, email: str, password: str) -> Outcome:
        try:
            self._users.register(email, password)
        except LensLinguaError as e:
            return Outcome.failure(e.kind, e.user_message)
        return Outcome.success()

    def sign_in(self, email: str, password: str) -> Outcome:
        if not normalize_email(email) or not password:
            return Outcome.failure(
                ValidationError.kind, "Please enter your email and password."
            )
        try:
            verified = self._users.verify(email, password)
        except LensLinguaError as e:
            return Outcome.failure(e.kind, e.user_message)
        if not verified:
            return Outcome.failure(
                ValidationError.kind, "Access denied. Invalid credentials."
            )
        self.reset()
        self.user_email = normalize_email(email)
        logger.info("Signed in as %s", self.user_email)
        return Outcome.success()

    def sign_out(self) -> None:
        self.reset()
        self.user_email = None

    # ── Status ──

    def reset(self) -> None:
        """Return to IDLE, abandoning any in-flight translation."""
        if self.status is AppStatus.PROCESSING:
            logger.info("Abandoning in-flight translation")
        self._generation += 1
        self.status = AppStatus.IDLE
        self.results = []
        self.active_record_id = None
        self.error_kind = None
        self.error_message = None

    def dismiss_error(self) -> None:
        self.error_kind = None
        self.error_message = None
        if self.status is AppStatus.ERROR:
            self.status = AppStatus.IDLE

    def set_target_language(self, value: str) -> Outcome:
        name = resolve_language(value)
        if name is None:
            return Outcome.failure(
                ValidationError.kind, f"Unsupported language: {value!r}"
            )
        self.target_language = name
        return Outcome.success()

    # ── Translate ──

    async def translate_image(self, data: bytes) -> Outcome:
        """Normalize raw image bytes and translate them."""

        async def work(language: str) -> ExtractionResult:
            media = normalize_image(
                data, max_dimension=self._max_dimension, jpeg_quality=self._jpeg_quality
            )
            return await self._require_backend().extract_from_image(
                media.data, media.mime_type, language
            )

        return await self._run("scan", work)

    async def translate_image_file(self, path: str | Path) -> Outcome:
        async def work(language: str) -> ExtractionResult:
            media = load_image_file(
                path,
                max_upload_mb=self._max_upload_mb,
                max_dimension=self._max_dimension,
                jpeg_quality=self._jpeg_quality,
            )
            return await self._require_backend().extract_from_image(
                media.data, media.mime_type, language
            )

        return await self._run("scan", work)

    async def translate_camera(self) -> Outcome:
        """Take a picture with the camera and translate it."""

        def capture():
            with self._camera_factory() as camera:
                return camera.capture_frame()

        async def work(language: str) -> ExtractionResult:
            media = await asyncio.to_thread(capture)
            return await self._require_backend().extract_from_image(
                media.data, media.mime_type, language
            )

        return await self._run("scan", work)

    async def translate_audio(self, data: bytes, mime_type: str) -> Outcome:
        async def work(language: str) -> ExtractionResult:
            return await self._require_backend().extract_from_audio(
                data, mime_type, language
            )

        return await self._run("audio", work)

    async def translate_audio_file(self, path: str | Path) -> Outcome:
        async def work(language: str) -> ExtractionResult:
            media = load_audio_file(path, max_upload_mb=self._max_upload_mb)
            return await self._require_backend().extract_from_audio(
                media.data, media.mime_type, language
            )

        return await self._run("audio", work)

    async def translate_microphone(
        self, seconds: float, stop_event: threading.Event | None = None
    ) -> Outcome:
        """Record from the microphone, then translate the clip."""

        async def work(language: str) -> ExtractionResult:
            media = await asyncio.to_thread(self._microphone.record, seconds, stop_event)
            return await self._require_backend().extract_from_audio(
                media.data, media.mime_type, language
            )

        return await self._run("audio", work)

    def _require_backend(self) -> ExtractionBackend:
        if self._backend is None:
            raise ValidationError("No extraction backend is configured.")
        return self._backend

    async def _run(
        self, kind: str, work: Callable[[str], Awaitable[ExtractionResult]]
    ) -> Outcome:
        if self.status is AppStatus.PROCESSING:
            err = BusyError()
            return Outcome.failure(err.kind, err.user_message)
        if self.user_email is None:
            return self._fail(ValidationError("Please sign in first."))

        self._generation += 1
        generation = self._generation
        owner = self.user_email
        language = self.target_language
        self.status = AppStatus.PROCESSING
        self.results = []
        self.active_record_id = None
        self.error_kind = None
        self.error_message = None

        try:
            result = await work(language)
            if generation != self._generation:
                return self._abandoned()
            if not result.items:
                raise NoTextFoundError()
            record_id = self._history.save(owner, kind, language, result.items)
        except LensLinguaError as e:
            if generation != self._generation:
                return self._abandoned()
            logger.warning("%s translation failed (%s): %s", kind, e.kind, e.user_message)
            return self._fail(e)
        except Exception:
            if generation != self._generation:
                return self._abandoned()
            logger.exception("Unexpected error during %s translation", kind)
            self.status = AppStatus.ERROR
            self.error_kind = "unexpected"
            self.error_message = "Something went wrong. Please try again."
            return Outcome.failure(self.error_kind, self.error_message)

        self.results = list(result.items)
        self.active_record_id = record_id
        self.status = AppStatus.SUCCESS
        return Outcome.success(result.items, record_id)

    def _fail(self, error: LensLinguaError) -> Outcome:
        self.status = AppStatus.ERROR
        self.error_kind = error.kind
        self.error_message = error.user_message
        return Outcome.failure(error.kind, error.user_message)

    def _abandoned(self) -> Outcome:
        logger.info("Discarding result of an abandoned translation")
        return Outcome.failure("abandoned", "The translation was cancelled.")

    # ── History ──

    def history(self) -> list[HistoryItem]:
        if self.user_email is None:
            return []
        return self._history.list_for_user(self.user_email)

    def open_record(self, record_id: str) -> Outcome:
        """Show a past result as the current one."""
        if self.status is AppStatus.PROCESSING:
            err = BusyError()
            return Outcome.failure(err.kind, err.user_message)
        if self.user_email is None:
            return self._fail(ValidationError("Please sign in first."))
        record = self._history.get(self.user_email, record_id)
        if record is None:
            return Outcome.failure(
                ValidationError.kind, f"No history record with id {record_id!r}."
            )
        self.results = list(record.items)
        self.target_language = record.target_language
        self.active_record_id = record.id
        self.error_kind = None
        self.error_message = None
        self.status = AppStatus.SUCCESS
        return Outcome.success(record.items, record.id)

    def delete_record(self, record_id: str) -> Outcome:
        """Delete one of the user's records; ``removed`` is 0 if it was not found.

        Failures are reported without touching the translation status.
        """
        if self.user_email is None:
            return Outcome.failure(ValidationError.kind, "Please sign in first.")
        try:
            removed = self._history.delete_one(self.user_email, record_id)
        except LensLinguaError as e:
            logger.warning("Deleting %s failed: %s", record_id, e.user_message)
            return Outcome.failure(e.kind, e.user_message)
        if removed and record_id == self.active_record_id:
            self.reset()
        return Outcome(ok=True, record_id=record_id, removed=int(removed))

    def delete_active_record(self) -> Outcome:
        if self.active_record_id is None:
            return Outcome.failure(ValidationError.kind, "No result is open.")
        return self.delete_record(self.active_record_id)

    def clear_history(self) -> Outcome:
        if self.user_email is None:
            return Outcome.failure(ValidationError.kind, "Please sign in first.")
        try:
            removed = self._history.clear_for_user(self.user_email)
        except LensLinguaError as e:
            logger.warning("Clearing history failed: %s", e.user_message)
            return Outcome.failure(e.kind, e.user_message)
        if self.active_record_id is not None:
            self.reset()
        return Outcome(ok=True, removed=removed)

    def export_results_json(self) -> str:
        return json.dumps(
            [item.to_dict() for item in self.results], ensure_ascii=False, indent=2
        )
