"""Tests for the application controller state machine."""

import asyncio
import json

import pytest

import lenslingua.controller as controller_module
from lenslingua.capture import CapturedMedia
from lenslingua.controller import AppController
from lenslingua.db import HistoryStore, MemoryKeyValueStore, UserStore
from lenslingua.db.users import USERS_KEY
from lenslingua.errors import ProviderError, StorageConflictError
from lenslingua.extraction import ExtractionBackend
from lenslingua.models import AppStatus, ExtractedItem, ExtractionResult

_ITEMS = [
    ExtractedItem(
        original_text="Bratwurst",
        translated_text="Grilled sausage",
        context="Pork sausage, usually served with mustard.",
        allergens="mustard",
    )
]


class FakeBackend(ExtractionBackend):
    """Returns canned results; optionally blocks until released."""

    def __init__(self, items=None, error=None):
        super().__init__()
        self.items = list(_ITEMS if items is None else items)
        self.error = error
        self.calls = []
        self.entered = asyncio.Event()
        self.release = None

    async def _answer(self, kind, data, mime_type, language):
        self.calls.append((kind, data, mime_type, language))
        self.entered.set()
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return ExtractionResult(items=list(self.items))

    async def extract_from_image(self, image_bytes, mime_type, target_language):
        return await self._answer("image", image_bytes, mime_type, target_language)

    async def extract_from_audio(self, audio_bytes, mime_type, target_language):
        return await self._answer("audio", audio_bytes, mime_type, target_language)


class FakeMicrophone:
    def record(self, seconds, stop_event=None):
        return CapturedMedia(data=b"RIFFwav", mime_type="audio/wav")


class FakeCamera:
    closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        FakeCamera.closed = True

    def capture_frame(self):
        return CapturedMedia(data=b"\xff\xd8camera", mime_type="image/jpeg")


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def controller(kv, backend, monkeypatch):
    monkeypatch.setattr(
        controller_module,
        "normalize_image",
        lambda data, **kwargs: CapturedMedia(data=b"jpeg:" + data, mime_type="image/jpeg"),
    )
    users = UserStore(kv, iterations=1000)
    ctrl = AppController(
        users,
        HistoryStore(kv),
        backend,
        camera_factory=FakeCamera,
        microphone=FakeMicrophone(),
    )
    assert ctrl.sign_up("traveller@example.com", "pw").ok
    assert ctrl.sign_in("traveller@example.com", "pw").ok
    return ctrl


class TestSession:
    def test_sign_in_wrong_password(self, controller):
        controller.sign_out()
        outcome = controller.sign_in("traveller@example.com", "nope")
        assert not outcome.ok
        assert outcome.error_kind == "validation_error"
        assert "Invalid credentials" in outcome.message
        assert not controller.is_signed_in

    def test_sign_in_blank(self, controller):
        controller.sign_out()
        assert controller.sign_in("  ", "pw").error_kind == "validation_error"
        assert controller.sign_in("traveller@example.com", "").error_kind == "validation_error"

    def test_sign_in_normalizes_email(self, controller):
        controller.sign_out()
        assert controller.sign_in("  Traveller@Example.COM ", "pw").ok
        assert controller.user_email == "traveller@example.com"

    def test_sign_up_duplicate(self, controller):
        outcome = controller.sign_up("TRAVELLER@example.com", "other")
        assert outcome.error_kind == "duplicate_user"

    @pytest.mark.asyncio
    async def test_translate_requires_sign_in(self, controller, backend):
        controller.sign_out()
        outcome = await controller.translate_image(b"png")
        assert not outcome.ok
        assert controller.status is AppStatus.ERROR
        assert backend.calls == []


class TestTargetLanguage:
    def test_by_code_or_name(self, controller):
        assert controller.set_target_language("ja").ok
        assert controller.target_language == "Japanese"
        assert controller.set_target_language("korean").ok
        assert controller.target_language == "Korean"

    def test_unsupported(self, controller):
        outcome = controller.set_target_language("Klingon")
        assert outcome.error_kind == "validation_error"
        assert controller.target_language == "English"


class TestTranslate:
    @pytest.mark.asyncio
    async def test_image_success_saves_history(self, controller, backend):
        controller.set_target_language("French")
        outcome = await controller.translate_image(b"png")

        assert outcome.ok
        assert outcome.items == _ITEMS
        assert controller.status is AppStatus.SUCCESS
        assert controller.results == _ITEMS
        assert controller.active_record_id == outcome.record_id
        assert backend.calls == [("image", b"jpeg:png", "image/jpeg", "French")]

        records = controller.history()
        assert len(records) == 1
        assert records[0].kind == "scan"
        assert records[0].target_language == "French"
        assert records[0].owner_email == "traveller@example.com"

    @pytest.mark.asyncio
    async def test_audio_success(self, controller, backend):
        outcome = await controller.translate_audio(b"webm", "audio/webm;codecs=opus")
        assert outcome.ok
        assert backend.calls[0][:3] == ("audio", b"webm", "audio/webm;codecs=opus")
        assert controller.history()[0].kind == "audio"

    @pytest.mark.asyncio
    async def test_microphone(self, controller, backend):
        outcome = await controller.translate_microphone(1)
        assert outcome.ok
        assert backend.calls[0][2] == "audio/wav"

    @pytest.mark.asyncio
    async def test_camera_releases_device(self, controller, backend):
        FakeCamera.closed = False
        outcome = await controller.translate_camera()
        assert outcome.ok
        assert FakeCamera.closed
        assert backend.calls[0][1] == b"\xff\xd8camera"

    @pytest.mark.asyncio
    async def test_audio_file(self, controller, tmp_path, backend):
        path = tmp_path / "order.ogg"
        path.write_bytes(b"OggS")
        outcome = await controller.translate_audio_file(path)
        assert outcome.ok
        assert backend.calls[0][2] == "audio/ogg"

    @pytest.mark.asyncio
    async def test_no_text_found(self, controller, backend):
        backend.items = []
        outcome = await controller.translate_image(b"blank")
        assert outcome.error_kind == "no_text_found"
        assert controller.status is AppStatus.ERROR
        assert controller.history() == []

    @pytest.mark.asyncio
    async def test_provider_error(self, controller, backend):
        backend.error = ProviderError("Rate limit exceeded", status_code=429)
        outcome = await controller.translate_image(b"png")
        assert outcome.error_kind == "provider_error"
        assert outcome.message == "Rate limit exceeded"
        assert controller.status is AppStatus.ERROR
        assert controller.error_message == "Rate limit exceeded"
        assert controller.history() == []

    @pytest.mark.asyncio
    async def test_unexpected_error(self, controller, backend):
        backend.error = RuntimeError("boom")
        outcome = await controller.translate_image(b"png")
        assert outcome.error_kind == "unexpected"
        assert controller.status is AppStatus.ERROR

    @pytest.mark.asyncio
    async def test_missing_backend(self, kv):
        ctrl = AppController(UserStore(kv, iterations=1000), HistoryStore(kv), None)
        ctrl.sign_up("a@x.com", "pw")
        ctrl.sign_in("a@x.com", "pw")
        outcome = await ctrl.translate_audio(b"wav", "audio/wav")
        assert outcome.error_kind == "validation_error"

    @pytest.mark.asyncio
    async def test_dismiss_error(self, controller, backend):
        backend.error = ProviderError()
        await controller.translate_image(b"png")
        controller.dismiss_error()
        assert controller.status is AppStatus.IDLE
        assert controller.error_message is None
        assert controller.can_start

    @pytest.mark.asyncio
    async def test_retry_after_error(self, controller, backend):
        backend.error = ProviderError()
        await controller.translate_image(b"png")
        backend.error = None
        outcome = await controller.translate_image(b"png")
        assert outcome.ok
        assert controller.error_kind is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_request_rejected_while_processing(self, controller, backend):
        backend.release = asyncio.Event()
        first = asyncio.create_task(controller.translate_image(b"one"))
        await backend.entered.wait()

        assert controller.status is AppStatus.PROCESSING
        assert not controller.can_start
        second = await controller.translate_audio(b"two", "audio/wav")
        assert second.error_kind == "busy"
        assert controller.status is AppStatus.PROCESSING

        backend.release.set()
        assert (await first).ok
        assert len(backend.calls) == 1
        assert len(controller.history()) == 1

    @pytest.mark.asyncio
    async def test_reset_abandons_in_flight_result(self, controller, backend):
        backend.release = asyncio.Event()
        task = asyncio.create_task(controller.translate_image(b"one"))
        await backend.entered.wait()

        controller.reset()
        assert controller.status is AppStatus.IDLE

        backend.release.set()
        outcome = await task

        assert outcome.error_kind == "abandoned"
        assert controller.status is AppStatus.IDLE
        assert controller.results == []
        assert controller.history() == []

    @pytest.mark.asyncio
    async def test_reset_abandons_in_flight_error(self, controller, backend):
        backend.release = asyncio.Event()
        backend.error = ProviderError()
        task = asyncio.create_task(controller.translate_image(b"one"))
        await backend.entered.wait()

        controller.reset()
        backend.release.set()
        outcome = await task

        assert outcome.error_kind == "abandoned"
        assert controller.status is AppStatus.IDLE
        assert controller.error_kind is None


class TestHistoryActions:
    @pytest.mark.asyncio
    async def test_open_record(self, controller):
        controller.set_target_language("German")
        saved = await controller.translate_image(b"png")
        controller.reset()
        controller.set_target_language("English")

        outcome = controller.open_record(saved.record_id)
        assert outcome.ok
        assert controller.status is AppStatus.SUCCESS
        assert controller.results == _ITEMS
        assert controller.target_language == "German"
        assert controller.active_record_id == saved.record_id

    def test_open_unknown_record(self, controller):
        assert controller.open_record("missing").error_kind == "validation_error"

    @pytest.mark.asyncio
    async def test_open_other_users_record(self, controller, kv):
        saved = await controller.translate_image(b"png")
        controller.sign_out()
        controller.sign_up("other@example.com", "pw")
        controller.sign_in("other@example.com", "pw")
        assert not controller.open_record(saved.record_id).ok

    @pytest.mark.asyncio
    async def test_delete_active_record_resets(self, controller):
        await controller.translate_image(b"png")
        assert controller.delete_active_record().removed == 1
        assert controller.status is AppStatus.IDLE
        assert controller.active_record_id is None
        assert controller.history() == []
        assert not controller.delete_active_record().ok

    @pytest.mark.asyncio
    async def test_delete_other_record_keeps_result(self, controller):
        first = await controller.translate_image(b"one")
        second = await controller.translate_image(b"two")
        assert controller.delete_record(first.record_id).removed == 1
        assert controller.active_record_id == second.record_id
        assert controller.status is AppStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_clear_history_only_own(self, controller):
        await controller.translate_image(b"one")
        controller.sign_out()
        controller.sign_up("other@example.com", "pw")
        controller.sign_in("other@example.com", "pw")
        await controller.translate_image(b"two")
        await controller.translate_image(b"three")

        assert controller.clear_history().removed == 2
        assert controller.status is AppStatus.IDLE
        assert controller.history() == []

        controller.sign_out()
        controller.sign_in("traveller@example.com", "pw")
        assert len(controller.history()) == 1

    @pytest.mark.asyncio
    async def test_export_results_json(self, controller):
        await controller.translate_image(b"png")
        exported = json.loads(controller.export_results_json())
        assert exported == [
            {
                "originalText": "Bratwurst",
                "translatedText": "Grilled sausage",
                "context": "Pork sausage, usually served with mustard.",
                "allergens": "mustard",
            }
        ]

    def test_history_when_signed_out(self, controller):
        controller.sign_out()
        assert controller.history() == []
        assert controller.clear_history().error_kind == "validation_error"


class LosingStore(MemoryKeyValueStore):
    """Conditional writes start losing every race once ``losing`` is set."""

    losing = False

    def compare_and_set(self, key, value, expected_version):
        if self.losing:
            return False
        return super().compare_and_set(key, value, expected_version)


class TestStorageConflicts:
    @pytest.fixture
    def kv(self):
        return LosingStore()

    @pytest.mark.asyncio
    async def test_delete_record_reports_conflict(self, controller, kv):
        saved = await controller.translate_image(b"png")
        kv.losing = True

        outcome = controller.delete_record(saved.record_id)

        assert not outcome.ok
        assert outcome.error_kind == StorageConflictError.kind
        assert controller.status is AppStatus.SUCCESS
        assert controller.active_record_id == saved.record_id
        assert len(controller.history()) == 1

    @pytest.mark.asyncio
    async def test_clear_history_reports_conflict(self, controller, kv):
        await controller.translate_image(b"png")
        kv.losing = True

        outcome = controller.clear_history()

        assert outcome.error_kind == StorageConflictError.kind
        assert len(controller.history()) == 1

    @pytest.mark.asyncio
    async def test_translate_reports_conflict_on_save(self, controller, kv):
        kv.losing = True
        outcome = await controller.translate_image(b"png")
        assert outcome.error_kind == StorageConflictError.kind
        assert controller.status is AppStatus.ERROR

    def test_legacy_sign_in_survives_failed_upgrade(self, controller, kv):
        controller.sign_out()
        kv.put_raw(USERS_KEY, json.dumps([{"email": "old@x.com", "password": "pw"}]))
        kv.losing = True

        outcome = controller.sign_in("old@x.com", "pw")

        assert outcome.ok
        assert controller.user_email == "old@x.com"
