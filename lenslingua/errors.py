"""Error taxonomy shared by the stores, the extraction client and the controller."""

from __future__ import annotations


class LensLinguaError(Exception):
    """Base class for every error the controller knows how to report.

    ``kind`` is a stable machine-readable tag; ``user_message`` is what the
    user sees.
    """

    kind = "error"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.user_message = message or self.default_message


class PermissionDenied(LensLinguaError):
    kind = "permission_denied"
    default_message = "Could not access the device. Please check permissions."


class CaptureError(LensLinguaError):
    kind = "capture_error"
    default_message = "Failed to capture media."


class ProviderError(LensLinguaError):
    """The upstream AI provider rejected or failed the request."""

    kind = "provider_error"
    default_message = "The translation service is unavailable. Please try again later."

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(LensLinguaError):
    """The provider answered, but not with the JSON we asked for. Retryable."""

    kind = "malformed_response"
    default_message = "Received malformed data. Please try again."


class NoTextFoundError(LensLinguaError):
    kind = "no_text_found"
    default_message = "We couldn't find any clear text."


class DuplicateUserError(LensLinguaError):
    kind = "duplicate_user"
    default_message = "An account with this email already exists."


class ValidationError(LensLinguaError):
    kind = "validation_error"
    default_message = "Invalid input."


class BusyError(LensLinguaError):
    kind = "busy"
    default_message = "Another translation is still in progress."


class StorageConflictError(LensLinguaError):
    kind = "storage_conflict"
    default_message = "Saved data was changed elsewhere. Please try again."
