"""LensLingua: translate menus, labels and speech with a multimodal AI model."""

from .config import (
    AppConfig,
    CaptureConfig,
    ExtractionConfig,
    LensLinguaConfig,
    StorageConfig,
    load_config,
)
from .controller import AppController, Outcome
from .db import HistoryStore, MemoryKeyValueStore, SQLiteKeyValueStore, UserStore
from .errors import (
    DuplicateUserError,
    LensLinguaError,
    MalformedResponseError,
    PermissionDenied,
    ProviderError,
    ValidationError,
)
from .extraction import ExtractionBackend, create_backend
from .models import AppStatus, ExtractedItem, ExtractionResult, HistoryItem, UserRecord

__all__ = [
    "AppController",
    "Outcome",
    "AppStatus",
    "ExtractedItem",
    "ExtractionResult",
    "HistoryItem",
    "UserRecord",
    "HistoryStore",
    "UserStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "ExtractionBackend",
    "create_backend",
    "LensLinguaError",
    "PermissionDenied",
    "ProviderError",
    "MalformedResponseError",
    "DuplicateUserError",
    "ValidationError",
    "LensLinguaConfig",
    "StorageConfig",
    "ExtractionConfig",
    "CaptureConfig",
    "AppConfig",
    "load_config",
]
