"""TOML configuration loader for LensLingua."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class StorageConfig:
    path: str = "~/.config/lenslingua/lenslingua.db"
    max_write_attempts: int = 5


@dataclass
class OpenRouterConfig:
    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.0-flash-exp:free"
    referer: str = "https://github.com/lenslingua/lenslingua"
    title: str = "LensLingua"


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class ClaudeConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class ExtractionConfig:
    backend: str = "openrouter"
    max_upload_mb: float = 10.0
    timeout: float = 60.0
    openrouter: OpenRouterConfig = field(default_factory=OpenRouterConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)


@dataclass
class CaptureConfig:
    camera_index: int = 0
    max_dimension: int = 1024
    jpeg_quality: int = 85
    sample_rate: int = 16000
    record_seconds: float = 5.0


@dataclass
class AppConfig:
    target_language: str = "English"


@dataclass
class LensLinguaConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    app: AppConfig = field(default_factory=AppConfig)


def load_config(path: str | Path | None = None) -> LensLinguaConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    sto = raw.get("storage", {})
    ext = raw.get("extraction", {})
    cap = raw.get("capture", {})
    app = raw.get("app", {})

    openrouter_cfg = ext.get("openrouter", {})
    gemini_cfg = ext.get("gemini", {})
    claude_cfg = ext.get("claude", {})

    # Resolve API keys: config file → environment variable
    openrouter_api_key = openrouter_cfg.get("api_key", "") or os.environ.get(
        "OPENROUTER_API_KEY", ""
    )
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    defaults_or = OpenRouterConfig()

    return LensLinguaConfig(
        storage=StorageConfig(
            path=os.environ.get("LENSLINGUA_DB") or sto.get(
                "path", StorageConfig.path
            ),
            max_write_attempts=sto.get("max_write_attempts", 5),
        ),
        extraction=ExtractionConfig(
            backend=ext.get("backend", "openrouter"),
            max_upload_mb=ext.get("max_upload_mb", 10.0),
            timeout=ext.get("timeout", 60.0),
            openrouter=OpenRouterConfig(
                api_key=openrouter_api_key,
                base_url=openrouter_cfg.get("base_url", defaults_or.base_url),
                model=openrouter_cfg.get("model", defaults_or.model),
                referer=openrouter_cfg.get("referer", defaults_or.referer),
                title=openrouter_cfg.get("title", defaults_or.title),
            ),
            gemini=GeminiConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
            claude=ClaudeConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        capture=CaptureConfig(
            camera_index=cap.get("camera_index", 0),
            max_dimension=cap.get("max_dimension", 1024),
            jpeg_quality=cap.get("jpeg_quality", 85),
            sample_rate=cap.get("sample_rate", 16000),
            record_seconds=cap.get("record_seconds", 5.0),
        ),
        app=AppConfig(
            target_language=app.get("target_language", "English"),
        ),
    )
