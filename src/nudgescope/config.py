"""Configuration and constants for nudgescope."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from nudgescope.exceptions import ConfigError

# Paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DEFAULT_DATA_DIR / "nudgescope.db"
DEFAULT_INDEX_DIR = DEFAULT_DATA_DIR / "index"

# Optional settings file
SETTINGS_JSON_PATH = PROJECT_ROOT / "nudgescope.json"

MODEL_DEFAULT = "claude-sonnet-4-20250514"
OLLAMA_MODEL_DEFAULT = "llama3.1:8b"
OLLAMA_HOST_DEFAULT = "http://localhost:11434"

COLLECTION_NAME = "consultations"

LLM_MODES = ("auto", "api", "ollama")


@dataclass
class AnalysisSettings:
    """Tunables for the batch pipeline.

    Delays are in seconds. The defaults keep external calls slow enough
    for a single local model server.
    """

    # Batch pacing
    batch_size: int = 3
    processing_delay: float = 3.0
    page_delay: float = 5.0
    progress_interval: int = 10
    schedule_interval: float = 300.0

    # Record-level retry around the whole analysis
    max_retry_count: int = 2
    record_retry_delay: float = 1.0

    # Completion retry
    llm_max_attempts: int = 3
    llm_base_delay: float = 1.0
    llm_mode: str = "auto"
    model: str = MODEL_DEFAULT
    ollama_host: str = OLLAMA_HOST_DEFAULT
    max_tokens: int = 1024

    # Retrieval and prompt shaping
    top_k: int = 3
    similarity_threshold: float = 0.75
    max_content_chars: int = 2000
    excerpt_chars: int = 200
    similar_cache_size: int = 256

    # Stale PROCESSING records older than this are put back to PENDING
    stale_after_minutes: int = 30

    # Storage
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    index_dir: Path = field(default_factory=lambda: DEFAULT_INDEX_DIR)
    collection_name: str = COLLECTION_NAME

    def validate(self):
        """Raise ConfigError for values the pipeline cannot run with."""
        for key in (
            "batch_size", "progress_interval", "max_retry_count",
            "llm_max_attempts", "top_k", "max_content_chars", "excerpt_chars",
        ):
            if getattr(self, key) < 1:
                raise ConfigError(f"{key} must be at least 1", config_key=key)
        for key in (
            "processing_delay", "page_delay", "schedule_interval",
            "record_retry_delay", "llm_base_delay", "stale_after_minutes",
            "similar_cache_size",
        ):
            if getattr(self, key) < 0:
                raise ConfigError(f"{key} must not be negative", config_key=key)
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ConfigError(
                "similarity_threshold must be between 0 and 1",
                config_key="similarity_threshold",
            )
        if self.llm_mode not in LLM_MODES:
            raise ConfigError(
                f"Unknown LLM mode: {self.llm_mode}", config_key="llm_mode"
            )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["db_path"] = str(self.db_path)
        data["index_dir"] = str(self.index_dir)
        return data


def _resolve_path(value: str) -> Path:
    path = Path(value)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def _coerce(key: str, value, default):
    """Convert a JSON value to the type of the setting's default."""
    if isinstance(default, Path):
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a path string", config_key=key)
        return _resolve_path(value)
    if isinstance(default, str):
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string", config_key=key)
        return value
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}", config_key=key)
    if isinstance(default, int) and isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{key} must be a whole number, got {value!r}", config_key=key)
    try:
        return type(default)(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}", config_key=key) from None


def load_settings(path: Path | None = None) -> AnalysisSettings:
    """Load settings from a JSON file, falling back to defaults.

    Unknown keys are rejected so typos do not silently fall back to a
    default value. Values are converted to the type of the default, so
    "3" is accepted for an integer setting but "three" is not.
    """
    if path is None:
        path = SETTINGS_JSON_PATH

    settings = AnalysisSettings()
    if not path.exists():
        return settings

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"Settings file is not valid JSON: {path}", details=str(e)
        ) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file must hold a JSON object: {path}")

    known = {f.name for f in fields(AnalysisSettings)}
    for key, value in data.items():
        if key not in known:
            raise ConfigError(f"Unknown setting: {key}", config_key=key)
        setattr(settings, key, _coerce(key, value, getattr(settings, key)))

    settings.validate()
    return settings


def save_settings(settings: AnalysisSettings, path: Path | None = None):
    """Write settings to the JSON file."""
    if path is None:
        path = SETTINGS_JSON_PATH
    settings.validate()
    path.write_text(json.dumps(settings.to_dict(), indent=2, ensure_ascii=False) + "\n")
