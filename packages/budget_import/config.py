"""Runtime settings for the import pipeline.

Settings are read from the environment once per entrypoint (the CLI callback
and the HTTP app factory both call ``load_dotenv()`` first) and then passed
explicitly to the components that need them. Nothing in the package reads the
environment at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_CATEGORIZE_MODEL = "gpt-4o-mini"
_DEFAULT_EXTRACT_MODEL = "gpt-4o"

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_EXTENSIONS: tuple[str, ...] = (".xlsx", ".xls", ".csv", ".pdf", ".png", ".jpg", ".jpeg")
TABULAR_EXTENSIONS: frozenset[str] = frozenset({".xlsx", ".xls", ".csv"})
DOCUMENT_EXTENSIONS: frozenset[str] = frozenset({".pdf", ".png", ".jpg", ".jpeg"})


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value


def _env_str(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable configuration for one process.

    Attributes
    ----------
    openai_api_key:
        Credential for the language model. ``None`` disables AI
        categorization and document extraction (rows come back ``unknown``).
    openai_base_url:
        Optional override for OpenAI-compatible gateways.
    database_url:
        SQLAlchemy URL; falls back to ``DATABASE_URL`` inside ``budget_db``.
    categorize_model / extract_model:
        Model names for the batched categorizer and the document extractor.
    batch_size:
        Transactions per categorization request.
    max_concurrency:
        Upper bound on simultaneous categorization requests.
    max_examples:
        Prior user mappings shown to the model as examples.
    mapping_lookback:
        Distinct imported descriptions loaded into the mapping cache.
    max_upload_bytes:
        Upload size limit enforced before parsing.
    """

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    database_url: str | None = None
    categorize_model: str = _DEFAULT_CATEGORIZE_MODEL
    extract_model: str = _DEFAULT_EXTRACT_MODEL
    batch_size: int = 30
    max_concurrency: int = 8
    max_examples: int = 50
    mapping_lookback: int = 500
    max_upload_bytes: int = MAX_UPLOAD_BYTES

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_base_url=_env_str("OPENAI_BASE_URL"),
            database_url=_env_str("DATABASE_URL"),
            categorize_model=_env_str("BUDGET_IMPORT_CATEGORIZE_MODEL")
            or _DEFAULT_CATEGORIZE_MODEL,
            extract_model=_env_str("BUDGET_IMPORT_EXTRACT_MODEL") or _DEFAULT_EXTRACT_MODEL,
            batch_size=_env_int("BUDGET_IMPORT_BATCH_SIZE", 30),
            max_concurrency=_env_int("BUDGET_IMPORT_MAX_CONCURRENCY", 8),
            max_examples=_env_int("BUDGET_IMPORT_MAX_EXAMPLES", 50),
            mapping_lookback=_env_int("BUDGET_IMPORT_MAPPING_LOOKBACK", 500),
            max_upload_bytes=_env_int("BUDGET_IMPORT_MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES),
        )


__all__ = [
    "ALLOWED_EXTENSIONS",
    "DOCUMENT_EXTENSIONS",
    "MAX_UPLOAD_BYTES",
    "Settings",
    "TABULAR_EXTENSIONS",
]
