"""Data models for ``budget_import``.

Two families live here:

- frozen dataclasses for records that only travel inside the pipeline
  (parsed rows, categorization/dedup outcomes, category tree, user mappings);
- pydantic models for everything that crosses the HTTP boundary (preview rows
  sent to the browser and sent back on confirm, summary, confirm result).
  These serialize with camelCase keys, which is what the UI consumes.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TransactionType(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Confidence(StrEnum):
    HIGH = "high"
    LOW = "low"
    UNKNOWN = "unknown"


class ImportRowStatus(StrEnum):
    NEW = "new"
    DUPLICATE = "duplicate"
    SUSPECT = "suspect"
    RECURRING_MATCH = "recurring_match"
    TRANSFER = "transfer"


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedRow:
    """A single statement line after parsing.

    ``amount`` is always a non-negative magnitude; direction lives in
    ``type``. The row's position in the parser output is its canonical
    0-based index for the rest of the pipeline.
    """

    date: dt.date
    description: str
    amount: float
    type: TransactionType
    installment_info: str | None = None


@dataclass(frozen=True, slots=True)
class CategoryChild:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class CategoryInfo:
    """A top-level category and its (single level of) sub-categories."""

    id: str
    name: str
    type: TransactionType
    children: tuple[CategoryChild, ...] = ()

    def child(self, child_id: str | None) -> CategoryChild | None:
        if child_id is None:
            return None
        for c in self.children:
            if c.id == child_id:
                return c
        return None


@dataclass(frozen=True, slots=True)
class UserMapping:
    """A description the household already imported, and where it went.

    ``category_id`` is the category the transaction was stored under, which
    may itself be a sub-category; ``parent_category_id`` is set in that case.
    """

    description: str
    category_id: str
    parent_category_id: str | None
    category_name: str


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    """Outcome for one transaction, keyed by its 1-based ``index``."""

    index: int
    category_id: str | None
    sub_category_id: str | None
    confidence: Confidence
    is_transfer: bool = False
    reason: str | None = None

    @property
    def effective_category_id(self) -> str | None:
        return self.sub_category_id or self.category_id


@dataclass(frozen=True, slots=True)
class CategorizationRun:
    """All categorization results (sorted by index) plus the aggregate warning."""

    results: list[CategorizationResult]
    ai_error: str | None = None

    def by_index(self) -> dict[int, CategorizationResult]:
        return {r.index: r for r in self.results}


@dataclass(frozen=True, slots=True)
class DedupCandidate:
    date: dt.date
    source_description: str
    amount: float
    type: TransactionType
    category_id: str | None = None


@dataclass(frozen=True, slots=True)
class DedupResult:
    status: ImportRowStatus
    duplicate_of_id: str | None = None
    duplicate_reason: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractedRow:
    """A transaction pulled out of a PDF/image together with its category."""

    date: dt.date
    description: str
    amount: float
    type: TransactionType
    category_id: str | None = None
    sub_category_id: str | None = None
    confidence: Confidence = Confidence.UNKNOWN
    is_transfer: bool = False


# ---------------------------------------------------------------------------
# Wire models (camelCase JSON)
# ---------------------------------------------------------------------------


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportRow(_WireModel):
    """A preview row as shown to (and edited by) the user.

    ``index`` is the 0-based parse order and the only stable key through the
    pipeline. ``is_selected`` defaults to ``status == "new"`` when the caller
    does not supply it.
    """

    index: int
    date: dt.date
    source_description: str
    amount: float = Field(ge=0)
    type: TransactionType
    category_id: str | None = None
    category_name: str | None = None
    sub_category_id: str | None = None
    sub_category_name: str | None = None
    confidence: Confidence = Confidence.UNKNOWN
    status: ImportRowStatus = ImportRowStatus.NEW
    duplicate_of_id: str | None = None
    duplicate_reason: str | None = None
    is_selected: bool = False
    notes: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_selection(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "isSelected" not in data and "is_selected" not in data:
            status = data.get("status", ImportRowStatus.NEW)
            data = {**data, "is_selected": str(status) == ImportRowStatus.NEW.value}
        return data


class DateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(default="", alias="from")
    to: str = ""


class ImportSummary(_WireModel):
    total_found: int
    new_count: int
    duplicate_count: int
    suspect_count: int
    transfer_count: int
    recurring_match_count: int
    date_range: DateRange = Field(default_factory=DateRange)


class ImportPreview(_WireModel):
    rows: list[ImportRow]
    summary: ImportSummary
    ai_error: str | None = None


class ConfirmResult(_WireModel):
    success: bool
    batch_id: str
    imported_count: int
    message: str


class ConfirmRequest(_WireModel):
    """Body of a confirm call: the (possibly edited) preview rows."""

    rows: list[ImportRow]
    source_label: str
    file_name: str
    file_type: str = ""


class ImportHistoryEntry(_WireModel):
    """One confirmed import as listed in the history view."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    file_name: str
    file_type: str
    source_label: str
    total_found: int
    imported: int
    duplicates: int
    skipped: int
    created_at: dt.datetime


__all__ = [
    "CategorizationResult",
    "CategorizationRun",
    "CategoryChild",
    "CategoryInfo",
    "Confidence",
    "ConfirmRequest",
    "ConfirmResult",
    "DateRange",
    "DedupCandidate",
    "DedupResult",
    "ExtractedRow",
    "ImportHistoryEntry",
    "ImportPreview",
    "ImportRow",
    "ImportRowStatus",
    "ImportSummary",
    "ParsedRow",
    "TransactionType",
    "UserMapping",
]
