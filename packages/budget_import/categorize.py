"""Category assignment for parsed statement rows.

Public API:
    - :func:`categorize_transactions`
    - :func:`resolve_from_mappings` (pure cache lookup, also used to seed dedup)
    - :func:`summarize_batch_outcomes`

Flow
----
1. Descriptions the household imported before are answered from the mapping
   cache with ``high`` confidence and no model call.
2. The remaining rows are split into fixed-size batches (input order kept)
   and sent to the model concurrently through :func:`~budget_import.pmap.p_map`.
3. Each batch produces a :class:`BatchSuccess` or :class:`BatchFailure`; a
   failed batch only degrades its own rows to ``unknown``.
4. Cache hits and batch results are merged and sorted by index.

Indices are 1-based and global: row ``i`` of the input is always index
``i + 1`` no matter which batch it lands in or whether the batch failed.
"""

from __future__ import annotations

import time
import unicodedata
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import prompting
from .config import Settings
from .llm import LlmClient
from .logging_setup import get_logger
from .models import (
    CategorizationResult,
    CategorizationRun,
    CategoryInfo,
    Confidence,
    ParsedRow,
    UserMapping,
)
from .pmap import p_map

_logger = get_logger("budget_import.categorize")

REASON_CACHED = "matched a previous import"
REASON_FAILED = "categorization failed"
REASON_MISSING = "no answer from the model"
REASON_UNAVAILABLE = "automatic categorization unavailable"

ERROR_UNAVAILABLE = "automatic categorization unavailable: OPENAI_API_KEY is not configured"


# ---- Mapping cache -----------------------------------------------------------


def normalize_description(text: str | None) -> str:
    """NFKC, trim and collapse internal whitespace."""

    if not text:
        return ""
    return " ".join(unicodedata.normalize("NFKC", text).split())


def build_mapping_cache(mappings: Iterable[UserMapping]) -> dict[str, UserMapping]:
    """Key mappings by normalized description; the first (most recent) wins."""

    cache: dict[str, UserMapping] = {}
    for m in mappings:
        key = normalize_description(m.description)
        if key and key not in cache:
            cache[key] = m
    return cache


def _from_mapping(index: int, m: UserMapping) -> CategorizationResult:
    if m.parent_category_id:
        return CategorizationResult(
            index=index,
            category_id=m.parent_category_id,
            sub_category_id=m.category_id,
            confidence=Confidence.HIGH,
            reason=REASON_CACHED,
        )
    return CategorizationResult(
        index=index,
        category_id=m.category_id,
        sub_category_id=None,
        confidence=Confidence.HIGH,
        reason=REASON_CACHED,
    )


def resolve_from_mappings(
    transactions: Sequence[ParsedRow], mappings: Iterable[UserMapping]
) -> dict[int, CategorizationResult]:
    """Return cache hits keyed by 1-based index."""

    cache = build_mapping_cache(mappings)
    if not cache:
        return {}
    hits: dict[int, CategorizationResult] = {}
    for i, row in enumerate(transactions):
        m = cache.get(normalize_description(row.description))
        if m is not None:
            hits[i + 1] = _from_mapping(i + 1, m)
    return hits


def _unknown(index: int, reason: str) -> CategorizationResult:
    return CategorizationResult(
        index=index,
        category_id=None,
        sub_category_id=None,
        confidence=Confidence.UNKNOWN,
        reason=reason,
    )


# ---- Batch outcomes ----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BatchSuccess:
    start: int
    end: int
    results: list[CategorizationResult]


@dataclass(frozen=True, slots=True)
class BatchFailure:
    start: int
    end: int
    error: str

    def degraded(self) -> list[CategorizationResult]:
        return [_unknown(i, REASON_FAILED) for i in range(self.start, self.end + 1)]


BatchOutcome = BatchSuccess | BatchFailure


def summarize_batch_outcomes(outcomes: Sequence[BatchOutcome]) -> str | None:
    """Collapse per-batch outcomes into the user-facing warning (or ``None``)."""

    failures = [o for o in outcomes if isinstance(o, BatchFailure)]
    if not failures:
        return None
    if len(failures) == len(outcomes):
        return f"automatic categorization failed completely: {failures[-1].error}"
    return f"automatic categorization failed for {len(failures)} of {len(outcomes)} batches"


# ---- Model reply validation --------------------------------------------------


class _ReplyItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    index: int
    category_id: str | None = Field(default=None, alias="categoryId")
    sub_category_id: str | None = Field(default=None, alias="subCategoryId")
    confidence: Confidence = Confidence.UNKNOWN
    reason: str | None = None
    is_transfer: bool = Field(default=False, alias="isTransfer")

    @field_validator("category_id", "sub_category_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in ("", "null", "none"):
            return None
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in {c.value for c in Confidence}:
            return v.strip().lower()
        return Confidence.UNKNOWN

    @field_validator("is_transfer", mode="before")
    @classmethod
    def _coerce_flag(cls, v: Any) -> Any:
        return v if isinstance(v, bool) else False


class CategoryIndex:
    """Lookup of top-level ids and child -> parent ids for a category tree."""

    def __init__(self, categories: Sequence[CategoryInfo]) -> None:
        self._top: dict[str, CategoryInfo] = {c.id: c for c in categories}
        self._parent_of: dict[str, str] = {
            child.id: c.id for c in categories for child in c.children
        }

    def resolve(
        self, category_id: str | None, sub_category_id: str | None
    ) -> tuple[str | None, str | None]:
        if category_id in self._top:
            if sub_category_id and self._parent_of.get(sub_category_id) == category_id:
                return category_id, sub_category_id
            return category_id, None
        if category_id and category_id in self._parent_of:
            # A sub-category id given as the category.
            return self._parent_of[category_id], category_id
        if sub_category_id and sub_category_id in self._parent_of:
            return self._parent_of[sub_category_id], sub_category_id
        return None, None


def _parse_reply(
    payload: Any, *, start: int, end: int, index: CategoryIndex
) -> dict[int, CategorizationResult]:
    if isinstance(payload, Mapping):
        # Tolerate {"results": [...]} wrappers.
        payload = payload.get("results")
    if not isinstance(payload, list):
        raise ValueError("model reply is not a JSON array")

    out: dict[int, CategorizationResult] = {}
    for raw in payload:
        try:
            item = _ReplyItem.model_validate(raw)
        except ValidationError:
            continue
        if not start <= item.index <= end or item.index in out:
            continue
        cat, sub = index.resolve(item.category_id, item.sub_category_id)
        out[item.index] = CategorizationResult(
            index=item.index,
            category_id=cat,
            sub_category_id=sub,
            confidence=item.confidence if cat else Confidence.UNKNOWN,
            is_transfer=item.is_transfer,
            reason=item.reason,
        )
    return out


# ---- Batch execution ---------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Batch:
    items: list[tuple[int, ParsedRow]]

    @property
    def start(self) -> int:
        return self.items[0][0]

    @property
    def end(self) -> int:
        return self.items[-1][0]


def _make_batches(items: Sequence[tuple[int, ParsedRow]], size: int) -> list[_Batch]:
    return [_Batch(list(items[k : k + size])) for k in range(0, len(items), size)]


def _run_batch(
    batch: _Batch,
    *,
    client: LlmClient,
    categories: Sequence[CategoryInfo],
    mappings: Sequence[UserMapping],
    index: CategoryIndex,
    settings: Settings,
) -> BatchOutcome:
    t0 = time.perf_counter()
    try:
        prompt = prompting.build_categorize_prompt(
            batch.items, categories, mappings, max_examples=settings.max_examples
        )
        payload = client.complete_json(
            instructions=prompting.CATEGORIZE_INSTRUCTIONS,
            prompt=prompt,
            model=settings.categorize_model,
        )
        parsed = _parse_reply(payload, start=batch.start, end=batch.end, index=index)
    except Exception as e:  # noqa: BLE001 - a failed batch must not cancel its siblings
        _logger.error(
            "categorize:batch_failed start=%d end=%d latency_ms=%.2f error=%s",
            batch.start,
            batch.end,
            (time.perf_counter() - t0) * 1000.0,
            e.__class__.__name__,
        )
        return BatchFailure(batch.start, batch.end, str(e) or e.__class__.__name__)

    results = [parsed.get(n) or _unknown(n, REASON_MISSING) for n, _row in batch.items]
    _logger.info(
        "categorize:batch_done start=%d end=%d answered=%d latency_ms=%.2f",
        batch.start,
        batch.end,
        len(parsed),
        (time.perf_counter() - t0) * 1000.0,
    )
    return BatchSuccess(batch.start, batch.end, results)


def categorize_transactions(
    transactions: Sequence[ParsedRow],
    categories: Sequence[CategoryInfo],
    mappings: Sequence[UserMapping],
    *,
    client: LlmClient | None,
    settings: Settings,
) -> CategorizationRun:
    """Assign categories to ``transactions``; one result per row, sorted by index."""

    n = len(transactions)
    if n == 0:
        return CategorizationRun(results=[])

    if client is None:
        return CategorizationRun(
            results=[_unknown(i, REASON_UNAVAILABLE) for i in range(1, n + 1)],
            ai_error=ERROR_UNAVAILABLE,
        )

    by_index = resolve_from_mappings(transactions, mappings)
    misses = [(i + 1, row) for i, row in enumerate(transactions) if (i + 1) not in by_index]
    _logger.info("categorize:start rows=%d cache_hits=%d misses=%d", n, len(by_index), len(misses))

    ai_error: str | None = None
    if misses:
        batches = _make_batches(misses, settings.batch_size)
        index = CategoryIndex(categories)
        outcomes: list[BatchOutcome] = p_map(
            batches,
            lambda b: _run_batch(
                b,
                client=client,
                categories=categories,
                mappings=mappings,
                index=index,
                settings=settings,
            ),
            concurrency=max(1, min(settings.max_concurrency, len(batches))),
        )
        for outcome in outcomes:
            results = outcome.degraded() if isinstance(outcome, BatchFailure) else outcome.results
            for r in results:
                by_index[r.index] = r
        ai_error = summarize_batch_outcomes(outcomes)

    return CategorizationRun(
        results=[by_index[i] for i in sorted(by_index)],
        ai_error=ai_error,
    )


__all__ = [
    "BatchFailure",
    "BatchOutcome",
    "BatchSuccess",
    "CategoryIndex",
    "ERROR_UNAVAILABLE",
    "build_mapping_cache",
    "categorize_transactions",
    "normalize_description",
    "resolve_from_mappings",
    "summarize_batch_outcomes",
]
