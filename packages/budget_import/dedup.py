"""Duplicate detection for imported rows against stored transactions.

Each candidate is classified by the first tier that matches:

1. ``duplicate``: same source label, description, amount and date as a row
   already imported from that source.
2. ``suspect``: a manually entered row (no source label) with the same amount
   within two days.
3. ``recurring_match``: a fixed or recurring row with the same amount, type
   and category in the same calendar month. Only checked when the candidate
   already has a category.
4. ``new``.

The database is queried once per call for the whole date window; matching
itself is the pure :func:`classify_candidate`.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from budget_db.models import Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import DedupCandidate, DedupResult, ImportRowStatus

_logger = get_logger("budget_import.dedup")

_WINDOW_DAYS = 3
_SUSPECT_MAX_DAYS = 2

REASON_DUPLICATE = "exact duplicate: an identical transaction was already imported"
REASON_SUSPECT = "possible duplicate: a manual transaction with the same amount exists"
REASON_RECURRING = "already recorded as a fixed/recurring transaction"

_CENT = Decimal("0.01")


def _money(value: float | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def classify_candidate(
    existing: Sequence[Transaction],
    candidate: DedupCandidate,
    source_label: str,
) -> DedupResult:
    """Return the first matching tier for ``candidate`` among ``existing``.

    ``existing`` order decides which row is reported as ``duplicate_of_id``.
    """

    amount = _money(candidate.amount)
    iso_date = candidate.date.isoformat()

    for e in existing:
        if (
            e.source_label == source_label
            and e.source_description == candidate.source_description
            and _money(e.amount) == amount
            and e.date.isoformat() == iso_date
        ):
            return DedupResult(ImportRowStatus.DUPLICATE, e.id, REASON_DUPLICATE)

    for e in existing:
        if (
            e.source == "MANUAL"
            and not e.source_label
            and _money(e.amount) == amount
            and abs((e.date - candidate.date).days) <= _SUSPECT_MAX_DAYS
        ):
            return DedupResult(ImportRowStatus.SUSPECT, e.id, REASON_SUSPECT)

    if candidate.category_id:
        for e in existing:
            if (
                (e.is_fixed or e.is_recurring)
                and _money(e.amount) == amount
                and e.type == str(candidate.type)
                and e.category_id == candidate.category_id
                and e.date.month == candidate.date.month
                and e.date.year == candidate.date.year
            ):
                return DedupResult(ImportRowStatus.RECURRING_MATCH, e.id, REASON_RECURRING)

    return DedupResult(ImportRowStatus.NEW)


def load_window(
    session: Session, *, household_id: str, candidates: Sequence[DedupCandidate]
) -> list[Transaction]:
    """Stored transactions dated within three days of any candidate."""

    lo = min(c.date for c in candidates) - timedelta(days=_WINDOW_DAYS)
    hi = max(c.date for c in candidates) + timedelta(days=_WINDOW_DAYS)
    stmt = (
        select(Transaction)
        .where(
            Transaction.household_id == household_id,
            Transaction.date >= lo,
            Transaction.date <= hi,
        )
        .order_by(Transaction.date, Transaction.created_at, Transaction.id)
    )
    return list(session.execute(stmt).scalars())


def check_duplicates(
    session: Session,
    *,
    household_id: str,
    source_label: str,
    transactions: Sequence[DedupCandidate],
) -> list[DedupResult]:
    """Classify each candidate; the result list is aligned with the input."""

    if not transactions:
        return []

    existing = load_window(session, household_id=household_id, candidates=transactions)
    results = [classify_candidate(existing, c, source_label) for c in transactions]

    _logger.info(
        "dedup:done candidates=%d window_rows=%d duplicate=%d suspect=%d recurring=%d",
        len(transactions),
        len(existing),
        sum(r.status is ImportRowStatus.DUPLICATE for r in results),
        sum(r.status is ImportRowStatus.SUSPECT for r in results),
        sum(r.status is ImportRowStatus.RECURRING_MATCH for r in results),
    )
    return results


__all__ = [
    "REASON_DUPLICATE",
    "REASON_RECURRING",
    "REASON_SUSPECT",
    "check_duplicates",
    "classify_candidate",
    "load_window",
]
