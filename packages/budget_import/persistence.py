"""Write side of the import flow.

- ``confirm_import(...)``: commit the rows the user accepted in the preview.
  Writes one ``import_batches`` audit row, bumps the source label's
  ``last_used_at`` and bulk-inserts the transactions.
- ``list_source_labels(...)`` / ``import_history(...)``: small read helpers
  for the import screen.

Functions take an open ``Session`` and only flush; the caller's
``session_scope()`` owns the commit.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from budget_db.models import ImportBatch, ImportSourceLabel, Transaction
from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .errors import ImportCommitError
from .logging_setup import get_logger
from .models import ConfirmResult, ImportHistoryEntry, ImportRow, ImportRowStatus

_logger = get_logger("budget_import.persistence")

_CENT = Decimal("0.01")
_HISTORY_LIMIT = 20


def week_of_month(d: date) -> int:
    """1..5 bucket by day of month (days 29-31 fall into week 5)."""

    day = d.day
    if day <= 7:
        return 1
    if day <= 14:
        return 2
    if day <= 21:
        return 3
    if day <= 28:
        return 4
    return 5


def _to_decimal_2(raw: float) -> Decimal:
    return Decimal(str(raw)).quantize(_CENT, rounding=ROUND_HALF_UP)


def upsert_source_label(session: Session, *, household_id: str, label: str) -> None:
    """Insert the label or refresh its ``last_used_at`` (one statement)."""

    now = datetime.now(UTC)
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        ins: Any = pg_insert
    elif dialect == "sqlite":
        ins = sqlite_insert
    else:
        existing = session.execute(
            select(ImportSourceLabel).where(
                ImportSourceLabel.household_id == household_id,
                ImportSourceLabel.label == label,
            )
        ).scalar_one_or_none()
        if existing is None:
            session.add(ImportSourceLabel(household_id=household_id, label=label, last_used_at=now))
        else:
            existing.last_used_at = now
        session.flush()
        return

    stmt = ins(ImportSourceLabel).values(household_id=household_id, label=label, last_used_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ImportSourceLabel.household_id, ImportSourceLabel.label],
        set_={"last_used_at": stmt.excluded.last_used_at},
    )
    session.execute(stmt)


def confirm_import(
    session: Session,
    *,
    household_id: str,
    rows: Sequence[ImportRow],
    source_label: str,
    file_name: str,
    file_type: str,
) -> ConfirmResult:
    """Persist the selected, categorized rows of a preview.

    Audit counts are computed from the full ``rows`` list, not only the
    accepted subset. Raises :class:`ImportCommitError` (writing nothing) when
    the source label is blank or no row is both selected and categorized.
    The label is stripped the same way the preview strips it, so a re-upload
    under the same label finds these rows as duplicates.
    """

    source_label = (source_label or "").strip()
    if not source_label:
        raise ImportCommitError("a source label is required")

    accepted = [r for r in rows if r.is_selected and r.category_id]
    if not accepted:
        raise ImportCommitError("no transactions were selected for import")

    batch = ImportBatch(
        household_id=household_id,
        file_name=file_name,
        file_type=file_type,
        source_label=source_label,
        total_found=len(rows),
        imported=len(accepted),
        duplicates=sum(1 for r in rows if r.status == ImportRowStatus.DUPLICATE),
        skipped=sum(1 for r in rows if not r.is_selected),
    )
    session.add(batch)
    session.flush()

    upsert_source_label(session, household_id=household_id, label=source_label)

    payloads: list[dict[str, Any]] = [
        {
            "household_id": household_id,
            "amount": _to_decimal_2(r.amount),
            "type": str(r.type),
            "category_id": r.sub_category_id or r.category_id,
            "date": r.date,
            "week_number": week_of_month(r.date),
            "is_fixed": False,
            "is_recurring": False,
            "notes": r.notes or None,
            "source": "IMPORT",
            "source_label": source_label,
            "source_description": r.source_description,
            "import_batch_id": batch.id,
        }
        for r in accepted
    ]
    session.execute(insert(Transaction), payloads)
    session.flush()

    _logger.info(
        "confirm:done household=%s batch_id=%s imported=%d total=%d skipped=%d",
        household_id,
        batch.id,
        batch.imported,
        batch.total_found,
        batch.skipped,
    )
    return ConfirmResult(
        success=True,
        batch_id=batch.id,
        imported_count=len(accepted),
        message=f"{len(accepted)} transactions imported successfully",
    )


def list_source_labels(session: Session, household_id: str) -> list[str]:
    """Labels this household has imported under, most recently used first."""

    stmt = (
        select(ImportSourceLabel.label)
        .where(ImportSourceLabel.household_id == household_id)
        .order_by(ImportSourceLabel.last_used_at.desc(), ImportSourceLabel.label)
    )
    return list(session.execute(stmt).scalars())


def import_history(
    session: Session, household_id: str, *, limit: int = _HISTORY_LIMIT
) -> list[ImportHistoryEntry]:
    stmt = (
        select(ImportBatch)
        .where(ImportBatch.household_id == household_id)
        .order_by(ImportBatch.created_at.desc(), ImportBatch.id)
        .limit(limit)
    )
    return [ImportHistoryEntry.model_validate(b) for b in session.execute(stmt).scalars()]


__all__ = [
    "confirm_import",
    "import_history",
    "list_source_labels",
    "upsert_source_label",
    "week_of_month",
]
