"""Import orchestration: upload -> preview -> confirm.

Public API:
    - :func:`validate_upload`
    - :func:`build_preview`
    - :func:`confirm_import` (re-exported from :mod:`budget_import.persistence`)

Tabular files are parsed locally; categorization runs in a worker thread
while duplicate detection runs against the caller's session in the calling
thread, and the two are joined by row index. PDF and image statements go
through a single extraction call that also categorizes.

Row index is the only join key: row ``i`` of the parser/extractor output is
preview row ``index=i`` and categorization result ``index=i+1``.
"""

from __future__ import annotations

import base64
import datetime as dt
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import PurePath

from sqlalchemy.orm import Session

from .categories import load_category_tree, load_user_mappings
from .categorize import categorize_transactions, resolve_from_mappings
from .config import ALLOWED_EXTENSIONS, MAX_UPLOAD_BYTES, TABULAR_EXTENSIONS, Settings
from .dedup import check_duplicates
from .errors import ImportCommitError, ImportValidationError, StatementReadError
from .extract import extract_document, media_type_for
from .llm import LlmClient
from .logging_setup import get_logger
from .models import (
    CategoryInfo,
    Confidence,
    DateRange,
    DedupCandidate,
    DedupResult,
    ImportPreview,
    ImportRow,
    ImportRowStatus,
    ImportSummary,
    TransactionType,
)
from .parsing import parse_statement
from .persistence import confirm_import
from .rules import extract_installment_info, is_credit_card_source, is_transfer_row

_logger = get_logger("budget_import.pipeline")

MSG_NO_FILE = "no file was uploaded"
MSG_NO_SOURCE_LABEL = "a source label is required"
MSG_TOO_LARGE = "file is too large (maximum {limit} MB)"
MSG_EMPTY = "file is empty"
MSG_UNSUPPORTED = "unsupported file type"
MSG_NO_TRANSACTIONS = "no transactions found in the file; make sure it contains valid data"


# ---- Validation --------------------------------------------------------------


def file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def validate_upload(
    filename: str | None,
    data: bytes | None,
    source_label: str | None,
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> str:
    """Check an upload before any parsing; return its lowercased extension.

    Gates run in order (file, label, size, emptiness, type) and each raises
    :class:`ImportValidationError` with its own message.
    """

    if not filename or data is None:
        raise ImportValidationError(MSG_NO_FILE)
    if not source_label or not source_label.strip():
        raise ImportValidationError(MSG_NO_SOURCE_LABEL)
    if len(data) > max_bytes:
        raise ImportValidationError(MSG_TOO_LARGE.format(limit=max_bytes // (1024 * 1024)))
    if len(data) == 0:
        raise ImportValidationError(MSG_EMPTY)
    ext = file_extension(filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise ImportValidationError(MSG_UNSUPPORTED)
    return ext


# ---- Row assembly ------------------------------------------------------------


def final_status(dedup_status: ImportRowStatus, *, is_transfer: bool) -> ImportRowStatus:
    """Transfers only override rows that would otherwise be ``new``."""

    if is_transfer and dedup_status is ImportRowStatus.NEW:
        return ImportRowStatus.TRANSFER
    return dedup_status


def _category_names(
    categories: Sequence[CategoryInfo], category_id: str | None, sub_category_id: str | None
) -> tuple[str | None, str | None]:
    if not category_id:
        return None, None
    parent = next((c for c in categories if c.id == category_id), None)
    if parent is None:
        return None, None
    child = parent.child(sub_category_id)
    return parent.name, child.name if child else None


def _make_row(
    index: int,
    *,
    categories: Sequence[CategoryInfo],
    dedup: DedupResult,
    date: dt.date,
    description: str,
    amount: float,
    kind: TransactionType,
    category_id: str | None,
    sub_category_id: str | None,
    confidence: Confidence,
    ai_transfer: bool,
    notes: str | None,
) -> ImportRow:
    transfer = is_transfer_row(description, ai_flag=ai_transfer)
    status = final_status(dedup.status, is_transfer=transfer)
    cat_name, sub_name = _category_names(categories, category_id, sub_category_id)
    return ImportRow(
        index=index,
        date=date,
        source_description=description,
        amount=amount,
        type=kind,
        category_id=category_id,
        category_name=cat_name,
        sub_category_id=sub_category_id,
        sub_category_name=sub_name,
        confidence=confidence,
        status=status,
        duplicate_of_id=dedup.duplicate_of_id,
        duplicate_reason=dedup.duplicate_reason,
        is_selected=status is ImportRowStatus.NEW,
        notes=notes,
    )


def build_summary(rows: Sequence[ImportRow]) -> ImportSummary:
    """Counts per status and the date range, computed from the final rows."""

    def count(status: ImportRowStatus) -> int:
        return sum(1 for r in rows if r.status == status)

    dates = sorted(r.date.isoformat() for r in rows)
    return ImportSummary(
        total_found=len(rows),
        new_count=count(ImportRowStatus.NEW),
        duplicate_count=count(ImportRowStatus.DUPLICATE),
        suspect_count=count(ImportRowStatus.SUSPECT),
        transfer_count=count(ImportRowStatus.TRANSFER),
        recurring_match_count=count(ImportRowStatus.RECURRING_MATCH),
        date_range=DateRange(from_=dates[0] if dates else "", to=dates[-1] if dates else ""),
    )


# ---- Preview paths -----------------------------------------------------------


def _tabular_rows(
    session: Session,
    *,
    household_id: str,
    data: bytes,
    source_label: str,
    categories: Sequence[CategoryInfo],
    client: LlmClient | None,
    settings: Settings,
) -> tuple[list[ImportRow], str | None]:
    parsed = parse_statement(data, is_credit_card=is_credit_card_source(source_label))
    if not parsed:
        raise ImportValidationError(MSG_NO_TRANSACTIONS)

    mappings = load_user_mappings(session, household_id, limit=settings.mapping_lookback)
    # Cache hits are known before the model answers; they let the recurring
    # tier fire for repeat descriptions.
    seeded = resolve_from_mappings(parsed, mappings)
    candidates = [
        DedupCandidate(
            date=row.date,
            source_description=row.description,
            amount=row.amount,
            type=row.type,
            category_id=seeded[i + 1].effective_category_id if (i + 1) in seeded else None,
        )
        for i, row in enumerate(parsed)
    ]

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="categorize") as pool:
        future = pool.submit(
            categorize_transactions,
            parsed,
            categories,
            mappings,
            client=client,
            settings=settings,
        )
        dedup = check_duplicates(
            session,
            household_id=household_id,
            source_label=source_label,
            transactions=candidates,
        )
        run = future.result()

    by_index = run.by_index()
    rows: list[ImportRow] = []
    for i, row in enumerate(parsed):
        cat = by_index.get(i + 1)
        rows.append(
            _make_row(
                i,
                categories=categories,
                dedup=dedup[i],
                date=row.date,
                description=row.description,
                amount=row.amount,
                kind=row.type,
                category_id=cat.category_id if cat else None,
                sub_category_id=cat.sub_category_id if cat else None,
                confidence=cat.confidence if cat else Confidence.UNKNOWN,
                ai_transfer=cat.is_transfer if cat else False,
                notes=row.installment_info,
            )
        )
    return rows, run.ai_error


def _document_rows(
    session: Session,
    *,
    household_id: str,
    filename: str,
    ext: str,
    data: bytes,
    source_label: str,
    categories: Sequence[CategoryInfo],
    client: LlmClient | None,
    settings: Settings,
) -> list[ImportRow]:
    extracted = extract_document(
        base64.b64encode(data).decode("ascii"),
        categories,
        client=client,
        settings=settings,
        media_type=media_type_for(ext),
        filename=filename,
    )
    if not extracted:
        raise ImportValidationError(MSG_NO_TRANSACTIONS)

    dedup = check_duplicates(
        session,
        household_id=household_id,
        source_label=source_label,
        transactions=[
            DedupCandidate(
                date=r.date,
                source_description=r.description,
                amount=r.amount,
                type=r.type,
                category_id=r.sub_category_id or r.category_id,
            )
            for r in extracted
        ],
    )
    return [
        _make_row(
            i,
            categories=categories,
            dedup=dedup[i],
            date=r.date,
            description=r.description,
            amount=r.amount,
            kind=r.type,
            category_id=r.category_id,
            sub_category_id=r.sub_category_id,
            confidence=r.confidence,
            ai_transfer=r.is_transfer,
            notes=extract_installment_info(r.description),
        )
        for i, r in enumerate(extracted)
    ]


def build_preview(
    session: Session,
    *,
    household_id: str,
    filename: str | None,
    data: bytes | None,
    source_label: str | None,
    client: LlmClient | None,
    settings: Settings,
) -> ImportPreview:
    """Validate, parse/extract, categorize and dedup an upload into a preview.

    Nothing is written. AI problems surface as ``ai_error`` on the preview;
    input problems raise :class:`ImportValidationError`.
    """

    ext = validate_upload(filename, data, source_label, max_bytes=settings.max_upload_bytes)
    label = (source_label or "").strip()
    filename = filename or ""
    data = data or b""

    categories = load_category_tree(session, household_id)
    ai_error: str | None = None
    if ext in TABULAR_EXTENSIONS:
        rows, ai_error = _tabular_rows(
            session,
            household_id=household_id,
            data=data,
            source_label=label,
            categories=categories,
            client=client,
            settings=settings,
        )
    else:
        rows = _document_rows(
            session,
            household_id=household_id,
            filename=filename,
            ext=ext,
            data=data,
            source_label=label,
            categories=categories,
            client=client,
            settings=settings,
        )

    summary = build_summary(rows)
    _logger.info(
        "preview:done household=%s file=%s rows=%d new=%d duplicate=%d suspect=%d "
        "transfer=%d recurring=%d ai_error=%s",
        household_id,
        filename,
        summary.total_found,
        summary.new_count,
        summary.duplicate_count,
        summary.suspect_count,
        summary.transfer_count,
        summary.recurring_match_count,
        bool(ai_error),
    )
    return ImportPreview(rows=rows, summary=summary, ai_error=ai_error)


__all__ = [
    "ImportCommitError",
    "ImportValidationError",
    "StatementReadError",
    "build_preview",
    "build_summary",
    "confirm_import",
    "file_extension",
    "final_status",
    "validate_upload",
]
