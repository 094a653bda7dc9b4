"""Bank and credit-card statement parsing.

Public API:
    - :func:`parse_statement`

Statements come from several Israeli banks and card issuers, each with its own
column layout, header position and date format. Instead of per-bank adapters
the parser sniffs the header row and assigns column roles by keyword, so any
export that names its columns recognizably works.

Only the first sheet is read. Rows that are not transactions (empty rows,
totals, balance lines, rows without a date or with a zero amount) are dropped
silently; structurally unusable sheets yield ``[]``. Bytes that cannot be read
as a workbook raise :class:`~budget_import.errors.StatementReadError`.
"""

from __future__ import annotations

import csv
import io
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from .errors import StatementReadError
from .logging_setup import get_logger
from .models import ParsedRow, TransactionType
from .rules import extract_installment_info, is_summary_row

_logger = get_logger("budget_import.parsing")

_ZIP_MAGIC = b"PK\x03\x04"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

_HEADER_SCAN_ROWS = 10
_HEADER_MIN_CELLS = 3

# Excel's 1900 date system, with the 1900 leap-year bug folded into the epoch.
_EXCEL_EPOCH = date(1899, 12, 30)
_EXCEL_MAX_SERIAL = 2958465  # 9999-12-31

_DMY_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_AMOUNT_NOISE_RE = re.compile(r"[,₪$€£\s]")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


# ---- Reading -----------------------------------------------------------------


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def _clean_cell(value: Any) -> Any:
    return None if _is_blank(value) else value


def _read_workbook(data: bytes, engine: str) -> list[list[Any]]:
    try:
        frame = pd.read_excel(
            io.BytesIO(data), sheet_name=0, header=None, dtype=object, engine=engine
        )
    except Exception as e:  # noqa: BLE001 - any reader failure means unreadable input
        _logger.warning("parse:workbook_unreadable engine=%s error=%s", engine, e.__class__.__name__)
        raise StatementReadError("could not read the spreadsheet file") from e
    return [[_clean_cell(v) for v in row] for row in frame.itertuples(index=False, name=None)]


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Hebrew Windows exports
        return data.decode("cp1255", errors="replace")


def _read_csv(data: bytes) -> list[list[Any]]:
    text = _decode_text(data)
    try:
        dialect: Any = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    reader = csv.reader(io.StringIO(text), dialect)
    return [[_clean_cell(v) for v in row] for row in reader]


def read_grid(data: bytes) -> list[list[Any]]:
    """Return the first sheet as a list of rows; blank cells become ``None``."""

    if data.startswith(_ZIP_MAGIC):
        return _read_workbook(data, "openpyxl")
    if data.startswith(_OLE_MAGIC):
        return _read_workbook(data, "xlrd")
    return _read_csv(data)


# ---- Header detection --------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ColumnRoles:
    date: int | None = None
    secondary_date: int | None = None
    description: int | None = None
    amount: int | None = None
    debit: int | None = None
    credit: int | None = None


def find_header_row(grid: Sequence[Sequence[Any]]) -> int | None:
    for i, row in enumerate(grid[:_HEADER_SCAN_ROWS]):
        if sum(1 for c in row if not _is_blank(c)) >= _HEADER_MIN_CELLS:
            return i
    return None


def _has_any(h: str, needles: Sequence[str]) -> bool:
    return any(n in h for n in needles)


def detect_columns(headers: Sequence[Any]) -> ColumnRoles:
    """Assign column roles from header text.

    Date, secondary date, description and amount take the first matching
    column; debit and credit take the last. A lone billing/value date column
    is promoted to the primary date.
    """

    date_col = secondary = desc = amount = debit = credit = None
    for i, raw in enumerate(headers):
        h = "" if raw is None else str(raw).strip().lower()
        if not h:
            continue

        if date_col is None and (
            _has_any(h, ("תאריך עסקה", "תאריך רכישה", "ת. עסקה")) or h in ("תאריך", "date")
        ):
            date_col = i
        elif secondary is None and _has_any(h, ("תאריך חיוב", "ת. חיוב", "תאריך ערך")):
            secondary = i

        if desc is None and (
            _has_any(h, ("תיאור", "שם בית", "פרטים", "שם העסק", "פעולה")) or h == "description"
        ):
            desc = i

        if amount is None and (
            ("סכום" in h and "מקור" not in h) or h == "amount" or "סכום עסקה" in h
        ):
            amount = i

        if _has_any(h, ("חובה", "חיוב")) or h == "debit":
            debit = i
        if _has_any(h, ("זכות", "זיכוי")) or h == "credit":
            credit = i

    if date_col is None and secondary is not None:
        date_col, secondary = secondary, None

    return ColumnRoles(date_col, secondary, desc, amount, debit, credit)


# ---- Cell parsing ------------------------------------------------------------


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """Parse a statement date cell; ``None`` when it is not a valid date."""

    if _is_blank(value):
        return None
    if isinstance(value, datetime):  # includes pandas.Timestamp
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        serial = int(value)
        if serial <= 0 or serial > _EXCEL_MAX_SERIAL:
            return None
        return _EXCEL_EPOCH + timedelta(days=serial)
    if isinstance(value, str):
        s = value.strip()
        m = _DMY_RE.match(s)
        if m:
            day, month, year = m.group(1), m.group(2), m.group(3)
            if len(year) == 2:
                year = "20" + year
            return _safe_date(int(year), int(month), int(day))
        m = _ISO_RE.match(s)
        if m:
            return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    return None


def parse_amount(value: Any) -> float | None:
    """Parse a signed amount; ``None`` when the cell holds no number."""

    if _is_blank(value):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = _LEADING_NUMBER_RE.match(_AMOUNT_NOISE_RE.sub("", str(value)))
    if not m:
        return None
    return float(m.group(0))


def _cell(row: Sequence[Any], col: int | None) -> Any:
    if col is None or col >= len(row):
        return None
    return row[col]


def _resolve_amount(
    row: Sequence[Any], cols: ColumnRoles, *, is_credit_card: bool
) -> tuple[float, TransactionType] | None:
    if cols.debit is not None and cols.credit is not None:
        debit = parse_amount(_cell(row, cols.debit)) or 0.0
        credit = parse_amount(_cell(row, cols.credit)) or 0.0
        if credit > 0:
            return credit, TransactionType.INCOME
        return abs(debit), TransactionType.EXPENSE

    if cols.amount is not None:
        raw = parse_amount(_cell(row, cols.amount))
        if raw is None:
            return None
        if is_credit_card:
            # Card files: positive is a charge, negative a refund.
            kind = TransactionType.INCOME if raw < 0 else TransactionType.EXPENSE
        else:
            kind = TransactionType.EXPENSE if raw < 0 else TransactionType.INCOME
        return abs(raw), kind

    return None


# ---- Public API --------------------------------------------------------------


def parse_statement(data: bytes, *, is_credit_card: bool = False) -> list[ParsedRow]:
    """Parse statement bytes (xlsx, xls or csv) into transaction rows.

    ``is_credit_card`` selects the sign convention for single-amount-column
    files. Output order follows the sheet and is stable for identical input.
    """

    grid = read_grid(data)
    if len(grid) < 2:
        return []

    header_idx = find_header_row(grid)
    if header_idx is None:
        _logger.info("parse:no_header rows=%d", len(grid))
        return []

    cols = detect_columns(grid[header_idx])
    if cols.description is None:
        _logger.info("parse:no_description_column header_row=%d", header_idx)
        return []

    out: list[ParsedRow] = []
    for row in grid[header_idx + 1 :]:
        if all(_is_blank(c) for c in row):
            continue

        raw_desc = _cell(row, cols.description)
        desc = "" if raw_desc is None else " ".join(str(raw_desc).split())
        if not desc or is_summary_row(desc):
            continue

        when = parse_date(_cell(row, cols.date))
        if when is None and cols.secondary_date is not None:
            when = parse_date(_cell(row, cols.secondary_date))
        if when is None:
            continue

        resolved = _resolve_amount(row, cols, is_credit_card=is_credit_card)
        if resolved is None:
            continue
        amount, kind = resolved
        amount = round(amount, 2)
        if amount == 0:
            continue

        out.append(
            ParsedRow(
                date=when,
                description=desc,
                amount=amount,
                type=kind,
                installment_info=extract_installment_info(desc),
            )
        )

    _logger.info("parse:done header_row=%d rows=%d", header_idx, len(out))
    return out


__all__ = [
    "ColumnRoles",
    "detect_columns",
    "find_header_row",
    "parse_amount",
    "parse_date",
    "parse_statement",
    "read_grid",
]
