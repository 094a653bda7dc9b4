from __future__ import annotations

import io
from datetime import date, datetime

import pytest
from budget_import.errors import ImportValidationError, StatementReadError
from budget_import.models import TransactionType
from budget_import.parsing import (
    detect_columns,
    find_header_row,
    parse_amount,
    parse_date,
    parse_statement,
)
from openpyxl import Workbook

# ---- Helpers -----------------------------------------------------------------


def _xlsx(rows: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _card_statement() -> bytes:
    """A card export with a title, a blank line and the header on row 3."""

    return _xlsx(
        [
            ["פירוט עסקאות לכרטיס 1234"],
            [],
            ["תאריך עסקה", "שם בית העסק", "סכום עסקה", "סכום חיוב", "תאריך חיוב"],
            [datetime(2024, 3, 5), "שופרסל דיל", 250.5, 250.5, "10/04/2024"],
            ["07/03/24", "תשלום 3 מתוך 12 - סופרמרקט", "1,200.00 ₪", 100, "10/04/2024"],
            [None, "זיכוי נטפליקס", -49.9, -49.9, "10/04/2024"],
            [],
            ['סה"כ', None, 1400.6, 300.6, None],
            ["12/03/2024", "בית קפה", 0, 0, "10/04/2024"],
        ]
    )


# ---- Header and column detection ----------------------------------------------


def test_header_row_is_first_with_three_cells() -> None:
    grid = [["title"], [None, None], ["a", "b", "c"], ["1", "2", "3"]]
    assert find_header_row(grid) == 2
    assert find_header_row([["only"], ["two", "cells"]]) is None


def test_detect_columns_hebrew_card_layout() -> None:
    cols = detect_columns(["תאריך עסקה", "שם בית העסק", "סכום עסקה", "סכום חיוב", "תאריך חיוב"])
    assert cols.date == 0
    assert cols.secondary_date == 4
    assert cols.description == 1
    assert cols.amount == 2  # first amount-like column wins
    assert cols.credit is None


def test_detect_columns_promotes_billing_date() -> None:
    cols = detect_columns(["תאריך ערך", "תיאור", "amount"])
    assert cols.date == 0
    assert cols.secondary_date is None
    assert cols.amount == 2


def test_detect_columns_debit_credit_pair() -> None:
    cols = detect_columns(["Date", "Description", "Debit", "Credit", "Balance"])
    assert (cols.date, cols.description, cols.debit, cols.credit) == (0, 1, 2, 3)


# ---- Cell parsing --------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("05/03/2024", date(2024, 3, 5)),
        ("5-3-24", date(2024, 3, 5)),
        ("05.03.2024", date(2024, 3, 5)),
        ("2024-03-05", date(2024, 3, 5)),
        ("2024-03-05 00:00:00", date(2024, 3, 5)),
        (datetime(2024, 3, 5, 13, 30), date(2024, 3, 5)),
        (date(2024, 3, 5), date(2024, 3, 5)),
        (45356, date(2024, 3, 5)),
        ("31/02/2024", None),
        ("March 5", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_date(raw: object, expected: date | None) -> None:
    assert parse_date(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1,234.50", 1234.5),
        ("₪ 99.90", 99.9),
        ("-12", -12.0),
        ("$1,000", 1000.0),
        (42, 42.0),
        ("abc", None),
        (None, None),
    ],
)
def test_parse_amount(raw: object, expected: float | None) -> None:
    assert parse_amount(raw) == expected


# ---- Whole statements ------------------------------------------------------------


def test_card_statement_header_at_row_three() -> None:
    rows = parse_statement(_card_statement(), is_credit_card=True)

    assert [r.description for r in rows] == [
        "שופרסל דיל",
        "תשלום 3 מתוך 12 - סופרמרקט",
        "זיכוי נטפליקס",
    ]
    first, second, third = rows
    assert first.date == date(2024, 3, 5)
    assert (first.amount, first.type) == (250.5, TransactionType.EXPENSE)
    assert second.date == date(2024, 3, 7)
    assert second.amount == 1200.0
    assert second.installment_info == "תשלום 3/12"
    # Missing transaction date falls back to the billing date; refund is income.
    assert third.date == date(2024, 4, 10)
    assert (third.amount, third.type) == (49.9, TransactionType.INCOME)


def test_sign_convention_bank_vs_card() -> None:
    data = _xlsx(
        [
            ["תאריך", "תיאור", "סכום"],
            ["01/03/2024", "משכורת", 12000],
            ["02/03/2024", "חשמל", -350],
        ]
    )
    bank = parse_statement(data, is_credit_card=False)
    card = parse_statement(data, is_credit_card=True)

    assert [r.type for r in bank] == [TransactionType.INCOME, TransactionType.EXPENSE]
    assert [r.type for r in card] == [TransactionType.EXPENSE, TransactionType.INCOME]
    assert [r.amount for r in bank] == [r.amount for r in card] == [12000.0, 350.0]


def test_debit_credit_columns() -> None:
    data = _xlsx(
        [
            ["תאריך", "תיאור הפעולה", "חובה", "זכות", "יתרה"],
            ["01/03/2024", "העברה מחשבון", None, 500, 10500],
            ["02/03/2024", "סלקום", 89.9, None, 10410.1],
        ]
    )
    rows = parse_statement(data)
    assert [(r.amount, r.type) for r in rows] == [
        (500.0, TransactionType.INCOME),
        (89.9, TransactionType.EXPENSE),
    ]


def test_summary_rows_are_skipped() -> None:
    data = _xlsx(
        [
            ["Date", "Description", "Amount"],
            ["2024-03-01", "Coffee", "-12.00"],
            ["2024-03-02", "TOTALENERGIES STATION", "-200"],
            ["2024-03-31", "Total", "-12.00"],
            ["2024-03-31", "סה״כ לתקופה", "-12.00"],
        ]
    )
    assert [r.description for r in parse_statement(data)] == ["Coffee", "TOTALENERGIES STATION"]


def test_parsing_is_idempotent() -> None:
    data = _card_statement()
    assert parse_statement(data, is_credit_card=True) == parse_statement(data, is_credit_card=True)


def test_csv_statement_utf8_with_bom() -> None:
    text = "תאריך,תיאור,סכום\n05/03/2024,שופרסל,-120.50\n06/03/2024,  משכורת   מרץ ,9000\n"
    rows = parse_statement(text.encode("utf-8-sig"))
    assert [(r.description, r.amount, r.type) for r in rows] == [
        ("שופרסל", 120.5, TransactionType.EXPENSE),
        ("משכורת מרץ", 9000.0, TransactionType.INCOME),
    ]


def test_csv_statement_cp1255() -> None:
    text = "תאריך,תיאור,סכום\n05/03/2024,רמי לוי,-80\n"
    rows = parse_statement(text.encode("cp1255"))
    assert [r.description for r in rows] == ["רמי לוי"]


def test_missing_description_column_yields_nothing() -> None:
    data = _xlsx([["Date", "Amount", "Balance"], ["2024-03-01", 10, 100]])
    assert parse_statement(data) == []


def test_no_header_yields_nothing() -> None:
    data = _xlsx([["a"], ["b", "c"], ["d"]])
    assert parse_statement(data) == []


def test_unreadable_workbook_raises() -> None:
    with pytest.raises(StatementReadError) as exc:
        parse_statement(b"PK\x03\x04 this is not really a zip archive")
    assert isinstance(exc.value, ImportValidationError)
