from __future__ import annotations

from datetime import date

from budget_db.client import session_scope
from budget_import.dedup import (
    REASON_DUPLICATE,
    REASON_RECURRING,
    REASON_SUSPECT,
    check_duplicates,
    classify_candidate,
)
from budget_import.models import DedupCandidate, ImportRowStatus, TransactionType

from tests.helpers.db import HOUSEHOLD, OTHER_HOUSEHOLD, add_transaction, make_transaction

LABEL = "Isracard 1234"


def _candidate(**overrides) -> DedupCandidate:
    values = {
        "date": date(2024, 3, 10),
        "source_description": "שופרסל דיל",
        "amount": 100.0,
        "type": TransactionType.EXPENSE,
        "category_id": None,
    }
    values.update(overrides)
    return DedupCandidate(**values)


def _imported(**overrides):
    values = {
        "id": "imp1",
        "source": "IMPORT",
        "source_label": LABEL,
        "source_description": "שופרסל דיל",
    }
    values.update(overrides)
    return make_transaction(**values)


# ---- Pure tier matching ---------------------------------------------------------


def test_exact_duplicate_requires_all_four_fields() -> None:
    existing = [_imported()]
    res = classify_candidate(existing, _candidate(), LABEL)
    assert res.status is ImportRowStatus.DUPLICATE
    assert res.duplicate_of_id == "imp1"
    assert res.duplicate_reason == REASON_DUPLICATE

    assert classify_candidate(existing, _candidate(), "Other card").status is ImportRowStatus.NEW
    assert (
        classify_candidate(existing, _candidate(date=date(2024, 3, 11)), LABEL).status
        is ImportRowStatus.NEW
    )
    assert (
        classify_candidate(existing, _candidate(amount=100.01), LABEL).status
        is ImportRowStatus.NEW
    )
    assert (
        classify_candidate(existing, _candidate(source_description="שופרסל"), LABEL).status
        is ImportRowStatus.NEW
    )


def test_amounts_compare_at_cent_precision() -> None:
    existing = [_imported(amount="49.90")]
    res = classify_candidate(existing, _candidate(amount=49.9), LABEL)
    assert res.status is ImportRowStatus.DUPLICATE


def test_suspect_is_manual_row_within_two_days() -> None:
    manual = make_transaction(id="man1", source="MANUAL", date=date(2024, 3, 8))
    res = classify_candidate([manual], _candidate(), LABEL)
    assert res.status is ImportRowStatus.SUSPECT
    assert (res.duplicate_of_id, res.duplicate_reason) == ("man1", REASON_SUSPECT)

    too_far = make_transaction(id="man2", source="MANUAL", date=date(2024, 3, 7))
    assert classify_candidate([too_far], _candidate(), LABEL).status is ImportRowStatus.NEW


def test_suspect_ignores_rows_with_a_source_label() -> None:
    labelled = make_transaction(id="man3", source="MANUAL", source_label="cash")
    assert classify_candidate([labelled], _candidate(), LABEL).status is ImportRowStatus.NEW


def test_duplicate_tier_beats_suspect() -> None:
    manual = make_transaction(id="man1", source="MANUAL")
    existing = [manual, _imported()]
    res = classify_candidate(existing, _candidate(), LABEL)
    assert res.status is ImportRowStatus.DUPLICATE
    assert res.duplicate_of_id == "imp1"


def test_recurring_match_needs_a_category() -> None:
    fixed = make_transaction(
        id="fix1",
        source="IMPORT",
        source_label="bank",
        is_fixed=True,
        date=date(2024, 3, 12),
        category_id="sub_rent",
    )
    assert classify_candidate([fixed], _candidate(), LABEL).status is ImportRowStatus.NEW

    res = classify_candidate([fixed], _candidate(category_id="sub_rent"), LABEL)
    assert res.status is ImportRowStatus.RECURRING_MATCH
    assert (res.duplicate_of_id, res.duplicate_reason) == ("fix1", REASON_RECURRING)


def test_recurring_match_is_same_calendar_month_and_type() -> None:
    recurring = make_transaction(
        id="rec1",
        source="IMPORT",
        source_label="bank",
        is_recurring=True,
        date=date(2024, 2, 29),
        category_id="sub_cellular",
    )
    march = _candidate(date=date(2024, 3, 1), category_id="sub_cellular")
    assert classify_candidate([recurring], march, LABEL).status is ImportRowStatus.NEW

    feb = _candidate(date=date(2024, 2, 27), category_id="sub_cellular")
    assert classify_candidate([recurring], feb, LABEL).status is ImportRowStatus.RECURRING_MATCH

    income = _candidate(
        date=date(2024, 2, 27), category_id="sub_cellular", type=TransactionType.INCOME
    )
    assert classify_candidate([recurring], income, LABEL).status is ImportRowStatus.NEW


# ---- Database window ----------------------------------------------------------------


def test_check_duplicates_reads_the_household_window(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        dup = add_transaction(
            s, source="IMPORT", source_label=LABEL, source_description="שופרסל דיל"
        )
        add_transaction(
            s,
            household_id=OTHER_HOUSEHOLD,
            source="IMPORT",
            source_label=LABEL,
            source_description="סלקום",
            amount=89.9,
            date=date(2024, 3, 12),
        )
        manual = add_transaction(s, amount=35, date=date(2024, 3, 20))
        dup_id, manual_id = dup.id, manual.id

    candidates = [
        _candidate(),
        _candidate(source_description="סלקום", amount=89.9, date=date(2024, 3, 12)),
        _candidate(source_description="קפה", amount=35, date=date(2024, 3, 21)),
        _candidate(source_description="ספר", amount=35, date=date(2024, 3, 1)),
    ]
    with session_scope(database_url=db_url) as s:
        results = check_duplicates(
            s, household_id=HOUSEHOLD, source_label=LABEL, transactions=candidates
        )

    assert [r.status for r in results] == [
        ImportRowStatus.DUPLICATE,
        ImportRowStatus.NEW,  # the matching row belongs to another household
        ImportRowStatus.SUSPECT,
        ImportRowStatus.NEW,
    ]
    assert results[0].duplicate_of_id == dup_id
    assert results[2].duplicate_of_id == manual_id


def test_check_duplicates_reports_earliest_created_row(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        first = add_transaction(s, amount=60, date=date(2024, 3, 9))
        add_transaction(s, amount=60, date=date(2024, 3, 9))
        first_id = first.id

    with session_scope(database_url=db_url) as s:
        (res,) = check_duplicates(
            s,
            household_id=HOUSEHOLD,
            source_label=LABEL,
            transactions=[_candidate(amount=60)],
        )
    assert res.status is ImportRowStatus.SUSPECT
    assert res.duplicate_of_id == first_id


def test_check_duplicates_empty_input(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        assert check_duplicates(s, household_id=HOUSEHOLD, source_label=LABEL, transactions=[]) == []
