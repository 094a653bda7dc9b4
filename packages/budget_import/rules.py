"""Keyword heuristics for statement lines and source labels.

All matching goes through one small abstraction: a :class:`RuleTable` holds
``(tag, keywords)`` pairs and answers "which tags fire for this text" with a
case-insensitive substring test (whole words for rules marked
``whole_word``). Each concern (summary rows, transfers,
card-bill payments, credit-card source labels) is one table, so adding a bank
or card keyword is a one-line change to the relevant tuple below.

These checks are cheap and deterministic; they run before AI categorization
and are OR'd with the model's own ``isTransfer`` flag.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Rule-table abstraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KeywordRule:
    tag: str
    keywords: tuple[str, ...]
    # Latin markers such as "total" must not fire inside merchant names.
    whole_word: bool = False

    def matches(self, folded_text: str) -> bool:
        if self.whole_word:
            return any(
                re.search(rf"\b{re.escape(k)}\b", folded_text) for k in self.keywords
            )
        return any(k in folded_text for k in self.keywords)


class RuleTable:
    """An ordered list of keyword rules evaluated uniformly."""

    def __init__(self, rules: Iterable[KeywordRule]) -> None:
        # Keywords are folded once so lookups only fold the incoming text.
        self._rules: tuple[KeywordRule, ...] = tuple(
            KeywordRule(r.tag, tuple(k.casefold() for k in r.keywords), r.whole_word)
            for r in rules
        )

    @staticmethod
    def _fold(text: str | None) -> str:
        return (text or "").strip().casefold()

    def tags_for(self, text: str | None) -> list[str]:
        folded = self._fold(text)
        if not folded:
            return []
        return list(dict.fromkeys(r.tag for r in self._rules if r.matches(folded)))

    def matches(self, text: str | None, tag: str | None = None) -> bool:
        folded = self._fold(text)
        if not folded:
            return False
        return any(r.matches(folded) for r in self._rules if tag is None or r.tag == tag)


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

SUMMARY = RuleTable(
    [
        KeywordRule(
            "summary",
            (
                'סה"כ',
                "סה״כ",
                "סהכ",
                "סך הכל",
                "סכום לחיוב",
                "עמלה",
            ),
        ),
        KeywordRule("summary", ("total",), whole_word=True),
        KeywordRule("balance", ("יתרה", "יתרה קודמת", "יתרה נוכחית")),
        KeywordRule("balance", ("balance",), whole_word=True),
    ]
)

TRANSFERS = RuleTable(
    [
        KeywordRule(
            "inter_account",
            ("העברה מחשבון", "העברה לחשבון", "העברה בין"),
        ),
        KeywordRule("time_deposit", ("הפקדה לפיקדון", "פדיון פיקדון")),
        KeywordRule("generic_transfer", ("העברה", "transfer")),
    ]
)

CC_PAYMENTS = RuleTable(
    [
        KeywordRule(
            "card_bill",
            (
                "חיוב כאל",
                "חיוב מקס",
                "חיוב ישראכרט",
                "חיוב אמריקן",
                "חיוב ויזה",
                "חיוב דיינרס",
                "לאומי קארד",
                "כרטיס אשראי",
                "חיוב כ.אשראי",
            ),
        ),
    ]
)

CREDIT_CARD_SOURCES = RuleTable(
    [
        KeywordRule("generic_card", ("כרטיס אשראי", "אשראי", "credit card")),
        KeywordRule(
            "issuer",
            ("כאל", "מקס", "ישראכרט", "אמריקן", "לאומי קארד", "ויזה", "דיינרס", "visa", "amex"),
        ),
    ]
)

# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_summary_row(text: str | None) -> bool:
    """Totals / balance lines that are not transactions."""

    return SUMMARY.matches(text)


def is_transfer_description(text: str | None) -> bool:
    return TRANSFERS.matches(text)


def is_cc_payment(text: str | None) -> bool:
    """A bank line paying off a credit card (the card file carries the detail)."""

    return CC_PAYMENTS.matches(text)


def is_credit_card_source(label: str | None) -> bool:
    """Decide the sign convention for a whole file from the chosen source label."""

    return CREDIT_CARD_SOURCES.matches(label)


def is_transfer_row(description: str | None, *, ai_flag: bool = False) -> bool:
    """Any single signal is enough to treat a row as a transfer."""

    return bool(ai_flag) or is_transfer_description(description) or is_cc_payment(description)


# ---------------------------------------------------------------------------
# Installment labels
# ---------------------------------------------------------------------------

_INSTALLMENT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"תשלום\s*(\d+)\s*מתוך\s*(\d+)"),
    re.compile(r"(\d+)\s*/\s*(\d+)\s*תש"),
    re.compile(r"(\d+)\s+מתוך\s+(\d+)"),
)


def extract_installment_info(description: str | None) -> str | None:
    """Return ``"תשלום k/n"`` for "payment k of n" phrasings, else ``None``.

    The first matching pattern wins.
    """

    if not description:
        return None
    for pattern in _INSTALLMENT_PATTERNS:
        m = pattern.search(description)
        if m:
            return f"תשלום {m.group(1)}/{m.group(2)}"
    return None


__all__ = [
    "CC_PAYMENTS",
    "CREDIT_CARD_SOURCES",
    "KeywordRule",
    "RuleTable",
    "SUMMARY",
    "TRANSFERS",
    "extract_installment_info",
    "is_cc_payment",
    "is_credit_card_source",
    "is_summary_row",
    "is_transfer_description",
    "is_transfer_row",
]
