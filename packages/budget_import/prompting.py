"""Prompt construction for categorization and document extraction.

The category tree is embedded with ids so the model answers with ids rather
than names. Transactions are numbered with their global 1-based index and
delimited by ``BEGIN_TRANSACTIONS`` / ``END_TRANSACTIONS`` markers.
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import CategoryInfo, ParsedRow, UserMapping

BEGIN = "BEGIN_TRANSACTIONS\n"
END = "\nEND_TRANSACTIONS"

CATEGORIZE_INSTRUCTIONS = (
    "You categorize Israeli bank and credit-card transactions into household budget "
    "categories. Answer with JSON only."
)

EXTRACT_INSTRUCTIONS = (
    "You read Israeli bank and credit-card statements and extract every transaction "
    "into structured data. Answer with JSON only."
)


def _quote(text: str) -> str:
    return '"' + text.replace('"', '\\"') + '"'


def render_category_tree(categories: Sequence[CategoryInfo]) -> str:
    """One line per top-level category, children inline with their ids."""

    lines: list[str] = []
    for cat in categories:
        subs = ""
        if cat.children:
            subs = " (sub-categories: " + ", ".join(f"{c.name}[{c.id}]" for c in cat.children) + ")"
        lines.append(f'- "{cat.id}": {_quote(cat.name)} [{cat.type}]{subs}')
    return "\n".join(lines)


def render_examples(mappings: Sequence[UserMapping], limit: int) -> str:
    lines = []
    for m in mappings[:limit]:
        target = m.category_id
        if m.parent_category_id:
            target = f"{m.parent_category_id} > {m.category_id}"
        lines.append(f"- {_quote(m.description)} -> {m.category_name} [{target}]")
    return "\n".join(lines)


def render_transactions(items: Sequence[tuple[int, ParsedRow]]) -> str:
    """``N. "description" [TYPE]`` per line; ``N`` is the global 1-based index."""

    return "\n".join(f"{n}. {_quote(row.description)} [{row.type}]" for n, row in items)


def build_categorize_prompt(
    items: Sequence[tuple[int, ParsedRow]],
    categories: Sequence[CategoryInfo],
    mappings: Sequence[UserMapping],
    *,
    max_examples: int,
) -> str:
    parts = [
        "Available categories:",
        render_category_tree(categories),
        "",
    ]
    if mappings and max_examples > 0:
        parts += [
            "Examples of how this household categorized past transactions:",
            render_examples(mappings, max_examples),
            "",
        ]
    parts += [
        "Transactions to categorize:",
        BEGIN + render_transactions(items) + END,
        "",
        "Rules:",
        "1. Pick a category whose type (INCOME/EXPENSE) matches the transaction type.",
        "2. Prefer the most specific sub-category; use the parent when no sub-category fits.",
        "3. Mark transfers between accounts, credit-card bill payments and deposits to "
        "savings as isTransfer: true.",
        '4. confidence: "high" = obvious, "low" = a guess, "unknown" = cannot tell.',
        "5. Use the transaction numbers exactly as given for index.",
        "",
        "Return a JSON array only (no markdown):",
        '[{"index": 1, "categoryId": "cat_id", "subCategoryId": "sub_id_or_null", '
        '"confidence": "high|low|unknown", "reason": "optional", "isTransfer": false}]',
    ]
    return "\n".join(parts)


def build_extract_prompt(categories: Sequence[CategoryInfo]) -> str:
    return "\n".join(
        [
            "Extract every transaction from the attached statement and categorize it.",
            "",
            "Available categories:",
            render_category_tree(categories),
            "",
            "Rules:",
            "1. Skip summary, total and balance lines; they are not transactions.",
            "2. When a line has both a transaction date and a billing date, use the "
            "transaction date.",
            "3. amount is always positive; type is EXPENSE for charges and INCOME for "
            "credits or refunds.",
            "4. Dates use YYYY-MM-DD.",
            "5. Prefer the most specific sub-category whose type matches.",
            "6. Mark transfers between accounts and credit-card bill payments as "
            "isTransfer: true.",
            "",
            "Return a JSON object only (no markdown):",
            '{"rows": [{"date": "YYYY-MM-DD", "description": "...", "amount": 0.0, '
            '"type": "EXPENSE|INCOME", "categoryId": "cat_id_or_null", '
            '"subCategoryId": "sub_id_or_null", "confidence": "high|low|unknown", '
            '"isTransfer": false}]}',
        ]
    )


__all__ = [
    "BEGIN",
    "CATEGORIZE_INSTRUCTIONS",
    "END",
    "EXTRACT_INSTRUCTIONS",
    "build_categorize_prompt",
    "build_extract_prompt",
    "render_category_tree",
    "render_examples",
    "render_transactions",
]
