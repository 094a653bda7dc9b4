"""Read-side queries that feed the categorizer.

- ``load_category_tree(...)``: the household's active top-level categories
  (its own plus the global defaults) with their active sub-categories.
- ``load_user_mappings(...)``: the most recent distinct descriptions the
  household imported, with the category each ended up in. This is the
  mapping cache; it is derived from transaction history and never stored.
"""

from __future__ import annotations

from budget_db.models import Category, Transaction
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from .models import CategoryChild, CategoryInfo, TransactionType, UserMapping

_DEFAULT_MAPPING_LIMIT = 500


def load_category_tree(session: Session, household_id: str) -> list[CategoryInfo]:
    """Return top-level categories with their children, ordered for display."""

    parents = (
        session.execute(
            select(Category)
            .where(
                Category.is_active.is_(True),
                Category.parent_id.is_(None),
                or_(Category.is_default.is_(True), Category.household_id == household_id),
            )
            .order_by(Category.sort_order, Category.name)
        )
        .scalars()
        .all()
    )
    if not parents:
        return []

    children_of: dict[str, list[CategoryChild]] = {}
    rows = session.execute(
        select(Category.id, Category.name, Category.parent_id)
        .where(
            Category.is_active.is_(True),
            Category.parent_id.in_([p.id for p in parents]),
        )
        .order_by(Category.sort_order, Category.name)
    )
    for cid, name, parent_id in rows:
        children_of.setdefault(parent_id, []).append(CategoryChild(id=cid, name=name))

    return [
        CategoryInfo(
            id=p.id,
            name=p.name,
            type=TransactionType(p.type),
            children=tuple(children_of.get(p.id, ())),
        )
        for p in parents
    ]


def load_user_mappings(
    session: Session, household_id: str, *, limit: int = _DEFAULT_MAPPING_LIMIT
) -> list[UserMapping]:
    """Most recent category per distinct imported description, newest first."""

    rn = (
        func.row_number()
        .over(
            partition_by=Transaction.source_description,
            order_by=(Transaction.created_at.desc(), Transaction.id.desc()),
        )
        .label("rn")
    )
    latest = (
        select(
            Transaction.source_description,
            Transaction.category_id,
            Transaction.created_at,
            rn,
        )
        .where(
            Transaction.household_id == household_id,
            Transaction.source == "IMPORT",
            Transaction.source_description.is_not(None),
        )
        .subquery()
    )
    stmt = (
        select(
            latest.c.source_description,
            latest.c.category_id,
            Category.name,
            Category.parent_id,
        )
        .join(Category, Category.id == latest.c.category_id)
        .where(latest.c.rn == 1)
        .order_by(latest.c.created_at.desc())
        .limit(limit)
    )
    return [
        UserMapping(
            description=desc,
            category_id=category_id,
            parent_category_id=parent_id,
            category_name=name,
        )
        for desc, category_id, name, parent_id in session.execute(stmt)
        if desc
    ]


__all__ = ["load_category_tree", "load_user_mappings"]
