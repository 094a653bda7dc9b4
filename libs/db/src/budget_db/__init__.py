"""budget_db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``budget_db.models.budget`` (re-exported for convenience)
- Engine/session helpers in ``budget_db.client``
"""

from __future__ import annotations

from .models.budget import Base, Category, ImportBatch, ImportSourceLabel, Transaction

metadata = Base.metadata


def create_schema(*, database_url: str | None = None) -> None:
    """Create all tables that do not exist yet on the configured database."""

    from .client import get_engine

    metadata.create_all(bind=get_engine(database_url=database_url))


__all__ = [
    "Base",
    "metadata",
    "create_schema",
    "Category",
    "ImportBatch",
    "ImportSourceLabel",
    "Transaction",
]
