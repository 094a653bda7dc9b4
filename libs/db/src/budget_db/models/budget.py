from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    # NULL for the global defaults shared by every household.
    household_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String(7), nullable=False)
    # Two-level depth (parent → children) is enforced in the service layer.
    parent_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("categories.id"), nullable=True
    )
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    parent: Mapped[Category | None] = relationship(
        "Category", remote_side="Category.id", back_populates="children"
    )
    children: Mapped[list[Category]] = relationship(
        "Category", back_populates="parent", order_by="Category.sort_order"
    )

    __table_args__ = (
        CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_categories_type"),
    )


# ---------------------------
# Import audit trail
# ---------------------------


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    household_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_type: Mapped[str] = mapped_column(String, nullable=False)
    source_label: Mapped[str] = mapped_column(String, nullable=False)
    total_found: Mapped[int] = mapped_column(Integer, nullable=False)
    imported: Mapped[int] = mapped_column(Integer, nullable=False)
    duplicates: Mapped[int] = mapped_column(Integer, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


class ImportSourceLabel(Base):
    __tablename__ = "import_source_labels"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    household_id: Mapped[str] = mapped_column(String, nullable=False)
    label: Mapped[str] = mapped_column(String, nullable=False)
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("household_id", "label", name="uq_import_source_labels_household_label"),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    household_id: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(7), nullable=False)
    category_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("categories.id"), nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    week_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_fixed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # MANUAL rows are typed in by a household member; IMPORT rows come from a
    # confirmed statement import and carry the label/description they were
    # imported under (used for duplicate detection and the mapping cache).
    source: Mapped[str] = mapped_column(
        String(6), nullable=False, default="MANUAL", server_default=text("'MANUAL'")
    )
    source_label: Mapped[str | None] = mapped_column(String, nullable=True)
    source_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    import_batch_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("import_batches.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )

    category: Mapped[Category] = relationship("Category")

    __table_args__ = (
        CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_transactions_type"),
        CheckConstraint("source in ('MANUAL','IMPORT')", name="ck_transactions_source"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
        Index("ix_transactions_household_date", "household_id", "date"),
    )


__all__ = [
    "Base",
    "Category",
    "ImportBatch",
    "ImportSourceLabel",
    "Transaction",
]
