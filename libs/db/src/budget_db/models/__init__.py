"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the budgeting models used by ``budget_import``.
"""

from .budget import Base, Category, ImportBatch, ImportSourceLabel, Transaction

__all__ = [
    "Base",
    "Category",
    "ImportBatch",
    "ImportSourceLabel",
    "Transaction",
]
