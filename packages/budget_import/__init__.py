"""Public interface for the ``budget_import`` package.

Statement import for the household budget: parse bank/credit-card exports,
categorize rows (mapping cache + language model), flag duplicates against
stored transactions, and commit the rows the user accepts. This module only
re-exports the stable import surface.
"""

from .categorize import categorize_transactions
from .config import Settings
from .dedup import check_duplicates, classify_candidate
from .errors import ImportCommitError, ImportValidationError, StatementReadError
from .extract import extract_document
from .llm import LlmClient, create_llm_client
from .models import (
    CategorizationResult,
    CategorizationRun,
    CategoryInfo,
    Confidence,
    ConfirmResult,
    ImportPreview,
    ImportRow,
    ImportRowStatus,
    ImportSummary,
    ParsedRow,
    TransactionType,
    UserMapping,
)
from .parsing import parse_statement
from .pipeline import build_preview, confirm_import, validate_upload

__all__ = [
    # Operations
    "build_preview",
    "categorize_transactions",
    "check_duplicates",
    "classify_candidate",
    "confirm_import",
    "create_llm_client",
    "extract_document",
    "parse_statement",
    "validate_upload",
    # Configuration / clients
    "LlmClient",
    "Settings",
    # Errors
    "ImportCommitError",
    "ImportValidationError",
    "StatementReadError",
    # Models
    "CategorizationResult",
    "CategorizationRun",
    "CategoryInfo",
    "Confidence",
    "ConfirmResult",
    "ImportPreview",
    "ImportRow",
    "ImportRowStatus",
    "ImportSummary",
    "ParsedRow",
    "TransactionType",
    "UserMapping",
]
