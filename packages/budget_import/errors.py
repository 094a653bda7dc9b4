"""Exceptions raised by the import pipeline.

Both base classes subclass ``ValueError`` so callers that only care about
"bad input" can catch that; the HTTP layer maps them to 400 and shows the
message verbatim.
"""

from __future__ import annotations


class ImportValidationError(ValueError):
    """The upload or its contents cannot be turned into a preview."""


class StatementReadError(ImportValidationError):
    """The workbook/CSV bytes could not be read at all."""


class ImportCommitError(ValueError):
    """A confirm request had nothing to write."""


__all__ = ["ImportCommitError", "ImportValidationError", "StatementReadError"]
