"""Exception taxonomy for the import pipeline.

Batch-fatal errors (``FormatError``, ``CapacityError``, ``InfrastructureError``)
propagate out of the orchestrator. Row-level errors
(``RowNormalizationError``, ``RowPersistenceError``) are raised inside the row
loop, caught there, and only surface as counters plus a short message in the
import summary. A re-imported row is not an error at all; it is counted as a
duplicate.
"""

from __future__ import annotations


class StatementImportError(Exception):
    """Base class for every error raised by ``statement_import``."""


class FormatError(StatementImportError):
    """The file is empty, structurally unparseable or lacks mandatory columns."""


class CapacityError(StatementImportError):
    """The upload exceeds a resource ceiling (row count or decoded size)."""

    def __init__(self, message: str, *, actual: int, limit: int) -> None:
        super().__init__(message)
        self.actual = actual
        self.limit = limit


class RowError(StatementImportError):
    """A problem confined to one input row."""

    def __init__(self, line_no: int, reason: str) -> None:
        super().__init__(f"Row {line_no}: {reason}")
        self.line_no = line_no
        self.reason = reason


class RowNormalizationError(RowError):
    """A row's date or amount could not be normalized."""


class RowPersistenceError(StatementImportError):
    """The store rejected a single row (constraint or data error)."""


class InfrastructureError(StatementImportError):
    """The store itself is unreachable or failing; aborts the whole run."""


__all__ = [
    "StatementImportError",
    "FormatError",
    "CapacityError",
    "RowError",
    "RowNormalizationError",
    "RowPersistenceError",
    "InfrastructureError",
]
