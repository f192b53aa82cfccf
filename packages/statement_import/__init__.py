"""Public interface for the ``statement_import`` package.

This module exposes the import, sync, recategorization and merchant-mapping
operations plus the public models and errors as the stable import surface.
There is no runtime logic here, only symbol re-exports.
"""

from .api import (
    correct_transaction_category,
    import_statement,
    map_merchant,
    merchant_mappings,
    recategorize,
    recategorize_transactions,
    run_import,
    sync_account,
    sync_account_records,
    unmap_merchant,
)
from .categorize import CategorizationEngine
from .config import ImportSettings
from .duplicates import compute_dedup_hash
from .errors import (
    CapacityError,
    FormatError,
    InfrastructureError,
    RowNormalizationError,
    RowPersistenceError,
    StatementImportError,
)
from .models import (
    UNCATEGORIZED,
    AssignmentSource,
    CategoryAssignment,
    Direction,
    ImportSummary,
    MerchantMapping,
    NormalizedTransaction,
    RawTransactionRecord,
    RecategorizeSummary,
)
from .persistence import PersistenceGateway, SqlAlchemyGateway
from .webhook import handle_import_webhook

__all__ = [
    # API
    "correct_transaction_category",
    "handle_import_webhook",
    "import_statement",
    "map_merchant",
    "merchant_mappings",
    "recategorize",
    "recategorize_transactions",
    "run_import",
    "sync_account",
    "sync_account_records",
    "unmap_merchant",
    # Building blocks
    "CategorizationEngine",
    "ImportSettings",
    "PersistenceGateway",
    "SqlAlchemyGateway",
    "compute_dedup_hash",
    # Models / types
    "UNCATEGORIZED",
    "AssignmentSource",
    "CategoryAssignment",
    "Direction",
    "ImportSummary",
    "MerchantMapping",
    "NormalizedTransaction",
    "RawTransactionRecord",
    "RecategorizeSummary",
    # Errors
    "CapacityError",
    "FormatError",
    "InfrastructureError",
    "RowNormalizationError",
    "RowPersistenceError",
    "StatementImportError",
]
