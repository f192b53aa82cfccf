"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models written by ``statement_import``.
"""

from .finance import Account, Base, EventLog, MerchantCategoryMapping, Transaction

__all__ = [
    "Base",
    "Account",
    "EventLog",
    "MerchantCategoryMapping",
    "Transaction",
]
