"""Database-bound entry points for ``statement_import``.

Each function opens one ``db.client.session_scope`` (commit on success,
rollback on any exception), wraps it in a :class:`SqlAlchemyGateway` and
delegates to the gateway-level implementation in
``statement_import.importer`` / ``statement_import.merchant_mappings``.
Those implementations are re-exported here for callers that manage their own
session or use another gateway.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from db.client import session_scope

from . import merchant_mappings as _mappings
from .categories import RuleTable
from .config import ImportSettings
from .importer import recategorize_transactions, run_import, sync_account
from .models import CategoryAssignment, ImportSummary, MerchantMapping, RecategorizeSummary
from .persistence import SqlAlchemyGateway


def import_statement(
    owner_id: str,
    content: bytes | str,
    *,
    filename: str,
    declared_type: str | None = None,
    settings: ImportSettings | None = None,
    rules: RuleTable | None = None,
    database_url: str | None = None,
) -> ImportSummary:
    """Import one statement file and commit the result."""

    with session_scope(database_url=database_url) as session:
        return run_import(
            SqlAlchemyGateway(session),
            owner_id,
            content,
            filename=filename,
            declared_type=declared_type,
            settings=settings,
            rules=rules,
        )


def sync_account_records(
    owner_id: str,
    account_id: int,
    records: Sequence[Mapping[str, Any]],
    *,
    settings: ImportSettings | None = None,
    database_url: str | None = None,
) -> ImportSummary:
    with session_scope(database_url=database_url) as session:
        return sync_account(
            SqlAlchemyGateway(session), owner_id, account_id, records, settings=settings
        )


def recategorize(
    owner_id: str,
    transaction_ids: Sequence[int] | None = None,
    *,
    settings: ImportSettings | None = None,
    database_url: str | None = None,
) -> RecategorizeSummary:
    with session_scope(database_url=database_url) as session:
        return recategorize_transactions(
            SqlAlchemyGateway(session), owner_id, transaction_ids, settings=settings
        )


def map_merchant(
    owner_id: str,
    merchant: str,
    category: str,
    subcategory: str | None = None,
    *,
    database_url: str | None = None,
) -> bool:
    with session_scope(database_url=database_url) as session:
        return _mappings.save_merchant_mapping(
            SqlAlchemyGateway(session), owner_id, merchant, category, subcategory
        )


def unmap_merchant(owner_id: str, merchant: str, *, database_url: str | None = None) -> bool:
    with session_scope(database_url=database_url) as session:
        return _mappings.delete_merchant_mapping(SqlAlchemyGateway(session), owner_id, merchant)


def merchant_mappings(owner_id: str, *, database_url: str | None = None) -> list[MerchantMapping]:
    with session_scope(database_url=database_url) as session:
        return _mappings.list_merchant_mappings(SqlAlchemyGateway(session), owner_id)


def correct_transaction_category(
    owner_id: str,
    transaction_id: int,
    category: str,
    subcategory: str | None = None,
    *,
    merchant: str | None = None,
    database_url: str | None = None,
) -> CategoryAssignment:
    with session_scope(database_url=database_url) as session:
        return _mappings.set_transaction_category(
            SqlAlchemyGateway(session),
            owner_id,
            transaction_id,
            category,
            subcategory,
            merchant=merchant,
        )


__all__ = [
    "correct_transaction_category",
    "import_statement",
    "map_merchant",
    "merchant_mappings",
    "recategorize",
    "recategorize_transactions",
    "run_import",
    "sync_account",
    "sync_account_records",
    "unmap_merchant",
]
