"""Learned merchant -> category overrides.

Mappings are keyed by ``(owner_id, normalize_merchant_name(merchant))`` and
are consulted by the categorization engine before any rule. They change only
through the explicit operations below; the import never writes or deletes
them on its own.
"""

from __future__ import annotations

from .logging_setup import get_logger
from .models import UNCATEGORIZED, AssignmentSource, CategoryAssignment, MerchantMapping
from .normalizers import clean_text, normalize_merchant_name
from .persistence import PersistenceGateway

logger = get_logger("statement_import.merchant_mappings")


def save_merchant_mapping(
    gateway: PersistenceGateway,
    owner_id: str,
    merchant: str | None,
    category: str | None,
    subcategory: str | None = None,
) -> bool:
    """Create or replace the mapping for ``merchant``; False when an input is empty."""

    key = normalize_merchant_name(merchant)
    label = clean_text(category)
    if not owner_id or not key or not label:
        return False
    gateway.upsert_merchant_mapping(owner_id, key, label, clean_text(subcategory))
    logger.info("Saved merchant mapping %r -> %s for owner %s", key, label, owner_id)
    return True


def get_merchant_mapping(
    gateway: PersistenceGateway, owner_id: str, merchant: str | None
) -> MerchantMapping | None:
    key = normalize_merchant_name(merchant)
    if not key:
        return None
    return gateway.get_merchant_mapping(owner_id, key)


def list_merchant_mappings(gateway: PersistenceGateway, owner_id: str) -> list[MerchantMapping]:
    return gateway.list_merchant_mappings(owner_id)


def delete_merchant_mapping(
    gateway: PersistenceGateway, owner_id: str, merchant: str | None
) -> bool:
    key = normalize_merchant_name(merchant)
    if not key:
        return False
    deleted = gateway.delete_merchant_mapping(owner_id, key)
    if deleted:
        logger.info("Deleted merchant mapping %r for owner %s", key, owner_id)
    return deleted


def set_transaction_category(
    gateway: PersistenceGateway,
    owner_id: str,
    transaction_id: int,
    category: str,
    subcategory: str | None = None,
    *,
    merchant: str | None = None,
) -> CategoryAssignment:
    """Apply a manual category to one transaction.

    The row is marked reviewed unless the new category is the
    ``Uncategorized`` sentinel. When ``merchant`` is given the correction is
    also remembered as a mapping, so later imports of that merchant reuse it.
    Raises ``LookupError`` if the transaction does not belong to ``owner_id``.
    """

    label = clean_text(category)
    if not label:
        raise ValueError("category must be non-empty")
    if not gateway.list_transactions(owner_id, ids=[transaction_id]):
        raise LookupError(f"transaction {transaction_id} not found for owner {owner_id}")

    assignment = CategoryAssignment(label, clean_text(subcategory), AssignmentSource.MANUAL)
    gateway.update_transaction_category(
        transaction_id, assignment, needs_review=label == UNCATEGORIZED
    )
    if merchant:
        save_merchant_mapping(gateway, owner_id, merchant, label, assignment.subcategory)
    return assignment


__all__ = [
    "delete_merchant_mapping",
    "get_merchant_mapping",
    "list_merchant_mappings",
    "save_merchant_mapping",
    "set_transaction_category",
]
