"""Rule-based transaction categorization.

Priority order for one transaction:

1. A learned merchant mapping for ``(owner, normalized merchant)``
   (source ``learned_merchant_mapping``).
2. Credits: the first matching income rule, else the table's income fallback
   (``Renda/Outras``). Credits are never left ``Uncategorized``.
3. Debits: the first matching expense rule.
4. Nothing matched: ``Uncategorized`` with source ``fallback``.

Mapping lookups go through a per-engine cache, so one import run queries the
store at most once per distinct merchant.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import TypeAlias

from .categories import RuleTable
from .logging_setup import get_logger
from .models import AssignmentSource, CategoryAssignment, Direction, MerchantMapping
from .normalizers import fold_text, normalize_merchant_name

logger = get_logger("statement_import.categorize")

MappingLookup: TypeAlias = Callable[[str, str], MerchantMapping | None]
"""``(owner_id, merchant_key) -> mapping | None``; usually the gateway's reader."""


def categorize_by_rules(
    rules: RuleTable,
    description: str | None,
    merchant: str | None,
    direction: Direction,
) -> CategoryAssignment:
    """Apply the rule table only (no learned mappings)."""

    text = fold_text(f"{description or ''} {merchant or ''}")
    rule = rules.first_match(text, direction)
    if rule is not None:
        return CategoryAssignment(rule.category, rule.subcategory, AssignmentSource.RULE_MATCH)
    if direction is Direction.CREDIT:
        fallback = rules.income_fallback
        return CategoryAssignment(
            fallback.category, fallback.subcategory, AssignmentSource.RULE_MATCH
        )
    return CategoryAssignment.fallback()


class CategorizationEngine:
    """Categorizer bound to one rule table and one mapping source.

    Create one engine per run; its mapping cache is not invalidated when
    mappings change in the store.
    """

    def __init__(self, rules: RuleTable, lookup: MappingLookup | None = None) -> None:
        self.rules = rules
        self._lookup = lookup
        self._cache: dict[tuple[str, str], MerchantMapping | None] = {}

    def learned_mapping(self, owner_id: str, merchant: str | None) -> MerchantMapping | None:
        key = normalize_merchant_name(merchant)
        if not key or self._lookup is None:
            return None
        cache_key = (owner_id, key)
        if cache_key not in self._cache:
            self._cache[cache_key] = self._lookup(owner_id, key)
        return self._cache[cache_key]

    def categorize(
        self,
        description: str | None,
        merchant: str | None,
        amount: Decimal,
        direction: Direction,
        owner_id: str,
    ) -> CategoryAssignment:
        """Return exactly one assignment for the transaction.

        ``amount`` is part of the contract; no rule in the current table reads it.
        """

        learned = self.learned_mapping(owner_id, merchant)
        if learned is not None:
            logger.debug("Merchant mapping hit for %r -> %s", merchant, learned.category)
            return CategoryAssignment(
                learned.category, learned.subcategory, AssignmentSource.LEARNED_MERCHANT_MAPPING
            )
        return categorize_by_rules(self.rules, description, merchant, direction)


__all__ = ["CategorizationEngine", "MappingLookup", "categorize_by_rules"]
