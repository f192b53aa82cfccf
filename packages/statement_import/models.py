"""Data models for ``statement_import``.

Pipeline records are frozen ``dataclass`` instances; inputs that cross a trust
boundary (webhook bodies, aggregator records, the JSON rule table) are
validated with pydantic DTOs at the bottom of this module.

Record lifecycle
----------------
``RawTransactionRecord`` (parser output, strings only) ->
``NormalizedTransaction`` (typed, amount as a magnitude) ->
``CategoryAssignment`` -> persisted row. ``ImportSummary`` accumulates the
per-row outcomes of one run.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

UNCATEGORIZED = "Uncategorized"


class Direction(StrEnum):
    CREDIT = "credit"
    DEBIT = "debit"


class AssignmentSource(StrEnum):
    RULE_MATCH = "rule_match"
    LEARNED_MERCHANT_MAPPING = "learned_merchant_mapping"
    FALLBACK = "fallback"
    # Only produced by the recategorization pass and manual edits.
    RECURRING_PATTERN = "recurring_pattern"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawTransactionRecord:
    """One statement line exactly as the parser found it.

    ``line_no`` is the file line the CSV row ends on (the header is line 1),
    the 1-based block index for OFX, or the 1-based record position for sync
    batches. ``fields`` keeps the source cells so the persisted
    ``raw_record`` can reproduce the input.
    """

    line_no: int
    date: str
    amount: str
    description: str
    counterpart: str | None = None
    currency_hint: str | None = None
    direction_hint: str | None = None
    natural_id: str | None = None
    fields: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ParsedStatement:
    """Parser result: detected format, records in file order, date convention."""

    format: Literal["csv", "ofx"]
    records: tuple[RawTransactionRecord, ...]
    headers: tuple[str, ...] = ()
    # ``None`` when the file gives no evidence either way.
    day_first: bool | None = None
    currency: str | None = None


# ---------------------------------------------------------------------------
# Normalized row and its category
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    date: date
    amount: Decimal
    direction: Direction
    currency: str
    description: str
    merchant: str | None = None
    natural_id: str | None = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("NormalizedTransaction.amount must be a non-negative magnitude")

    @property
    def signed_amount(self) -> Decimal:
        """Balance effect: positive for credits, negative for debits."""
        return self.amount if self.direction is Direction.CREDIT else -self.amount


@dataclass(frozen=True, slots=True)
class CategoryAssignment:
    category: str
    subcategory: str | None
    source: AssignmentSource

    def __post_init__(self) -> None:
        if self.source is AssignmentSource.FALLBACK and (
            self.category != UNCATEGORIZED or self.subcategory is not None
        ):
            raise ValueError("fallback assignments must be Uncategorized with no subcategory")

    @classmethod
    def fallback(cls) -> CategoryAssignment:
        return cls(UNCATEGORIZED, None, AssignmentSource.FALLBACK)

    @property
    def is_classified(self) -> bool:
        return self.category != UNCATEGORIZED


# ---------------------------------------------------------------------------
# Run summaries
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ImportSummary:
    """Counters and a capped list of row-level messages for one run.

    ``errors`` never grows beyond ``error_cap`` entries; counters are exact.
    """

    total_rows: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed_rows: int = 0
    categorized: int = 0
    unclassified: int = 0
    errors: list[str] = field(default_factory=list)
    error_cap: int = 10

    def record_failure(self, message: str) -> None:
        self.failed_rows += 1
        if len(self.errors) < self.error_cap:
            self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rows": self.total_rows,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "failed_rows": self.failed_rows,
            "categorized": self.categorized,
            "unclassified": self.unclassified,
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class RecategorizeSummary:
    categorized: int = 0
    unclassified: int = 0
    skipped: int = 0
    needs_review_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "categorized": self.categorized,
            "unclassified": self.unclassified,
            "skipped": self.skipped,
            "needs_review_ids": list(self.needs_review_ids),
        }


@dataclass(frozen=True, slots=True)
class MerchantMapping:
    """A learned ``(owner, merchant) -> (category, subcategory)`` override."""

    merchant_name: str
    category: str
    subcategory: str | None = None


@dataclass(frozen=True, slots=True)
class AccountRef:
    """The subset of an account row the orchestrator reads and writes."""

    id: int
    owner_id: str
    provider: str
    balance: Decimal
    currency: str


@dataclass(frozen=True, slots=True)
class TransactionRow:
    """Everything the store needs to insert one transaction."""

    owner_id: str
    account_id: int
    dedup_hash: str
    transaction: NormalizedTransaction
    assignment: CategoryAssignment
    imported_from: str
    raw_record: Mapping[str, Any] = field(default_factory=dict)

    @property
    def needs_review(self) -> bool:
        return not self.assignment.is_classified

    @property
    def tags(self) -> list[str]:
        return ["needs_review"] if self.needs_review else []


@dataclass(frozen=True, slots=True)
class StoredTransaction:
    """A persisted transaction as read back for recategorization."""

    id: int
    owner_id: str
    account_id: int
    date: date
    amount: Decimal
    direction: Direction
    description: str
    merchant: str | None
    category: str
    subcategory: str | None
    category_source: AssignmentSource
    needs_review: bool


# ---------------------------------------------------------------------------
# Boundary DTOs (pydantic)
# ---------------------------------------------------------------------------


class ImportRequest(BaseModel):
    """Webhook body. Accepts camelCase and the legacy snake_case field names."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    owner_id: str = Field(validation_alias=AliasChoices("ownerId", "owner_id", "profile_id"))
    file_content: str = Field(validation_alias=AliasChoices("fileContent", "file_content"))
    filename: str = Field(validation_alias=AliasChoices("filename", "file_name", "fileName"))
    declared_type: str = Field(
        validation_alias=AliasChoices("declaredType", "declared_type", "file_type", "fileType")
    )

    @field_validator("owner_id", "file_content", "filename", "declared_type")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v


class SyncRecord(BaseModel):
    """One already-fetched aggregator transaction; ``amount`` is signed."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    date: str = Field(validation_alias=AliasChoices("date", "transaction_date"))
    amount: str
    description: str = ""
    merchant: str | None = Field(
        default=None, validation_alias=AliasChoices("merchant", "merchant_name")
    )
    currency: str | None = None
    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "transaction_id"))


class CategoryRuleSpec(BaseModel):
    """One row of the JSON rule table."""

    model_config = ConfigDict(strict=True, extra="forbid", str_strip_whitespace=True)

    domain: str
    direction: Literal["credit", "debit"]
    category: str
    subcategory: str | None = None
    keywords: tuple[str, ...]

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_non_empty(cls, v: Any) -> Any:
        if isinstance(v, list):
            v = tuple(v)
        if not v:
            raise ValueError("a rule needs at least one keyword")
        return v

    @field_validator("category")
    @classmethod
    def _not_sentinel(cls, v: str) -> str:
        if not v or v == UNCATEGORIZED:
            raise ValueError("rule category must be a real taxonomy label")
        return v


class CategoryLabel(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid", str_strip_whitespace=True)

    category: str
    subcategory: str | None = None


class RuleTableFile(BaseModel):
    """Top-level schema of ``category_rules.v*.json``."""

    model_config = ConfigDict(strict=True, extra="forbid", str_strip_whitespace=True)

    schema_version: int
    income_fallback: CategoryLabel
    recurring: CategoryLabel
    rules: list[CategoryRuleSpec]


__all__ = [
    "UNCATEGORIZED",
    "AccountRef",
    "AssignmentSource",
    "CategoryAssignment",
    "CategoryLabel",
    "CategoryRuleSpec",
    "Direction",
    "ImportRequest",
    "ImportSummary",
    "MerchantMapping",
    "NormalizedTransaction",
    "ParsedStatement",
    "RawTransactionRecord",
    "RecategorizeSummary",
    "RuleTableFile",
    "StoredTransaction",
    "SyncRecord",
    "TransactionRow",
]
