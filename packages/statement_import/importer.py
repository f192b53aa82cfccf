"""Import orchestrator: statement file -> persisted, categorized transactions.

``run_import`` drives one upload end to end::

    parse -> capacity gate -> account -> per row:
        normalize -> dedup hash -> duplicate check -> categorize -> insert
    -> balance update -> event -> ImportSummary

``sync_account`` feeds already-fetched aggregator records through the same
row loop, and ``recategorize_transactions`` re-runs categorization (plus the
monthly-recurrence heuristic) over rows that are already stored.

Failure semantics
-----------------
``FormatError`` and ``CapacityError`` are raised before any row is touched.
``InfrastructureError`` from the gateway propagates and aborts the run.
Everything row-level is counted in the summary and never raised.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from .categories import RuleTable, load_rule_table
from .categorize import CategorizationEngine
from .config import ImportSettings
from .duplicates import dedup_hash_for
from .errors import CapacityError, RowError, RowNormalizationError, RowPersistenceError
from .ingest import parse_statement
from .logging_setup import get_logger
from .models import (
    AccountRef,
    AssignmentSource,
    CategoryAssignment,
    ImportSummary,
    NormalizedTransaction,
    RawTransactionRecord,
    RecategorizeSummary,
    SyncRecord,
    TransactionRow,
    UNCATEGORIZED,
)
from .normalizers import (
    amount_sign,
    clean_text,
    normalize_amount,
    normalize_currency,
    normalize_date,
    resolve_direction,
)
from .persistence import PersistenceGateway
from .recurring import is_recurring

logger = get_logger("statement_import.importer")

IMPORT_EVENT = "csv_import_completed"
SYNC_EVENT = "account_synced"
RECATEGORIZE_EVENT = "transactions_categorized"

# Labels that never count as a real category when deciding what to revisit.
_PLACEHOLDER_CATEGORIES = frozenset({UNCATEGORIZED, "Outros", "Sem categoria"})


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------


def normalize_record(
    record: RawTransactionRecord,
    *,
    home_currency: str,
    day_first: bool,
    use_amount_sign: bool = False,
) -> NormalizedTransaction:
    """Turn one raw record into a typed transaction or raise ``RowNormalizationError``.

    ``use_amount_sign`` lets a signed amount decide the direction when the
    record carries no direction hint (aggregator records). CSV rows leave it
    off, so a row without a type column is a debit whatever its sign.
    """

    day = normalize_date(record.date, day_first=day_first)
    if day is None:
        raise RowNormalizationError(record.line_no, f"invalid date {record.date!r}")
    amount = normalize_amount(record.amount)
    if amount is None:
        raise RowNormalizationError(record.line_no, f"invalid amount {record.amount!r}")

    sign = amount_sign(record.amount) if use_amount_sign else None
    description = clean_text(record.description) or ""
    return NormalizedTransaction(
        date=day,
        amount=amount,
        direction=resolve_direction(record.direction_hint, sign),
        currency=normalize_currency(record.currency_hint, home_currency),
        description=description,
        merchant=clean_text(record.counterpart) or description or None,
        natural_id=clean_text(record.natural_id),
    )


# ---------------------------------------------------------------------------
# Shared row loop
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _RowContext:
    gateway: PersistenceGateway
    engine: CategorizationEngine
    owner_id: str
    account: AccountRef
    imported_from: str
    home_currency: str
    day_first: bool
    use_amount_sign: bool
    source_format: str


def _raw_payload(ctx: _RowContext, record: RawTransactionRecord) -> dict[str, Any]:
    return {"format": ctx.source_format, "line_no": record.line_no, "fields": dict(record.fields)}


def _process_rows(
    ctx: _RowContext,
    records: Iterable[RawTransactionRecord],
    summary: ImportSummary,
) -> Decimal:
    """Run every record through the pipeline; return the signed balance delta."""

    delta = Decimal("0")
    for record in records:
        try:
            tx = normalize_record(
                record,
                home_currency=ctx.home_currency,
                day_first=ctx.day_first,
                use_amount_sign=ctx.use_amount_sign,
            )
        except RowNormalizationError as exc:
            logger.warning("Skipping row: %s", exc)
            summary.record_failure(str(exc))
            continue

        dedup_hash = dedup_hash_for(ctx.owner_id, tx)
        if ctx.gateway.exists_transaction_by_dedup_hash(dedup_hash):
            summary.duplicates += 1
            continue

        assignment = ctx.engine.categorize(
            tx.description, tx.merchant, tx.amount, tx.direction, ctx.owner_id
        )
        if assignment.is_classified:
            summary.categorized += 1
        else:
            summary.unclassified += 1

        row = TransactionRow(
            owner_id=ctx.owner_id,
            account_id=ctx.account.id,
            dedup_hash=dedup_hash,
            transaction=tx,
            assignment=assignment,
            imported_from=ctx.imported_from,
            raw_record=_raw_payload(ctx, record),
        )
        try:
            ctx.gateway.insert_transaction(row)
        except RowPersistenceError as exc:
            message = str(RowError(record.line_no, f"could not be saved ({exc})"))
            logger.warning("Skipping row: %s", message)
            summary.record_failure(message)
            continue

        summary.inserted += 1
        delta += tx.signed_amount
    return delta


def _finish_run(
    gateway: PersistenceGateway,
    account: AccountRef,
    delta: Decimal,
) -> None:
    # One balance update per run, after the loop.
    gateway.update_account_balance_and_sync(account.id, account.balance + delta, datetime.now(UTC))


def _engine_for(
    gateway: PersistenceGateway, settings: ImportSettings, rules: RuleTable | None
) -> CategorizationEngine:
    table = rules if rules is not None else load_rule_table(settings.rules_path)
    return CategorizationEngine(table, gateway.get_merchant_mapping)


def _size_label(n_bytes: int) -> str:
    mib = 1024 * 1024
    return f"{n_bytes // mib}MB" if n_bytes % mib == 0 else f"{n_bytes} bytes"


def _event_payload(summary: ImportSummary, **extra: Any) -> dict[str, Any]:
    payload = dict(extra)
    payload.update(summary.to_dict())
    payload["errors"] = summary.errors[: summary.error_cap]
    return payload


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def run_import(
    gateway: PersistenceGateway,
    owner_id: str,
    content: bytes | str,
    *,
    filename: str,
    declared_type: str | None = None,
    settings: ImportSettings | None = None,
    rules: RuleTable | None = None,
) -> ImportSummary:
    """Import one statement file for ``owner_id`` and return its summary.

    Raises ``FormatError`` for unparseable files, ``CapacityError`` when the
    file is larger than ``settings.max_file_bytes`` or holds more than
    ``settings.max_rows`` rows, and ``InfrastructureError`` when the store
    fails. Nothing is written in the first two cases.
    """

    settings = settings or ImportSettings()
    if not owner_id:
        raise ValueError("owner_id is required")

    size = len(content.encode("utf-8")) if isinstance(content, str) else len(content)
    if size > settings.max_file_bytes:
        raise CapacityError(
            f"File size exceeds {_size_label(settings.max_file_bytes)} limit",
            actual=size,
            limit=settings.max_file_bytes,
        )

    parsed = parse_statement(content, filename=filename, declared_type=declared_type)
    total = len(parsed.records)
    if total > settings.max_rows:
        raise CapacityError(
            f"File has {total} rows; the maximum is {settings.max_rows}",
            actual=total,
            limit=settings.max_rows,
        )

    engine = _engine_for(gateway, settings, rules)
    account = gateway.find_account_by_owner_and_provider(owner_id, settings.provider_tag)
    if account is None:
        account = gateway.create_account(
            owner_id, settings.provider_tag, currency=settings.home_currency
        )
        logger.info(
            "Created %s account %s for owner %s", settings.provider_tag, account.id, owner_id
        )

    summary = ImportSummary(total_rows=total, error_cap=settings.error_cap)
    ctx = _RowContext(
        gateway=gateway,
        engine=engine,
        owner_id=owner_id,
        account=account,
        imported_from=f"{settings.provider_tag}:{filename}",
        home_currency=parsed.currency or settings.home_currency,
        day_first=settings.day_first if parsed.day_first is None else parsed.day_first,
        use_amount_sign=False,
        source_format=parsed.format,
    )
    delta = _process_rows(ctx, parsed.records, summary)
    _finish_run(gateway, account, delta)

    gateway.log_event(
        owner_id,
        IMPORT_EVENT,
        _event_payload(summary, filename=filename, format=parsed.format),
    )
    logger.info(
        "Imported %r: %d rows, %d inserted, %d duplicates, %d failed, %d categorized, "
        "%d unclassified",
        filename,
        summary.total_rows,
        summary.inserted,
        summary.duplicates,
        summary.failed_rows,
        summary.categorized,
        summary.unclassified,
    )
    return summary


def _sync_records(
    records: Sequence[Mapping[str, Any]], summary: ImportSummary
) -> list[RawTransactionRecord]:
    out: list[RawTransactionRecord] = []
    for position, payload in enumerate(records, start=1):
        try:
            rec = SyncRecord.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            message = str(RowError(position, f"invalid record ({fields})"))
            logger.warning("Skipping row: %s", message)
            summary.record_failure(message)
            continue
        out.append(
            RawTransactionRecord(
                line_no=position,
                date=rec.date,
                amount=rec.amount,
                description=rec.description,
                counterpart=rec.merchant,
                currency_hint=rec.currency,
                natural_id=rec.id,
                fields={k: str(v) for k, v in rec.model_dump().items() if v is not None},
            )
        )
    return out


def sync_account(
    gateway: PersistenceGateway,
    owner_id: str,
    account_id: int,
    records: Sequence[Mapping[str, Any]],
    *,
    settings: ImportSettings | None = None,
    rules: RuleTable | None = None,
) -> ImportSummary:
    """Ingest aggregator records into an existing account of ``owner_id``.

    The amount sign decides the direction. Raises ``LookupError`` when the
    account does not exist or belongs to someone else.
    """

    settings = settings or ImportSettings()
    account = gateway.get_account(owner_id, account_id)
    if account is None:
        raise LookupError(f"account {account_id} not found for owner {owner_id}")
    if len(records) > settings.max_rows:
        raise CapacityError(
            f"Batch has {len(records)} records; the maximum is {settings.max_rows}",
            actual=len(records),
            limit=settings.max_rows,
        )

    summary = ImportSummary(total_rows=len(records), error_cap=settings.error_cap)
    raw = _sync_records(records, summary)
    ctx = _RowContext(
        gateway=gateway,
        engine=_engine_for(gateway, settings, rules),
        owner_id=owner_id,
        account=account,
        imported_from=f"sync:{account.provider}",
        home_currency=account.currency or settings.home_currency,
        # Aggregators send ISO dates; this only matters for stray NN/NN/YYYY values.
        day_first=settings.day_first,
        use_amount_sign=True,
        source_format="sync",
    )
    delta = _process_rows(ctx, raw, summary)
    _finish_run(gateway, account, delta)

    gateway.log_event(
        owner_id,
        SYNC_EVENT,
        _event_payload(summary, account_id=account.id, provider=account.provider),
    )
    logger.info(
        "Synced account %s: %d records, %d inserted, %d duplicates, %d failed",
        account.id,
        summary.total_rows,
        summary.inserted,
        summary.duplicates,
        summary.failed_rows,
    )
    return summary


def recategorize_transactions(
    gateway: PersistenceGateway,
    owner_id: str,
    transaction_ids: Sequence[int] | None = None,
    *,
    settings: ImportSettings | None = None,
    rules: RuleTable | None = None,
) -> RecategorizeSummary:
    """Re-run categorization over stored rows that still lack a real category.

    With ``transaction_ids`` only those rows are considered (ids that do not
    exist or belong to another owner count as skipped); otherwise every
    ``Uncategorized`` row of the owner. Rows already carrying a real
    category are skipped in both cases.
    """

    settings = settings or ImportSettings()
    engine = _engine_for(gateway, settings, rules)
    recurring_label = engine.rules.recurring

    if transaction_ids is None:
        rows = gateway.list_transactions(owner_id, only_uncategorized=True)
        missing = 0
    else:
        wanted = list(dict.fromkeys(transaction_ids))
        rows = gateway.list_transactions(owner_id, ids=wanted)
        missing = len(wanted) - len(rows)

    summary = RecategorizeSummary(skipped=missing)
    for row in rows:
        if row.category not in _PLACEHOLDER_CATEGORIES:
            summary.skipped += 1
            continue

        assignment = engine.categorize(
            row.description, row.merchant, row.amount, row.direction, owner_id
        )
        if (
            assignment.source is not AssignmentSource.LEARNED_MERCHANT_MAPPING
            and assignment.category != recurring_label.category
            and is_recurring(gateway, row)
        ):
            assignment = CategoryAssignment(
                recurring_label.category,
                recurring_label.subcategory,
                AssignmentSource.RECURRING_PATTERN,
            )

        classified = assignment.is_classified
        gateway.update_transaction_category(row.id, assignment, needs_review=not classified)
        if classified:
            summary.categorized += 1
        else:
            summary.unclassified += 1
            summary.needs_review_ids.append(row.id)

    total = len(rows) + missing
    gateway.log_event(
        owner_id,
        RECATEGORIZE_EVENT,
        {
            "categorized_count": summary.categorized,
            "unclassified_count": summary.unclassified,
            "skipped_count": summary.skipped,
            "total": total,
            "needs_review": list(summary.needs_review_ids),
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )
    logger.info(
        "Recategorized %d transactions for owner %s: %d categorized, %d unclassified, "
        "%d skipped",
        total,
        owner_id,
        summary.categorized,
        summary.unclassified,
        summary.skipped,
    )
    return summary


__all__ = [
    "IMPORT_EVENT",
    "RECATEGORIZE_EVENT",
    "SYNC_EVENT",
    "normalize_record",
    "recategorize_transactions",
    "run_import",
    "sync_account",
]
