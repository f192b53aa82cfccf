# ruff: noqa: I001
"""Persistence gateway for the import pipeline.

The orchestrator only talks to the :class:`PersistenceGateway` protocol.
:class:`SqlAlchemyGateway` implements it on top of the ORM models in
``db.models.finance`` and a session provided by ``db.client``; tests also use
an in-memory fake.

Error translation (SQLAlchemy -> pipeline taxonomy):
- ``IntegrityError`` / ``DataError`` while inserting one transaction ->
  :class:`~statement_import.errors.RowPersistenceError` (row-level; the
  insert ran inside a SAVEPOINT, so only that row is rolled back).
- Any other ``SQLAlchemyError`` -> :class:`~statement_import.errors.InfrastructureError`.

The gateway never commits; the caller owns the transaction (usually through
``db.client.session_scope``).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.finance import Account, EventLog, MerchantCategoryMapping, Transaction
from .errors import InfrastructureError, RowPersistenceError
from .logging_setup import get_logger
from .models import (
    AccountRef,
    AssignmentSource,
    CategoryAssignment,
    Direction,
    MerchantMapping,
    StoredTransaction,
    TransactionRow,
    UNCATEGORIZED,
)

logger = get_logger("statement_import.persistence")


class PersistenceGateway(Protocol):
    """Operations the pipeline needs from the keyed store."""

    # Accounts
    def find_account_by_owner_and_provider(
        self, owner_id: str, provider: str
    ) -> AccountRef | None: ...

    def get_account(self, owner_id: str, account_id: int) -> AccountRef | None: ...

    def create_account(
        self,
        owner_id: str,
        provider: str,
        initial_balance: Decimal = Decimal("0"),
        *,
        currency: str = "BRL",
    ) -> AccountRef: ...

    def update_account_balance_and_sync(
        self, account_id: int, new_balance: Decimal, synced_at: datetime
    ) -> None: ...

    # Transactions
    def exists_transaction_by_dedup_hash(self, dedup_hash: str) -> bool: ...

    def insert_transaction(self, row: TransactionRow) -> int: ...

    def list_transactions(
        self,
        owner_id: str,
        *,
        ids: Sequence[int] | None = None,
        only_uncategorized: bool = False,
    ) -> list[StoredTransaction]: ...

    def merchant_debit_dates(
        self, owner_id: str, merchant: str, *, since: date, exclude_id: int
    ) -> list[date]: ...

    def update_transaction_category(
        self, transaction_id: int, assignment: CategoryAssignment, *, needs_review: bool
    ) -> None: ...

    # Merchant mappings
    def get_merchant_mapping(self, owner_id: str, merchant_key: str) -> MerchantMapping | None: ...

    def upsert_merchant_mapping(
        self, owner_id: str, merchant_key: str, category: str, subcategory: str | None
    ) -> None: ...

    def list_merchant_mappings(self, owner_id: str) -> list[MerchantMapping]: ...

    def delete_merchant_mapping(self, owner_id: str, merchant_key: str) -> bool: ...

    # Events
    def log_event(self, owner_id: str, event_type: str, payload: Mapping[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# Row converters
# ---------------------------------------------------------------------------


def _account_ref(a: Account) -> AccountRef:
    return AccountRef(
        id=a.id,
        owner_id=a.owner_id,
        provider=a.provider,
        balance=Decimal(a.balance or 0).quantize(Decimal("0.01")),
        currency=a.currency_code,
    )


def _stored(t: Transaction) -> StoredTransaction:
    return StoredTransaction(
        id=t.id,
        owner_id=t.owner_id,
        account_id=t.account_id,
        date=t.date,
        amount=Decimal(t.amount).quantize(Decimal("0.01")),
        direction=Direction(t.direction),
        description=t.description,
        merchant=t.merchant,
        category=t.category,
        subcategory=t.subcategory,
        category_source=AssignmentSource(t.category_source),
        needs_review=bool(t.needs_review),
    )


def _json_safe(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_json_safe(v) for v in value]
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, date | datetime):
        return value.isoformat()
    return value


@contextmanager
def _infrastructure(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Database failure during %s: %s", operation, exc)
        raise InfrastructureError(f"{operation} failed: {exc}") from exc


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------


class SqlAlchemyGateway:
    """:class:`PersistenceGateway` backed by a SQLAlchemy ``Session``."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # ---- accounts -----------------------------------------------------------

    def find_account_by_owner_and_provider(
        self, owner_id: str, provider: str
    ) -> AccountRef | None:
        with _infrastructure("account lookup"):
            row = self.session.execute(
                select(Account).where(Account.owner_id == owner_id, Account.provider == provider)
            ).scalar_one_or_none()
        return _account_ref(row) if row is not None else None

    def get_account(self, owner_id: str, account_id: int) -> AccountRef | None:
        with _infrastructure("account lookup"):
            row = self.session.get(Account, account_id)
        if row is None or row.owner_id != owner_id:
            return None
        return _account_ref(row)

    def create_account(
        self,
        owner_id: str,
        provider: str,
        initial_balance: Decimal = Decimal("0"),
        *,
        currency: str = "BRL",
    ) -> AccountRef:
        account = Account(
            owner_id=owner_id,
            provider=provider,
            provider_account_id=f"{provider}-default",
            account_type="imported",
            name=f"Importado ({provider})",
            balance=initial_balance,
            currency_code=currency,
        )
        with _infrastructure("account creation"):
            self.session.add(account)
            self.session.flush()
        return _account_ref(account)

    def update_account_balance_and_sync(
        self, account_id: int, new_balance: Decimal, synced_at: datetime
    ) -> None:
        with _infrastructure("account balance update"):
            self.session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(
                    balance=new_balance,
                    last_synced_at=synced_at,
                    updated_at=func.current_timestamp(),
                )
            )

    # ---- transactions -------------------------------------------------------

    def exists_transaction_by_dedup_hash(self, dedup_hash: str) -> bool:
        with _infrastructure("duplicate check"):
            found = self.session.execute(
                select(Transaction.id).where(Transaction.dedup_hash == dedup_hash).limit(1)
            ).first()
        return found is not None

    def insert_transaction(self, row: TransactionRow) -> int:
        tx = row.transaction
        obj = Transaction(
            owner_id=row.owner_id,
            account_id=row.account_id,
            dedup_hash=row.dedup_hash,
            external_id=tx.natural_id,
            date=tx.date,
            amount=tx.amount,
            direction=tx.direction.value,
            currency_code=tx.currency,
            description=tx.description,
            merchant=tx.merchant,
            category=row.assignment.category,
            subcategory=row.assignment.subcategory,
            category_source=row.assignment.source.value,
            needs_review=row.needs_review,
            tags=row.tags,
            imported_from=row.imported_from,
            raw_record=_json_safe(dict(row.raw_record)),
        )
        try:
            with self.session.begin_nested():
                self.session.add(obj)
                self.session.flush()
        except (IntegrityError, DataError) as exc:
            raise RowPersistenceError(f"insert rejected: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            logger.error("Database failure during transaction insert: %s", exc)
            raise InfrastructureError(f"transaction insert failed: {exc}") from exc
        return obj.id

    def list_transactions(
        self,
        owner_id: str,
        *,
        ids: Sequence[int] | None = None,
        only_uncategorized: bool = False,
    ) -> list[StoredTransaction]:
        stmt = select(Transaction).where(Transaction.owner_id == owner_id)
        if ids is not None:
            stmt = stmt.where(Transaction.id.in_(list(ids)))
        if only_uncategorized:
            stmt = stmt.where(Transaction.category == UNCATEGORIZED)
        stmt = stmt.order_by(Transaction.date, Transaction.id)
        with _infrastructure("transaction listing"):
            rows = self.session.execute(stmt).scalars().all()
        return [_stored(t) for t in rows]

    def merchant_debit_dates(
        self, owner_id: str, merchant: str, *, since: date, exclude_id: int
    ) -> list[date]:
        stmt = (
            select(Transaction.date)
            .where(
                Transaction.owner_id == owner_id,
                Transaction.merchant == merchant,
                Transaction.direction == Direction.DEBIT.value,
                Transaction.date >= since,
                Transaction.id != exclude_id,
            )
            .order_by(Transaction.date.desc())
        )
        with _infrastructure("recurrence lookup"):
            return list(self.session.execute(stmt).scalars().all())

    def update_transaction_category(
        self, transaction_id: int, assignment: CategoryAssignment, *, needs_review: bool
    ) -> None:
        with _infrastructure("category update"):
            obj = self.session.get(Transaction, transaction_id)
            if obj is None:
                raise LookupError(f"transaction {transaction_id} not found")
            tags = [t for t in (obj.tags or []) if t != "needs_review"]
            if needs_review:
                tags.append("needs_review")
            obj.category = assignment.category
            obj.subcategory = assignment.subcategory
            obj.category_source = assignment.source.value
            obj.needs_review = needs_review
            obj.tags = tags
            obj.updated_at = func.current_timestamp()
            self.session.flush()

    # ---- merchant mappings ----------------------------------------------------

    def get_merchant_mapping(self, owner_id: str, merchant_key: str) -> MerchantMapping | None:
        with _infrastructure("merchant mapping lookup"):
            row = self.session.get(MerchantCategoryMapping, (owner_id, merchant_key))
        if row is None:
            return None
        return MerchantMapping(row.merchant_name, row.category, row.subcategory)

    def upsert_merchant_mapping(
        self, owner_id: str, merchant_key: str, category: str, subcategory: str | None
    ) -> None:
        # Portable get-then-write instead of a dialect-specific ON CONFLICT.
        with _infrastructure("merchant mapping upsert"):
            row = self.session.get(MerchantCategoryMapping, (owner_id, merchant_key))
            if row is None:
                self.session.add(
                    MerchantCategoryMapping(
                        owner_id=owner_id,
                        merchant_name=merchant_key,
                        category=category,
                        subcategory=subcategory,
                    )
                )
            else:
                row.category = category
                row.subcategory = subcategory
                row.updated_at = func.current_timestamp()
            self.session.flush()

    def list_merchant_mappings(self, owner_id: str) -> list[MerchantMapping]:
        stmt = (
            select(MerchantCategoryMapping)
            .where(MerchantCategoryMapping.owner_id == owner_id)
            .order_by(MerchantCategoryMapping.merchant_name)
        )
        with _infrastructure("merchant mapping listing"):
            rows = self.session.execute(stmt).scalars().all()
        return [MerchantMapping(r.merchant_name, r.category, r.subcategory) for r in rows]

    def delete_merchant_mapping(self, owner_id: str, merchant_key: str) -> bool:
        with _infrastructure("merchant mapping delete"):
            result = self.session.execute(
                delete(MerchantCategoryMapping).where(
                    MerchantCategoryMapping.owner_id == owner_id,
                    MerchantCategoryMapping.merchant_name == merchant_key,
                )
            )
        return bool(result.rowcount)

    # ---- events -------------------------------------------------------------

    def log_event(self, owner_id: str, event_type: str, payload: Mapping[str, Any]) -> None:
        with _infrastructure("event logging"):
            self.session.add(
                EventLog(owner_id=owner_id, event_type=event_type, payload=_json_safe(payload))
            )
            self.session.flush()


__all__ = ["PersistenceGateway", "SqlAlchemyGateway"]
