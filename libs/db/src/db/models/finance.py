from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements ``INTEGER PRIMARY KEY`` (rowid) columns.
_PK = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: accounts
# ---------------------------


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    # Import-source / provider tag (e.g. ``csv_import``, a bank-sync provider).
    provider: Mapped[str] = mapped_column(String, nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String, nullable=False)
    account_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'imported'")
    )
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    currency_code: Mapped[str] = mapped_column(
        CHAR(3), nullable=False, server_default=text("'BRL'")
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        # One import-source account per owner and provider tag.
        UniqueConstraint("owner_id", "provider", name="uq_accounts_owner_provider"),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    account_id: Mapped[int] = mapped_column(
        _PK, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    dedup_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False, unique=True)
    # Natural id supplied by the source (OFX FITID) when present.
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    # Always a non-negative magnitude; ``direction`` carries the sign.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    currency_code: Mapped[str] = mapped_column(
        CHAR(3), nullable=False, server_default=text("'BRL'")
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'Uncategorized'")
    )
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    category_source: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'fallback'")
    )
    needs_review: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    imported_from: Mapped[str] = mapped_column(String, nullable=False)
    raw_record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        CheckConstraint("direction in ('credit','debit')", name="ck_tx_direction"),
        CheckConstraint("amount >= 0", name="ck_tx_amount_non_negative"),
        CheckConstraint(
            (
                "category_source in ('rule_match','learned_merchant_mapping','fallback',"
                "'recurring_pattern','manual')"
            ),
            name="ck_tx_category_source",
        ),
        Index("ix_tx_owner_date", "owner_id", "date"),
        Index("ix_tx_owner_merchant", "owner_id", "merchant"),
    )


# ---------------------------
# Learned: merchant_category_mappings
# ---------------------------


class MerchantCategoryMapping(Base):
    __tablename__ = "merchant_category_mappings"

    owner_id: Mapped[str] = mapped_column(String, primary_key=True)
    # Normalized key (see ``statement_import.normalizers.normalize_merchant_name``).
    merchant_name: Mapped[str] = mapped_column(String, primary_key=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )


# ---------------------------
# Audit: events_logs
# ---------------------------


class EventLog(Base):
    __tablename__ = "events_logs"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (Index("ix_events_owner_type", "owner_id", "event_type"),)


__all__ = [
    "Base",
    "Account",
    "Transaction",
    "MerchantCategoryMapping",
    "EventLog",
]
