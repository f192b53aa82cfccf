# ruff: noqa: I001
"""Import core tables: accounts, transactions, events_logs.

Revision ID: 0001_import_core
Revises: None
Create Date: 2026-09-28
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_import_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    # accounts
    op.create_table(
        "accounts",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("provider_account_id", sa.String(), nullable=False),
        sa.Column(
            "account_type",
            sa.String(),
            nullable=False,
            server_default=sa.text("'imported'"),
        ),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("balance", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency_code", sa.CHAR(3), nullable=False, server_default=sa.text("'BRL'")),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("owner_id", "provider", name="uq_accounts_owner_provider"),
    )

    # transactions
    op.create_table(
        "transactions",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("account_id", _PK, nullable=False),
        sa.Column("dedup_hash", sa.CHAR(64), nullable=False, unique=True),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("currency_code", sa.CHAR(3), nullable=False, server_default=sa.text("'BRL'")),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("merchant", sa.Text(), nullable=True),
        sa.Column(
            "category",
            sa.String(),
            nullable=False,
            server_default=sa.text("'Uncategorized'"),
        ),
        sa.Column("subcategory", sa.String(), nullable=True),
        sa.Column(
            "category_source",
            sa.String(),
            nullable=False,
            server_default=sa.text("'fallback'"),
        ),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("imported_from", sa.String(), nullable=False),
        sa.Column("raw_record", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            name="fk_tx_account",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint("direction in ('credit','debit')", name="ck_tx_direction"),
        sa.CheckConstraint("amount >= 0", name="ck_tx_amount_non_negative"),
        sa.CheckConstraint(
            (
                "category_source in ('rule_match','learned_merchant_mapping','fallback',"
                "'recurring_pattern','manual')"
            ),
            name="ck_tx_category_source",
        ),
    )
    op.create_index("ix_tx_owner_date", "transactions", ["owner_id", "date"], unique=False)
    op.create_index("ix_tx_owner_merchant", "transactions", ["owner_id", "merchant"], unique=False)

    # events_logs
    op.create_table(
        "events_logs",
        sa.Column("id", _PK, primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_events_owner_type", "events_logs", ["owner_id", "event_type"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_events_owner_type", table_name="events_logs")
    op.drop_table("events_logs")
    op.drop_index("ix_tx_owner_merchant", table_name="transactions")
    op.drop_index("ix_tx_owner_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("accounts")
