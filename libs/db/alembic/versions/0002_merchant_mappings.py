# ruff: noqa: I001
"""Learned merchant -> category overrides.

Revision ID: 0002_merchant_mappings
Revises: 0001_import_core
Create Date: 2026-10-05
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_merchant_mappings"
down_revision: str | None = "0001_import_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Keyed by (owner, normalized merchant); rows are only removed by explicit user action.
    op.create_table(
        "merchant_category_mappings",
        sa.Column("owner_id", sa.String(), primary_key=True),
        sa.Column("merchant_name", sa.String(), primary_key=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("subcategory", sa.String(), nullable=True),
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
    )


def downgrade() -> None:
    op.drop_table("merchant_category_mappings")
