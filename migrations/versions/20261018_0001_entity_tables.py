# migrations/versions/20261018_0001_entity_tables.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Create the write-behind entity tables.

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18

This migration:
  * Creates accounts, personas, conversations and messages.
  * Adds unique constraints on accounts.external_id/email/username.
  * Indexes foreign keys and ``deleted_at`` on every table.
"""

from __future__ import annotations

import os
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

SCHEMA: str | None = os.getenv("DB_SCHEMA") or None


def _fk(target: str) -> str:
    return f"{SCHEMA}.{target}" if SCHEMA else target


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Apply the migration."""
    if SCHEMA:
        op.get_bind().exec_driver_sql(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("external_id", sa.String(128), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("avatar_url", sa.Text, nullable=True),
        sa.Column("bio", sa.Text, nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_accounts"),
        sa.UniqueConstraint("external_id", name="uq_accounts_external_id"),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.UniqueConstraint("username", name="uq_accounts_username"),
        schema=SCHEMA,
    )

    op.create_table(
        "personas",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("account_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("system_prompt", sa.Text, nullable=False),
        sa.Column("avatar_url", sa.Text, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default=sa.text("false")),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_personas"),
        sa.ForeignKeyConstraint(
            ["account_id"],
            [_fk("accounts.id")],
            name="fk_personas_account_id_accounts",
            ondelete="CASCADE",
        ),
        schema=SCHEMA,
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("account_id", sa.String(36), nullable=False),
        sa.Column("persona_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(256), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_conversations"),
        sa.ForeignKeyConstraint(
            ["account_id"],
            [_fk("accounts.id")],
            name="fk_conversations_account_id_accounts",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["persona_id"],
            [_fk("personas.id")],
            name="fk_conversations_persona_id_personas",
            ondelete="CASCADE",
        ),
        schema=SCHEMA,
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("conversation_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("token_count", sa.Integer, nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id", name="pk_messages"),
        sa.ForeignKeyConstraint(
            ["conversation_id"],
            [_fk("conversations.id")],
            name="fk_messages_conversation_id_conversations",
            ondelete="CASCADE",
        ),
        schema=SCHEMA,
    )

    for table, columns in (
        ("accounts", ("deleted_at",)),
        ("personas", ("account_id", "deleted_at")),
        ("conversations", ("account_id", "persona_id", "deleted_at")),
        ("messages", ("conversation_id", "deleted_at")),
    ):
        for column in columns:
            op.create_index(f"ix_{table}_{column}", table, [column], schema=SCHEMA)


def downgrade() -> None:
    """Revert the migration."""
    for table in ("messages", "conversations", "personas", "accounts"):
        op.drop_table(table, schema=SCHEMA)
