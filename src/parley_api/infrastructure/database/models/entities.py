# src/parley_api/infrastructure/database/models/entities.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""ORM models for the write-behind entity tables.

Tables:
    accounts       identity-provider users; external_id/email/username unique
    personas       owned by an account
    conversations  between an account and a persona
    messages       within a conversation

Foreign keys cascade on delete. Soft deletes (``deleted_at``) never trigger
cascades; they are plain updates.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from parley_api.domain.enums.entity_kind import MessageRole
from parley_api.infrastructure.database.models.base import (
    Base,
    IdentityMixin,
    SoftDeleteMixin,
    TimestampMixin,
    qualified,
)

__all__ = ["AccountRow", "PersonaRow", "ConversationRow", "MessageRow"]


class AccountRow(IdentityMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Account persisted row."""

    __tablename__ = "accounts"

    external_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(128))
    avatar_url: Mapped[str | None] = mapped_column(Text)
    bio: Mapped[str | None] = mapped_column(Text)


class PersonaRow(IdentityMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Persona persisted row."""

    __tablename__ = "personas"

    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("accounts.id"), ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    is_public: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )


class ConversationRow(IdentityMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Conversation persisted row."""

    __tablename__ = "conversations"

    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("accounts.id"), ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    persona_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("personas.id"), ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str | None] = mapped_column(String(256))
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    message_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )


class MessageRow(IdentityMixin, TimestampMixin, SoftDeleteMixin, Base):
    """Message persisted row."""

    __tablename__ = "messages"

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey(qualified("conversations.id"), ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[MessageRole] = mapped_column(
        Enum(
            MessageRole,
            name="message_role",
            native_enum=False,
            length=16,
            values_callable=lambda enum_cls: [m.value for m in enum_cls],
        ),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int | None] = mapped_column(Integer)
