# tests/unit/domain/test_entity_invariants.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

from datetime import timedelta

import pytest

from parley_api.domain.entities.account import Account
from parley_api.domain.entities.base import next_updated_at, utc_now
from parley_api.domain.entities.conversation import Conversation
from parley_api.domain.enums.entity_kind import EntityKind


def test_account_new_assigns_uuid7_id_and_defaults_display_name() -> None:
    account = Account.new(external_id="ext-1", email="a@x.com", username="alice")

    assert len(account.id) == 36
    assert account.id[14] == "7"  # UUID version nibble
    assert account.display_name == "alice"
    assert account.created_at == account.updated_at
    assert account.deleted_at is None
    assert not account.is_deleted


def test_account_rejects_invalid_email() -> None:
    with pytest.raises(ValueError):
        Account.new(external_id="ext-1", email="not-an-email", username="alice")


def test_entity_requires_id() -> None:
    now = utc_now()
    with pytest.raises(ValueError):
        Account(id="", created_at=now, updated_at=now, external_id="e", email="a@x.com", username="a")


def test_conversation_rejects_negative_message_count() -> None:
    now = utc_now()
    with pytest.raises(ValueError):
        Conversation(
            id="c1",
            created_at=now,
            updated_at=now,
            account_id="u1",
            persona_id="p1",
            last_message_at=now,
            message_count=-1,
        )


def test_next_updated_at_is_strictly_later() -> None:
    future = utc_now() + timedelta(seconds=5)
    bumped = next_updated_at(future)
    assert bumped > future
    assert next_updated_at(None) <= utc_now()


def test_mutable_field_names_exclude_identity_and_audit_fields() -> None:
    names = Account.mutable_field_names()
    assert "id" not in names
    assert "created_at" not in names
    assert "deleted_at" not in names
    assert set(names) == {"external_id", "email", "username", "display_name", "avatar_url", "bio"}


def test_entity_kind_wire_values_and_prefixes() -> None:
    assert EntityKind.from_wire("accounts") is EntityKind.ACCOUNT
    assert EntityKind.from_wire("widgets") is None
    assert EntityKind.MESSAGE.cache_prefix == "message"
