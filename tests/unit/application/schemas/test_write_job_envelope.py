# tests/unit/application/schemas/test_write_job_envelope.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from parley_api.application.schemas.dto.records import (
    AccountPatch,
    AccountRecord,
    MessagePatch,
    PersonaRecord,
)
from parley_api.application.schemas.dto.write_job import (
    CreateJob,
    DeleteJob,
    UpdateJob,
    build_create_job,
    build_delete_job,
    build_update_job,
    parse_write_job,
    to_wire,
)
from parley_api.domain.entities.account import Account
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.exceptions.write_behind import MalformedJobError, UnknownEntityKindError


def test_create_job_wire_shape_carries_full_record(make_account: Callable[..., Account]) -> None:
    job = build_create_job(make_account())
    wire = json.loads(to_wire(job))

    assert set(wire) == {"operation", "table", "id", "data", "timestamp"}
    assert wire["operation"] == "create"
    assert wire["table"] == "accounts"
    assert wire["id"] == "u1"
    assert isinstance(wire["timestamp"], int)
    assert wire["data"]["email"] == "a@x.com"
    assert wire["data"]["externalId"] == "ext-u1"
    assert wire["data"]["displayName"] == "Alice"
    assert wire["data"]["deletedAt"] is None


def test_update_job_carries_only_changed_fields() -> None:
    job = build_update_job(EntityKind.ACCOUNT, "u1", AccountPatch(display_name="Alice B"))
    wire = json.loads(to_wire(job))

    assert wire["operation"] == "update"
    assert wire["data"] == {"displayName": "Alice B"}


def test_update_job_keeps_explicit_null() -> None:
    patch = AccountPatch.from_changes({"avatarUrl": None})
    wire = json.loads(to_wire(build_update_job(EntityKind.ACCOUNT, "u1", patch)))
    assert wire["data"] == {"avatarUrl": None}


def test_delete_job_has_no_data() -> None:
    wire = json.loads(to_wire(build_delete_job(EntityKind.PERSONA, "p1")))
    assert "data" not in wire
    assert wire["table"] == "personas"


def test_parse_selects_typed_variant_per_operation_and_kind(
    make_account: Callable[..., Account],
) -> None:
    account = make_account()
    created = parse_write_job(to_wire(build_create_job(account)))
    assert isinstance(created, CreateJob)
    assert isinstance(created.data, AccountRecord)
    assert created.data.to_entity() == account

    updated = parse_write_job(
        {"operation": "update", "table": "messages", "id": "m1", "data": {"content": "hi"}, "timestamp": 1}
    )
    assert isinstance(updated, UpdateJob)
    assert isinstance(updated.data, MessagePatch)
    assert updated.data.changes() == {"content": "hi"}

    deleted = parse_write_job(
        json.dumps({"operation": "delete", "table": "conversations", "id": "c1", "timestamp": 1}).encode()
    )
    assert isinstance(deleted, DeleteJob)
    assert deleted.kind is EntityKind.CONVERSATION


def test_parse_persona_record_defaults() -> None:
    job = parse_write_job(
        {
            "operation": "create",
            "table": "personas",
            "id": "p1",
            "timestamp": 1,
            "data": {
                "id": "p1",
                "createdAt": "2026-01-01T00:00:00Z",
                "updatedAt": "2026-01-01T00:00:00Z",
                "accountId": "u1",
                "name": "Sage",
                "systemPrompt": "Be wise.",
            },
        }
    )
    assert isinstance(job.data, PersonaRecord)
    assert job.data.is_public is False


def test_parse_unknown_table_raises_unknown_kind() -> None:
    with pytest.raises(UnknownEntityKindError) as exc_info:
        parse_write_job({"operation": "delete", "table": "widgets", "id": "w1", "timestamp": 1})
    assert exc_info.value.details["table"] == "widgets"


@pytest.mark.parametrize(
    "raw",
    [
        b"{not json",
        "[1, 2]",
        {"operation": "upsert", "table": "accounts", "id": "u1", "timestamp": 1},
        {"operation": "delete", "table": "accounts", "id": "", "timestamp": 1},
        {"operation": "delete", "table": "accounts", "id": "u1", "timestamp": -5},
        {"operation": "update", "table": "accounts", "id": "u1", "timestamp": 1, "data": {"nope": 1}},
        {"operation": "update", "table": "accounts", "id": "u1", "timestamp": 1, "data": {"email": None}},
    ],
)
def test_parse_rejects_malformed_jobs(raw: Any) -> None:
    with pytest.raises(MalformedJobError):
        parse_write_job(raw)


def test_create_job_data_id_must_match(make_account: Callable[..., Account]) -> None:
    wire = json.loads(to_wire(build_create_job(make_account())))
    wire["id"] = "someone-else"
    with pytest.raises(MalformedJobError) as exc_info:
        parse_write_job(wire)
    assert exc_info.value.details["errors"]
