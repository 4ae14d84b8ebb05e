# src/parley_api/application/schemas/dto/write_job.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Write job envelope (Application Layer).

Purpose:
    Typed description of a pending mutation, dispatched after a cache write
    and applied later by the sync engine. On the wire a job is a JSON object::

        {"operation": "create|update|delete", "table": "<kind>", "id": "...",
         "data": {...}, "timestamp": 1700000000000}

    Parsing selects one variant by ``(operation, table)``:

        * ``CreateJob[<Kind>Record]`` carries the full record.
        * ``UpdateJob[<Kind>Patch]`` carries only the fields being changed.
        * ``DeleteJob`` carries no data.

    ``timestamp`` is the dispatch time in epoch milliseconds. It is kept for
    logging only and never used to resolve conflicts.

Layer:
    application/schemas/dto
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from typing import Any, Generic, Literal, TypeVar

from pydantic import Field, ValidationError, model_validator

from parley_api.application.schemas.dto.base import BaseDTO
from parley_api.application.schemas.dto.records import (
    KIND_SCHEMAS,
    EntityPatch,
    EntityRecord,
    schema_for,
)
from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.enums.entity_kind import EntityKind, WriteOperation
from parley_api.domain.exceptions.write_behind import MalformedJobError, UnknownEntityKindError

__all__ = [
    "CreateJob",
    "UpdateJob",
    "DeleteJob",
    "WriteJob",
    "build_create_job",
    "build_update_job",
    "build_delete_job",
    "parse_write_job",
    "to_wire",
    "now_ms",
]

RecordT = TypeVar("RecordT", bound=EntityRecord)
PatchT = TypeVar("PatchT", bound=EntityPatch)


def now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class _JobBase(BaseDTO):
    table: EntityKind
    id: str = Field(min_length=1)
    timestamp: int = Field(ge=0)

    @property
    def kind(self) -> EntityKind:
        """Entity kind targeted by the job."""
        return self.table

    @property
    def write_operation(self) -> WriteOperation:
        """Operation as an enum member."""
        return WriteOperation(self.operation)  # type: ignore[attr-defined]

    def log_context(self) -> dict[str, Any]:
        """Fields identifying the job in log records."""
        return {
            "table": self.table.value,
            "operation": self.write_operation.value,
            "entity_id": self.id,
        }


class CreateJob(_JobBase, Generic[RecordT]):
    """Insert the full record."""

    operation: Literal["create"]
    data: RecordT

    @model_validator(mode="after")
    def _data_matches_id(self) -> CreateJob[RecordT]:
        if self.data.id != self.id:
            raise ValueError("data.id does not match job id")
        return self


class UpdateJob(_JobBase, Generic[PatchT]):
    """Apply a partial field set to an existing row."""

    operation: Literal["update"]
    data: PatchT


class DeleteJob(_JobBase):
    """Soft-delete the row."""

    operation: Literal["delete"]
    data: None = None


WriteJob = CreateJob[Any] | UpdateJob[Any] | DeleteJob


def _build_variants() -> dict[tuple[str, EntityKind], type[_JobBase]]:
    variants: dict[tuple[str, EntityKind], type[_JobBase]] = {}
    for kind, schema in KIND_SCHEMAS.items():
        variants[(WriteOperation.CREATE.value, kind)] = CreateJob[schema.record_type]
        variants[(WriteOperation.UPDATE.value, kind)] = UpdateJob[schema.patch_type]
        variants[(WriteOperation.DELETE.value, kind)] = DeleteJob
    return variants


_VARIANTS = _build_variants()


# --------------------------------------------------------------------------- #
# Construction
# --------------------------------------------------------------------------- #
def build_create_job(entity: BaseEntity) -> CreateJob[Any]:
    """Build a ``create`` job carrying the full entity."""
    schema = schema_for(entity.KIND)
    model = _VARIANTS[(WriteOperation.CREATE.value, entity.KIND)]
    return model(  # type: ignore[return-value]
        operation=WriteOperation.CREATE.value,
        table=entity.KIND,
        id=entity.id,
        data=schema.record_type.from_entity(entity),
        timestamp=now_ms(),
    )


def build_update_job(kind: EntityKind, entity_id: str, patch: EntityPatch) -> UpdateJob[Any]:
    """Build an ``update`` job carrying only the fields set on ``patch``."""
    model = _VARIANTS[(WriteOperation.UPDATE.value, kind)]
    return model(  # type: ignore[return-value]
        operation=WriteOperation.UPDATE.value,
        table=kind,
        id=entity_id,
        data=patch,
        timestamp=now_ms(),
    )


def build_delete_job(kind: EntityKind, entity_id: str) -> DeleteJob:
    """Build a ``delete`` job."""
    return DeleteJob(
        operation=WriteOperation.DELETE.value,
        table=kind,
        id=entity_id,
        timestamp=now_ms(),
    )


# --------------------------------------------------------------------------- #
# Wire codec
# --------------------------------------------------------------------------- #
def to_wire(job: WriteJob) -> str:
    """Serialize a job to its JSON wire form.

    ``data`` is omitted when absent; update patches keep only explicitly set
    fields (an explicit ``null`` is preserved).
    """
    return job.model_dump_json(by_alias=True, exclude_unset=True)


def parse_write_job(raw: Mapping[str, Any] | str | bytes) -> WriteJob:
    """Parse and validate a wire job.

    Args:
        raw: Decoded JSON object, or the raw JSON text.

    Returns:
        The matching job variant.

    Raises:
        UnknownEntityKindError: ``table`` names no known entity kind.
        MalformedJobError: Any other shape violation.
    """
    if isinstance(raw, str | bytes):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedJobError("Write job is not valid JSON") from exc
    if not isinstance(raw, Mapping):
        raise MalformedJobError("Write job must be a JSON object")

    table = raw.get("table")
    kind = EntityKind.from_wire(table) if isinstance(table, str) else None
    if kind is None:
        raise UnknownEntityKindError(
            f"Unknown entity kind: {table!r}",
            details={"table": table if isinstance(table, str) else None, "id": raw.get("id")},
        )

    operation = raw.get("operation")
    model = _VARIANTS.get((operation, kind)) if isinstance(operation, str) else None
    if model is None:
        raise MalformedJobError(
            f"Unknown operation: {operation!r}",
            details={"table": kind.value, "id": raw.get("id")},
        )

    try:
        return model.model_validate(dict(raw))  # type: ignore[return-value]
    except ValidationError as exc:
        raise MalformedJobError(
            "Write job failed validation",
            details={
                "table": kind.value,
                "operation": operation,
                "id": raw.get("id"),
                "errors": exc.errors(include_url=False, include_context=False, include_input=False),
            },
        ) from exc
