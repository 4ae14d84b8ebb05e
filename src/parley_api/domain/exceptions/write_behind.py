# src/parley_api/domain/exceptions/write_behind.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Write-behind pipeline exceptions.

Summary:
    Errors raised by the cache layer, the job dispatcher and the sync engine.
    Transient I/O failures (cache, dispatch, durable store) are surfaced to the
    caller without retry; retries belong to the caller or the delivery channel.

Layer:
    domain/exceptions
"""

from __future__ import annotations

from parley_api.domain.exceptions.base import DomainError


class CacheStoreError(DomainError):
    """A cache round trip failed."""

    code = "CACHE_UNAVAILABLE"


class JobDispatchError(DomainError):
    """The write job could not be handed to the delivery channel.

    The cache write that preceded the dispatch is not rolled back.
    """

    code = "DISPATCH_FAILED"


class UnknownEntityKindError(DomainError):
    """A write job names an entity kind this service does not know."""

    code = "UNKNOWN_ENTITY_KIND"


class MalformedJobError(DomainError):
    """A write job does not match any known envelope variant."""

    code = "MALFORMED_JOB"


class MalformedBatchError(DomainError):
    """A batch payload is structurally invalid as a whole."""

    code = "MALFORMED_BATCH"


class DuplicateEntityError(DomainError):
    """An insert violated a uniqueness constraint in the durable store."""

    code = "DUPLICATE_ENTITY"


class DurableStoreError(DomainError):
    """A durable store round trip failed."""

    code = "DURABLE_STORE_UNAVAILABLE"
