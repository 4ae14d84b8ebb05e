# src/parley_api/infrastructure/http/errors.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""JSON error envelopes and exception handlers.

Every error response has the shape::

    {"error": {"code": ..., "http_status": ..., "message": ..., "details": {...}}}
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from parley_api.domain.exceptions.base import ConflictError, DomainError, EntityNotFoundError
from parley_api.domain.exceptions.write_behind import (
    CacheStoreError,
    DuplicateEntityError,
    DurableStoreError,
    JobDispatchError,
    MalformedBatchError,
    MalformedJobError,
    UnknownEntityKindError,
)

logger = logging.getLogger(__name__)

#: HTTP status per domain error type; unlisted subclasses fall back to their base.
_STATUS_BY_ERROR: dict[type[DomainError], int] = {
    EntityNotFoundError: 404,
    ConflictError: 409,
    DuplicateEntityError: 409,
    UnknownEntityKindError: 422,
    MalformedJobError: 422,
    MalformedBatchError: 422,
    CacheStoreError: 503,
    JobDispatchError: 503,
    DurableStoreError: 500,
}


def _trace_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "trace_id", None)


def status_for(exc: DomainError) -> int:
    """Return the HTTP status for a domain error."""
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 400


def error_envelope(
    *,
    code: str,
    http_status: int,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {
        "code": code,
        "http_status": http_status,
        "message": message,
    }
    if details is not None:
        err["details"] = details
    if trace_id is not None:
        err["trace_id"] = trace_id
    return {"error": err}


async def handle_domain_error(request: Request, exc: DomainError) -> Response:
    status = status_for(exc)
    payload = error_envelope(
        code=exc.code,
        http_status=status,
        message=str(exc) or exc.code,
        details=exc.details or None,
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=status, content=payload)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> Response:
    payload = error_envelope(
        code="VALIDATION_ERROR",
        http_status=422,
        message="Request validation failed",
        details={"errors": exc.errors()},
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=422, content=payload)


async def handle_http_exception(request: Request, exc: HTTPException) -> Response:
    payload = error_envelope(
        code="HTTP_ERROR",
        http_status=exc.status_code,
        message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
        details=None if isinstance(exc.detail, str) else {"detail": exc.detail},
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)


async def handle_unhandled_exception(request: Request, exc: Exception) -> Response:
    logger.exception("http.unhandled_exception", extra={"path": request.url.path})
    payload = error_envelope(
        code="INTERNAL_ERROR",
        http_status=500,
        message="Internal server error",
        details=None,
        trace_id=_trace_id(request),
    )
    return JSONResponse(status_code=500, content=payload)


def install_exception_handlers(app: FastAPI) -> None:
    """Register the JSON envelope handlers on ``app``.

    Starlette hands handlers a plain ``Exception``; each wrapper re-raises
    anything that is not the type it was registered for.
    """

    async def _domain_error_handler(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, DomainError):
            raise exc
        return await handle_domain_error(request, exc)

    async def _validation_error_handler(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, RequestValidationError):
            raise exc
        return await handle_validation_error(request, exc)

    async def _http_error_handler(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, HTTPException):
            raise exc
        return await handle_http_exception(request, exc)

    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(Exception, handle_unhandled_exception)
