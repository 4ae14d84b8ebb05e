# src/parley_api/infrastructure/observability/metrics.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Prometheus metrics utilities (registry-aware, hot-reload safe).

Accessors return collectors bound to the **current**
``prometheus_client.REGISTRY``. Collectors are created once per registry and
reused afterwards, so tests that swap the default registry and dev servers
that hot reload never hit duplicate-registration errors.

Write-behind metrics:
    * cache round trips (operation, namespace, result) and their latency
    * write jobs dispatched (table, operation, result)
    * write jobs applied to the durable store (table, operation, outcome)
    * delivery signature verifications (result)

Example:
    get_write_jobs_applied_total().labels(
        table="accounts", operation="create", outcome="applied"
    ).inc()
"""

from __future__ import annotations

import logging
import threading
from contextlib import suppress
from typing import Any, Final

import prometheus_client as prom
from prometheus_client import Counter, Histogram

__all__ = [
    "get_cache_operations_total",
    "get_cache_operation_duration_seconds",
    "get_write_jobs_dispatched_total",
    "get_write_jobs_applied_total",
    "get_write_job_apply_duration_seconds",
    "get_delivery_verifications_total",
]

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Common histogram buckets (seconds)
_BUCKETS: Final[tuple[float, ...]] = (
    0.001,
    0.005,
    0.010,
    0.025,
    0.050,
    0.100,
    0.250,
    0.500,
    1.000,
    2.500,
    5.000,
)

# Cache keyed by metric name within the currently-active registry.
_registry_id: int | None = None
_hist_cache: dict[str, Histogram] = {}
_counter_cache: dict[str, Counter] = {}
_lock = threading.RLock()


# ---------------------------------------------------------------------------
# Registry-handling primitives


def _ensure_registry() -> None:
    """Reset caches if the active registry changed."""
    global _registry_id
    with _lock:
        rid = id(prom.REGISTRY)
        if _registry_id != rid:
            _hist_cache.clear()
            _counter_cache.clear()
            _registry_id = rid


def _lookup_existing(name: str, kind: type) -> Any:
    """Return a collector already registered under ``name`` if it has type ``kind``."""
    with _lock, suppress(Exception):
        mapping = getattr(prom.REGISTRY, "_names_to_collectors", None)
        if isinstance(mapping, dict):
            col = mapping.get(name)
            if isinstance(col, kind):
                return col
    return None


# ---------------------------------------------------------------------------
# Get-or-create helpers


def _get_or_create_hist(
    name: str,
    help_text: str,
    *,
    buckets: tuple[float, ...] = _BUCKETS,
    labelnames: tuple[str, ...] = (),
) -> Histogram:
    """Get or create a registry-bound ``Histogram`` with stable identity.

    Args:
        name: Metric name (snake_case).
        help_text: Human-readable description.
        buckets: Histogram buckets in seconds.
        labelnames: Optional label names tuple.

    Returns:
        Histogram: Bound to ``prom.REGISTRY``.
    """
    _ensure_registry()
    with _lock:
        cached = _hist_cache.get(name)
        if cached is not None:
            return cached

        existing = _lookup_existing(name, Histogram)
        if existing is not None:
            _hist_cache[name] = existing
            return existing

        try:
            h = Histogram(name, help_text, labelnames, buckets=buckets, registry=prom.REGISTRY)
        except ValueError as exc:
            if "Duplicated timeseries" in str(exc):
                again = _lookup_existing(name, Histogram)
                if again is not None:
                    _hist_cache[name] = again
                    return again
            _log.exception("Failed to register Prometheus histogram %s", name)
            raise
        _hist_cache[name] = h
        return h


def _get_or_create_counter(
    name: str,
    help_text: str,
    *,
    labelnames: tuple[str, ...] = (),
) -> Counter:
    """Get or create a registry-bound ``Counter`` with stable identity."""
    _ensure_registry()
    with _lock:
        cached = _counter_cache.get(name)
        if cached is not None:
            return cached

        existing = _lookup_existing(name, Counter)
        if existing is not None:
            _counter_cache[name] = existing
            return existing

        try:
            c = Counter(name, help_text, labelnames, registry=prom.REGISTRY)
        except ValueError as exc:
            if "Duplicated timeseries" in str(exc):
                again = _lookup_existing(name, Counter)
                if again is not None:
                    _counter_cache[name] = again
                    return again
            _log.exception("Failed to register Prometheus counter %s", name)
            raise
        _counter_cache[name] = c
        return c


# ---------------------------------------------------------------------------
# Cache metrics


def get_cache_operations_total() -> Counter:
    """Return counter for cache round trips.

    Labels:
        operation: Store method (``get``, ``multi_set`` ...).
        namespace: Key namespace (empty when unset).
        result: ``hit|miss|ok|error``.
    """
    return _get_or_create_counter(
        name="parley_cache_operations_total",
        help_text="Cache round trips by operation and result",
        labelnames=("operation", "namespace", "result"),
    )


def get_cache_operation_duration_seconds() -> Histogram:
    """Return histogram for cache round-trip latency."""
    return _get_or_create_hist(
        name="parley_cache_operation_duration_seconds",
        help_text="Latency (seconds) of cache round trips",
        labelnames=("operation", "namespace"),
    )


# ---------------------------------------------------------------------------
# Write-behind metrics


def get_write_jobs_dispatched_total() -> Counter:
    """Return counter for write jobs handed to the delivery channel.

    Labels:
        table: Entity kind wire identifier.
        operation: ``create|update|delete``.
        result: ``ok|error``.
    """
    return _get_or_create_counter(
        name="parley_write_jobs_dispatched_total",
        help_text="Write jobs dispatched to the delivery channel",
        labelnames=("table", "operation", "result"),
    )


def get_write_jobs_applied_total() -> Counter:
    """Return counter for write jobs applied to the durable store.

    Labels:
        table: Entity kind wire identifier (``unknown`` if unparseable).
        operation: ``create|update|delete`` (``unknown`` if unparseable).
        outcome: ``applied|duplicate|noop|not_found|rejected|error``.
    """
    return _get_or_create_counter(
        name="parley_write_jobs_applied_total",
        help_text="Write jobs applied to the durable store by outcome",
        labelnames=("table", "operation", "outcome"),
    )


def get_write_job_apply_duration_seconds() -> Histogram:
    """Return histogram for per-job apply latency."""
    return _get_or_create_hist(
        name="parley_write_job_apply_duration_seconds",
        help_text="Latency (seconds) of applying one write job",
        labelnames=("table", "operation"),
    )


def get_delivery_verifications_total() -> Counter:
    """Return counter for delivery signature checks.

    Labels:
        result: ``current|next|rejected|missing``.
    """
    return _get_or_create_counter(
        name="parley_delivery_verifications_total",
        help_text="Inbound delivery signature verifications by result",
        labelnames=("result",),
    )
