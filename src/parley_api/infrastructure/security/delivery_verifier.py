# src/parley_api/infrastructure/security/delivery_verifier.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Delivery signature verifier (QStash).

Summary:
    Authenticates inbound write-job deliveries. The ``Upstash-Signature``
    header is an HS256 JWT signed with either the *current* or the *next*
    signing key, so keys can be rotated without downtime.

    A token is accepted when, for one of the two keys:
        * the HS256 signature verifies,
        * ``iss == "Upstash"`` and ``exp``/``nbf`` hold (with clock tolerance),
        * ``sub`` equals the request URL, when a URL is given,
        * ``body`` equals base64url(SHA-256(raw body)), padding ignored.

    ``verify`` never raises. Any failure yields ``False`` and the caller must
    reject the request before touching the payload.

Layer:
    infrastructure/security
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from collections.abc import Mapping
from typing import Any

import jwt

from parley_api.infrastructure.observability.metrics import get_delivery_verifications_total

__all__ = ["DeliveryVerifier", "body_digest"]

logger = logging.getLogger(__name__)

_ISSUER = "Upstash"


def body_digest(body: bytes) -> str:
    """Return base64url(SHA-256(body)) without padding."""
    return base64.urlsafe_b64encode(hashlib.sha256(body).digest()).decode("ascii").rstrip("=")


class DeliveryVerifier:
    """Dual-key verifier for QStash delivery signatures."""

    def __init__(
        self,
        current_signing_key: str,
        next_signing_key: str,
        *,
        clock_tolerance_s: int = 0,
    ) -> None:
        """Initialize the verifier.

        Args:
            current_signing_key: Key deliveries are signed with today.
            next_signing_key: Key deliveries will be signed with after rotation.
            clock_tolerance_s: Leeway applied to ``exp``/``nbf``.
        """
        if not current_signing_key or not next_signing_key:
            raise ValueError("Both current and next signing keys are required")
        self._keys = (("current", current_signing_key), ("next", next_signing_key))
        self._leeway = clock_tolerance_s

    def verify(
        self,
        signature: str | None,
        body: bytes | str,
        *,
        url: str | None = None,
    ) -> bool:
        """Return True if ``signature`` authenticates ``body``.

        Args:
            signature: Raw ``Upstash-Signature`` header value.
            body: Exact request body bytes as received.
            url: Request URL to match against the ``sub`` claim, if known.
        """
        if not signature:
            self._count("missing")
            return False

        raw = body.encode("utf-8") if isinstance(body, str) else body
        digest = body_digest(raw)

        for label, key in self._keys:
            claims = self._decode(signature, key)
            if claims is None:
                continue
            if url is not None and claims.get("sub") != url:
                logger.warning("delivery.verify.url_mismatch", extra={"key": label})
                break
            claimed = str(claims.get("body", "")).rstrip("=")
            if not hmac.compare_digest(claimed, digest):
                logger.warning("delivery.verify.body_mismatch", extra={"key": label})
                break
            self._count(label)
            return True

        self._count("rejected")
        return False

    def _decode(self, token: str, key: str) -> Mapping[str, Any] | None:
        try:
            return jwt.decode(
                token,
                key,
                algorithms=["HS256"],
                issuer=_ISSUER,
                leeway=self._leeway,
                options={"require": ["iss", "exp", "nbf"], "verify_aud": False},
            )
        except jwt.PyJWTError as exc:
            logger.debug("delivery.verify.decode_failed", extra={"error": type(exc).__name__})
            return None

    @staticmethod
    def _count(result: str) -> None:
        get_delivery_verifications_total().labels(result=result).inc()
