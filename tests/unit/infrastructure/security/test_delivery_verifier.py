# tests/unit/infrastructure/security/test_delivery_verifier.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import base64
import hashlib
import time
from typing import Any

import jwt
import pytest

from parley_api.infrastructure.security.delivery_verifier import DeliveryVerifier, body_digest

CURRENT = "current-signing-key"
NEXT = "next-signing-key"
URL = "https://api.parley.test/v1/internal/sync-to-db"
BODY = b'{"operation":"delete","table":"accounts","id":"u1","timestamp":1}'


def _sign(key: str, payload: bytes, **overrides: Any) -> str:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": "Upstash",
        "sub": URL,
        "iat": now,
        "nbf": now,
        "exp": now + 300,
        "jti": "jwt_1",
        "body": body_digest(payload),
    }
    claims.update(overrides)
    return jwt.encode(claims, key, algorithm="HS256")


@pytest.fixture
def verifier() -> DeliveryVerifier:
    return DeliveryVerifier(CURRENT, NEXT)


def test_body_digest_is_unpadded_base64url_sha256() -> None:
    expected = base64.urlsafe_b64encode(hashlib.sha256(BODY).digest()).decode().rstrip("=")
    assert body_digest(BODY) == expected
    assert "=" not in body_digest(BODY)


@pytest.mark.parametrize("key", [CURRENT, NEXT])
def test_accepts_either_signing_key(verifier: DeliveryVerifier, key: str) -> None:
    assert verifier.verify(_sign(key, BODY), BODY) is True
    assert verifier.verify(_sign(key, BODY), BODY, url=URL) is True


def test_rejects_unknown_key(verifier: DeliveryVerifier) -> None:
    assert verifier.verify(_sign("some-other-key", BODY), BODY) is False


def test_rejects_tampered_body(verifier: DeliveryVerifier) -> None:
    signature = _sign(CURRENT, BODY)
    assert verifier.verify(signature, BODY.replace(b"u1", b"u2")) is False


def test_accepts_text_body_matching_signed_bytes(verifier: DeliveryVerifier) -> None:
    assert verifier.verify(_sign(CURRENT, BODY), BODY.decode("utf-8")) is True


def test_accepts_padded_body_claim(verifier: DeliveryVerifier) -> None:
    padded = base64.urlsafe_b64encode(hashlib.sha256(BODY).digest()).decode()
    assert verifier.verify(_sign(CURRENT, BODY, body=padded), BODY) is True


@pytest.mark.parametrize("signature", [None, ""])
def test_rejects_missing_signature(verifier: DeliveryVerifier, signature: str | None) -> None:
    assert verifier.verify(signature, BODY) is False


def test_rejects_url_mismatch(verifier: DeliveryVerifier) -> None:
    signature = _sign(CURRENT, BODY, sub="https://evil.test/hook")
    assert verifier.verify(signature, BODY, url=URL) is False


def test_rejects_expired_token(verifier: DeliveryVerifier) -> None:
    past = int(time.time()) - 600
    signature = _sign(CURRENT, BODY, iat=past, nbf=past, exp=past + 60)
    assert verifier.verify(signature, BODY) is False


def test_clock_tolerance_admits_recently_expired_token() -> None:
    just_expired = int(time.time()) - 5
    signature = _sign(CURRENT, BODY, exp=just_expired, nbf=just_expired - 60)
    assert DeliveryVerifier(CURRENT, NEXT, clock_tolerance_s=30).verify(signature, BODY) is True


def test_rejects_wrong_issuer(verifier: DeliveryVerifier) -> None:
    assert verifier.verify(_sign(CURRENT, BODY, iss="Someone"), BODY) is False


def test_rejects_garbage_token(verifier: DeliveryVerifier) -> None:
    assert verifier.verify("not.a.jwt", BODY) is False


def test_requires_both_keys() -> None:
    with pytest.raises(ValueError):
        DeliveryVerifier(CURRENT, "")
