# src/parley_api/infrastructure/messaging/qstash_publisher.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""QStash publish transport (async, httpx).

Implements the `JobPublisher` gateway over the QStash HTTP API:

    POST {qstash_url}/v2/publish/{target_url}
    Authorization: Bearer <token>
    Content-Type: application/json
    Upstash-Delay: <n>s             (only when delay > 0)
    Upstash-Forward-<Name>: <value> (extra headers forwarded to the target)

The response body ``{"messageId": "..."}`` yields the delivery id. Transport
errors, non-2xx responses and bodies without ``messageId`` raise
`JobDispatchError`. Nothing is retried here; QStash retries deliveries.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Final

import httpx

from parley_api.domain.exceptions.write_behind import JobDispatchError

__all__ = ["QStashPublisher"]

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT: Final[float] = 10.0
_DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "User-Agent": "parley-api-qstash/1.0",
}


class QStashPublisher:
    """Publish primitive backed by QStash."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        http: httpx.AsyncClient | None = None,
        timeout_s: float = _DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the publisher.

        Args:
            base_url: QStash API base URL (e.g. ``https://qstash.upstash.io``).
            token: QStash API token.
            http: Optional shared ``httpx.AsyncClient``. If omitted, a client
                is created and owned by this instance.
            timeout_s: Per-request timeout in seconds.
        """
        if not token:
            raise ValueError("QStash token is required")
        self._base_url = str(base_url).rstrip("/")
        self._token = token
        self._timeout = float(timeout_s)
        self._owns_client = http is None
        self._client = http or httpx.AsyncClient(timeout=self._timeout)

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, headers: Mapping[str, str] | None, delay_seconds: int) -> dict[str, str]:
        out = {
            **_DEFAULT_HEADERS,
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        for name, value in (headers or {}).items():
            if name.lower() == "content-type":
                out["Content-Type"] = value
            else:
                out[f"Upstash-Forward-{name}"] = value
        if delay_seconds > 0:
            out["Upstash-Delay"] = f"{int(delay_seconds)}s"
        return out

    async def publish(
        self,
        target_url: str,
        body: str,
        *,
        headers: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
    ) -> str:
        """Schedule ``body`` for delivery to ``target_url``.

        Returns:
            The QStash message id.

        Raises:
            JobDispatchError: On transport failure or a non-2xx response.
        """
        url = f"{self._base_url}/v2/publish/{target_url}"
        try:
            resp = await self._client.post(
                url,
                content=body.encode("utf-8"),
                headers=self._headers(headers, delay_seconds),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise JobDispatchError(
                f"QStash unreachable: {exc}",
                details={"target_url": target_url},
            ) from exc

        if not resp.is_success:
            raise JobDispatchError(
                f"QStash publish failed with HTTP {resp.status_code}",
                details={
                    "target_url": target_url,
                    "status": resp.status_code,
                    "body": resp.text[:500],
                },
            )

        try:
            message_id = resp.json()["messageId"]
        except (ValueError, KeyError, TypeError) as exc:
            raise JobDispatchError(
                "QStash response carried no messageId",
                details={"target_url": target_url, "body": resp.text[:500]},
            ) from exc

        logger.debug(
            "qstash.publish.ok",
            extra={"target_url": target_url, "message_id": message_id, "delay_s": delay_seconds},
        )
        return str(message_id)
