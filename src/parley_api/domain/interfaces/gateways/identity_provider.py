# src/parley_api/domain/interfaces/gateways/identity_provider.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Identity provider gateway interface.

Token issuance and verification are handled outside this service; the only
call made from here is a best-effort profile mirror after a profile update.
"""

from __future__ import annotations

from typing import Protocol


class IdentityProviderGateway(Protocol):
    """Subset of the identity provider used by profile updates."""

    async def update_profile(
        self,
        external_id: str,
        *,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> None:
        """Mirror profile fields onto the identity provider's user record."""
        ...
