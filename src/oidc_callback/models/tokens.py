"""Token models returned by the provider collaborators."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from oidc_callback.models.session import AnyNonce

Claims = dict[str, Any]


@dataclass(frozen=True)
class TokenOptions:
    """Options passed to the code exchange alongside the code itself.

    `request_opts` is forwarded untouched to the HTTP layer of the client.
    """

    nonce: str | AnyNonce
    scope: list[str]
    redirect_uri: str
    request_opts: dict[str, Any] = field(default_factory=dict)


class Token(BaseModel):
    """Token set obtained from the token endpoint (RFC 6749 Section 5.1).

    `id_token_claims` is filled in by whichever component validated the
    ID token; it stays None when no ID token was issued.
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None
    id_token_claims: Claims | None = None

    def calculate_expires_at(self) -> float | None:
        """Calculate absolute expiry timestamp from expires_in.

        Returns:
            Unix timestamp when token expires, or None if no expiry
        """
        if self.expires_in is None:
            return None
        return time.time() + self.expires_in
