"""Pending authorization record shared between the authorize and callback legs.

The record is written into the session when the authorization redirect is
issued and read exactly once when the provider redirects back.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

SESSION_KEY = "oidc_callback.authorize"


class AnyNonce(enum.Enum):
    """Sentinel telling the token validator to accept any nonce."""

    ANY = "any"


ANY = AnyNonce.ANY


@dataclass(frozen=True)
class AuthorizationSessionRecord:
    """State captured when the authorization request was initiated."""

    nonce: str | AnyNonce = ANY
    peer_ip: str | None = None
    useragent: str | None = None

    @classmethod
    def from_session(cls, value: Any) -> AuthorizationSessionRecord:
        """Build a record from a raw session value.

        Anything that is not a mapping yields the default record. Fields
        that are missing or not strings fall back to their defaults.
        """
        if not isinstance(value, Mapping):
            return cls()

        nonce = value.get("nonce")
        peer_ip = value.get("peer_ip")
        useragent = value.get("useragent")

        return cls(
            nonce=nonce if isinstance(nonce, str) else ANY,
            peer_ip=peer_ip if isinstance(peer_ip, str) else None,
            useragent=useragent if isinstance(useragent, str) else None,
        )

    def to_session(self) -> dict[str, str | None]:
        """Serialize into a JSON-compatible dict for cookie-backed sessions."""
        return {
            "nonce": None if self.nonce is ANY else self.nonce,
            "peer_ip": self.peer_ip,
            "useragent": self.useragent,
        }


def store_authorization_session(
    session: MutableMapping[str, Any],
    nonce: str | AnyNonce = ANY,
    peer_ip: str | None = None,
    useragent: str | None = None,
) -> AuthorizationSessionRecord:
    """Write the pending authorization record for a later callback."""
    record = AuthorizationSessionRecord(
        nonce=nonce, peer_ip=peer_ip, useragent=useragent
    )
    session[SESSION_KEY] = record.to_session()
    return record
