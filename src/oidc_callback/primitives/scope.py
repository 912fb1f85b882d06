"""Scope string parsing (RFC 6749 Section 3.3)."""

from __future__ import annotations

DEFAULT_SCOPE = "openid"


def parse_scope(scope: str) -> list[str]:
    """Split a space-delimited scope string into individual scope tokens.

    Empty tokens are dropped and duplicates removed, keeping first-seen order.

    Args:
        scope: Scope string as received from the callback request

    Returns:
        List of scope tokens
    """
    return list(dict.fromkeys(scope.split()))


def format_scope(scopes: list[str]) -> str:
    """Join scope tokens back into the wire representation."""
    return " ".join(scopes)
