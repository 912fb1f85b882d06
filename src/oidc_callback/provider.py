"""Contract for the OpenID provider collaborator.

The callback never talks to the provider itself. Token exchange, ID token
validation and userinfo retrieval are delegated to a TokenClient, which
reports failures by raising. HttpTokenClient is the bundled implementation.
"""

from __future__ import annotations

from typing import Any, Protocol

from oidc_callback.models.tokens import Claims, Token, TokenOptions


class TokenClient(Protocol):
    """Protocol for exchanging codes and fetching userinfo.

    Implementations raise NoneAlgorithmUsedError when the provider issued
    an unsigned ID token, and any other exception for the remaining
    failures.
    """

    async def retrieve_token(
        self,
        code: str,
        provider: Any,
        client_id: str,
        client_secret: str,
        options: TokenOptions,
    ) -> Token:
        """Exchange an authorization code for a validated token set."""
        ...

    async def retrieve_userinfo(
        self,
        token: Token,
        provider: Any,
        client_id: str,
        client_secret: str,
    ) -> Claims:
        """Fetch userinfo claims using the access token."""
        ...
