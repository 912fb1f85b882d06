"""Exception hierarchy for OIDC authorization callback handling.

Exceptions are reserved for setup defects and for failures reported by the
provider collaborators. Routine callback rejections (guard mismatches, a
missing code) are returned as CallbackFailure values instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from oidc_callback.models.tokens import Token


class OIDCCallbackError(Exception):
    """Base exception for all authorization callback errors."""

    pass


class CallbackConfigurationError(OIDCCallbackError):
    """Raised when callback options are invalid or a resolver fails."""

    pass


class ProviderError(OIDCCallbackError):
    """Raised when a call to the OpenID provider fails."""

    pass


class TokenExchangeError(ProviderError):
    """Raised when authorization code to token exchange fails."""

    def __init__(
        self,
        message: str,
        error: str | None = None,
        error_description: str | None = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class NoneAlgorithmUsedError(TokenExchangeError):
    """Raised when the provider issued an unsigned ("none" algorithm) ID token.

    The token is attached so callers that can corroborate the identity
    through another authenticated channel (userinfo) may still accept it.
    """

    def __init__(self, token: Token):
        super().__init__("ID token is unsigned (alg=none)", error="none_alg_used")
        self.token = token


class UserinfoError(ProviderError):
    """Raised when the userinfo endpoint request fails."""

    pass
