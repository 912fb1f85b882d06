"""HTTP implementation of the TokenClient contract.

Performs the token endpoint request (RFC 6749 Section 4.1.3) and the
userinfo request (OpenID Connect Core Section 5.3) with httpx. ID token
signature and claim validation is delegated to an injected validator.
Unsigned ID tokens skip the validator, so their claims (iss, aud, exp,
nonce) are checked here before the token is handed back.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote_plus

import httpx
import jwt
from pydantic import ValidationError

from oidc_callback.models.errors import (
    NoneAlgorithmUsedError,
    ProviderError,
    TokenExchangeError,
    UserinfoError,
)
from oidc_callback.models.provider import CLIENT_SECRET_BASIC, ProviderConfiguration
from oidc_callback.models.session import ANY, AnyNonce
from oidc_callback.models.tokens import Claims, Token, TokenOptions
from oidc_callback.primitives.scope import format_scope

logger = logging.getLogger(__name__)


class IdTokenValidator(Protocol):
    """Verifies an ID token signature and claims, returning the claims.

    Implementations raise on any validation failure. A nonce of ANY means
    the nonce claim must not be checked.
    """

    def __call__(
        self,
        id_token: str,
        provider: ProviderConfiguration,
        client_id: str,
        nonce: str | AnyNonce,
    ) -> Claims: ...


class HttpTokenClient:
    """Exchanges authorization codes and fetches userinfo over HTTP.

    `request_opts` from the callback configuration may carry "headers"
    (merged into request headers) and "timeout" (seconds, overrides the
    client default).
    """

    def __init__(self, id_token_validator: IdTokenValidator, timeout: float = 30.0):
        """Initialize the HTTP token client.

        Args:
            id_token_validator: Verifies signed ID tokens
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self._id_token_validator = id_token_validator
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def retrieve_token(
        self,
        code: str,
        provider: ProviderConfiguration,
        client_id: str,
        client_secret: str,
        options: TokenOptions,
    ) -> Token:
        """Exchange an authorization code for tokens.

        Returns:
            Token with validated ID token claims, when an ID token was issued

        Raises:
            NoneAlgorithmUsedError: If the ID token is unsigned
            TokenExchangeError: If the exchange or ID token validation fails
        """
        logger.debug(f"Exchanging authorization code at {provider.token_endpoint}")

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        headers.update(options.request_opts.get("headers", {}))

        form_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": options.redirect_uri,
        }

        auth = None
        if provider.token_auth_method() == CLIENT_SECRET_BASIC:
            # RFC 6749 Section 2.3.1: credentials are form-urlencoded first
            auth = httpx.BasicAuth(
                quote_plus(client_id, safe=""), quote_plus(client_secret, safe="")
            )
        else:
            form_data["client_id"] = client_id
            form_data["client_secret"] = client_secret

        try:
            response = await self._http_client.post(
                provider.token_endpoint,
                data=form_data,
                headers=headers,
                auth=auth,
                timeout=options.request_opts.get("timeout", self.timeout),
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"HTTP error during token exchange: {e}") from e

        token = self._parse_token_response(response, options)

        if token.id_token is None:
            return token

        return self._validate_id_token(token, provider, client_id, options.nonce)

    async def retrieve_userinfo(
        self,
        token: Token,
        provider: ProviderConfiguration,
        client_id: str,
        client_secret: str,
    ) -> Claims:
        """Fetch userinfo claims with the access token.

        When the token carries ID token claims, the userinfo subject must
        match the ID token subject (OpenID Connect Core Section 5.3.2).

        Raises:
            UserinfoError: If the request fails or the response is unusable
        """
        if provider.userinfo_endpoint is None:
            raise UserinfoError(f"Provider {provider.issuer} has no userinfo endpoint")

        logger.debug(f"Fetching userinfo from {provider.userinfo_endpoint}")

        try:
            response = await self._http_client.get(
                provider.userinfo_endpoint,
                headers={
                    "Authorization": f"Bearer {token.access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise UserinfoError(f"HTTP error during userinfo request: {e}") from e

        if response.status_code != 200:
            raise UserinfoError(
                f"Userinfo request failed with status {response.status_code}"
            )

        try:
            claims = response.json()
        except ValueError as e:
            raise UserinfoError(f"Invalid userinfo response format: {e}") from e

        if not isinstance(claims, dict) or "sub" not in claims:
            raise UserinfoError("Userinfo response missing required sub claim")

        expected_sub = (token.id_token_claims or {}).get("sub")
        if expected_sub is not None and claims["sub"] != expected_sub:
            raise UserinfoError("Userinfo sub does not match ID token sub")

        return claims

    def _parse_token_response(
        self, response: httpx.Response, options: TokenOptions
    ) -> Token:
        """Parse token endpoint response (RFC 6749 Section 5).

        Raises:
            TokenExchangeError: For error responses or unparseable bodies
        """
        try:
            response_data = response.json()
        except ValueError as e:
            raise TokenExchangeError(f"Invalid token response format: {e}") from e

        if not isinstance(response_data, dict):
            raise TokenExchangeError("Token response is not a JSON object")

        if response.status_code != 200:
            error_code = response_data.get("error", "unknown_error")
            error_description = response_data.get(
                "error_description", "No description provided"
            )
            logger.warning(
                f"Token exchange failed with {response.status_code}: "
                f"{error_code} - {error_description}"
            )
            raise TokenExchangeError(
                f"Token endpoint returned {error_code}: {error_description}",
                error=error_code,
                error_description=error_description,
            )

        # Providers may omit scope when it matches the requested one
        response_data.setdefault("scope", format_scope(options.scope))

        try:
            return Token(**response_data)
        except ValidationError as e:
            raise TokenExchangeError(f"Invalid token response format: {e}") from e

    def _validate_id_token(
        self,
        token: Token,
        provider: ProviderConfiguration,
        client_id: str,
        nonce: str | AnyNonce,
    ) -> Token:
        try:
            header = jwt.get_unverified_header(token.id_token)
        except jwt.PyJWTError as e:
            raise TokenExchangeError(f"Malformed ID token: {e}") from e

        if header.get("alg") == "none":
            claims = self._validate_unsigned_claims(
                token.id_token, provider, client_id, nonce
            )
            raise NoneAlgorithmUsedError(
                token.model_copy(update={"id_token_claims": claims})
            )

        try:
            claims = self._id_token_validator(token.id_token, provider, client_id, nonce)
        except ProviderError:
            raise
        except Exception as e:
            raise TokenExchangeError(f"ID token validation failed: {e}") from e

        return token.model_copy(update={"id_token_claims": claims})

    def _validate_unsigned_claims(
        self,
        id_token: str,
        provider: ProviderConfiguration,
        client_id: str,
        nonce: str | AnyNonce,
    ) -> Claims:
        """Check iss, aud, exp and nonce of an ID token without a signature.

        Raises:
            TokenExchangeError: If any claim check fails
        """
        try:
            claims = jwt.decode(
                id_token,
                options={
                    "verify_signature": False,
                    "verify_exp": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "require": ["iss", "aud", "exp"],
                },
                audience=client_id,
                issuer=provider.issuer,
            )
        except jwt.PyJWTError as e:
            raise TokenExchangeError(f"Unsigned ID token rejected: {e}") from e

        if nonce is not ANY and claims.get("nonce") != nonce:
            raise TokenExchangeError("Unsigned ID token rejected: nonce mismatch")

        return claims

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
