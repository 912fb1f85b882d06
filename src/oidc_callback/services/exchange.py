"""Authorization code extraction and token exchange.

Reads the callback parameters, builds the token options and hands the code
to the provider client. Exceptions raised by the client are turned into
CallbackError values; only the unsigned ID token case gets special
treatment.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request

from oidc_callback.models.config import CallbackConfiguration, ResolvedCredentials
from oidc_callback.models.errors import NoneAlgorithmUsedError
from oidc_callback.models.outcome import CallbackError, CallbackErrorKind
from oidc_callback.models.session import AnyNonce
from oidc_callback.models.tokens import Token, TokenOptions
from oidc_callback.primitives.scope import DEFAULT_SCOPE, parse_scope
from oidc_callback.provider import TokenClient

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_body_params(request: Request) -> dict[str, Any]:
    """Parse form or JSON object bodies into a parameter dict.

    Bodies of any other type, and JSON bodies that are not objects,
    contribute no parameters.
    """
    if request.method in ("GET", "HEAD"):
        return {}

    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";")[0].strip().lower()

    if media_type in FORM_CONTENT_TYPES:
        # Cache the raw body so endpoints behind the middleware can re-read it
        await request.body()
        try:
            form = await request.form()
        except (MultiPartException, HTTPException) as e:
            logger.warning(
                f"Ignoring malformed form body on authorization callback: {e}"
            )
            return {}
        return dict(form)

    if media_type == "application/json":
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Ignoring malformed JSON body on authorization callback")
            return {}
        return body if isinstance(body, dict) else {}

    return {}


async def merge_request_params(request: Request) -> dict[str, Any]:
    """Merge query and body parameters; body values win on conflicts."""
    params: dict[str, Any] = dict(request.query_params)
    params.update(await read_body_params(request))
    return params


def fetch_request_param(params: Mapping[str, Any], name: str) -> str | CallbackError:
    """Return a required string parameter or a missing_request_param error."""
    value = params.get(name)
    if not isinstance(value, str):
        logger.warning(f"Authorization callback missing required parameter {name}")
        return CallbackError(CallbackErrorKind.MISSING_REQUEST_PARAM, param=name)
    return value


def build_token_options(
    params: Mapping[str, Any],
    nonce: str | AnyNonce,
    redirect_uri: str,
    request_opts: Mapping[str, Any],
) -> TokenOptions:
    """Build the options for the code exchange.

    The scope defaults to "openid" when the provider did not echo one back.
    """
    scope = params.get("scope", DEFAULT_SCOPE)
    if isinstance(scope, list):
        scopes = [item for item in scope if isinstance(item, str)]
    else:
        scopes = parse_scope(str(scope))

    return TokenOptions(
        nonce=nonce,
        scope=scopes,
        redirect_uri=redirect_uri,
        request_opts=dict(request_opts),
    )


class CodeExchange:
    """Exchanges the callback code for tokens through a TokenClient."""

    def __init__(self, client: TokenClient):
        self._client = client

    async def exchange(
        self,
        params: Mapping[str, Any],
        config: CallbackConfiguration,
        credentials: ResolvedCredentials,
        nonce: str | AnyNonce,
    ) -> Token | CallbackError:
        """Extract the code and exchange it for a token set.

        Args:
            params: Merged query and body parameters
            config: Validated callback configuration
            credentials: Credentials resolved for this invocation
            nonce: Nonce from the pending authorization record

        Returns:
            Token on success, otherwise the CallbackError to report
        """
        code = fetch_request_param(params, "code")
        if isinstance(code, CallbackError):
            return code

        options = build_token_options(
            params, nonce, credentials.redirect_uri, config.request_opts
        )

        logger.debug(
            f"Exchanging authorization code for client {credentials.client_id} "
            f"with scope {options.scope}"
        )

        return await self.retrieve_token(
            code, config, credentials, options, config.retrieve_userinfo
        )

    async def retrieve_token(
        self,
        code: str,
        config: CallbackConfiguration,
        credentials: ResolvedCredentials,
        options: TokenOptions,
        retrieve_userinfo: bool,
    ) -> Token | CallbackError:
        """Call the token client and apply the unsigned token policy.

        An unsigned ID token is accepted only when userinfo will be
        retrieved afterwards, since the userinfo response is the only
        thing left to vouch for the identity.
        """
        try:
            return await self._client.retrieve_token(
                code,
                config.provider,
                credentials.client_id,
                credentials.client_secret,
                options,
            )
        except NoneAlgorithmUsedError as e:
            if retrieve_userinfo:
                logger.info(
                    "Accepting unsigned ID token pending userinfo corroboration"
                )
                return e.token
            logger.warning("Rejecting unsigned ID token without userinfo retrieval")
            return CallbackError(CallbackErrorKind.TOKEN_EXCHANGE, cause=e)
        except Exception as e:
            logger.warning(f"Token exchange failed: {e}")
            return CallbackError(CallbackErrorKind.TOKEN_EXCHANGE, cause=e)
