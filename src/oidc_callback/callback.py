"""Authorization code flow callback handling.

Validates the redirect back from the OpenID provider and retrieves tokens,
leaving the response to a downstream endpoint:

    callback = AuthorizationCallback.from_options(
        client=HttpTokenClient(id_token_validator=validator),
        provider=provider_configuration,
        client_id="my-client",
        client_secret=lambda: secrets_store.read("oidc-client-secret"),
        redirect_uri="https://app.example.com/oidc/callback",
    )

    async def handle_callback(request: Request) -> Response:
        outcome = await callback.process(request)
        if outcome.is_success():
            request.session["auth_userinfo"] = outcome.userinfo
            return RedirectResponse("/")
        return PlainTextResponse(str(outcome.reason), status_code=400)

AuthorizationCallbackMiddleware runs the same processing in front of
existing routes and leaves the outcome on request.state.
"""

from __future__ import annotations

import logging
from typing import Any

from starlette.requests import Request

from oidc_callback.models.config import CallbackConfiguration
from oidc_callback.models.outcome import (
    CallbackError,
    CallbackFailure,
    CallbackOutcome,
    CallbackSuccess,
)
from oidc_callback.provider import TokenClient
from oidc_callback.services.exchange import CodeExchange, merge_request_params
from oidc_callback.services.security import check_peer_ip, check_useragent
from oidc_callback.services.session import load_and_clear
from oidc_callback.services.userinfo import UserinfoFetcher

logger = logging.getLogger(__name__)

OUTCOME_STATE_KEY = "oidc_callback_outcome"


def get_callback_outcome(request: Request) -> CallbackOutcome | None:
    """Read the outcome attached by AuthorizationCallback, if any."""
    return getattr(request.state, OUTCOME_STATE_KEY, None)


class AuthorizationCallback:
    """Validates an authorization callback and retrieves tokens.

    Each call to process() runs these stages, stopping at the first failure:
    1. Load and clear the pending authorization record from the session
    2. Check peer address and User-Agent against the record
    3. Exchange the code for tokens
    4. Retrieve userinfo (optional)

    Concurrent callbacks on one session are not coordinated. The first to
    clear the record gets its data; later ones see the default record.
    """

    def __init__(self, config: CallbackConfiguration, client: TokenClient):
        self.config = config
        self.client = client
        self._code_exchange = CodeExchange(client)
        self._userinfo_fetcher = UserinfoFetcher(client)

    @classmethod
    def from_options(cls, client: TokenClient, **options: Any) -> AuthorizationCallback:
        """Validate options and build a callback handler.

        Raises:
            CallbackConfigurationError: If options are unknown, missing or mistyped
        """
        return cls(CallbackConfiguration.from_options(options), client)

    async def process(self, request: Request) -> CallbackOutcome:
        """Run the callback stages and attach the outcome to the request.

        Args:
            request: Callback request; Starlette's SessionMiddleware must be
                installed so request.session is available

        Returns:
            CallbackSuccess with token and userinfo, or CallbackFailure

        Raises:
            CallbackConfigurationError: If a credential resolver fails
        """
        outcome = await self._run(request)
        setattr(request.state, OUTCOME_STATE_KEY, outcome)

        if outcome.is_success():
            logger.info("Authorization callback succeeded")
        else:
            logger.warning(f"Authorization callback failed: {outcome.reason}")

        return outcome

    async def _run(self, request: Request) -> CallbackOutcome:
        config = self.config
        record = load_and_clear(request.session)

        error = check_peer_ip(request, record.peer_ip, config.check_peer_ip)
        if error is not None:
            return CallbackFailure(error)

        error = check_useragent(request, record.useragent, config.check_useragent)
        if error is not None:
            return CallbackFailure(error)

        params = await merge_request_params(request)
        credentials = config.resolve_credentials()

        token = await self._code_exchange.exchange(
            params, config, credentials, record.nonce
        )
        if isinstance(token, CallbackError):
            return CallbackFailure(token)

        userinfo = await self._userinfo_fetcher.fetch(
            token, config.provider, credentials, config.retrieve_userinfo
        )
        if isinstance(userinfo, CallbackError):
            return CallbackFailure(userinfo)

        return CallbackSuccess(token=token, userinfo=userinfo)
