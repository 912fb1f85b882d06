"""Starlette middleware running the authorization callback before routing."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from oidc_callback.callback import AuthorizationCallback

logger = logging.getLogger(__name__)

CALLBACK_METHODS = frozenset({"GET", "POST"})


class AuthorizationCallbackMiddleware(BaseHTTPMiddleware):
    """Processes callback requests on the configured paths.

    The outcome is left on request.state for the endpoint; this middleware
    never produces a response of its own. SessionMiddleware has to be added
    after this one so it wraps it:

        app.add_middleware(AuthorizationCallbackMiddleware, callback=cb,
                           paths=["/oidc/callback"])
        app.add_middleware(SessionMiddleware, secret_key=...)
    """

    def __init__(
        self, app: ASGIApp, callback: AuthorizationCallback, paths: Iterable[str]
    ) -> None:
        super().__init__(app)
        self.callback = callback
        self.paths = frozenset(paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.paths and request.method in CALLBACK_METHODS:
            logger.debug(f"Processing authorization callback on {request.url.path}")
            await self.callback.process(request)

        return await call_next(request)
