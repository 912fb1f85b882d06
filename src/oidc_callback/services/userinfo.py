"""Optional userinfo retrieval after a successful code exchange."""

from __future__ import annotations

import logging
from typing import Any

from oidc_callback.models.config import ResolvedCredentials
from oidc_callback.models.outcome import CallbackError, CallbackErrorKind
from oidc_callback.models.tokens import Claims, Token
from oidc_callback.provider import TokenClient

logger = logging.getLogger(__name__)


class UserinfoFetcher:
    """Fetches userinfo claims through a TokenClient when retrieval is enabled."""

    def __init__(self, client: TokenClient):
        self._client = client

    async def fetch(
        self,
        token: Token,
        provider: Any,
        credentials: ResolvedCredentials,
        enabled: bool,
    ) -> Claims | None | CallbackError:
        """Fetch userinfo claims, or skip the call entirely when disabled.

        Returns:
            Claims, None when retrieval is disabled, or a userinfo CallbackError
        """
        if not enabled:
            logger.debug("Userinfo retrieval disabled, skipping")
            return None

        try:
            return await self._client.retrieve_userinfo(
                token, provider, credentials.client_id, credentials.client_secret
            )
        except Exception as e:
            logger.warning(f"Userinfo retrieval failed: {e}")
            return CallbackError(CallbackErrorKind.USERINFO, cause=e)
