from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, Mock
from urllib.parse import urlencode

import pytest
from starlette.requests import Request

from oidc_callback.models.config import CallbackConfiguration
from oidc_callback.models.provider import ProviderConfiguration
from oidc_callback.models.tokens import Token

PEER_IP = "203.0.113.5"
USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"


def build_request(
    method: str = "GET",
    query: dict[str, str] | None = None,
    body: bytes = b"",
    content_type: str | None = None,
    headers: list[tuple[str, str]] | None = None,
    client: tuple[str, int] | None = (PEER_IP, 50123),
    session: dict[str, Any] | None = None,
) -> Request:
    """Build a Starlette request with a session, as SessionMiddleware would."""
    raw_headers = [(b"user-agent", USER_AGENT.encode())] if headers is None else [
        (name.lower().encode(), value.encode()) for name, value in headers
    ]
    if content_type is not None:
        raw_headers.append((b"content-type", content_type.encode()))
    if body:
        raw_headers.append((b"content-length", str(len(body)).encode()))

    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "https",
        "path": "/oidc/callback",
        "raw_path": b"/oidc/callback",
        "root_path": "",
        "query_string": urlencode(query or {}).encode(),
        "headers": raw_headers,
        "client": client,
        "server": ("app.example.com", 443),
        "session": {} if session is None else session,
    }

    sent = False

    async def receive() -> dict[str, Any]:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request


@pytest.fixture
def provider() -> ProviderConfiguration:
    return ProviderConfiguration(
        issuer="https://auth.example.com",
        token_endpoint="https://auth.example.com/token",
        userinfo_endpoint="https://auth.example.com/userinfo",
    )


@pytest.fixture
def token() -> Token:
    return Token(
        access_token="access-token-xyz",
        expires_in=3600,
        id_token="header.payload.signature",
        scope="openid profile",
        id_token_claims={"sub": "user-123"},
    )


@pytest.fixture
def token_client(token: Token) -> Mock:
    """TokenClient double that succeeds unless reconfigured by the test."""
    client = Mock()
    client.retrieve_token = AsyncMock(return_value=token)
    client.retrieve_userinfo = AsyncMock(
        return_value={"sub": "user-123", "email": "user@example.com"}
    )
    return client


@pytest.fixture
def config(provider: ProviderConfiguration) -> CallbackConfiguration:
    return CallbackConfiguration(
        provider=provider,
        client_id="client-456",
        client_secret="secret-789",
        redirect_uri="https://app.example.com/oidc/callback",
    )
