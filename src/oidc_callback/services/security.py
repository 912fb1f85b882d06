"""Replay and session fixation checks for authorization callbacks.

Compares the live request against values captured when the authorization
request was issued. Comparisons are exact: no case folding and no IPv4/IPv6
mapping. Deployments behind proxies that rewrite these values should
disable the matching check.
"""

from __future__ import annotations

import logging

from starlette.requests import Request

from oidc_callback.models.outcome import CallbackError, CallbackErrorKind

logger = logging.getLogger(__name__)


def get_peer_ip(request: Request) -> str | None:
    """Transport-layer peer address of the current connection."""
    if request.client is None:
        return None
    return request.client.host


def get_useragent(request: Request) -> str | None:
    """First User-Agent header value of the current request."""
    values = request.headers.getlist("user-agent")
    return values[0] if values else None


def check_peer_ip(
    request: Request, expected_ip: str | None, enabled: bool
) -> CallbackError | None:
    """Validate the peer address matches the one seen at authorization time.

    Args:
        request: Incoming callback request
        expected_ip: Peer address recorded with the authorization request
        enabled: Whether the check is active

    Returns:
        None if the check passes, otherwise a peer_ip_mismatch error
    """
    if not enabled or expected_ip is None:
        return None

    if get_peer_ip(request) != expected_ip:
        logger.warning("Callback peer address differs from authorization request")
        return CallbackError(CallbackErrorKind.PEER_IP_MISMATCH)

    return None


def check_useragent(
    request: Request, expected_useragent: str | None, enabled: bool
) -> CallbackError | None:
    """Validate the User-Agent matches the one seen at authorization time.

    A missing header counts as a mismatch.

    Returns:
        None if the check passes, otherwise a useragent_mismatch error
    """
    if not enabled or expected_useragent is None:
        return None

    if get_useragent(request) != expected_useragent:
        logger.warning("Callback User-Agent differs from authorization request")
        return CallbackError(CallbackErrorKind.USERAGENT_MISMATCH)

    return None
