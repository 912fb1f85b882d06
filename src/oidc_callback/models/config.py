"""Callback configuration validated once at setup time.

Client credentials and the redirect URI may be given either as literal
strings or as zero-argument resolvers. Resolvers are evaluated on every
callback so rotating secrets are always read fresh.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from oidc_callback.models.errors import CallbackConfigurationError

logger = logging.getLogger(__name__)

ConfigValue = str | Callable[[], str]


def evaluate_config(value: ConfigValue, name: str = "value") -> str:
    """Resolve a literal-or-resolver configuration value.

    Args:
        value: Literal string or zero-argument callable returning one
        name: Option name used in error messages

    Returns:
        The resolved string

    Raises:
        CallbackConfigurationError: If the resolver fails or returns a non-string
    """
    if not callable(value):
        return value

    try:
        resolved = value()
    except Exception as e:
        raise CallbackConfigurationError(f"Resolver for {name} failed: {e}") from e

    if not isinstance(resolved, str):
        raise CallbackConfigurationError(
            f"Resolver for {name} returned {type(resolved).__name__}, expected str"
        )
    return resolved


@dataclass(frozen=True)
class ResolvedCredentials:
    """Client credentials resolved for a single callback invocation."""

    client_id: str
    client_secret: str
    redirect_uri: str


class CallbackConfiguration(BaseModel):
    """Options for the authorization callback.

    Unknown keys are rejected so typos surface at startup rather than
    silently disabling a check.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, strict=True)

    provider: Any
    client_id: ConfigValue
    client_secret: ConfigValue
    redirect_uri: ConfigValue
    check_useragent: bool = True
    check_peer_ip: bool = True
    retrieve_userinfo: bool = True
    request_opts: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> CallbackConfiguration:
        """Validate a raw options mapping.

        Raises:
            CallbackConfigurationError: If options are unknown, missing or mistyped
        """
        try:
            return cls(**options)
        except ValidationError as e:
            raise CallbackConfigurationError(
                f"Invalid authorization callback options: {e}"
            ) from e

    def resolve_credentials(self) -> ResolvedCredentials:
        """Evaluate client_id, client_secret and redirect_uri for one call."""
        return ResolvedCredentials(
            client_id=evaluate_config(self.client_id, "client_id"),
            client_secret=evaluate_config(self.client_secret, "client_secret"),
            redirect_uri=evaluate_config(self.redirect_uri, "redirect_uri"),
        )
