"""Callback outcome models handed to the downstream request handler."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from oidc_callback.models.tokens import Claims, Token


class CallbackErrorKind(str, enum.Enum):
    PEER_IP_MISMATCH = "peer_ip_mismatch"
    USERAGENT_MISMATCH = "useragent_mismatch"
    MISSING_REQUEST_PARAM = "missing_request_param"
    TOKEN_EXCHANGE = "token_exchange"
    USERINFO = "userinfo"


@dataclass(frozen=True)
class CallbackError:
    """Reason a callback was rejected.

    `param` is set for missing_request_param. `cause` holds the exception
    raised by the provider collaborator for token_exchange and userinfo.
    """

    kind: CallbackErrorKind
    param: str | None = None
    cause: Exception | None = None

    def __str__(self) -> str:
        if self.param is not None:
            return f"{self.kind.value}: {self.param}"
        if self.cause is not None:
            return f"{self.kind.value}: {self.cause}"
        return self.kind.value


@dataclass(frozen=True)
class CallbackSuccess:
    token: Token
    userinfo: Claims | None = None

    def is_success(self) -> bool:
        return True

    def is_error(self) -> bool:
        return False


@dataclass(frozen=True)
class CallbackFailure:
    reason: CallbackError

    def is_success(self) -> bool:
        return False

    def is_error(self) -> bool:
        return True


CallbackOutcome = CallbackSuccess | CallbackFailure
