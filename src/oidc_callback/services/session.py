"""Session correlation for the authorization callback.

Loads the record written when the authorization request was issued and
removes it so a record can never be consumed twice.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

from oidc_callback.models.session import SESSION_KEY, AuthorizationSessionRecord

logger = logging.getLogger(__name__)


def load_and_clear(session: MutableMapping[str, Any]) -> AuthorizationSessionRecord:
    """Pop the pending authorization record from the session.

    A missing record is not an error: expired or never-started sessions
    just get the default record, which disables the checks that have
    nothing to compare against.

    Args:
        session: Request session storage

    Returns:
        AuthorizationSessionRecord: Parsed record or defaults
    """
    raw = session.pop(SESSION_KEY, None)

    if raw is None:
        logger.debug("No pending authorization record in session")
    else:
        logger.debug("Loaded and cleared pending authorization record")

    return AuthorizationSessionRecord.from_session(raw)
