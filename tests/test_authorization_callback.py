"""Tests for the end-to-end authorization callback processing.

High-impact properties:
- The pending record is cleared on every outcome
- Guard failures stop processing before any exchange
- Missing code, body-over-query precedence
- Unsigned token policy and userinfo skipping
"""

import pytest

from oidc_callback.callback import AuthorizationCallback, get_callback_outcome
from oidc_callback.models.errors import (
    CallbackConfigurationError,
    NoneAlgorithmUsedError,
    TokenExchangeError,
    UserinfoError,
)
from oidc_callback.models.outcome import (
    CallbackErrorKind,
    CallbackFailure,
    CallbackSuccess,
)
from oidc_callback.models.session import ANY, SESSION_KEY, store_authorization_session
from oidc_callback.models.tokens import Token

PEER_IP = "203.0.113.5"
USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"


def pending_session(**overrides):
    session = {}
    fields = {"nonce": "nonce-1", "peer_ip": PEER_IP, "useragent": USER_AGENT}
    fields.update(overrides)
    store_authorization_session(session, **fields)
    return session


def make_callback(token_client, config, **updates):
    return AuthorizationCallback(config.model_copy(update=updates), token_client)


class TestSuccessfulCallback:
    async def test_full_flow_returns_token_and_userinfo(
        self, make_request, token_client, config, token
    ):
        # Arrange
        session = pending_session()
        request = make_request(query={"code": "auth-code-123"}, session=session)
        callback = AuthorizationCallback(config, token_client)

        # Act
        outcome = await callback.process(request)

        # Assert
        assert isinstance(outcome, CallbackSuccess)
        assert outcome.token == token
        assert outcome.userinfo == {"sub": "user-123", "email": "user@example.com"}
        assert get_callback_outcome(request) is outcome
        assert SESSION_KEY not in session

        options = token_client.retrieve_token.call_args[0][4]
        assert options.nonce == "nonce-1"
        assert options.scope == ["openid"]

    async def test_userinfo_skipped_when_disabled(
        self, make_request, token_client, config, token
    ):
        # Arrange
        request = make_request(query={"code": "auth-code-123"}, session=pending_session())
        callback = make_callback(token_client, config, retrieve_userinfo=False)

        # Act
        outcome = await callback.process(request)

        # Assert
        assert outcome == CallbackSuccess(token=token, userinfo=None)
        token_client.retrieve_userinfo.assert_not_awaited()

    async def test_no_prior_session_still_succeeds(self, make_request, token_client, config):
        # Arrange - no record, different client; nothing to compare against
        request = make_request(
            query={"code": "auth-code-123"},
            client=("198.51.100.7", 443),
            headers=[("User-Agent", "Other/1.0")],
        )
        callback = AuthorizationCallback(config, token_client)

        # Act
        outcome = await callback.process(request)

        # Assert
        assert outcome.is_success()
        options = token_client.retrieve_token.call_args[0][4]
        assert options.nonce is ANY

    async def test_body_code_overrides_query_code(self, make_request, token_client, config):
        request = make_request(
            method="POST",
            query={"code": "A"},
            body=b"code=B",
            content_type="application/x-www-form-urlencoded",
            session=pending_session(),
        )
        callback = AuthorizationCallback(config, token_client)

        await callback.process(request)

        assert token_client.retrieve_token.call_args[0][0] == "B"

    async def test_resolvers_are_evaluated_per_callback(
        self, make_request, token_client, config
    ):
        # Arrange
        secrets = iter(["secret-1", "secret-2"])
        callback = make_callback(
            token_client, config, client_secret=lambda: next(secrets)
        )

        # Act
        await callback.process(make_request(query={"code": "c1"}))
        await callback.process(make_request(query={"code": "c2"}))

        # Assert
        first, second = token_client.retrieve_token.call_args_list
        assert first[0][3] == "secret-1"
        assert second[0][3] == "secret-2"


class TestReplayGuards:
    async def test_peer_ip_mismatch_stops_before_exchange(
        self, make_request, token_client, config
    ):
        # Arrange
        session = pending_session()
        request = make_request(
            query={"code": "auth-code-123"},
            client=("198.51.100.7", 443),
            session=session,
        )
        callback = AuthorizationCallback(config, token_client)

        # Act
        outcome = await callback.process(request)

        # Assert
        assert isinstance(outcome, CallbackFailure)
        assert outcome.reason.kind is CallbackErrorKind.PEER_IP_MISMATCH
        token_client.retrieve_token.assert_not_awaited()
        assert SESSION_KEY not in session

    async def test_peer_ip_check_disabled_allows_other_address(
        self, make_request, token_client, config
    ):
        request = make_request(
            query={"code": "auth-code-123"},
            client=("198.51.100.7", 443),
            session=pending_session(),
        )
        callback = make_callback(token_client, config, check_peer_ip=False)

        outcome = await callback.process(request)

        assert outcome.is_success()

    async def test_useragent_mismatch_stops_before_exchange(
        self, make_request, token_client, config
    ):
        session = pending_session()
        request = make_request(
            query={"code": "auth-code-123"},
            headers=[("User-Agent", "curl/8.0")],
            session=session,
        )
        callback = AuthorizationCallback(config, token_client)

        outcome = await callback.process(request)

        assert outcome.reason.kind is CallbackErrorKind.USERAGENT_MISMATCH
        token_client.retrieve_token.assert_not_awaited()
        assert SESSION_KEY not in session

    async def test_useragent_check_disabled_allows_other_useragent(
        self, make_request, token_client, config
    ):
        request = make_request(
            query={"code": "auth-code-123"},
            headers=[("User-Agent", "curl/8.0")],
            session=pending_session(),
        )
        callback = make_callback(token_client, config, check_useragent=False)

        outcome = await callback.process(request)

        assert outcome.is_success()

    async def test_replayed_callback_after_success_runs_without_record(
        self, make_request, token_client, config
    ):
        # Arrange - same session reused by a second client
        session = pending_session()
        callback = AuthorizationCallback(config, token_client)
        await callback.process(make_request(query={"code": "c1"}, session=session))

        # Act
        outcome = await callback.process(
            make_request(
                query={"code": "c1"}, client=("198.51.100.7", 443), session=session
            )
        )

        # Assert - the record was single-use, so the nonce is no longer bound
        assert outcome.is_success()
        assert token_client.retrieve_token.call_args[0][4].nonce is ANY


class TestFailures:
    async def test_missing_code_is_reported(self, make_request, token_client, config):
        # Arrange
        session = pending_session()
        request = make_request(query={"state": "s"}, session=session)
        callback = AuthorizationCallback(config, token_client)

        # Act
        outcome = await callback.process(request)

        # Assert
        assert outcome.reason.kind is CallbackErrorKind.MISSING_REQUEST_PARAM
        assert outcome.reason.param == "code"
        token_client.retrieve_token.assert_not_awaited()
        assert SESSION_KEY not in session

    @pytest.mark.parametrize(
        ("body", "content_type"),
        [
            (b'{"code": "\xff"}', "application/json"),
            (b"code=B", "multipart/form-data"),
        ],
    )
    async def test_undecodable_body_still_attaches_failure(
        self, make_request, token_client, config, body, content_type
    ):
        # Arrange
        session = pending_session()
        request = make_request(
            method="POST", body=body, content_type=content_type, session=session
        )
        callback = AuthorizationCallback(config, token_client)

        # Act
        outcome = await callback.process(request)

        # Assert
        assert isinstance(outcome, CallbackFailure)
        assert get_callback_outcome(request) is outcome
        assert outcome.reason.kind is CallbackErrorKind.MISSING_REQUEST_PARAM
        token_client.retrieve_token.assert_not_awaited()
        assert SESSION_KEY not in session

    async def test_exchange_error_becomes_failure(self, make_request, token_client, config):
        failure = TokenExchangeError("invalid_grant", error="invalid_grant")
        token_client.retrieve_token.side_effect = failure
        session = pending_session()
        callback = AuthorizationCallback(config, token_client)

        outcome = await callback.process(
            make_request(query={"code": "c"}, session=session)
        )

        assert outcome.reason.kind is CallbackErrorKind.TOKEN_EXCHANGE
        assert outcome.reason.cause is failure
        token_client.retrieve_userinfo.assert_not_awaited()
        assert SESSION_KEY not in session

    async def test_userinfo_error_replaces_success(
        self, make_request, token_client, config
    ):
        failure = UserinfoError("Userinfo request failed with status 401")
        token_client.retrieve_userinfo.side_effect = failure
        callback = AuthorizationCallback(config, token_client)

        outcome = await callback.process(make_request(query={"code": "c"}))

        assert outcome.is_error()
        assert outcome.reason.kind is CallbackErrorKind.USERINFO
        assert outcome.reason.cause is failure


class TestUnsignedTokenPolicy:
    async def test_unsigned_token_accepted_and_userinfo_fetched(
        self, make_request, token_client, config
    ):
        # Arrange
        unsigned = Token(access_token="unsigned-access", id_token_claims={"sub": "u"})
        token_client.retrieve_token.side_effect = NoneAlgorithmUsedError(unsigned)
        callback = AuthorizationCallback(config, token_client)

        # Act
        outcome = await callback.process(make_request(query={"code": "c"}))

        # Assert
        assert isinstance(outcome, CallbackSuccess)
        assert outcome.token is unsigned
        token_client.retrieve_userinfo.assert_awaited_once()
        assert token_client.retrieve_userinfo.call_args[0][0] is unsigned

    async def test_unsigned_token_rejected_without_userinfo(
        self, make_request, token_client, config
    ):
        failure = NoneAlgorithmUsedError(Token(access_token="unsigned-access"))
        token_client.retrieve_token.side_effect = failure
        callback = make_callback(token_client, config, retrieve_userinfo=False)

        outcome = await callback.process(make_request(query={"code": "c"}))

        assert isinstance(outcome, CallbackFailure)
        assert outcome.reason.cause is failure
        token_client.retrieve_userinfo.assert_not_awaited()


class TestFromOptions:
    def test_unknown_option_fails_at_setup(self, token_client):
        with pytest.raises(CallbackConfigurationError):
            AuthorizationCallback.from_options(
                client=token_client,
                provider="google",
                client_id="client-456",
                client_secret="secret-789",
                redirect_uri="https://app.example.com/oidc/callback",
                retrieve_user_info=False,
            )

    async def test_failing_resolver_raises_after_session_cleared(
        self, make_request, token_client, config
    ):
        # Arrange
        def broken():
            raise KeyError("oidc-client-secret")

        session = pending_session()
        callback = make_callback(token_client, config, client_secret=broken)

        # Act & Assert
        with pytest.raises(CallbackConfigurationError):
            await callback.process(make_request(query={"code": "c"}, session=session))

        assert SESSION_KEY not in session
        token_client.retrieve_token.assert_not_awaited()
