"""Tests for the flow coordinator."""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from pkceflow.auth.authorize import AuthorizationRequestBuilder
from pkceflow.auth.coordinator import FlowCoordinator
from pkceflow.auth.models import AttemptStatus, TokenResult
from pkceflow.auth.pkce import compute_challenge
from pkceflow.auth.store import PendingAttemptStore
from pkceflow.exceptions import (
    AuthorizationDeniedError,
    MissingCodeError,
    NetworkError,
    ProviderError,
    ReplayOrExpiredAttemptError,
)


class FakeUrlBuilder:
    def build(self, code_challenge: str, state: str) -> str:
        return f"https://idp.example/authorize?code_challenge={code_challenge}&state={state}"


def _token(access_token: str = "access-token-value") -> TokenResult:
    return TokenResult(access_token=access_token, expires_at=2_000_000_000, username="bob")


@pytest.fixture
def exchanger() -> AsyncMock:
    mock = AsyncMock()
    mock.exchange_code.return_value = _token()
    return mock


@pytest.fixture
def fake_coordinator(exchanger) -> FlowCoordinator:
    return FlowCoordinator(FakeUrlBuilder(), exchanger, PendingAttemptStore())


class TestBeginLogin:
    """Test FlowCoordinator.begin_login."""

    def test_stores_pending_attempt(self, fake_coordinator):
        """begin_login registers an attempt keyed by its state."""
        redirect = fake_coordinator.begin_login()
        assert redirect.state in fake_coordinator.store
        assert f"state={redirect.state}" in redirect.url

    def test_url_challenge_matches_stored_verifier(self, fake_coordinator):
        """The redirect carries the challenge of the stored verifier."""
        redirect = fake_coordinator.begin_login()
        challenge = parse_qs(urlparse(redirect.url).query)["code_challenge"][0]
        attempt = fake_coordinator.store.pop(redirect.state)
        assert attempt.status == AttemptStatus.AWAITING_CALLBACK
        assert compute_challenge(attempt.pkce.verifier) == challenge

    def test_each_login_gets_fresh_pair(self, fake_coordinator):
        """Concurrent logins never share state or verifier."""
        a = fake_coordinator.begin_login()
        b = fake_coordinator.begin_login()
        assert a.state != b.state
        assert a.url != b.url
        assert len(fake_coordinator.store) == 2

    def test_identical_urls_apart_from_attempt(self, flow_config, exchanger):
        """With PKCE and state pinned, login URLs are identical."""
        from pkceflow.auth.models import PKCEPair

        pair = PKCEPair(verifier="v" * 43, challenge=compute_challenge("v" * 43))
        coordinator = FlowCoordinator(AuthorizationRequestBuilder(flow_config), exchanger)
        with (
            patch("pkceflow.auth.coordinator.generate_pkce", return_value=pair),
            patch("pkceflow.auth.coordinator.generate_state", side_effect=["s1", "s2"]),
        ):
            first = coordinator.begin_login()
            second = coordinator.begin_login()
        assert first.url.replace("state=s1", "") == second.url.replace("state=s2", "")


class TestCompleteLogin:
    """Test FlowCoordinator.complete_login."""

    @pytest.mark.asyncio
    async def test_success_uses_stored_verifier(self, fake_coordinator, exchanger):
        """A matching callback exchanges the code with the stored verifier."""
        redirect = fake_coordinator.begin_login()
        verifier = fake_coordinator.store._attempts[redirect.state].pkce.verifier

        result = await fake_coordinator.complete_login(
            state=redirect.state, code="abc123", client_info="ci"
        )

        assert result.access_token == "access-token-value"
        exchanger.exchange_code.assert_awaited_once_with("abc123", verifier, "ci")
        assert redirect.state not in fake_coordinator.store

    @pytest.mark.asyncio
    async def test_missing_code_rejected_without_exchange(self, fake_coordinator, exchanger):
        """No code means 400 and no token endpoint call."""
        redirect = fake_coordinator.begin_login()
        with pytest.raises(MissingCodeError):
            await fake_coordinator.complete_login(state=redirect.state, code=None)
        exchanger.exchange_code.assert_not_called()
        assert redirect.state not in fake_coordinator.store

    @pytest.mark.asyncio
    async def test_error_parameter_rejected_without_exchange(self, fake_coordinator, exchanger):
        """Provider error is surfaced with its description."""
        redirect = fake_coordinator.begin_login()
        with pytest.raises(AuthorizationDeniedError) as exc_info:
            await fake_coordinator.complete_login(
                state=redirect.state,
                code=None,
                error="access_denied",
                error_description="User cancelled",
            )
        assert str(exc_info.value) == "User cancelled"
        assert exc_info.value.error == "access_denied"
        exchanger.exchange_code.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_state_rejected(self, fake_coordinator, exchanger):
        """A forged or unknown state never reaches the token endpoint."""
        fake_coordinator.begin_login()
        with pytest.raises(ReplayOrExpiredAttemptError):
            await fake_coordinator.complete_login(state="forged", code="abc123")
        with pytest.raises(ReplayOrExpiredAttemptError):
            await fake_coordinator.complete_login(state=None, code="abc123")
        exchanger.exchange_code.assert_not_called()

    @pytest.mark.asyncio
    async def test_replayed_callback_rejected(self, fake_coordinator, exchanger):
        """A completed attempt cannot be completed again."""
        redirect = fake_coordinator.begin_login()
        await fake_coordinator.complete_login(state=redirect.state, code="abc123")
        with pytest.raises(ReplayOrExpiredAttemptError):
            await fake_coordinator.complete_login(state=redirect.state, code="abc123")
        assert exchanger.exchange_code.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_attempt_rejected(self, exchanger):
        """Callbacks arriving after the TTL are rejected."""
        now = [100.0]
        store = PendingAttemptStore(ttl_seconds=5, clock=lambda: now[0])
        coordinator = FlowCoordinator(FakeUrlBuilder(), exchanger, store)
        redirect = coordinator.begin_login()
        now[0] += 6
        with pytest.raises(ReplayOrExpiredAttemptError):
            await coordinator.complete_login(state=redirect.state, code="abc123")
        exchanger.exchange_code.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [ProviderError("invalid_grant", "used"), NetworkError("down")]
    )
    async def test_exchange_failure_consumes_attempt(self, fake_coordinator, exchanger, error):
        """A failed exchange propagates and the attempt is not reusable."""
        exchanger.exchange_code.side_effect = error
        redirect = fake_coordinator.begin_login()
        with pytest.raises(type(error)):
            await fake_coordinator.complete_login(state=redirect.state, code="abc123")
        assert redirect.state not in fake_coordinator.store

    @pytest.mark.asyncio
    async def test_concurrent_attempts_resolve_independently(self, coordinator, mock_provider):
        """Completing B only consumes B's verifier; A stays resolvable."""
        login_a = coordinator.begin_login()
        login_b = coordinator.begin_login()
        code_a, state_a = mock_provider.authorize(login_a.url)
        code_b, state_b = mock_provider.authorize(login_b.url)

        result_b = await coordinator.complete_login(state=state_b, code=code_b)
        assert result_b.access_token
        assert state_a in coordinator.store
        assert state_b not in coordinator.store

        result_a = await coordinator.complete_login(state=state_a, code=code_a)
        assert result_a.access_token
        assert len(coordinator.store) == 0

    @pytest.mark.asyncio
    async def test_end_to_end_with_mock_provider(self, coordinator, mock_provider):
        """login -> provider redirect with code=abc123&state=xyz -> tokens."""
        with patch("pkceflow.auth.coordinator.generate_state", return_value="xyz"):
            redirect = coordinator.begin_login()
        code, state = mock_provider.authorize(redirect.url, code="abc123")
        assert (code, state) == ("abc123", "xyz")

        result = await coordinator.complete_login(state="xyz", code="abc123")

        assert result.access_token
        assert result.username == "alice@example.com"
