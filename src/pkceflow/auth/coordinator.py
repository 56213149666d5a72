"""Authorization code flow orchestration.

Ties PKCE generation, authorization URL construction and the token exchange
together across the two HTTP-facing steps of a login, keeping per-attempt
state in a keyed store in between.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from pkceflow.auth.models import AttemptStatus, PendingAttempt, TokenResult
from pkceflow.auth.pkce import generate_pkce, generate_state
from pkceflow.auth.store import PendingAttemptStore
from pkceflow.exceptions import (
    AuthError,
    AuthorizationDeniedError,
    MissingCodeError,
    ReplayOrExpiredAttemptError,
)

logger = logging.getLogger(__name__)


class AuthorizationUrlBuilder(Protocol):
    def build(self, code_challenge: str, state: str) -> str:
        """Return the provider authorization URL for one attempt."""
        ...


class TokenExchanger(Protocol):
    async def exchange_code(
        self,
        code: str,
        verifier: str,
        client_info: str | None = None,
    ) -> TokenResult:
        """Redeem an authorization code with the attempt's PKCE verifier."""
        ...


@dataclass(frozen=True)
class LoginRedirect:
    """Where to send the browser for a freshly started login."""

    url: str
    state: str


class FlowCoordinator:
    """Runs login attempts from redirect to token acquisition.

    Each attempt moves Idle -> AwaitingCallback -> Completed, or to Failed
    from any non-terminal state. Attempts are keyed by their ``state`` value
    so concurrent logins never share a verifier.
    """

    def __init__(
        self,
        url_builder: AuthorizationUrlBuilder,
        token_exchanger: TokenExchanger,
        store: PendingAttemptStore | None = None,
    ):
        self._url_builder = url_builder
        self._token_exchanger = token_exchanger
        self.store = store if store is not None else PendingAttemptStore()

    def begin_login(self) -> LoginRedirect:
        """Start a new attempt and return the provider redirect."""
        pkce = generate_pkce()
        state = generate_state()
        url = self._url_builder.build(pkce.challenge, state)

        attempt = PendingAttempt(
            state=state,
            pkce=pkce,
            created_at=self.store.now(),
            status=AttemptStatus.AWAITING_CALLBACK,
        )
        self.store.add(attempt)
        logger.info("Started login attempt (%d pending)", len(self.store))
        return LoginRedirect(url=url, state=state)

    async def complete_login(
        self,
        *,
        state: str | None,
        code: str | None,
        error: str | None = None,
        error_description: str | None = None,
        client_info: str | None = None,
    ) -> TokenResult:
        """Finish an attempt from its callback parameters.

        Raises:
            AuthorizationDeniedError: Provider reported an error.
            MissingCodeError: Callback carried no code.
            ReplayOrExpiredAttemptError: State matches no pending attempt.
            AuthError: Token exchange failed.
        """
        # Any callback naming an attempt ends it; a verifier is never reused.
        attempt = self.store.pop(state)

        if error:
            self._fail(attempt)
            raise AuthorizationDeniedError(error, error_description)
        if not code:
            self._fail(attempt)
            raise MissingCodeError()
        if attempt is None:
            raise ReplayOrExpiredAttemptError(state)

        try:
            result = await self._token_exchanger.exchange_code(
                code, attempt.pkce.verifier, client_info
            )
        except AuthError:
            self._fail(attempt)
            raise

        attempt.status = AttemptStatus.COMPLETED
        logger.info("Login attempt completed")
        return result

    @staticmethod
    def _fail(attempt: PendingAttempt | None) -> None:
        if attempt is not None:
            attempt.status = AttemptStatus.FAILED
