"""In-memory store of pending login attempts keyed by state."""

import logging
import time
from collections.abc import Callable

from pkceflow.auth.models import PendingAttempt

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600


class PendingAttemptStore:
    """Maps the ``state`` of each in-flight login to its PKCE pair.

    Entries expire after ``ttl_seconds`` so abandoned logins do not linger.
    All mutations are synchronous, so within one event loop they never
    interleave.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._attempts: dict[str, PendingAttempt] = {}

    def __len__(self) -> int:
        return len(self._attempts)

    def __contains__(self, state: object) -> bool:
        return state in self._attempts

    def now(self) -> float:
        return self._clock()

    def add(self, attempt: PendingAttempt) -> None:
        """Register a new pending attempt.

        Raises:
            ValueError: If an attempt with the same state is already pending.
        """
        self.sweep()
        if attempt.state in self._attempts:
            raise ValueError("duplicate login attempt state")
        self._attempts[attempt.state] = attempt

    def pop(self, state: str | None) -> PendingAttempt | None:
        """Remove and return the attempt for ``state`` if it is still live."""
        if not state:
            return None
        attempt = self._attempts.pop(state, None)
        if attempt is None:
            return None
        if attempt.is_expired(self.ttl_seconds, self.now()):
            logger.info("Login attempt expired before its callback arrived")
            return None
        return attempt

    def sweep(self) -> int:
        """Evict expired attempts.

        Returns:
            Number of attempts evicted.
        """
        now = self.now()
        expired = [
            state
            for state, attempt in self._attempts.items()
            if attempt.is_expired(self.ttl_seconds, now)
        ]
        for state in expired:
            del self._attempts[state]
        if expired:
            logger.debug("Evicted %d expired login attempts", len(expired))
        return len(expired)
