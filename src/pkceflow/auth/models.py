"""Authentication data models."""

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Microsoft identity platform v2 endpoint layout under an authority.
AUTHORIZE_PATH = "/oauth2/v2.0/authorize"
TOKEN_PATH = "/oauth2/v2.0/token"


class AttemptStatus(str, Enum):
    """Lifecycle of a single login attempt."""

    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    COMPLETED = "completed"
    FAILED = "failed"


class PKCEPair(BaseModel):
    """PKCE verifier/challenge pair for one login attempt."""

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str
    method: str = "S256"

    @field_validator("method")
    @classmethod
    def _only_s256(cls, value: str) -> str:
        if value != "S256":
            raise ValueError("only the S256 challenge method is supported")
        return value


class FlowConfig(BaseModel):
    """Static configuration of the authorization code flow."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    authority_url: str
    redirect_uri: str
    scopes: tuple[str, ...] = ()
    prompt: str | None = "select_account"
    response_mode: str = "query"
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None

    @field_validator("scopes", mode="before")
    @classmethod
    def _dedupe_scopes(cls, value):
        if isinstance(value, str):
            value = value.split()
        # dict keeps insertion order
        return tuple(dict.fromkeys(s for s in value if s))

    @property
    def authorize_url(self) -> str:
        """Provider authorize endpoint."""
        if self.authorization_endpoint:
            return self.authorization_endpoint
        return self.authority_url.rstrip("/") + AUTHORIZE_PATH

    @property
    def token_url(self) -> str:
        """Provider token endpoint."""
        if self.token_endpoint:
            return self.token_endpoint
        return self.authority_url.rstrip("/") + TOKEN_PATH

    @property
    def scope(self) -> str:
        """Scopes joined the way OAuth2 expects them on the wire."""
        return " ".join(self.scopes)


class PendingAttempt(BaseModel):
    """A login that has been redirected to the provider and awaits its callback."""

    state: str
    pkce: PKCEPair
    created_at: float = Field(default_factory=time.time)
    status: AttemptStatus = AttemptStatus.AWAITING_CALLBACK

    def is_expired(self, ttl_seconds: float, now: float | None = None) -> bool:
        """Check whether the attempt outlived its time-to-live."""
        if now is None:
            now = time.time()
        return now >= self.created_at + ttl_seconds


class TokenResult(BaseModel):
    """Tokens acquired by redeeming an authorization code."""

    access_token: str
    expires_at: int
    username: str = "unknown"
    id_token: str | None = None
    home_account_id: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scopes: list[str] = Field(default_factory=list)

    def is_expired(self, buffer_seconds: int = 300) -> bool:
        """Check if token is expired or expiring soon.

        Args:
            buffer_seconds: Consider expired if within this many seconds of expiry.

        Returns:
            True if token is expired or expiring within buffer.
        """
        return time.time() >= (self.expires_at - buffer_seconds)

    def redacted_token(self, length: int = 10) -> str:
        """Return a short prefix of the access token for display."""
        if not self.access_token:
            return "N/A"
        return f"{self.access_token[:length]}..."
