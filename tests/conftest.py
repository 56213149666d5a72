"""Shared test fixtures: flow configuration and a mock identity provider."""

import base64
import hashlib
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from pkceflow.auth.authorize import AuthorizationRequestBuilder
from pkceflow.auth.coordinator import FlowCoordinator
from pkceflow.auth.models import FlowConfig
from pkceflow.auth.store import PendingAttemptStore
from pkceflow.auth.tokens import TokenExchangeClient
from pkceflow.settings import Settings

AUTHORITY = "https://login.example.com/tenant-123"
REDIRECT_URI = "http://localhost:3000/auth/callback"
CLIENT_ID = "client-123"
SCOPES = ["openid", "profile", "offline_access"]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def make_jwt(payload: dict) -> str:
    """Create an unsigned JWT for testing."""
    header = _b64url(json.dumps({"alg": "RS256"}).encode())
    body = _b64url(json.dumps(payload).encode())
    return f"{header}.{body}.{_b64url(b'fake_sig')}"


def make_client_info(uid: str, utid: str) -> str:
    return _b64url(json.dumps({"uid": uid, "utid": utid}).encode())


class MockProvider:
    """Identity provider stand-in with single-use authorization codes."""

    def __init__(self, username: str = "alice@example.com"):
        self.username = username
        self.token_requests: list[dict[str, str]] = []
        self._codes: dict[str, str] = {}

    def authorize(self, authorization_url: str, code: str | None = None) -> tuple[str, str]:
        """Simulate the user signing in; returns (code, state) for the callback."""
        params = parse_qs(urlparse(authorization_url).query)
        code = code or f"code-{len(self.token_requests)}-{len(self._codes)}"
        self._codes[code] = params["code_challenge"][0]
        return code, params["state"][0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.token_requests.append(form)

        challenge = self._codes.pop(form.get("code", ""), None)
        if challenge is None:
            return httpx.Response(
                400,
                json={
                    "error": "invalid_grant",
                    "error_description": "The provided authorization code has expired or was already used.",
                },
            )
        verifier = form.get("code_verifier", "")
        if _b64url(hashlib.sha256(verifier.encode("ascii")).digest()) != challenge:
            return httpx.Response(
                400,
                json={
                    "error": "invalid_grant",
                    "error_description": "The code_verifier does not match the code_challenge.",
                },
            )
        return httpx.Response(
            200,
            json={
                "access_token": f"access-{form['code']}-0123456789",
                "id_token": make_jwt({"preferred_username": self.username}),
                "refresh_token": "refresh-token",
                "expires_in": 3600,
                "token_type": "Bearer",
                "scope": form.get("scope", ""),
            },
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def flow_config() -> FlowConfig:
    return FlowConfig(
        client_id=CLIENT_ID,
        authority_url=AUTHORITY,
        redirect_uri=REDIRECT_URI,
        scopes=SCOPES,
    )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def token_client(flow_config, mock_provider) -> TokenExchangeClient:
    return TokenExchangeClient(flow_config, transport=mock_provider.transport)


@pytest.fixture
def coordinator(flow_config, token_client) -> FlowCoordinator:
    return FlowCoordinator(
        url_builder=AuthorizationRequestBuilder(flow_config),
        token_exchanger=token_client,
        store=PendingAttemptStore(ttl_seconds=600),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        msal_client_id=CLIENT_ID,
        msal_authority=AUTHORITY,
        redirect_uri=REDIRECT_URI,
        host="127.0.0.1",
        port=0,
        oauth_scopes=" ".join(SCOPES),
    )
