"""Token endpoint client for the authorization code grant."""

import base64
import json
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from pkceflow.auth.models import FlowConfig, TokenResult
from pkceflow.exceptions import MalformedResponseError, NetworkError, ProviderError

logger = logging.getLogger(__name__)

# Claims checked, in order, for the account's display identity.
USERNAME_CLAIMS = ("preferred_username", "upn", "email", "unique_name")
DEFAULT_EXPIRES_IN = 3600


def _b64url_decode(value: str) -> bytes:
    padding = -len(value) % 4
    return base64.urlsafe_b64decode(value + "=" * padding)


def decode_jwt_payload(token: str) -> dict[str, Any] | None:
    """Decode JWT payload without verification (only display claims are read)."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    try:
        payload = json.loads(_b64url_decode(parts[1]))
    except (ValueError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def extract_username(id_token: str | None) -> str:
    """Pick the account identity out of an ID token, or "unknown"."""
    if not id_token:
        return "unknown"
    claims = decode_jwt_payload(id_token) or {}
    for claim in USERNAME_CLAIMS:
        value = claims.get(claim)
        if isinstance(value, str) and value:
            return value
    return "unknown"


def parse_client_info(client_info: str | None) -> str | None:
    """Turn Entra's base64url ``client_info`` blob into ``<uid>.<utid>``."""
    if not client_info:
        return None
    try:
        data = json.loads(_b64url_decode(client_info))
    except (ValueError, UnicodeDecodeError):
        logger.debug("Ignoring undecodable client_info")
        return None
    if not isinstance(data, dict):
        return None
    uid, utid = data.get("uid"), data.get("utid")
    if not uid:
        return None
    return f"{uid}.{utid}" if utid else str(uid)


class TokenExchangeClient:
    """Redeems authorization codes at the provider's token endpoint.

    Never retries: authorization codes and PKCE verifiers are single-use, so
    a second attempt with the same code has to fail visibly at the caller.
    """

    def __init__(
        self,
        config: FlowConfig,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize token exchange client.

        Args:
            config: Flow configuration (client ID, redirect URI, scopes).
            timeout: HTTP request timeout in seconds.
            transport: Optional httpx transport, used to stub the provider.
        """
        self.config = config
        self.timeout = timeout
        self._transport = transport

    async def exchange_code(
        self,
        code: str,
        verifier: str,
        client_info: str | None = None,
    ) -> TokenResult:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.
            verifier: PKCE code verifier of the same attempt.
            client_info: Optional ``client_info`` from the callback.

        Returns:
            TokenResult with at least a non-empty access token.

        Raises:
            ProviderError: Token endpoint returned an OAuth error.
            NetworkError: Provider could not be reached.
            MalformedResponseError: Success response lacked required fields.
        """
        form = {
            "grant_type": "authorization_code",
            "client_id": self.config.client_id,
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "code_verifier": verifier,
            "scope": self.config.scope,
            "client_info": "1",
        }
        logger.debug(
            "Token request: grant_type=%s client_id=%s endpoint=%s",
            form["grant_type"],
            form["client_id"],
            self.config.token_url,
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.config.token_url,
                    data=form,
                    headers={"Accept": "application/json"},
                )
        except httpx.TransportError as e:
            raise NetworkError(f"Failed to reach token endpoint: {e}") from e

        if response.status_code >= 400:
            raise self._provider_error(response)
        return self._parse_success(response, client_info)

    def _provider_error(self, response: httpx.Response) -> ProviderError:
        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            error = str(data["error"])
            description = data.get("error_description")
        else:
            error = f"http_{response.status_code}"
            description = response.text[:200] or None

        logger.warning(
            "Token exchange failed with %d: %s", response.status_code, error
        )
        return ProviderError(error, description, response.status_code)

    def _parse_success(
        self, response: httpx.Response, client_info: str | None
    ) -> TokenResult:
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Token response is not valid JSON") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("Token response is not a JSON object")
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponseError("Token response missing required access_token")

        try:
            expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedResponseError("Token response has invalid expires_in") from e

        for field in ("id_token", "refresh_token", "token_type", "scope", "client_info"):
            value = data.get(field)
            if value is not None and not isinstance(value, str):
                raise MalformedResponseError(f"Token response field {field} is not a string")

        id_token = data.get("id_token")
        scope = data.get("scope")
        try:
            result = TokenResult(
                access_token=access_token,
                expires_at=int(time.time()) + expires_in,
                username=extract_username(id_token),
                id_token=id_token,
                home_account_id=parse_client_info(client_info or data.get("client_info")),
                refresh_token=data.get("refresh_token"),
                token_type=data.get("token_type") or "Bearer",
                scopes=scope.split() if scope else list(self.config.scopes),
            )
        except ValidationError as e:
            raise MalformedResponseError(f"Token response has invalid fields: {e}") from e

        logger.info("Token exchange successful")
        return result


async def exchange_code(code: str, verifier: str, config: FlowConfig) -> TokenResult:
    """Exchange an authorization code using a one-off client."""
    return await TokenExchangeClient(config).exchange_code(code, verifier)
