"""Authorization request construction."""

from urllib.parse import urlencode, urlparse

from pkceflow.auth.models import FlowConfig
from pkceflow.exceptions import ConfigurationError


def _is_absolute_http_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_config(config: FlowConfig) -> FlowConfig:
    """Check that a flow configuration can produce valid requests.

    Raises:
        ConfigurationError: If client ID, redirect URI or authority is unusable.
    """
    if not config.client_id or not config.client_id.strip():
        raise ConfigurationError("client_id must be set")
    if not _is_absolute_http_url(config.redirect_uri):
        raise ConfigurationError(
            f"redirect_uri must be an absolute http(s) URL, got {config.redirect_uri!r}"
        )
    if not _is_absolute_http_url(config.authority_url):
        raise ConfigurationError(
            f"authority must be an absolute http(s) URL, got {config.authority_url!r}"
        )
    for name in ("authorization_endpoint", "token_endpoint"):
        value = getattr(config, name)
        if value is not None and not _is_absolute_http_url(value):
            raise ConfigurationError(f"{name} must be an absolute http(s) URL")
    return config


def build_authorization_url(
    config: FlowConfig,
    code_challenge: str,
    *,
    state: str | None = None,
    prompt: str | None = None,
    response_mode: str | None = None,
    extra: dict[str, str] | None = None,
) -> str:
    """Build the provider authorization URL.

    Args:
        config: Flow configuration.
        code_challenge: PKCE code challenge (S256).
        state: Attempt identifier echoed back on the callback.
        prompt: Overrides the configured prompt hint.
        response_mode: Overrides the configured response mode.
        extra: Additional query parameters.

    Returns:
        Full authorization URL to redirect the browser to.

    Raises:
        ConfigurationError: If the configuration is incomplete.
    """
    validate_config(config)

    # Protocol parameters are applied last so extra can never override them.
    params = dict(extra or {})
    params.update(
        {
            "client_id": config.client_id,
            "response_type": "code",
            "redirect_uri": config.redirect_uri,
            "scope": config.scope,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "response_mode": response_mode or config.response_mode,
        }
    )
    prompt = prompt if prompt is not None else config.prompt
    if prompt:
        params["prompt"] = prompt
    if state:
        params["state"] = state

    endpoint = config.authorize_url
    separator = "&" if urlparse(endpoint).query else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


class AuthorizationRequestBuilder:
    """Builds authorization URLs for a fixed flow configuration."""

    def __init__(self, config: FlowConfig):
        self.config = validate_config(config)

    def build(self, code_challenge: str, state: str) -> str:
        """Return the authorization URL for one attempt."""
        return build_authorization_url(self.config, code_challenge, state=state)
