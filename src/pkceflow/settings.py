"""Application settings."""

import re
from functools import lru_cache

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from pkceflow.auth.authorize import validate_config
from pkceflow.auth.models import FlowConfig
from pkceflow.exceptions import ConfigurationError

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_SCOPES = (
    "offline_access openid email profile "
    "https://management.azure.com/user_impersonation"
)

# Shown when required configuration is missing.
REQUIRED_ENV_HELP = [
    ("MSAL_CLIENT_ID", "Your Entra ID application client ID"),
    ("MSAL_TENANT_ID (optional)", "Your Entra ID tenant ID (defaults to 'common')"),
    ("MSAL_AUTHORITY (optional)", "Override authority URL"),
    ("REDIRECT_URI (optional)", "Redirect URI (defaults to http://localhost:3000/auth/callback)"),
    ("PORT (optional)", "Listening port (defaults to 3000)"),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    msal_client_id: str
    msal_tenant_id: str = "common"
    msal_authority: str | None = None
    redirect_uri: str = "http://localhost:3000/auth/callback"
    host: str = "localhost"
    port: int = 3000

    oauth_scopes: str = DEFAULT_SCOPES
    oauth_prompt: str = "select_account"
    authorization_endpoint: str | None = None
    token_endpoint: str | None = None

    # Seconds a login may wait for its callback
    attempt_ttl: int = 600
    sweep_interval: int = 60
    token_timeout: float = 30.0

    @property
    def authority(self) -> str:
        """Authority URL, explicit or derived from the tenant."""
        if self.msal_authority:
            return self.msal_authority.rstrip("/")
        return f"{DEFAULT_AUTHORITY_HOST}/{self.msal_tenant_id}"

    @property
    def scopes(self) -> list[str]:
        return [s for s in re.split(r"[\s,]+", self.oauth_scopes) if s]

    def flow_config(self) -> FlowConfig:
        """Build and validate the flow configuration.

        Raises:
            ConfigurationError: If the derived configuration is unusable.
        """
        return validate_config(
            FlowConfig(
                client_id=self.msal_client_id,
                authority_url=self.authority,
                redirect_uri=self.redirect_uri,
                scopes=self.scopes,
                prompt=self.oauth_prompt or None,
                authorization_endpoint=self.authorization_endpoint or None,
                token_endpoint=self.token_endpoint or None,
            )
        )


def load_settings() -> Settings:
    """Load settings, converting validation failures to ConfigurationError."""
    try:
        return Settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]).upper() for err in e.errors()]
        raise ConfigurationError(
            f"Invalid configuration: {', '.join(missing)}"
        ) from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
