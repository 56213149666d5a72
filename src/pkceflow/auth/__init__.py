"""Authorization code + PKCE flow components."""

from pkceflow.auth.authorize import AuthorizationRequestBuilder, build_authorization_url
from pkceflow.auth.coordinator import FlowCoordinator, LoginRedirect
from pkceflow.auth.models import AttemptStatus, FlowConfig, PendingAttempt, PKCEPair, TokenResult
from pkceflow.auth.pkce import generate_pkce, generate_state
from pkceflow.auth.store import PendingAttemptStore
from pkceflow.auth.tokens import TokenExchangeClient, exchange_code

__all__ = [
    "AttemptStatus",
    "AuthorizationRequestBuilder",
    "FlowConfig",
    "FlowCoordinator",
    "LoginRedirect",
    "PKCEPair",
    "PendingAttempt",
    "PendingAttemptStore",
    "TokenExchangeClient",
    "TokenResult",
    "build_authorization_url",
    "exchange_code",
    "generate_pkce",
    "generate_state",
]
