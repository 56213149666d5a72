"""Exception hierarchy for pkceflow."""


class PkceflowError(Exception):
    """Base exception for all pkceflow errors."""


class ConfigurationError(PkceflowError):
    """Flow configuration is missing or malformed."""


class AuthError(PkceflowError):
    """Base exception for authentication flow errors."""


class ProviderError(AuthError):
    """Token endpoint answered with an OAuth error response."""

    def __init__(
        self,
        error: str,
        description: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.error = error
        self.description = description
        self.status_code = status_code
        message = f"{error}: {description}" if description else error
        super().__init__(message)


class NetworkError(AuthError):
    """Transport failure while reaching the identity provider."""


class MalformedResponseError(AuthError):
    """Token endpoint returned a success response without the required fields."""


class CallbackError(AuthError):
    """Authorization callback was rejected before any token exchange."""


class AuthorizationDeniedError(CallbackError):
    """Provider redirected back with an error instead of a code."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        super().__init__(description or error)


class MissingCodeError(CallbackError):
    """Callback carried no authorization code."""

    def __init__(self) -> None:
        super().__init__("Authorization code not found in request")


class ReplayOrExpiredAttemptError(CallbackError):
    """Callback state does not match any pending login attempt."""

    def __init__(self, state: str | None = None) -> None:
        self.state = state
        super().__init__("Login attempt not found, expired, or already used")
