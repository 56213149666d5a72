"""HTTP login server exposing /auth/login and /auth/callback."""

import asyncio
import contextlib
import html
import json
import logging

import httpx
from aiohttp import web

from pkceflow.auth.authorize import AuthorizationRequestBuilder
from pkceflow.auth.coordinator import FlowCoordinator
from pkceflow.auth.models import TokenResult
from pkceflow.auth.store import PendingAttemptStore
from pkceflow.auth.tokens import TokenExchangeClient
from pkceflow.exceptions import (
    AuthorizationDeniedError,
    CallbackError,
    MalformedResponseError,
    NetworkError,
    ProviderError,
)
from pkceflow.settings import Settings

logger = logging.getLogger(__name__)

COORDINATOR_KEY = web.AppKey("coordinator", FlowCoordinator)
SWEEP_INTERVAL_KEY = web.AppKey("sweep_interval", float)

LOGIN_PATH = "/auth/login"
CALLBACK_PATH = "/auth/callback"


def get_home_page() -> str:
    return f"""<!DOCTYPE html>
<html>
<head><title>pkceflow</title></head>
<body>
<h1>Sign in</h1>
<p><a href="{LOGIN_PATH}">Log in with your identity provider</a></p>
</body>
</html>"""


def get_success_page(result: TokenResult) -> str:
    """Render the confirmation page with a redacted token."""
    summary = json.dumps(
        {"userId": result.username, "token": result.redacted_token()},
        indent=2,
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>Authentication Successful</title></head>
<body>
<h1>Authentication Successful!</h1>
<p>Token acquired successfully!</p>
<pre>{html.escape(summary)}</pre>
<p><a href="{LOGIN_PATH}">Try Again</a></p>
</body>
</html>"""


def _error_response(message: str, status: int) -> web.Response:
    return web.Response(text=message, status=status)


async def handle_home(request: web.Request) -> web.Response:
    return web.Response(text=get_home_page(), content_type="text/html")


async def handle_login(request: web.Request) -> web.Response:
    """Start a login attempt and redirect to the provider."""
    coordinator = request.app[COORDINATOR_KEY]
    try:
        redirect = coordinator.begin_login()
    except Exception:
        logger.exception("Login flow failed")
        return _error_response("Authentication failed", 500)
    raise web.HTTPFound(location=redirect.url)


async def handle_callback(request: web.Request) -> web.Response:
    """Redeem the authorization code delivered by the provider."""
    coordinator = request.app[COORDINATOR_KEY]
    query = request.query
    logger.debug("Callback received with parameters: %s", sorted(query.keys()))

    try:
        result = await coordinator.complete_login(
            state=query.get("state"),
            code=query.get("code"),
            error=query.get("error"),
            error_description=query.get("error_description"),
            client_info=query.get("client_info"),
        )
    except AuthorizationDeniedError as e:
        logger.error("OAuth error: %s %s", e.error, e.description or "")
        return _error_response(f"OAuth error: {e}", 400)
    except CallbackError as e:
        logger.error("Rejected callback: %s", e)
        return _error_response(str(e), 400)
    except ProviderError as e:
        logger.error(
            "Token endpoint rejected the code (%s): %s %s",
            e.status_code,
            e.error,
            e.description or "",
        )
        return _error_response("Failed to acquire token", 500)
    except MalformedResponseError as e:
        logger.error("Provider returned a malformed token response: %s", e)
        return _error_response("Failed to acquire token", 500)
    except NetworkError as e:
        logger.error("Token acquisition failed: %s", e)
        return _error_response("Failed to acquire token", 500)
    except Exception:
        logger.exception("Token acquisition failed")
        return _error_response("Failed to acquire token", 500)

    logger.info("Token acquired successfully")
    return web.Response(text=get_success_page(result), content_type="text/html")


async def _sweep_expired(app: web.Application):
    """Periodically evict abandoned login attempts."""
    store = app[COORDINATOR_KEY].store
    interval = app[SWEEP_INTERVAL_KEY]

    async def sweeper() -> None:
        while True:
            await asyncio.sleep(interval)
            store.sweep()

    task = asyncio.create_task(sweeper())
    yield
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def create_app(coordinator: FlowCoordinator, sweep_interval: float = 60) -> web.Application:
    """Create the aiohttp application around a coordinator."""
    app = web.Application()
    app[COORDINATOR_KEY] = coordinator
    app[SWEEP_INTERVAL_KEY] = float(sweep_interval)
    app.router.add_get("/", handle_home)
    app.router.add_get(LOGIN_PATH, handle_login)
    app.router.add_get(CALLBACK_PATH, handle_callback)
    app.cleanup_ctx.append(_sweep_expired)
    return app


def build_coordinator(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FlowCoordinator:
    """Wire the coordinator from settings.

    Raises:
        ConfigurationError: If settings do not form a usable flow configuration.
    """
    config = settings.flow_config()
    return FlowCoordinator(
        url_builder=AuthorizationRequestBuilder(config),
        token_exchanger=TokenExchangeClient(
            config, timeout=settings.token_timeout, transport=transport
        ),
        store=PendingAttemptStore(ttl_seconds=settings.attempt_ttl),
    )


class LoginServer:
    """Login HTTP server bound to a host and port."""

    def __init__(
        self,
        settings: Settings,
        coordinator: FlowCoordinator | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        """Initialize login server.

        Args:
            settings: Application settings.
            coordinator: Prebuilt coordinator; built from settings when omitted.
            host: Overrides settings.host.
            port: Overrides settings.port. 0 = random available port.
        """
        self.settings = settings
        self.coordinator = coordinator or build_coordinator(settings)
        self.host = host or settings.host
        self._requested_port = settings.port if port is None else port
        self.port = 0
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def start(self) -> None:
        """Start serving."""
        app = create_app(self.coordinator, self.settings.sweep_interval)
        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self._requested_port)
        await self._site.start()

        # Get actual port if we requested 0
        self.port = self._requested_port
        server = self._site._server
        if server is not None and server.sockets:
            self.port = server.sockets[0].getsockname()[1]

        logger.info("Server running on %s", self.base_url)

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None
