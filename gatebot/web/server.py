"""
Health check server.
"""

from aiohttp import web

from gatebot.core.logging import get_logger

logger = get_logger(__name__)

HEALTH_STATE_KEY = web.AppKey("health_state", "HealthState")


class HealthState:
    """Readiness flag flipped by the application lifecycle."""

    def __init__(self) -> None:
        self.ready = False


async def handle_live(request: web.Request) -> web.Response:
    """Liveness probe: the process is serving requests."""
    return web.Response(status=200, text="OK")


async def handle_ready(request: web.Request) -> web.Response:
    """Readiness probe: polling and the captcha sweep are running."""
    state = request.app[HEALTH_STATE_KEY]
    if state.ready:
        return web.Response(status=200, text="OK")
    return web.Response(status=400, text="Not ready")


def create_health_app(state: HealthState) -> web.Application:
    app = web.Application()
    app[HEALTH_STATE_KEY] = state
    app.router.add_get("/health/live", handle_live)
    app.router.add_get("/health/ready", handle_ready)
    return app


async def start_health_server(state: HealthState, host: str = "0.0.0.0", port: int = 8081) -> web.AppRunner:
    """
    Start the health check server.

    Args:
        state: Readiness flag reported by /health/ready
        host: Host to bind to
        port: Port to bind to

    Returns:
        The runner; call ``cleanup()`` on shutdown
    """
    runner = web.AppRunner(create_health_app(state))
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health server started on {host}:{port}")
    return runner
