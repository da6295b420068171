"""Health check endpoint for the stream harness."""

import logging
from typing import Optional
from aiohttp import web, web_request
from aiohttp.web_response import Response


logger = logging.getLogger(__name__)


async def health(request: web_request.Request) -> Response:
    """Liveness only: answers OK regardless of stream or producer state."""
    return web.Response(text="OK", content_type="text/plain", charset="utf-8", status=200)


def create_app(path: str = "/health") -> web.Application:
    app = web.Application()
    app.router.add_get(path, health, allow_head=False)
    return app


class HealthCheckServer:
    """HTTP server for the health check endpoint."""

    def __init__(self, host: str = "0.0.0.0", port: int = 8080, path: str = "/health"):
        self.host = host
        self.port = port
        self.path = path
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    @property
    def is_running(self) -> bool:
        return self.site is not None

    async def start(self):
        """Start the health check server."""
        logger.debug(f"Starting health check server on {self.host}:{self.port}")

        self.app = create_app(self.path)

        self.runner = web.AppRunner(self.app, access_log=None)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        try:
            await self.site.start()
        except Exception:
            await self.runner.cleanup()
            self.site = None
            self.runner = None
            raise

        logger.info(f"Health check server started on http://{self.host}:{self.port}{self.path}")

    async def stop(self):
        """Stop the health check server."""
        if not self.is_running:
            return

        logger.debug("Stopping health check server")

        await self.site.stop()
        await self.runner.cleanup()
        self.site = None
        self.runner = None

        logger.info("Health check server stopped")
