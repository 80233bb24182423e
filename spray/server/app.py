"""HTTP server exposing the subscription endpoint and service metrics."""

from __future__ import annotations

import logging

from aiohttp import web

from spray.ingest.processing import Broadcast
from spray.metrics import create_metrics_registry
from spray.server.rpc import REGISTRY_KEY, create_app

log = logging.getLogger(__name__)


async def metrics_handler(request: web.Request) -> web.Response:
    """Serve the application's metrics registry as text."""
    registry = request.app[REGISTRY_KEY]
    return web.Response(text=registry.encode(), content_type="text/plain", charset="utf-8")


class RpcServer:
    """Listens for JSON-RPC subscriptions and metric scrapes on one port."""

    def __init__(self, broadcast: Broadcast, port: int = 3000, host: str = "0.0.0.0") -> None:
        self.broadcast = broadcast
        self.port = port
        self.host = host
        self._runner: web.AppRunner | None = None

    async def start(self) -> int:
        """Start listening; return the bound port."""
        if self._runner is not None:
            raise RuntimeError("server is already running")
        app = create_app(self.broadcast, create_metrics_registry())
        app.router.add_route("*", "/metrics", metrics_handler)
        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        try:
            site = web.TCPSite(runner, self.host, self.port)
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        self._runner = runner
        self.port = runner.addresses[0][1]
        log.info("server is listening on port %d", self.port)
        return self.port

    async def stop(self) -> None:
        """Close connections and stop listening."""
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()