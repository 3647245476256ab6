"""Routes mounted on the primary API listener."""

from __future__ import annotations

from datetime import datetime

from aiohttp import web

from . import __version__
from .store import Store

STORE_KEY = web.AppKey("store", Store)


async def _health_handler(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    if store.closed:
        return web.json_response({"status": "shutting_down"}, status=503)
    return web.json_response(
        {
            "status": "ok",
            "version": __version__,
            "timestamp": datetime.now().isoformat(),
        }
    )


def register_routes(app: web.Application, store: Store) -> None:
    app[STORE_KEY] = store
    app.router.add_get("/health", _health_handler)
