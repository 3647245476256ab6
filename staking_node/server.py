"""
HTTP listeners.

`ApiServer` owns an aiohttp runner bound to one port, optionally over TLS.
Construction (including reading the TLS material) and binding are separate
steps so the orchestrator can fail on either one independently.
"""

from __future__ import annotations

import logging
import ssl
from pathlib import Path
from typing import List, Optional

from aiohttp import web
from aiohttp.typedefs import Handler

from .config import NodeConfig
from .errors import TransportError
from .routes import register_routes
from .store import Store


@web.middleware
async def compression_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Compress responses when the client accepts gzip or deflate."""
    response = await handler(request)
    if isinstance(response, web.Response) and not response.prepared:
        response.enable_compression()
    return response


def build_ssl_context(private_key_path: Path, cert_path: Path) -> ssl.SSLContext:
    """Server-side TLS context from PEM key/certificate files."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(certfile=str(cert_path), keyfile=str(private_key_path))
    except (OSError, ssl.SSLError) as exc:
        raise TransportError(f"could not load TLS key/certificate: {exc}") from exc
    return context


class ApiServer:
    """An aiohttp application bound to a single TCP port."""

    name = "API"

    def __init__(
        self,
        app: web.Application,
        host: str,
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.ssl_context = ssl_context
        self.logger = logger or logging.getLogger(__name__)
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    @classmethod
    def build(
        cls,
        config: NodeConfig,
        store: Store,
        logger: Optional[logging.Logger] = None,
    ) -> "ApiServer":
        """Create the primary listener (plain HTTP or TLS) without binding it."""
        ssl_context = None
        if config.ssl:
            if not (config.ssl_private_key_path and config.ssl_cert_path):
                raise TransportError("SSL=1 requires SSL_PRIVATE_KEY_PATH and SSL_CERT_PATH")
            ssl_context = build_ssl_context(
                config.ssl_private_key_path, config.ssl_cert_path
            )

        app = web.Application(middlewares=[compression_middleware])
        register_routes(app, store)
        return cls(app, config.server_host, config.server_port, ssl_context, logger)

    @property
    def scheme(self) -> str:
        return "https" if self.ssl_context else "http"

    @property
    def addresses(self) -> List:
        return list(self.runner.addresses) if self.runner else []

    @property
    def bound_port(self) -> Optional[int]:
        """Actual port, useful when binding to port 0."""
        for address in self.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return int(address[1])
        return None

    async def start(self) -> None:
        try:
            self.runner = web.AppRunner(self.app, access_log=None)
            await self.runner.setup()
            self.site = web.TCPSite(
                self.runner, self.host, self.port, ssl_context=self.ssl_context
            )
            await self.site.start()
        except OSError as exc:
            raise TransportError(
                f"could not bind {self.name} listener on port {self.port}: {exc}"
            ) from exc
        self.logger.info(
            f"🌐 {self.name} listening on {self.scheme}://{self.host}:{self.bound_port or self.port}"
        )

    async def close(self) -> None:
        runner, self.runner = self.runner, None
        self.site = None
        if runner is not None:
            await runner.cleanup()
            self.logger.info(f"🛑 {self.name} listener stopped")
