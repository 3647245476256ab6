"""Read-only status listener for external monitoring."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from aiohttp import web

from .server import ApiServer

if TYPE_CHECKING:
    from .node import NodeContext


class StatusApi(ApiServer):
    """Serves `GET /status` with the worker's last scanned block."""

    name = "Status API"

    def __init__(
        self,
        context: "NodeContext",
        host: str,
        port: int,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.context = context
        app = web.Application()
        app.router.add_get("/status", self._status_handler)
        super().__init__(app, host, port, logger=logger)

    def last_scanned_block(self) -> int:
        worker = self.context.worker
        return int(worker.current_block) if worker is not None else 0

    async def _status_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"lastScannedBlock": self.last_scanned_block()})
