"""
Keepalive (heartbeat) engine.

Every `interval` seconds the node proves it is alive to the staking
authority with a signed POST to `/keepalive`, then records the outcome in
the worker's status artifact. Independently of the network outcome it
checks whether the worker is still advancing and appends a downtime record
when the chain position has been stuck for longer than MAX_OFFLINE_TIME.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

import aiohttp

from . import __version__
from .constants import (
    DEFAULT_DOWNTIME_LOG,
    KEEPALIVE_INTERVAL,
    KEEPALIVE_TIMEOUT,
    MAX_OFFLINE_TIME,
)
from .reporting import capture_exception
from .wallet import NodeIdentity, keepalive_headers

if TYPE_CHECKING:
    from .config import NodeConfig
    from .worker import ChainWorker


@dataclass
class KeepAliveState:
    """Online history and block-progress bookkeeping, mutated only by tick()."""

    has_been_online: bool = False
    last_block: int = 0
    last_block_at: float = field(default_factory=time.time)
    stale_for: float = 0.0


class KeepAlive:
    """Periodic liveness reporter for the staking authority."""

    def __init__(
        self,
        identity: Optional[NodeIdentity],
        worker: "ChainWorker",
        staking_host: str,
        challenge: Optional[str] = None,
        downtime_log: Path = DEFAULT_DOWNTIME_LOG,
        interval: float = KEEPALIVE_INTERVAL,
        timeout: float = KEEPALIVE_TIMEOUT,
        max_offline_time: float = MAX_OFFLINE_TIME,
        clock: Callable[[], float] = time.time,
        version: str = __version__,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.identity = identity
        self.worker = worker
        self.staking_host = staking_host.rstrip("/")
        self.challenge = challenge
        self.downtime_log = Path(downtime_log)
        self.interval = interval
        self.timeout = timeout
        self.max_offline_time = max_offline_time
        self.version = version
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

        self.state = KeepAliveState(last_block_at=clock())
        self.tick_count = 0

    @classmethod
    def from_config(
        cls,
        config: "NodeConfig",
        identity: Optional[NodeIdentity],
        worker: "ChainWorker",
        **kwargs: Any,
    ) -> "KeepAlive":
        return cls(
            identity,
            worker,
            staking_host=config.staking_host,
            challenge=config.challenge,
            downtime_log=config.downtime_log_path,
            **kwargs,
        )

    @property
    def url(self) -> str:
        return f"{self.staking_host}/keepalive"

    @property
    def is_staking(self) -> bool:
        return self.identity is not None and self.identity.is_staking

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Tick now, then every `interval` seconds. May only be called once."""
        if self._task is not None or self._cancelled:
            raise RuntimeError("keepalive loop already started")
        self.logger.info(f"💓 Starting keepalive every {self.interval:g}s")
        self._task = asyncio.create_task(self._run(), name="keepalive")

    async def cancel(self) -> None:
        """Stop the loop; no tick starts after this returns."""
        self._cancelled = True
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.logger.info("🛑 Keepalive stopped")

    async def _run(self) -> None:
        # Tick starts stay on a fixed grid regardless of tick duration.
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while not self._cancelled:
            await self.tick()
            next_at += self.interval
            now = loop.time()
            if next_at < now:
                # Overran the slot: restart the grid now.
                next_at = now
            await asyncio.sleep(next_at - now)

    def _payload(self, timestamp: int) -> Dict[str, Any]:
        return {
            "version": self.version,
            "blockNumber": self.worker.current_block,
            "timestamp": timestamp,
        }

    async def _send(self) -> Tuple[int, str]:
        """POST one signed keepalive. Returns (status, server message)."""
        if self.identity is None:
            raise RuntimeError("keepalive requires a wallet identity")
        timestamp = int(self._clock() * 1000)
        body = json.dumps(self._payload(timestamp), separators=(",", ":"))
        headers = keepalive_headers(self.identity, timestamp, body, self.challenge)

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.url, data=body, headers=headers) as resp:
                message = ""
                try:
                    data = await resp.json(content_type=None)
                    if isinstance(data, dict) and data.get("message") is not None:
                        message = str(data["message"])
                except (aiohttp.ContentTypeError, ValueError):
                    pass
                return resp.status, message

    async def tick(self) -> None:
        """Run one heartbeat. Never raises for network or protocol failures."""
        async with self._lock:
            self.tick_count += 1
            status: Optional[int] = None
            message = ""
            try:
                if not self.is_staking:
                    message = "no wallet configured"
                    self.logger.info(f"STAKING OFFLINE: {message}")
                    self.state.has_been_online = True
                else:
                    status, message = await self._send()
                    if status == 200:
                        self.logger.info(f"STAKING ONLINE: {message}")
                        self.state.has_been_online = True
                    else:
                        self.logger.warning(f"STAKING OFFLINE: {message} (HTTP {status})")
            except Exception as e:
                message = str(e)
                self.logger.error(f"STAKING OFFLINE: {e!r}")
                capture_exception(e)
            finally:
                self._record_outcome(status, message)
                self._check_staleness()

    def _record_outcome(self, status: Optional[int], message: str) -> None:
        try:
            self.worker.write_status(
                {
                    "keepAlive": {
                        "status": status,
                        "timestamp": int(self._clock() * 1000),
                        "message": message,
                    }
                }
            )
        except Exception as e:
            self.logger.error(f"❌ Failed to write keepalive status: {e}")

    def _check_staleness(self) -> None:
        state = self.state
        if not state.has_been_online:
            return

        now = self._clock()
        current_block = self.worker.current_block
        if current_block == state.last_block:
            state.stale_for = now - state.last_block_at
        else:
            state.last_block = current_block
            state.last_block_at = now
            state.stale_for = 0.0

        if state.stale_for > self.max_offline_time:
            self._append_downtime(now)

    def _append_downtime(self, now: float) -> None:
        line = (
            f"Downtime detected at {int(now * 1000)}, "
            f"last block was processed at {int(self.state.last_block_at * 1000)}\n"
        )
        self.logger.warning(
            f"⚠️ Worker stalled at block {self.state.last_block} "
            f"for {self.state.stale_for:.0f}s"
        )
        try:
            self.downtime_log.parent.mkdir(parents=True, exist_ok=True)
            with self.downtime_log.open("a", encoding="utf-8") as handle:
                handle.write(line)
        except OSError as e:
            self.logger.error(f"❌ Failed to append downtime record: {e}")
