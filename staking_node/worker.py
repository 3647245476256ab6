"""
Chain-following worker.

Tracks the chain head through web3 and advances `current_block` one block at
a time, handing each block number to an optional handler that ingests its
contents. The `ready` event fires once, the first time the worker catches up
with the head. The worker also owns the on-disk status artifact that other
components update through `write_status`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from web3 import Web3

from .constants import DEFAULT_STATUS_PATH, WORKER_POLL_INTERVAL
from .reporting import capture_exception

BlockHandler = Callable[[int], Awaitable[None]]


class ChainWorker:
    """Follows the chain from `first_block` and publishes its progress."""

    def __init__(
        self,
        w3: Web3,
        first_block: int,
        status_path: Path = DEFAULT_STATUS_PATH,
        poll_interval: float = WORKER_POLL_INTERVAL,
        block_handler: Optional[BlockHandler] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._w3 = w3
        self._logger = logger or logging.getLogger(__name__)
        self._status_path = Path(status_path)
        self._poll_interval = poll_interval
        self._block_handler = block_handler
        self._task: Optional[asyncio.Task] = None
        self._status: Dict[str, Any] = {}

        self.first_block = int(first_block)
        # Last fully processed block; scanning resumes at first_block.
        self.current_block: int = self.first_block - 1
        self.ready = asyncio.Event()

    @classmethod
    async def build(
        cls,
        w3: Web3,
        first_block: int,
        status_path: Path = DEFAULT_STATUS_PATH,
        **kwargs: Any,
    ) -> "ChainWorker":
        worker = cls(w3, first_block, status_path=status_path, **kwargs)
        worker.write_status({"worker": {"firstBlock": worker.first_block}})
        return worker

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start following the chain in the background."""
        if self._task is not None:
            return
        self._logger.info(f"⛓️ Scanning chain from block {self.first_block}")
        self._task = asyncio.create_task(self._run(), name="chain-worker")

    async def _head_block(self) -> int:
        loop = asyncio.get_running_loop()
        return int(await loop.run_in_executor(None, lambda: self._w3.eth.block_number))

    async def _run(self) -> None:
        while True:
            try:
                head = await self._head_block()
                while self.current_block < head:
                    next_block = self.current_block + 1
                    if self._block_handler is not None:
                        await self._block_handler(next_block)
                    self.current_block = next_block

                if not self.ready.is_set():
                    self._logger.info(
                        f"✅ Worker caught up with chain head at block {self.current_block}"
                    )
                    self.ready.set()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error(f"❌ Error while scanning blocks: {e}")
                capture_exception(e)

            await asyncio.sleep(self._poll_interval)

    def write_status(self, update: Dict[str, Any]) -> None:
        """Merge `update` into the status artifact and persist it."""
        self._status.update(update)
        self._status.setdefault("worker", {})["currentBlock"] = self.current_block
        self._status_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._status_path.with_suffix(self._status_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(self._status, handle, indent=2, sort_keys=True)
        tmp_path.replace(self._status_path)

    async def close(self) -> None:
        """Stop scanning and release the background task."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._logger.info("🛑 Chain worker stopped")
