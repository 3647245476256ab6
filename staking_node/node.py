"""
Staking node orchestrator.

Brings the node online in dependency order:

    store gate -> [migration] -> wallet -> RPC gate -> transport -> API bind
    -> [status API bind] -> worker start -> (worker ready) -> keepalive

and tears it down on SIGINT/SIGTERM. All handles live in one NodeContext
that is passed to the components which need them. The signal handler only
sets an event; the teardown itself runs in the main coroutine, bounded by a
grace period.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from web3 import Web3

from .config import NodeConfig
from .errors import (
    FatalStartupError,
    MigrationError,
    StoreUnavailableError,
    WalletLoadError,
)
from .keepalive import KeepAlive
from .reporting import capture_exception
from .rpc import build_web3, wait_for_rpc
from .server import ApiServer
from .status_api import StatusApi
from .store import Store
from .wallet import NodeIdentity, load_identity
from .worker import ChainWorker

WorkerFactory = Callable[[Web3, int, Path], Awaitable[ChainWorker]]

# Exit status after a signal-driven or fatal stop; supervisors restart on it.
EXIT_STATUS = 1


class StartupStage(enum.Enum):
    INIT = "init"
    STORE_READY = "store_ready"
    MIGRATED = "migrated"
    CREDENTIALS_LOADED = "credentials_loaded"
    RPC_READY = "rpc_ready"
    TRANSPORT_BUILT = "transport_built"
    API_BOUND = "api_bound"
    STATUS_BOUND = "status_bound"
    WORKER_STARTED = "worker_started"
    WORKER_READY = "worker_ready"
    HEARTBEAT_ACTIVE = "heartbeat_active"


@dataclass
class NodeContext:
    """Every handle the node owns. Fields stay None until their step ran."""

    config: NodeConfig
    store: Optional[Store] = None
    w3: Optional[Web3] = None
    identity: Optional[NodeIdentity] = None
    server: Optional[ApiServer] = None
    status_api: Optional[StatusApi] = None
    worker: Optional[ChainWorker] = None
    keepalive: Optional[KeepAlive] = None
    stage: StartupStage = StartupStage.INIT


async def _default_worker_factory(w3: Web3, first_block: int, status_path: Path) -> ChainWorker:
    return await ChainWorker.build(w3, first_block, status_path=status_path)


class StakingNode:
    """Owns the node lifecycle: startup, steady state and shutdown."""

    def __init__(
        self,
        config: NodeConfig,
        store: Optional[Store] = None,
        w3: Optional[Web3] = None,
        worker_factory: Optional[WorkerFactory] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.store: Store = store if store is not None else Store(config.database_url)
        self.w3: Web3 = w3 if w3 is not None else build_web3(config.rpc_url)
        self.context = NodeContext(config=config, store=self.store, w3=self.w3)
        self._worker_factory = worker_factory or _default_worker_factory
        self._ready_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._shutdown_requested = asyncio.Event()

    @property
    def config(self) -> NodeConfig:
        return self.context.config

    @property
    def stage(self) -> StartupStage:
        return self.context.stage

    def _advance(self, stage: StartupStage) -> None:
        self.context.stage = stage
        self.logger.debug(f"Startup stage: {stage.value}")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run every startup step in order. Fatal failures raise."""
        ctx = self.context
        config = self.config

        self.logger.info("🚀 Starting staking node...")

        if not await self.store.wait_for(config.db_wait_attempts):
            raise StoreUnavailableError("Could not establish db connection, exiting")
        self._advance(StartupStage.STORE_READY)

        if config.auto_migrate:
            try:
                await self.store.migrate()
            except Exception as exc:
                raise MigrationError("DB migration failed, exiting") from exc
            self._advance(StartupStage.MIGRATED)

        ctx.identity = self._load_wallet()
        self._advance(StartupStage.CREDENTIALS_LOADED)

        await wait_for_rpc(
            self.w3,
            attempts=config.rpc_wait_attempts,
            interval=config.rpc_wait_interval,
            logger=self.logger,
        )
        self._advance(StartupStage.RPC_READY)

        ctx.server = ApiServer.build(config, self.store)
        self._advance(StartupStage.TRANSPORT_BUILT)

        await ctx.server.start()
        self._advance(StartupStage.API_BOUND)

        if config.status_api_port:
            ctx.status_api = StatusApi(ctx, config.server_host, config.status_api_port)
            await ctx.status_api.start()
        self._advance(StartupStage.STATUS_BOUND)

        worker = ctx.worker = await self._start_worker()
        keepalive = ctx.keepalive = KeepAlive.from_config(config, ctx.identity, worker)
        self._advance(StartupStage.WORKER_STARTED)

        self._ready_task = asyncio.create_task(
            self._start_keepalive_when_ready(worker, keepalive), name="await-worker-ready"
        )
        self.logger.info("🎯 Staking node started, waiting for worker to catch up")

    def _load_wallet(self) -> Optional[NodeIdentity]:
        """Decrypt the hot wallet; failures leave the node running without staking."""
        try:
            return load_identity(self.config.settings_path, self.config.passphrase)
        except WalletLoadError as e:
            self.logger.warning(
                f"⚠️ Error loading {self.config.settings_path}, wrong passphrase? {e}"
            )
            return None
        finally:
            self.config.clear_passphrase()

    async def resolve_first_block(self) -> int:
        """Block the worker resumes from.

        One block before the latest persisted trade, so a partially committed
        block from a previous run is processed again.
        """
        config = self.config
        if config.force_sync:
            return config.first_block
        last_block = await self.store.last_trade_block()
        return last_block - 1 if last_block is not None else config.first_block

    async def _start_worker(self) -> ChainWorker:
        first_block = await self.resolve_first_block()
        worker = await self._worker_factory(self.w3, first_block, self.config.status_path)
        worker.start()
        return worker

    async def _start_keepalive_when_ready(
        self, worker: ChainWorker, keepalive: KeepAlive
    ) -> None:
        await worker.ready.wait()
        self._advance(StartupStage.WORKER_READY)
        keepalive.start()
        self._advance(StartupStage.HEARTBEAT_ACTIVE)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Release every resource once. Concurrent callers share one run."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._shutdown(), name="shutdown")
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        self.logger.info("🛑 Shutting down staking node...")

        self.store.closed = True

        await self._run_release_steps(
            [
                ("worker-ready watcher", self._cancel_ready_watcher),
                ("keepalive", self._cancel_keepalive),
                ("API listener", self._close_server),
                ("status listener", self._close_status_api),
                ("store", self._close_store),
                ("worker", self._close_worker),
                ("status file", self._remove_status_file),
            ]
        )
        self.logger.info("✅ Shutdown sequence complete")

    async def _run_release_steps(
        self, steps: List[Tuple[str, Callable[[], Awaitable[Any]]]]
    ) -> None:
        for name, release in steps:
            try:
                await release()
            except Exception as e:
                self.logger.error(f"❌ Error releasing {name}: {e}")

    async def _cancel_ready_watcher(self) -> None:
        task, self._ready_task = self._ready_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _cancel_keepalive(self) -> None:
        if self.context.keepalive is not None:
            await self.context.keepalive.cancel()

    async def _close_server(self) -> None:
        if self.context.server is not None:
            await self.context.server.close()

    async def _close_status_api(self) -> None:
        if self.context.status_api is not None:
            await self.context.status_api.close()

    async def _close_store(self) -> None:
        await self.store.close()

    async def _close_worker(self) -> None:
        if self.context.worker is not None:
            await self.context.worker.close()

    async def _remove_status_file(self) -> None:
        self.config.status_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def request_shutdown(self, reason: str = "requested") -> None:
        if self._shutdown_requested.is_set():
            self.logger.info(f"Shutdown already in progress, ignoring {reason}")
            return
        self.logger.info(f"🔔 Shutdown {reason}")
        self._shutdown_requested.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                self.logger.debug(f"Signal handlers unavailable for {sig.name}")

    def _on_signal(self, sig: signal.Signals) -> None:
        self.request_shutdown(f"signal {sig.name} received")

    async def _bounded_shutdown(self) -> None:
        try:
            await asyncio.wait_for(
                self.shutdown(), timeout=self.config.shutdown_grace_seconds
            )
        except asyncio.TimeoutError:
            self.logger.error(
                f"❌ Shutdown did not finish within {self.config.shutdown_grace_seconds:g}s"
            )
        except Exception as e:
            self.logger.error(f"❌ Error during shutdown: {e}")

    async def run(self) -> int:
        """Start the node and serve until a shutdown is requested.

        Returns the process exit status.
        """
        self._install_signal_handlers()
        startup = asyncio.create_task(self.start(), name="startup")
        stop = asyncio.create_task(self._shutdown_requested.wait(), name="await-shutdown")

        await asyncio.wait({startup, stop}, return_when=asyncio.FIRST_COMPLETED)

        if not startup.done():
            self.logger.info(f"Startup interrupted at stage {self.stage.value}")
            startup.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await startup
        elif startup.exception() is not None:
            stop.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stop
            exc = startup.exception()
            if isinstance(exc, FatalStartupError):
                self.logger.critical(f"💥 {exc}")
            else:
                self.logger.critical(f"💥 Unexpected startup failure: {exc!r}")
                capture_exception(exc)
            await self._bounded_shutdown()
            return EXIT_STATUS
        else:
            await stop

        await self._bounded_shutdown()
        return EXIT_STATUS
