"""Chain endpoint access and readiness checks."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from .constants import RPC_REQUEST_TIMEOUT, RPC_WAIT_INTERVAL
from .errors import RpcUnavailableError

rpc_logger = logging.getLogger(__name__)


def _inject_poa_middleware(w3: Web3) -> None:
    """Inject POA middleware for chains with extended extraData."""
    try:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    except ValueError:
        pass
    except Exception as exc:
        rpc_logger.debug(f"Failed to inject POA middleware: {exc}")


def build_web3(rpc_url: str, timeout: float = RPC_REQUEST_TIMEOUT) -> Web3:
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
    _inject_poa_middleware(w3)
    return w3


async def wait_for_rpc(
    w3: Web3,
    attempts: Optional[int] = None,
    interval: float = RPC_WAIT_INTERVAL,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Block until the chain endpoint answers.

    With `attempts=None` this waits indefinitely; otherwise it raises
    RpcUnavailableError after `attempts` failed probes.
    """
    log = logger or rpc_logger
    loop = asyncio.get_running_loop()
    attempt = 0
    while True:
        attempt += 1
        try:
            connected = await loop.run_in_executor(None, w3.is_connected)
        except Exception as exc:
            log.debug(f"RPC probe raised: {exc}")
            connected = False

        if connected:
            log.info("✅ RPC endpoint reachable")
            return

        if attempts is not None and attempt >= attempts:
            raise RpcUnavailableError(
                f"RPC endpoint unreachable after {attempts} attempts"
            )

        bound = f"/{attempts}" if attempts is not None else ""
        log.warning(
            f"⏳ Waiting for RPC endpoint (attempt {attempt}{bound}), retrying in {interval}s"
        )
        await asyncio.sleep(interval)
