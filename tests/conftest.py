"""
Pytest configuration for staking_node tests.
Shared fixtures and in-memory stand-ins for the node's collaborators.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
from eth_account import Account

# Add the parent directory to the path so we can import staking_node
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from staking_node.config import NodeConfig  # noqa: E402
from staking_node.wallet import NodeIdentity  # noqa: E402

PASSPHRASE = "correct horse battery staple"


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEth:
    def __init__(self, block_number: int = 0) -> None:
        self.block_number = block_number


class FakeWeb3:
    """Answers is_connected() from a scripted list, then keeps the last value."""

    def __init__(self, connected: Optional[List[bool]] = None, block_number: int = 0) -> None:
        self._connected = list(connected if connected is not None else [True])
        self.connection_checks = 0
        self.eth = FakeEth(block_number)

    def is_connected(self) -> bool:
        self.connection_checks += 1
        if len(self._connected) > 1:
            return self._connected.pop(0)
        return self._connected[0]


class FakeWorker:
    """WorkerHandle stand-in that records what the node does with it."""

    def __init__(self, current_block: int = 100) -> None:
        self.current_block = current_block
        self.first_block = current_block
        self.ready = asyncio.Event()
        self.statuses: List[Dict[str, Any]] = []
        self.started = 0
        self.closed = 0

    def start(self) -> None:
        self.started += 1

    def write_status(self, update: Dict[str, Any]) -> None:
        self.statuses.append(update)

    async def close(self) -> None:
        self.closed += 1


class FakeStore:
    """Store stand-in with scriptable readiness and release failures."""

    def __init__(
        self,
        reachable: bool = True,
        last_block: Optional[int] = None,
        fail_close: bool = False,
        fail_migrate: bool = False,
    ) -> None:
        self.reachable = reachable
        self.last_block = last_block
        self.fail_close = fail_close
        self.fail_migrate = fail_migrate
        self.closed = False
        self.close_calls = 0
        self.migrations = 0
        self.wait_calls = 0

    async def wait_for(self, max_attempts: int = 10, delay: float = 0) -> bool:
        self.wait_calls += 1
        return self.reachable

    async def migrate(self) -> None:
        self.migrations += 1
        if self.fail_migrate:
            raise RuntimeError("relation already exists")

    async def last_trade_block(self) -> Optional[int]:
        return self.last_block

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError("connection reset while closing")
        self.closed = True


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_worker():
    return FakeWorker()


@pytest.fixture
def fake_web3():
    return FakeWeb3()


@pytest.fixture
def node_config(tmp_path: Path) -> NodeConfig:
    """Config pointing every on-disk artifact into tmp_path."""
    return NodeConfig(
        staking_host="http://127.0.0.1:9",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'node.db'}",
        server_host="127.0.0.1",
        server_port=0,
        db_wait_attempts=1,
        rpc_wait_interval=0.01,
        settings_path=tmp_path / "ipc" / "settings.json",
        status_path=tmp_path / "ipc" / "status.json",
        downtime_log_path=tmp_path / "downtime.log",
        shutdown_grace_seconds=5.0,
    )


@pytest.fixture
def hot_account():
    return Account.create()


@pytest.fixture
def cold_wallet() -> str:
    return Account.create().address


@pytest.fixture
def staking_identity(hot_account, cold_wallet) -> NodeIdentity:
    return NodeIdentity(account=hot_account, cold_wallet=cold_wallet)


@pytest.fixture
def write_settings(tmp_path: Path):
    """Write an operator settings record holding an encrypted hot wallet."""

    def _write(
        account,
        cold_wallet: Optional[str] = None,
        passphrase: str = PASSPHRASE,
        token: Optional[str] = PASSPHRASE,
        path: Optional[Path] = None,
    ) -> Path:
        keystore = Account.encrypt(account.key, passphrase, kdf="pbkdf2", iterations=2)
        settings: Dict[str, Any] = {"hotWallet": keystore}
        if cold_wallet is not None:
            settings["coldWallet"] = cold_wallet
        if token is not None:
            settings["token"] = token
        target = path or tmp_path / "ipc" / "settings.json"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(settings), encoding="utf-8")
        return target

    return _write


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
