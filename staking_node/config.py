"""
Environment-driven configuration for the staking node.

Values come from the process environment, optionally seeded from a `.env`
file in the working directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .constants import (
    DB_WAIT_ATTEMPTS,
    DEFAULT_DATABASE_URL,
    DEFAULT_DOWNTIME_LOG,
    DEFAULT_SETTINGS_PATH,
    DEFAULT_STATUS_PATH,
    FIRST_BLOCK,
    RPC_WAIT_INTERVAL,
    SHUTDOWN_GRACE_SECONDS,
)
from .errors import ConfigError

TRUTHY = {"1", "true", "yes", "y", "on"}


@dataclass
class NodeConfig:
    """Configuration consumed by the orchestrator and its components."""

    staking_host: str = "http://localhost:3000"
    rpc_url: str = "http://localhost:8545"
    database_url: str = DEFAULT_DATABASE_URL
    server_host: str = "0.0.0.0"
    server_port: int = 8443
    status_api_port: Optional[int] = None
    ssl: bool = False
    ssl_private_key_path: Optional[Path] = None
    ssl_cert_path: Optional[Path] = None
    auto_migrate: bool = False
    force_sync: bool = False
    first_block: int = FIRST_BLOCK
    challenge: Optional[str] = None
    passphrase: Optional[str] = None
    disable_sentry: bool = False
    sentry_dsn: Optional[str] = None
    sentry_env: Optional[str] = None
    db_wait_attempts: int = DB_WAIT_ATTEMPTS
    # None keeps waiting for the chain endpoint until it answers.
    rpc_wait_attempts: Optional[int] = None
    rpc_wait_interval: float = RPC_WAIT_INTERVAL
    settings_path: Path = DEFAULT_SETTINGS_PATH
    status_path: Path = DEFAULT_STATUS_PATH
    downtime_log_path: Path = DEFAULT_DOWNTIME_LOG
    shutdown_grace_seconds: float = SHUTDOWN_GRACE_SECONDS

    def __post_init__(self) -> None:
        self.staking_host = self.staking_host.rstrip("/")
        if self.ssl and not (self.ssl_private_key_path and self.ssl_cert_path):
            raise ConfigError(
                "SSL=1 requires SSL_PRIVATE_KEY_PATH and SSL_CERT_PATH"
            )

    def clear_passphrase(self) -> None:
        """Drop the wallet passphrase from memory and from the environment."""
        self.passphrase = None
        os.environ.pop("PASSPHRASE", None)


def _env_str(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    val = env.get(name)
    if val is None:
        return default
    return str(val).strip().lower() in TRUTHY


def _env_int(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _env_str(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_path(env: Mapping[str, str], name: str, default: Optional[Path]) -> Optional[Path]:
    raw = _env_str(env, name)
    return Path(raw).expanduser() if raw else default


def load_config(env: Optional[Mapping[str, str]] = None) -> NodeConfig:
    """Build a NodeConfig from `env` (defaults to os.environ plus `.env`)."""
    if env is None:
        load_dotenv()
        env = os.environ

    rpc_attempts = _env_int(env, "RPC_WAIT_ATTEMPTS", 0)

    return NodeConfig(
        staking_host=_env_str(env, "STAKING_HOST") or NodeConfig.staking_host,
        rpc_url=_env_str(env, "RPC_URL") or NodeConfig.rpc_url,
        database_url=_env_str(env, "DATABASE_URL") or DEFAULT_DATABASE_URL,
        server_host=_env_str(env, "SERVER_HOST") or NodeConfig.server_host,
        server_port=_env_int(env, "SERVER_PORT", NodeConfig.server_port),
        status_api_port=_env_int(env, "STATUS_API_PORT", None) or None,
        ssl=_env_bool(env, "SSL"),
        ssl_private_key_path=_env_path(env, "SSL_PRIVATE_KEY_PATH", None),
        ssl_cert_path=_env_path(env, "SSL_CERT_PATH", None),
        auto_migrate=_env_bool(env, "AUTO_MIGRATE"),
        force_sync=_env_bool(env, "FORCE_SYNC"),
        first_block=_env_int(env, "FIRST_BLOCK", FIRST_BLOCK),
        challenge=_env_str(env, "STAKING_CHALLENGE"),
        passphrase=_env_str(env, "PASSPHRASE"),
        disable_sentry=_env_bool(env, "DISABLE_SENTRY"),
        sentry_dsn=_env_str(env, "SENTRY_DSN"),
        sentry_env=_env_str(env, "SENTRY_ENV") or _env_str(env, "NODE_ENV"),
        db_wait_attempts=_env_int(env, "DB_WAIT_ATTEMPTS", DB_WAIT_ATTEMPTS),
        rpc_wait_attempts=rpc_attempts if rpc_attempts and rpc_attempts > 0 else None,
        rpc_wait_interval=_env_float(env, "RPC_WAIT_INTERVAL", RPC_WAIT_INTERVAL),
        settings_path=_env_path(env, "SETTINGS_PATH", DEFAULT_SETTINGS_PATH),
        status_path=_env_path(env, "STATUS_PATH", DEFAULT_STATUS_PATH),
        downtime_log_path=_env_path(env, "DOWNTIME_LOG_PATH", DEFAULT_DOWNTIME_LOG),
        shutdown_grace_seconds=_env_float(
            env, "SHUTDOWN_GRACE_SECONDS", SHUTDOWN_GRACE_SECONDS
        ),
    )
