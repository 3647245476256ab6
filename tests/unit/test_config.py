"""
Unit tests for environment-driven configuration.
"""

import os
from pathlib import Path

import pytest

from staking_node.config import NodeConfig, load_config
from staking_node.constants import DEFAULT_DATABASE_URL, FIRST_BLOCK
from staking_node.errors import ConfigError


def test_defaults_from_empty_environment():
    config = load_config({})

    assert config.staking_host == "http://localhost:3000"
    assert config.database_url == DEFAULT_DATABASE_URL
    assert config.server_port == 8443
    assert config.status_api_port is None
    assert config.first_block == FIRST_BLOCK
    assert config.rpc_wait_attempts is None
    assert not config.ssl
    assert not config.auto_migrate
    assert not config.force_sync
    assert not config.disable_sentry


def test_values_are_read_from_environment():
    config = load_config(
        {
            "STAKING_HOST": "https://staking.example.org/",
            "SERVER_PORT": "9443",
            "STATUS_API_PORT": "8080",
            "AUTO_MIGRATE": "1",
            "FORCE_SYNC": "true",
            "FIRST_BLOCK": "5000000",
            "STAKING_CHALLENGE": "nonce-1",
            "PASSPHRASE": "secret",
            "RPC_WAIT_ATTEMPTS": "3",
            "SETTINGS_PATH": "/etc/node/settings.json",
        }
    )

    assert config.staking_host == "https://staking.example.org"
    assert config.server_port == 9443
    assert config.status_api_port == 8080
    assert config.auto_migrate
    assert config.force_sync
    assert config.first_block == 5_000_000
    assert config.challenge == "nonce-1"
    assert config.passphrase == "secret"
    assert config.rpc_wait_attempts == 3
    assert config.settings_path == Path("/etc/node/settings.json")


def test_zero_status_port_and_rpc_attempts_mean_disabled():
    config = load_config({"STATUS_API_PORT": "0", "RPC_WAIT_ATTEMPTS": "0"})

    assert config.status_api_port is None
    assert config.rpc_wait_attempts is None


def test_sentry_environment_falls_back_to_node_env():
    assert load_config({"NODE_ENV": "production"}).sentry_env == "production"
    assert load_config({"NODE_ENV": "production", "SENTRY_ENV": "staging"}).sentry_env == "staging"


def test_invalid_integer_raises_config_error():
    with pytest.raises(ConfigError, match="SERVER_PORT"):
        load_config({"SERVER_PORT": "https"})


def test_ssl_requires_key_and_certificate():
    with pytest.raises(ConfigError):
        load_config({"SSL": "1", "SSL_CERT_PATH": "/tmp/cert.pem"})


def test_clear_passphrase_drops_environment_value(monkeypatch):
    monkeypatch.setenv("PASSPHRASE", "secret")
    config = NodeConfig(passphrase="secret")

    config.clear_passphrase()

    assert config.passphrase is None
    assert "PASSPHRASE" not in os.environ
