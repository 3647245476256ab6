"""
Wallet material for the staking node.

The settings record written by the operator tooling holds an optional cold
wallet address, the hot wallet as an encrypted keystore, and the passphrase
token. The decrypted hot account signs keepalive requests; the cold wallet is
only forwarded so the staking authority can attribute the node.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .constants import (
    HEADER_CHALLENGE,
    HEADER_COLD_WALLET,
    HEADER_HOT_WALLET,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
)
from .errors import WalletLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeIdentity:
    """Signing identity of the node, created once at startup."""

    account: LocalAccount
    cold_wallet: Optional[str] = None

    @property
    def is_staking(self) -> bool:
        """A node without a cold wallet does not take part in staking."""
        return bool(self.cold_wallet)

    @property
    def hot_wallet(self) -> str:
        return self.account.address


def _normalise_address(address: Optional[str]) -> Optional[str]:
    """Return a checksum address when possible, None for empty input."""
    addr = (address or "").strip()
    if not addr:
        return None
    try:
        return Web3.to_checksum_address(addr)
    except Exception:
        return addr


def _read_settings(settings_path: Path) -> Dict[str, Any]:
    try:
        with settings_path.open("r", encoding="utf-8") as handle:
            settings = json.load(handle)
    except FileNotFoundError as exc:
        raise WalletLoadError(f"settings file not found: {settings_path}") from exc
    except (OSError, ValueError) as exc:
        raise WalletLoadError(f"could not read {settings_path}: {exc}") from exc
    if not isinstance(settings, dict):
        raise WalletLoadError(f"{settings_path} does not hold a JSON object")
    return settings


def load_identity(settings_path: Path, passphrase: Optional[str] = None) -> NodeIdentity:
    """Read the settings record and decrypt the hot wallet.

    The token stored in the record takes precedence over `passphrase`, which
    is the operator-supplied fallback. Raises WalletLoadError on any failure.
    """
    settings = _read_settings(Path(settings_path))

    hot_wallet_encrypted = settings.get("hotWallet")
    if not hot_wallet_encrypted:
        raise WalletLoadError("settings record has no hotWallet keystore")
    if isinstance(hot_wallet_encrypted, str):
        try:
            hot_wallet_encrypted = json.loads(hot_wallet_encrypted)
        except ValueError as exc:
            raise WalletLoadError("hotWallet keystore is not valid JSON") from exc

    token = settings.get("token") or passphrase
    if not token:
        raise WalletLoadError("no passphrase available to decrypt the hot wallet")

    try:
        private_key = Account.decrypt(hot_wallet_encrypted, token)
    except ValueError as exc:
        raise WalletLoadError(f"could not decrypt hot wallet: {exc}") from exc
    except Exception as exc:
        raise WalletLoadError(f"malformed hot wallet keystore: {exc}") from exc

    account = Account.from_key(private_key)
    cold_wallet = _normalise_address(settings.get("coldWallet"))
    logger.info(
        f"🔑 Hot wallet {account.address} loaded"
        + (f" for cold wallet {cold_wallet}" if cold_wallet else "")
    )
    return NodeIdentity(account=account, cold_wallet=cold_wallet)


def keepalive_digest(timestamp: int, body: str, challenge: Optional[str] = None) -> bytes:
    """Hash of the canonical (timestamp, body, challenge) triple."""
    return bytes(
        Web3.solidity_keccak(
            ["uint256", "string", "string"], [int(timestamp), body, challenge or ""]
        )
    )


def keepalive_headers(
    identity: NodeIdentity,
    timestamp: int,
    body: str,
    challenge: Optional[str] = None,
) -> Dict[str, str]:
    """Build the authentication headers for one keepalive request.

    `body` must be the exact serialized payload sent on the wire.
    """
    digest = keepalive_digest(timestamp, body, challenge)
    signed = identity.account.sign_message(encode_defunct(primitive=digest))

    headers = {
        "Content-Type": "application/json",
        HEADER_HOT_WALLET: identity.hot_wallet,
        HEADER_TIMESTAMP: str(int(timestamp)),
        HEADER_SIGNATURE: Web3.to_hex(signed.signature),
    }
    if identity.cold_wallet:
        headers[HEADER_COLD_WALLET] = identity.cold_wallet
    if challenge:
        headers[HEADER_CHALLENGE] = challenge
    return headers
