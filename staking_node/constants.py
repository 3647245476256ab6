"""Fixed protocol values shared by the node components."""

from pathlib import Path

# First block of interest for the exchange contract; a forced resync starts here.
FIRST_BLOCK = 4_286_783

KEEPALIVE_INTERVAL = 30.0  # seconds between heartbeats
KEEPALIVE_TIMEOUT = 10.0  # per-request bound for POST /keepalive
MAX_OFFLINE_TIME = 3 * 60.0  # staleness threshold in seconds (exclusive)

DB_WAIT_ATTEMPTS = 10
DB_RETRY_DELAY = 3.0
RPC_WAIT_INTERVAL = 5.0
RPC_REQUEST_TIMEOUT = 15.0
WORKER_POLL_INTERVAL = 5.0
SHUTDOWN_GRACE_SECONDS = 15.0

DEFAULT_SETTINGS_PATH = Path("ipc/settings.json")
DEFAULT_STATUS_PATH = Path("ipc/status.json")
DEFAULT_DOWNTIME_LOG = Path("downtime.log")
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///data/node.db"

# Header names attached to every signed keepalive request.
HEADER_COLD_WALLET = "X-Staking-Cold-Wallet"
HEADER_HOT_WALLET = "X-Staking-Hot-Wallet"
HEADER_TIMESTAMP = "X-Staking-Timestamp"
HEADER_SIGNATURE = "X-Staking-Signature"
HEADER_CHALLENGE = "X-Staking-Challenge"
