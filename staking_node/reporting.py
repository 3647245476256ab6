"""Error reporting sink backed by Sentry."""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, Optional

import sentry_sdk

from .config import NodeConfig

logger = logging.getLogger(__name__)

# Fraction of events forwarded; the chain worker can be very noisy.
EVENT_SAMPLE_RATE = 0.1
IGNORED_ERROR_PREFIXES = ("BatchRequest error",)

_enabled = False


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Sample events and drop the ones known to be transient RPC noise."""
    if random.random() >= EVENT_SAMPLE_RATE:
        return None
    values = (event.get("exception") or {}).get("values") or []
    if values:
        error_message = str(values[0].get("value") or "")
        if error_message.startswith(IGNORED_ERROR_PREFIXES):
            logger.debug("Blocked a BatchRequest error from Sentry")
            return None
    return event


def init_error_reporting(config: NodeConfig) -> bool:
    """Initialise Sentry unless opted out. Returns True when reporting is on."""
    global _enabled

    if config.disable_sentry:
        logger.info("Error reporting disabled via DISABLE_SENTRY")
        _enabled = False
        return False
    if not config.sentry_dsn:
        logger.info("Error reporting not configured: SENTRY_DSN is empty")
        _enabled = False
        return False

    sentry_sdk.init(
        dsn=config.sentry_dsn,
        environment=config.sentry_env,
        before_send=_before_send,
    )
    _enabled = True
    logger.info("Error reporting enabled (Sentry)")
    return True


def is_enabled() -> bool:
    return _enabled


def capture_exception(exc: BaseException) -> None:
    """Forward an exception to the sink; never raises."""
    if not _enabled:
        return
    try:
        sentry_sdk.capture_exception(exc)
    except Exception as report_exc:
        logger.debug(f"Failed to report exception to Sentry: {report_exc}")
