#!/usr/bin/env python3
"""
Staking node entry point.

Loads configuration from the environment (and `.env`), initialises error
reporting and runs the node until SIGINT/SIGTERM.
"""

import argparse
import asyncio
import logging
import sys

from staking_node import __version__
from staking_node.config import load_config
from staking_node.errors import ConfigError
from staking_node.node import StakingNode
from staking_node.reporting import init_error_reporting

logger = logging.getLogger("staking_node.run")


def get_version() -> str:
    return __version__


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Staking node supervisor")
    parser.add_argument(
        "--version", action="store_true", help="print the version and exit"
    )
    return parser.parse_args(argv)


async def main() -> int:
    """Run the node; returns the process exit status."""
    try:
        config = load_config()
    except ConfigError as e:
        logger.critical(f"💥 Invalid configuration: {e}")
        return 1

    init_error_reporting(config)
    logger.info(f"🚀 Staking node v{__version__}")

    node = StakingNode(config)
    return await node.run()


def cli() -> None:
    args = parse_args()
    if args.version:
        print(f"staking-node {get_version()}")
        return

    try:
        exit_status = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("🛑 Node stopped by user")
        exit_status = 1
    except Exception as e:
        logger.critical(f"💥 Fatal error: {e}", exc_info=True)
        exit_status = 1
    sys.exit(exit_status)


if __name__ == "__main__":
    cli()
