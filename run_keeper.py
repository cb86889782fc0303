"""
Flash loan arbitrage keeper for Base.

This script:
1. Loads configuration from the environment / .env
2. Runs startup health checks (RPC, chain id, strategy contract)
3. Polls Aerodrome and Uniswap V3 quotes for every configured pair
4. Executes admitted opportunities through the ArbitrageStrategy contract

SAFETY: Starts in DRY_RUN mode unless ENABLE_EXECUTION=true or --execute!
"""

import asyncio
import signal
import sys

import structlog
from dotenv import load_dotenv

# Load environment first
load_dotenv()

from src.dex.config import KeeperConfigError, load_settings
from src.live.bootstrap import build_keeper


async def main() -> int:
    """Main entry point."""
    # Configure logging
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ]
    )

    log = structlog.get_logger()

    overrides = {}
    if "--execute" in sys.argv:
        overrides["enable_execution"] = True
    if "--dry-run" in sys.argv:
        overrides["enable_execution"] = False

    try:
        settings = load_settings(**overrides)
        keeper = build_keeper(settings)
        await keeper.health_monitor.ensure_ready()
    except KeeperConfigError as e:
        log.error("keeper.startup_failed", error=str(e))
        return 1

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, keeper.runner.stop)

    try:
        await keeper.runner.run()
    except Exception as e:
        log.exception("keeper.fatal_error", error=str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
