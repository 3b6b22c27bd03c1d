#!/usr/bin/env python3
"""
Stock Fundamentals Refresh - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
This is the ONE executable entry point for the refresh service.

- Compatible with PM2 process management
- Can be started, stopped, and restarted safely
- Handles all signals gracefully

============================================================
USAGE
============================================================
Direct execution:
    python app.py
    python app.py --once

With PM2:
    pm2 start app.py --interpreter python --name stock-refresh

Environment-based configuration:
    REFRESH_SCHEDULE="0 2 * * *" LOG_LEVEL=DEBUG python app.py

============================================================
EXIT CODES
============================================================
0    run(s) finished, clean shutdown
1    fatal: cron registration or database failure
2    invalid configuration
130  interrupted

============================================================
"""

import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.exceptions import ConfigurationError, PersistenceError, SchedulerRegistrationError
from data_ingestion.types import RefreshConfig
from orchestrator.cli import create_parser, validate_args, build_config, print_banner
from orchestrator.core import RefreshApplication, setup_logging


async def run_application(args, config: RefreshConfig) -> int:
    """
    Run the refresh application.

    Args:
        args: Parsed CLI arguments
        config: Effective configuration

    Returns:
        Exit code
    """
    logger = logging.getLogger("orchestrator")

    try:
        app = RefreshApplication(config=config, database_url=args.database_url)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    try:
        if args.once:
            logger.info("Running single refresh...")
            result = await app.run_once()

            print(f"\nRun Result: {result.status.value.upper()}")
            print(f"Duration: {result.duration_seconds:.2f}s")
            print(f"Instruments: {result.instruments_processed}/{result.instruments_total}")
            print(f"Failed: {result.instruments_failed}")
            return 0
        else:
            logger.info("Starting scheduler (press Ctrl+C to stop)...")
            await app.run_forever()
            return 0

    except SchedulerRegistrationError as e:
        logger.critical(f"FATAL: {e}")
        return 1
    except PersistenceError as e:
        logger.critical(f"FATAL: database unavailable: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


def main() -> int:
    """Main entry point."""
    load_dotenv()

    # Parse arguments
    parser = create_parser()
    args = parser.parse_args()

    # Validate arguments
    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 2

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: invalid environment configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(level=config.log_level, log_format=config.log_format)

    # Print banner
    print_banner(args, config)

    # Run application
    try:
        return asyncio.run(run_application(args, config))
    except KeyboardInterrupt:
        return 130


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
