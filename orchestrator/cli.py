"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the stock refresh service.

- Provides argparse-based CLI
- Loads configuration from environment, then CLI overrides
- Startup banner

============================================================
USAGE
============================================================
python app.py                                    # run on schedule
python app.py --once                             # single run, then exit
python app.py --schedule "30 1 * * *" --interval 5

============================================================
"""

import argparse
from dataclasses import replace
from typing import List, Optional

from data_ingestion.types import RefreshConfig


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="stock-refresh",
        description="Scheduled refresh of stock fundamentals from the upstream provider",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables provide defaults for every option
(STOCK_DATASOURCE_URL, REFRESH_SCHEDULE, REQUEST_TIMEOUT_SECONDS, ...).

Examples:
  %(prog)s                                 # Run daily at 02:00 UTC
  %(prog)s --once                          # One run, then exit
  %(prog)s --schedule "0 */6 * * *"        # Every six hours
        """
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--once",
        action="store_true",
        help="Run a single refresh and exit (no scheduler)",
    )

    execution_group.add_argument(
        "--schedule",
        type=str,
        metavar="CRON",
        help="Crontab expression for the recurring run (default: env or '0 2 * * *')",
    )

    execution_group.add_argument(
        "--timezone",
        type=str,
        metavar="TZ",
        help="Timezone the schedule is evaluated in (default: env or UTC)",
    )

    execution_group.add_argument(
        "--interval",
        type=float,
        metavar="SECONDS",
        help="Minimum seconds between instruments (default: env or 2)",
    )

    execution_group.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Per-request upstream timeout (default: env or 30)",
    )

    execution_group.add_argument(
        "--staleness-days",
        type=int,
        metavar="DAYS",
        help="Skip instruments refreshed within this many days (default: env or 1)",
    )

    execution_group.add_argument(
        "--drain-timeout",
        type=float,
        metavar="SECONDS",
        help="Shutdown wait for an in-flight run (default: env or 30)",
    )

    execution_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="Database URL (default: DATABASE_URL_SYNC / DATABASE_URL)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: env or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: env or text)",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if args.interval is not None and args.interval < 0:
        errors.append("--interval must not be negative")
    if args.timeout is not None and args.timeout <= 0:
        errors.append("--timeout must be positive")
    if args.drain_timeout is not None and args.drain_timeout <= 0:
        errors.append("--drain-timeout must be positive")
    if args.staleness_days is not None and args.staleness_days < 0:
        errors.append("--staleness-days must not be negative")
    if args.schedule is not None and not args.schedule.strip():
        errors.append("--schedule must not be empty")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(
    args: argparse.Namespace,
    base: Optional[RefreshConfig] = None,
) -> RefreshConfig:
    """
    Build refresh configuration: environment first, CLI overrides.

    Args:
        args: Parsed arguments
        base: Starting configuration (defaults to RefreshConfig.from_env())
    """
    config = base or RefreshConfig.from_env()

    overrides = {
        "schedule": args.schedule,
        "timezone": args.timezone,
        "min_instrument_interval_seconds": args.interval,
        "request_timeout_seconds": args.timeout,
        "staleness_days": args.staleness_days,
        "drain_timeout_seconds": args.drain_timeout,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def print_banner(args: argparse.Namespace, config: RefreshConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  STOCK FUNDAMENTALS REFRESH")
    print("=" * 60)
    print(f"  Mode:       {'once' if args.once else 'scheduled'}")
    print(f"  Schedule:   {config.schedule} ({config.timezone})")
    print(f"  Interval:   {config.min_instrument_interval_seconds}s")
    print(f"  Timeout:    {config.request_timeout_seconds}s")
    print(f"  Log Level:  {config.log_level}")
    print("=" * 60)
    print()

