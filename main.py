# main.py

"""Entry point for cenownik (scheduler service or one-shot commands)."""

import argparse
import asyncio
import logging
import sys

from cenownik.config.logging_config import setup_logging
from cenownik.config.settings import Settings

logger = logging.getLogger("cenownik.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    stores = ", ".join(s["label"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="cenownik",
        description="Tracks listing prices and notifies owners on target prices.",
        epilog=f"Supported stores: {stores}",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--sweep",
        action="store_true",
        help="Scrape every tracked listing once and exit.",
    )
    group.add_argument(
        "--listing",
        type=int,
        metavar="ID",
        help="Scrape and process a single listing.",
    )
    group.add_argument(
        "--test-url",
        metavar="URL",
        dest="test_url",
        help="Extract price and title from a URL without storing anything.",
    )
    group.add_argument(
        "--get-cron",
        action="store_true",
        dest="get_cron",
        help="Print the active scrape cron expression.",
    )
    group.add_argument(
        "--set-cron",
        metavar="EXPR",
        dest="set_cron",
        help="Validate and persist a new scrape cron expression.",
    )
    group.add_argument(
        "--history",
        type=int,
        metavar="ID",
        help="Show the price history of a listing.",
    )
    group.add_argument(
        "--targets",
        nargs="?",
        type=int,
        const=-1,
        metavar="ID",
        help="Show observations that reached their target (optionally for one listing).",
    )
    group.add_argument(
        "--notifications",
        nargs="?",
        type=int,
        const=-1,
        metavar="USER_ID",
        help="Show the latest price-match notifications (optionally for one user).",
    )
    group.add_argument(
        "--stats",
        action="store_true",
        help="Show listing and notification statistics.",
    )
    group.add_argument(
        "--health",
        action="store_true",
        help="Run a connectivity health check on all stores.",
    )
    group.add_argument(
        "--test-email",
        metavar="ADDR",
        dest="test_email",
        help="Send a sample price-match email.",
    )
    group.add_argument(
        "--test-webhook",
        metavar="URL",
        dest="test_webhook",
        help="Send a sample price-match Discord notification.",
    )
    group.add_argument(
        "--validate-webhook",
        metavar="URL",
        dest="validate_webhook",
        help="Check that a Discord webhook URL exists.",
    )
    return parser


def _optional_id(value: int | None) -> int | None:
    return None if value is None or value < 0 else value


def _run(args: argparse.Namespace) -> int:
    """Dispatch parsed arguments to a runner and return its exit code."""
    from cenownik.cli import runner

    if args.sweep:
        return asyncio.run(runner.run_sweep_once())
    if args.listing is not None:
        return asyncio.run(runner.run_listing(args.listing))
    if args.test_url:
        return asyncio.run(runner.run_test_url(args.test_url))
    if args.get_cron:
        return runner.run_get_cron()
    if args.set_cron is not None:
        return runner.run_set_cron(args.set_cron)
    if args.history is not None:
        return runner.run_history(args.history)
    if args.targets is not None:
        return runner.run_targets(_optional_id(args.targets))
    if args.notifications is not None:
        return runner.run_notifications(_optional_id(args.notifications))
    if args.stats:
        return asyncio.run(runner.run_stats())
    if args.health:
        return asyncio.run(runner.run_health_check())
    if args.test_email:
        return asyncio.run(runner.run_test_email(args.test_email))
    if args.test_webhook:
        return asyncio.run(runner.run_test_webhook(args.test_webhook))
    if args.validate_webhook:
        return asyncio.run(runner.run_validate_webhook(args.validate_webhook))

    try:
        return asyncio.run(runner.run_service())
    except Exception:
        logger.critical("Fatal error in scheduler service", exc_info=True)
        raise
    finally:
        logger.info("cenownik service shutting down")


def main() -> None:
    """Route to the scheduler service (no flags) or a one-shot command."""
    log_file = setup_logging()
    logger.info("cenownik starting — log file: %s", log_file)

    args = _build_parser().parse_args()
    sys.exit(_run(args))


if __name__ == "__main__":
    main()
