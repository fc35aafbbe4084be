"""CLI command for reconciling executions orphaned by a dead process.

An execution left pending or running without a live process may hold an
in-flight credit deduction. This command refunds each such deduction at most
once and marks the execution failed so it can be resumed.

Usage:
    python -m moodseed.cli.reconcile_credits [OPTIONS]

Examples:
    # Reconcile executions untouched for the configured grace period
    python -m moodseed.cli.reconcile_credits

    # Reconcile everything not running, regardless of age
    python -m moodseed.cli.reconcile_credits --grace-seconds 0

    # Dry run (no database writes)
    python -m moodseed.cli.reconcile_credits --dry-run

    # Verbose logging
    python -m moodseed.cli.reconcile_credits -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from moodseed.core import timezone  # noqa: F401
from moodseed.core.config import Settings, configure_logging
from moodseed.core.database import setup_db_session
from moodseed.services.execution.controller import create_execution_controller
from moodseed.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args() -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Refund in-flight credits of orphaned executions",
        epilog="Only executions not updated within the grace period are touched",
    )

    parser.add_argument(
        "--grace-seconds",
        type=int,
        help="Minimum age of the last checkpoint (default: ORPHAN_GRACE_SECONDS)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report orphaned executions without database writes",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


async def async_main() -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (partial success)
    """
    args = parse_args()

    settings = Settings()  # type: ignore[call-arg]

    if args.verbose:
        settings.log_level = "DEBUG"

    configure_logging(settings)

    logger.info("cli.started", grace_seconds=args.grace_seconds, dry_run=args.dry_run)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    controller = create_execution_controller(settings, uow_factory)

    try:
        result = await controller.reconcile_orphans(
            grace_seconds=args.grace_seconds, dry_run=args.dry_run
        )

        print("\n" + "=" * 60)
        print("Credit Reconciliation Summary")
        print("=" * 60)
        print(f"Executions scanned: {result.scanned}")
        print(f"Executions marked failed: {result.interrupted}")
        print(f"In-flight deductions refunded: {result.refunded}")

        if result.errors:
            print(f"\nErrors encountered: {len(result.errors)}")
            for error in result.errors[:5]:
                print(f"  - {error}")
            if len(result.errors) > 5:
                print(f"  ... and {len(result.errors) - 5} more errors")

        if args.dry_run:
            print("\n[DRY RUN] No changes were persisted to database")

        print("=" * 60 + "\n")

        if not result.errors:
            logger.info("cli.success", interrupted=result.interrupted)
            return 0
        elif result.interrupted > 0:
            logger.warning("cli.partial_success")
            return 2
        else:
            logger.error("cli.failure")
            return 1

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nReconciliation interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
