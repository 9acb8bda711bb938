"""CLI for rent invoice operations.

Usage:
    python -m src.cli.invoices generate --year 2024 --month 1 [--due-days 7]
    python -m src.cli.invoices sweep [--today 2024-02-10]
    python -m src.cli.invoices reconcile [--as-of 2024-02-01]
    python -m src.cli.invoices status

Exit Codes:
    0 - Success
    1 - Failure: error logged; invoices already committed are kept

Logging:
    LOG_LEVEL level logs to both stdout and the configured log file
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from src.config.settings import settings
from src.models.billing_period import BillingPeriod
from src.services import AsyncSessionLocal
from src.services.errors import InvoiceError
from src.services.invoice_generator import InvoiceGenerator
from src.services.invoice_state_machine import InvoiceStateMachine
from src.services.logging import setup_server_logging
from src.services.occupancy_service import reconcile_unit_statuses
from src.services.scheduler_service import RentScheduler

logger = logging.getLogger(__name__)


async def generate(year: int, month: int, due_days: int) -> int:
    period = BillingPeriod.for_month(year, month, due_days)
    async with AsyncSessionLocal() as session:
        generator = InvoiceGenerator(session, directory_timeout=settings.directory_timeout_seconds)
        run = await generator.generate(period)

    if run.due_date_warning:
        print(f"Warning: {run.due_date_warning}")
    for invoice in run.created_invoices:
        print(f"Created {invoice.invoice_number}: unit {invoice.rental_unit_id}, {invoice.total}")
    for skipped in run.skipped_units:
        print(f"Skipped {skipped.label or skipped.unit_id}: {skipped.reason}")
    print(f"{run.created_count} created, {run.skipped_count} skipped for {period}")
    return 0


async def sweep(today: date) -> int:
    async with AsyncSessionLocal() as session:
        machine = InvoiceStateMachine(session)
        invoices = await machine.sweep_overdue(today, daily_late_fee=settings.late_fee_daily_rate)
    for invoice in invoices:
        print(f"Overdue {invoice.invoice_number}: due {invoice.due_date}, total {invoice.total}")
    print(f"{len(invoices)} invoices marked overdue as of {today}")
    return 0


async def reconcile(as_of: date) -> int:
    async with AsyncSessionLocal() as session:
        changed = await reconcile_unit_statuses(session, as_of)
    print(f"{changed} rental units updated as of {as_of}")
    return 0


async def status() -> int:
    scheduler = RentScheduler(
        AsyncSessionLocal,
        timezone=settings.scheduler_timezone,
        run_hour=settings.scheduler_run_hour,
    )
    print(json.dumps(await scheduler.get_status(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rent invoice operations")
    commands = parser.add_subparsers(dest="command", required=True)

    gen = commands.add_parser("generate", help="Generate invoices for a calendar month")
    gen.add_argument("--year", type=int, required=True)
    gen.add_argument("--month", type=int, required=True)
    gen.add_argument(
        "--due-days",
        type=int,
        default=settings.default_due_days,
        help="Days after month end until due (default: %(default)s)",
    )

    sw = commands.add_parser("sweep", help="Mark unpaid invoices past due as overdue")
    sw.add_argument("--today", type=date.fromisoformat, default=None, help="YYYY-MM-DD")

    rec = commands.add_parser("reconcile", help="Re-derive unit occupancy flags from leases")
    rec.add_argument("--as-of", type=date.fromisoformat, default=None, help="YYYY-MM-DD")

    commands.add_parser("status", help="Show scheduler status and rent settings")
    return parser


async def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the invoice CLI.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)
    setup_server_logging(settings.log_file, settings.log_level)

    try:
        if args.command == "generate":
            return await generate(args.year, args.month, args.due_days)
        if args.command == "sweep":
            return await sweep(args.today or date.today())
        if args.command == "reconcile":
            return await reconcile(args.as_of or date.today())
        return await status()
    except InvoiceError as e:
        logger.error("%s failed (%s): %s", args.command, e.code, e.message)
        return 1
    except Exception as e:
        logger.error("%s failed: %s", args.command, e, exc_info=True)
        return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
