"""Daily rent scheduler: monthly invoice generation and the overdue sweep.

Wakes once a day at ``run_hour`` in the configured timezone. From the
configured generation day on (when auto-generation is on) it bills the
current month until a generation run completes, so a run that failed is
retried the next day. Every day it sweeps overdue invoices. Safe to restart
at any time: every completed pass is recorded in ``scheduler_job_runs`` and
generation itself is idempotent.
"""

import asyncio
import calendar
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.billing_period import BillingPeriod
from src.models.job_run import JobRun
from src.models.rent_invoice import RentInvoice
from src.models.rent_settings import RentSettingsRecord
from src.services.errors import InvoiceError
from src.services.invoice_generator import GenerationRun, InvoiceGenerator
from src.services.invoice_state_machine import InvoiceStateMachine

logger = logging.getLogger(__name__)

MONTHLY_GENERATION_JOB = "monthly-generation"
DAILY_RUN_JOB = "daily-run"


@dataclass(frozen=True)
class RentSettings:
    """Snapshot of the rent settings the scheduler acts on."""

    auto_generate_rent: bool = False
    rent_generation_day: int = 1
    rent_due_days: int = 7
    has_settings: bool = False


class SettingsProvider(Protocol):
    async def get_rent_settings(self) -> RentSettings: ...


class DatabaseSettingsProvider:
    """Reads the single ``rent_settings`` row; defaults when none exists."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_rent_settings(self) -> RentSettings:
        async with self.session_factory() as session:
            result = await session.execute(
                select(RentSettingsRecord).order_by(RentSettingsRecord.id).limit(1)
            )
            record = result.scalars().first()
        if record is None:
            return RentSettings()
        return RentSettings(
            auto_generate_rent=record.auto_generate_rent,
            rent_generation_day=record.rent_generation_day,
            rent_due_days=record.rent_due_days,
            has_settings=True,
        )


def effective_generation_day(generation_day: int, today: date) -> int:
    """Generation day clamped to the month's length (31 -> 28/29 in February)."""
    return min(generation_day, calendar.monthrange(today.year, today.month)[1])


def is_generation_due(settings: RentSettings, today: date) -> bool:
    """On or after the generation day; later days catch up a month that failed."""
    return settings.auto_generate_rent and today.day >= effective_generation_day(
        settings.rent_generation_day, today
    )


@dataclass
class DailyRunResult:
    """What one daily run did."""

    run_date: date
    generation: GenerationRun | None = None
    overdue: list[RentInvoice] = field(default_factory=list)
    skipped_reason: str | None = None
    error: str | None = None


class RentScheduler:
    """Process-wide daily job with a single-flight guard.

    ``session_factory`` gives each run its own sessions; ``clock`` returns the
    current timezone-aware datetime and is injectable for tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings_provider: SettingsProvider | None = None,
        timezone: str = "Indian/Maldives",
        run_hour: int = 9,
        late_fee_daily_rate: Decimal | None = None,
        directory_timeout: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_factory = session_factory
        self.settings_provider = settings_provider or DatabaseSettingsProvider(session_factory)
        self.tz = ZoneInfo(timezone)
        self.run_hour = run_hour
        self.late_fee_daily_rate = late_fee_daily_rate
        self.directory_timeout = directory_timeout
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._last_run: datetime | None = None

    def now(self) -> datetime:
        return self._clock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_run_time(self, now: datetime | None = None) -> datetime:
        """Next wake-up: today at ``run_hour`` if still ahead, else tomorrow."""
        now = now or self.now()
        candidate = datetime.combine(now.date(), time(hour=self.run_hour), tzinfo=self.tz)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    async def start(self) -> None:
        if self.running:
            logger.info("Rent scheduler already running")
            return
        self._task = asyncio.create_task(self._loop(), name="rent-scheduler")
        logger.info(
            "Rent scheduler started (daily at %02d:00 %s, next run %s)",
            self.run_hour,
            self.tz.key,
            self.next_run_time().isoformat(),
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Rent scheduler stopped")

    async def _loop(self) -> None:
        while True:
            delay = (self.next_run_time() - self.now()).total_seconds()
            await asyncio.sleep(max(delay, 0))
            try:
                await self.run_daily()
            except Exception:
                # Keep the daily timer alive; tomorrow's run retries
                logger.exception("Daily rent job failed")

    async def run_daily(self, today: date | None = None, force_generation: bool = False) -> DailyRunResult:
        """One daily pass: generate if due, then sweep overdue invoices.

        A second call while one is in progress returns immediately with
        ``skipped_reason`` set. Every completed pass is recorded.
        """
        today = today or self.now().date()
        if self._lock.locked():
            logger.warning("Daily rent job for %s skipped: already running", today)
            return DailyRunResult(run_date=today, skipped_reason="already running")

        async with self._lock:
            result = DailyRunResult(run_date=today)
            settings = await self.settings_provider.get_rent_settings()

            if force_generation or is_generation_due(settings, today):
                try:
                    result.generation = await self._generate(today, settings, force_generation)
                except InvoiceError as e:
                    logger.error("Monthly rent generation for %s failed: %s", today, e.message)
                    result.error = e.message
            else:
                logger.debug("No rent generation due on %s", today)

            result.overdue = await self._sweep(today)
            await self._record_run(today, result)

            self._last_run = self.now()
            return result

    async def trigger_manual_generation(self, today: date | None = None) -> DailyRunResult:
        """Generate the current month now, ignoring the day and auto-generate settings."""
        logger.info("Manual rent generation triggered")
        return await self.run_daily(today=today, force_generation=True)

    async def _generate(
        self, today: date, settings: RentSettings, force: bool
    ) -> GenerationRun | None:
        async with self.session_factory() as session:
            if not force and await self._generated_this_month(session, today):
                logger.debug("Monthly rent generation for %d-%02d already completed", today.year, today.month)
                return None

            period = BillingPeriod.for_month(today.year, today.month, settings.rent_due_days)
            logger.info("Running monthly rent generation for %s", period)
            generator = InvoiceGenerator(
                session,
                today=lambda: today,
                directory_timeout=self.directory_timeout,
            )
            return await generator.generate(period)

    async def _sweep(self, today: date) -> list[RentInvoice]:
        async with self.session_factory() as session:
            machine = InvoiceStateMachine(session, today=lambda: today)
            try:
                return await machine.sweep_overdue(today, daily_late_fee=self.late_fee_daily_rate)
            except SQLAlchemyError:
                logger.exception("Overdue sweep for %s could not list candidates", today)
                return []

    async def _generated_this_month(self, session: AsyncSession, today: date) -> bool:
        first_day = today.replace(day=1)
        result = await session.execute(
            select(JobRun.id).where(
                JobRun.job_name == MONTHLY_GENERATION_JOB,
                JobRun.run_date >= first_day,
                JobRun.run_date <= today,
            )
        )
        return result.first() is not None

    async def _record_run(self, today: date, result: DailyRunResult) -> None:
        """One ``daily-run`` row per pass; a ``monthly-generation`` row when generation completed."""
        generation = result.generation
        counts = {
            "created_count": generation.created_count if generation else 0,
            "skipped_count": generation.skipped_count if generation else 0,
            "overdue_count": len(result.overdue),
        }
        jobs = [DAILY_RUN_JOB]
        if generation is not None:
            jobs.append(MONTHLY_GENERATION_JOB)

        for job_name in jobs:
            async with self.session_factory() as session:
                session.add(JobRun(job_name=job_name, run_date=today, **counts))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.info("Run of %s on %s was already recorded", job_name, today)

    async def get_last_recorded_run(self) -> JobRun | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(JobRun)
                .where(JobRun.job_name == DAILY_RUN_JOB)
                .order_by(JobRun.run_date.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def get_settings_info(self) -> dict[str, Any]:
        try:
            settings = await self.settings_provider.get_rent_settings()
        except SQLAlchemyError as e:
            logger.error("Error getting settings info: %s", e)
            return {"error": str(e)}
        return {
            "has_settings": settings.has_settings,
            "auto_generate": settings.auto_generate_rent,
            "generation_day": settings.rent_generation_day,
            "due_days": settings.rent_due_days,
        }

    async def get_status(self) -> dict[str, Any]:
        """Observability snapshot: running flag, next/last run and settings."""
        last_run = self._last_run
        if last_run is None:
            recorded = await self.get_last_recorded_run()
            if recorded is not None:
                last_run = datetime.combine(recorded.run_date, time(hour=self.run_hour), tzinfo=self.tz)
        return {
            "running": self.running,
            "next_run": self.next_run_time().isoformat() if self.running else None,
            "last_run": last_run.isoformat() if last_run else None,
            "settings_info": await self.get_settings_info(),
        }


__all__ = [
    "RentScheduler",
    "RentSettings",
    "SettingsProvider",
    "DatabaseSettingsProvider",
    "DailyRunResult",
    "MONTHLY_GENERATION_JOB",
    "DAILY_RUN_JOB",
    "effective_generation_day",
    "is_generation_due",
]
