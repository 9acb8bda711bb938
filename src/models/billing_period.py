"""Billing period value type: the date range an invoice covers plus its due date."""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from src.services.errors import InvalidPeriod


@dataclass(frozen=True)
class BillingPeriod:
    """Calendar-date range [start_date, end_date] with an advisory due date.

    start_date < end_date is enforced. due_date before end_date is allowed;
    callers may surface ``due_before_end`` as a warning.
    """

    start_date: date
    end_date: date
    due_date: date

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise InvalidPeriod unless start_date < end_date."""
        if self.start_date >= self.end_date:
            raise InvalidPeriod(self.start_date, self.end_date)

    @classmethod
    def for_month(cls, year: int, month: int, due_days: int = 7) -> "BillingPeriod":
        """Whole calendar month; due date is ``due_days`` after the last day."""
        if not 1 <= month <= 12:
            raise InvalidPeriod(message=f"Month must be between 1 and 12, got {month}")
        last_day = calendar.monthrange(year, month)[1]
        start = date(year, month, 1)
        end = date(year, month, last_day)
        return cls(start_date=start, end_date=end, due_date=end + timedelta(days=due_days))

    @property
    def billing_year(self) -> int:
        return self.start_date.year

    @property
    def billing_month(self) -> int:
        return self.start_date.month

    @property
    def key(self) -> tuple[int, int]:
        """(year, month) half of the idempotency key."""
        return (self.billing_year, self.billing_month)

    @property
    def due_before_end(self) -> bool:
        return self.due_date < self.end_date

    def __str__(self) -> str:
        return f"{self.start_date.isoformat()}..{self.end_date.isoformat()} (due {self.due_date.isoformat()})"


__all__ = ["BillingPeriod"]
