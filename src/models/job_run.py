"""Durable record of scheduler runs, one row per job and calendar day."""

from datetime import date

from sqlalchemy import Date, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class JobRun(Base, BaseModel):
    """Completed daily run of a scheduler job.

    A ``daily-run`` row is written for every completed pass and a
    ``monthly-generation`` row when generation completed; the latter is what
    stops later days of the month from generating again.
    """

    __tablename__ = "scheduler_job_runs"

    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overdue_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("job_name", "run_date", name="uq_job_run_day"),)

    def __repr__(self) -> str:
        return (
            f"<JobRun(id={self.id}, job_name={self.job_name}, run_date={self.run_date}, "
            f"created={self.created_count}, skipped={self.skipped_count})>"
        )


__all__ = ["JobRun"]
