"""Occupancy resolution: which rental units are billable as of a date.

Policy: a unit is occupied iff it has an active lease whose
[start_date, end_date] range covers ``as_of`` (open-ended leases have no
end date). With ``since``, a lease overlapping any day of [since, as_of]
counts, so a tenant who moved out mid-period is still billed for it. The stored ``RentalUnit.status`` flag is NOT trusted for billing;
``reconcile_unit_statuses`` re-derives it from leases for the screens that
still read it.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.directory import Lease, Property, RentalUnit, UnitStatus
from src.models.money import Money
from src.services.errors import DirectoryUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OccupiedUnit:
    """Snapshot of an occupied unit's rent terms at resolution time.

    ``rent_amount`` is None when the unit has no rent or no currency set;
    ``rent_value`` and ``currency`` keep the raw columns so callers can tell
    the two apart.
    """

    unit_id: int
    property_id: int
    tenant_id: int
    rent_amount: Money | None
    deposit_amount: Money | None
    currency: str | None = None
    rent_value: Decimal | None = None
    unit_number: str | None = None
    property_name: str | None = None

    @property
    def label(self) -> str:
        if self.property_name and self.unit_number:
            return f"{self.property_name} - Unit {self.unit_number}"
        return f"Unit {self.unit_number or self.unit_id}"


class OccupancyResolver(Protocol):
    """Read-only source of occupied units."""

    async def list_occupied_units(
        self, as_of: date, since: date | None = None
    ) -> list[OccupiedUnit]: ...


def _money_or_none(amount, currency: str | None) -> Money | None:
    if amount is None or not currency:
        return None
    return Money(amount, currency)


class LeaseOccupancyResolver:
    """Occupancy derived from active leases in the rental directory.

    Any storage error or a read slower than ``timeout`` raises
    DirectoryUnavailable; an empty list always means "nothing is occupied".
    """

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = timeout

    async def list_occupied_units(
        self, as_of: date, since: date | None = None
    ) -> list[OccupiedUnit]:
        try:
            if self.timeout is not None:
                rows = await asyncio.wait_for(self._fetch(as_of, since), timeout=self.timeout)
            else:
                rows = await self._fetch(as_of, since)
        except asyncio.TimeoutError as e:
            logger.error("Occupancy read timed out after %ss (as_of=%s)", self.timeout, as_of)
            raise DirectoryUnavailable(
                f"Rental unit directory did not answer within {self.timeout}s"
            ) from e
        except SQLAlchemyError as e:
            logger.error("Occupancy read failed (as_of=%s): %s", as_of, e)
            raise DirectoryUnavailable(f"Rental unit directory is unavailable: {e}") from e

        units: list[OccupiedUnit] = []
        seen: set[int] = set()
        for unit, lease, property_name in rows:
            # Overlapping leases: the most recent start wins
            if unit.id in seen:
                continue
            seen.add(unit.id)
            units.append(
                OccupiedUnit(
                    unit_id=unit.id,
                    property_id=unit.property_id,
                    tenant_id=lease.tenant_id,
                    rent_amount=_money_or_none(unit.rent_amount, unit.currency),
                    deposit_amount=_money_or_none(unit.deposit_amount, unit.currency),
                    currency=unit.currency,
                    rent_value=unit.rent_amount,
                    unit_number=unit.unit_number,
                    property_name=property_name,
                )
            )

        logger.debug("Resolved %d occupied units as of %s", len(units), as_of)
        return units

    async def _fetch(self, as_of: date, since: date | None = None):
        stmt = (
            select(RentalUnit, Lease, Property.name)
            .join(Lease, Lease.rental_unit_id == RentalUnit.id)
            .join(Property, Property.id == RentalUnit.property_id)
            .where(
                Lease.is_active == True,  # noqa: E712
                Lease.start_date <= as_of,
                or_(Lease.end_date.is_(None), Lease.end_date >= (since or as_of)),
            )
            .order_by(RentalUnit.id.asc(), Lease.start_date.desc(), Lease.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.all()


async def reconcile_unit_statuses(session: AsyncSession, as_of: date) -> int:
    """Re-derive every unit's status flag and tenant from active leases.

    Idempotent: a second call with the same data changes nothing. Units under
    maintenance keep their flag unless a lease covers ``as_of``.

    Returns:
        Number of units whose status or tenant changed
    """
    occupied = {
        unit.unit_id: unit.tenant_id
        for unit in await LeaseOccupancyResolver(session).list_occupied_units(as_of)
    }

    result = await session.execute(select(RentalUnit).order_by(RentalUnit.id))
    changed = 0
    for unit in result.scalars().all():
        if unit.id in occupied:
            new_status, new_tenant = UnitStatus.OCCUPIED, occupied[unit.id]
        elif unit.status == UnitStatus.MAINTENANCE:
            new_status, new_tenant = UnitStatus.MAINTENANCE, None
        else:
            new_status, new_tenant = UnitStatus.VACANT, None

        if unit.status != new_status or unit.tenant_id != new_tenant:
            logger.info(
                "Reconciled unit %d: status %s -> %s, tenant %s -> %s",
                unit.id,
                unit.status,
                new_status,
                unit.tenant_id,
                new_tenant,
            )
            unit.status = new_status
            unit.tenant_id = new_tenant
            changed += 1

    await session.commit()
    logger.info("Reconciled unit statuses as of %s: %d changed", as_of, changed)
    return changed


__all__ = [
    "OccupiedUnit",
    "OccupancyResolver",
    "LeaseOccupancyResolver",
    "reconcile_unit_statuses",
]
