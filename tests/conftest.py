"""Pytest configuration: in-memory database and rental directory builders."""

import os

# Set test database URL BEFORE any imports from src
# This ensures AsyncSessionLocal and the engine use an in-memory database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from src.models import Base  # noqa: E402
from src.models.directory import (  # noqa: E402
    Currency,
    Lease,
    Property,
    RentalUnit,
    Tenant,
    UnitStatus,
)
from src.services import create_engine_for_url  # noqa: E402


class Directory:
    """Builds properties, tenants, units and leases for a test."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._property: Property | None = None

    async def currency(self, code: str = "MVR", name: str | None = None) -> Currency:
        currency = Currency(code=code, name=name or code)
        self.session.add(currency)
        await self.session.commit()
        return currency

    async def property(self, name: str = "Sunset Residency") -> Property:
        prop = Property(name=name, address="Majeedhee Magu, Male")
        self.session.add(prop)
        await self.session.commit()
        self._property = prop
        return prop

    async def tenant(
        self, first_name: str = "Aisha", last_name: str = "Ibrahim", phone: str | None = "7771234"
    ) -> Tenant:
        tenant = Tenant(first_name=first_name, last_name=last_name, phone=phone)
        self.session.add(tenant)
        await self.session.commit()
        return tenant

    async def unit(
        self,
        unit_number: str = "101",
        rent: Decimal | str | None = "5000.00",
        currency: str | None = "MVR",
        prop: Property | None = None,
    ) -> RentalUnit:
        if prop is None:
            prop = self._property or await self.property()
        unit = RentalUnit(
            property_id=prop.id,
            unit_number=unit_number,
            status=UnitStatus.VACANT,
            rent_amount=Decimal(rent) if rent is not None else None,
            deposit_amount=Decimal(rent) if rent is not None else None,
            currency=currency,
        )
        self.session.add(unit)
        await self.session.commit()
        return unit

    async def lease(
        self,
        unit: RentalUnit,
        tenant: Tenant,
        start: date = date(2023, 6, 1),
        end: date | None = None,
        is_active: bool = True,
    ) -> Lease:
        lease = Lease(
            rental_unit_id=unit.id,
            tenant_id=tenant.id,
            start_date=start,
            end_date=end,
            is_active=is_active,
        )
        self.session.add(lease)
        await self.session.commit()
        return lease

    async def occupied_unit(
        self,
        unit_number: str = "101",
        rent: Decimal | str | None = "5000.00",
        currency: str | None = "MVR",
        tenant: Tenant | None = None,
        start: date = date(2023, 6, 1),
        end: date | None = None,
    ) -> RentalUnit:
        """Unit with an active lease covering everything from ``start`` on."""
        unit = await self.unit(unit_number=unit_number, rent=rent, currency=currency)
        tenant = tenant or await self.tenant()
        await self.lease(unit, tenant, start=start, end=end)
        unit.status = UnitStatus.OCCUPIED
        unit.tenant_id = tenant.id
        await self.session.commit()
        return unit


@pytest.fixture
async def db_engine():
    """In-memory async engine shared by every session of one test."""
    engine = create_engine_for_url("sqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def async_db_session(session_factory):
    """Create async test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def directory(async_db_session):
    """Directory builder with MVR configured as a currency."""
    builder = Directory(async_db_session)
    await builder.currency("MVR", "Maldivian Rufiyaa")
    return builder
