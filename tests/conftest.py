"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- The SQLAlchemy repository and an API test client
- Test data factories
"""
# The engine in haulage.db.database is created at import time
import os
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import itertools
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from haulage.db.database import Base, get_db
from haulage.db.models import (
    Contractor,
    DieselRecord,
    Driver,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentType,
    Site,
    SiteMaterialRate,
    Trip,
    Vehicle,
)
from haulage.db.repository import SqlAlchemyFleetRepository
from haulage.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repository(db_session: AsyncSession) -> SqlAlchemyFleetRepository:
    return SqlAlchemyFleetRepository(db_session)


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def contractor_factory(db_session: AsyncSession):
    """Factory for creating test contractors"""
    async def _create_contractor(
        name: str = "Al Noor Contracting",
        abbreviation: str | None = "ANC",
    ) -> Contractor:
        contractor = Contractor(name=name, abbreviation=abbreviation)
        db_session.add(contractor)
        await db_session.commit()
        await db_session.refresh(contractor)
        return contractor

    return _create_contractor


@pytest.fixture
def site_factory(db_session: AsyncSession):
    """Factory for creating test sites"""
    async def _create_site(contractor_id: int | None, name: str = "Main Site") -> Site:
        site = Site(name=name, contractor_id=contractor_id)
        db_session.add(site)
        await db_session.commit()
        await db_session.refresh(site)
        return site

    return _create_site


@pytest.fixture
def rate_factory(db_session: AsyncSession):
    """Factory for creating site material rates"""
    async def _create_rate(
        site_id: int,
        name: str = "Sand",
        location_from: str = "Pit 1",
        location_to: str = "Site A",
        price: str = "500",
        unit: str = "Per Trip",
    ) -> SiteMaterialRate:
        rate = SiteMaterialRate(
            site_id=site_id,
            name=name,
            location_from=location_from,
            location_to=location_to,
            price=Decimal(price),
            unit=unit,
        )
        db_session.add(rate)
        await db_session.commit()
        await db_session.refresh(rate)
        return rate

    return _create_rate


@pytest.fixture
def vehicle_factory(db_session: AsyncSession):
    """Factory for creating test vehicles"""
    plates = itertools.count(1)

    async def _create_vehicle(capacity: str | None = "20", plate_number: str | None = None) -> Vehicle:
        vehicle = Vehicle(plate_number=plate_number or f"DXB-{next(plates):05d}", capacity=capacity)
        db_session.add(vehicle)
        await db_session.commit()
        await db_session.refresh(vehicle)
        return vehicle

    return _create_vehicle


@pytest.fixture
def driver_factory(db_session: AsyncSession):
    async def _create_driver(name: str = "Test Driver") -> Driver:
        driver = Driver(name=name)
        db_session.add(driver)
        await db_session.commit()
        await db_session.refresh(driver)
        return driver

    return _create_driver


@pytest.fixture
def trip_factory(db_session: AsyncSession):
    """Factory for creating test trips"""
    async def _create_trip(
        material_type: str | None = "Sand",
        from_location: str = "Pit 1",
        to_location: str = "Site A",
        date: datetime | None = None,
        vehicle_id: int | None = None,
        driver_id: int | None = None,
        invoice_id: int | None = None,
    ) -> Trip:
        trip = Trip(
            material_type=material_type,
            from_location=from_location,
            to_location=to_location,
            date=date or datetime(2024, 3, 1, 9, 0),
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            invoice_id=invoice_id,
        )
        db_session.add(trip)
        await db_session.commit()
        await db_session.refresh(trip)
        return trip

    return _create_trip


@pytest.fixture
def invoice_factory(db_session: AsyncSession):
    """Factory for creating invoices directly (bypassing InvoiceService)"""
    numbers = itertools.count(1)

    async def _create_invoice(
        contractor_id: int,
        total_amount: str = "1000",
        date: datetime | None = None,
        invoice_no: str | None = None,
    ) -> Invoice:
        invoice = Invoice(
            invoice_no=invoice_no or f"RVT/MAR/24/ANC/{next(numbers):03d}",
            contractor_id=contractor_id,
            date=date or datetime(2024, 3, 1),
            total_amount=Decimal(total_amount),
            paid_amount=Decimal("0.00"),
            status=InvoiceStatus.UNPAID.value,
        )
        db_session.add(invoice)
        await db_session.commit()
        await db_session.refresh(invoice)
        return invoice

    return _create_invoice


@pytest.fixture
def payment_factory(db_session: AsyncSession):
    """Factory for raw payment rows; the invoice's cached paid amount is not updated"""
    async def _create_payment(
        invoice_id: int,
        amount: str,
        date: datetime | None = None,
        cheque_no: str | None = None,
        payment_type: PaymentType = PaymentType.PARTIAL,
    ) -> Payment:
        payment = Payment(
            invoice_id=invoice_id,
            amount=Decimal(amount),
            date=date or datetime(2024, 3, 5),
            cheque_no=cheque_no,
            type=payment_type.value,
        )
        db_session.add(payment)
        await db_session.commit()
        await db_session.refresh(payment)
        return payment

    return _create_payment


@pytest.fixture
def diesel_factory(db_session: AsyncSession):
    async def _create_record(
        vehicle_id: int,
        liters: str = "100",
        price_per_liter: str = "3.2",
        total_amount: str = "320",
        date: datetime | None = None,
    ) -> DieselRecord:
        record = DieselRecord(
            vehicle_id=vehicle_id,
            liters=Decimal(liters),
            price_per_liter=Decimal(price_per_liter),
            total_amount=Decimal(total_amount),
            date=date or datetime(2024, 3, 1),
        )
        db_session.add(record)
        await db_session.commit()
        await db_session.refresh(record)
        return record

    return _create_record


# ============================================================================
# Sample Test Data
# ============================================================================

@pytest.fixture
async def priced_contractor(contractor_factory, site_factory, rate_factory) -> Contractor:
    """Contractor with one site pricing Sand from Pit 1 to Site A at 500 per trip"""
    contractor = await contractor_factory()
    site = await site_factory(contractor.id)
    await rate_factory(site.id)
    return contractor
