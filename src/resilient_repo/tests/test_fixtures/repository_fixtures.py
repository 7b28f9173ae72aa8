"""Tables, entities, repositories and fixtures for repository tests."""

import uuid
from datetime import date

import pytest
from pydantic import Field
from sqlalchemy import Column, Date, Integer, String, Table, Uuid
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

from resilient_repo.database import ConnectionFactory, SqlAlchemyConnectionFactory, metadata
from resilient_repo.models import Entity, IntervalEntity
from resilient_repo.repositories import SqlTableRepository
from resilient_repo.resilience import build_retry_policy


# -----------------------------------------------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------------------------------------------

widgets_table = Table(
    "Widget",
    metadata,
    Column("Id", Uuid, primary_key=True),
    Column("Name", String(100), nullable=False, unique=True),
    Column("Quantity", Integer, nullable=False),
)

bookings_table = Table(
    "Booking",
    metadata,
    Column("Id", Uuid, primary_key=True),
    Column("Reference", String(50), nullable=False),
    Column("EffectiveInterval_StartDate", Date, nullable=True),
    Column("EffectiveInterval_EndDate", Date, nullable=True),
)


class Widget(Entity):
    name: str = Field(alias="Name")
    quantity: int = Field(default=0, alias="Quantity")


class Booking(IntervalEntity):
    reference: str = Field(alias="Reference")


class WidgetRepository(SqlTableRepository[Widget]):
    def __init__(self, connection_factory: ConnectionFactory, logger=None):
        super().__init__(Widget, widgets_table, connection_factory, logger=logger)


class BookingRepository(SqlTableRepository[Booking]):
    def __init__(self, connection_factory: ConnectionFactory, logger=None):
        super().__init__(Booking, bookings_table, connection_factory, logger=logger)


# -----------------------------------------------------------------------------------------------------------------
# Fake store errors / test doubles
# -----------------------------------------------------------------------------------------------------------------

class FakeDriverError(Exception):
    """Stands in for a DBAPI exception (pymssql style: code as first arg)."""


def store_error(code: int | None = 1205, message: str = "Transaction was deadlocked") -> OperationalError:
    orig = FakeDriverError(code, message) if code is not None else FakeDriverError(message)
    return OperationalError("SELECT 1", {}, orig)


class OdbcDriverError(Exception):
    """Stands in for a pyodbc exception: Error(sqlstate, message)."""


def odbc_error(code: int, text: str = "Transaction was deadlocked", sqlstate: str = "40001") -> OperationalError:
    message = f"[{sqlstate}] [Microsoft][ODBC Driver 18 for SQL Server][SQL Server]{text} ({code}) (SQLExecDirectW)"
    return OperationalError("SELECT 1", {}, OdbcDriverError(sqlstate, message))


class SleepRecorder:
    """Async sleep replacement that records the requested waits and returns immediately."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FlakyConnectionFactory(ConnectionFactory):
    """Fails the first `failures` connection requests with `error`, then delegates."""

    def __init__(self, inner: ConnectionFactory, failures: int, error: Exception | None = None):
        self.inner = inner
        self.failures = failures
        self.error = error
        self.requests = 0

    async def get_connection(self):
        self.requests += 1
        if self.requests <= self.failures:
            raise self.error if self.error is not None else store_error()
        return await self.inner.get_connection()


def recording_repository_class(base: type, recorder: SleepRecorder, max_retry_count: int = 3, **attrs) -> type:
    """
    Subclass `base` with a policy that sleeps through `recorder`.

    A new class per call, so each test gets its own cached policy.
    """

    def build_policy(self):
        return build_retry_policy(
            self.calling_type_name,
            max_retry_count=max_retry_count,
            timeout_seconds=5,
            logger=self.logger,
            sleep=recorder,
        )

    return type(f"Recording{base.__name__}", (base,), {"build_retry_policy": build_policy, **attrs})


# -----------------------------------------------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------------------------------------------

@pytest.fixture
def connection_factory(async_engine) -> SqlAlchemyConnectionFactory:
    """Connection factory bound to the per-test engine from conftest.py."""
    return SqlAlchemyConnectionFactory(async_engine)


@pytest.fixture
def offline_factory() -> SqlAlchemyConnectionFactory:
    """Factory over an engine that is never connected, for tests that do no I/O."""
    return SqlAlchemyConnectionFactory(create_async_engine("sqlite+aiosqlite://"))


@pytest.fixture
def widget_repository(connection_factory) -> WidgetRepository:
    return WidgetRepository(connection_factory)


@pytest.fixture
def booking_repository(connection_factory) -> BookingRepository:
    return BookingRepository(connection_factory)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
async def create_widget(widget_repository: WidgetRepository):
    """
    Factory that saves widgets with optional overrides.

    Usage:
        widget = await create_widget(name="bolt")
    """
    async def _create(**overrides) -> Widget:
        data = {"name": f"widget_{uuid.uuid4().hex[:8]}", "quantity": 1}
        data.update(overrides)
        return await widget_repository.save(Widget(**data))

    return _create


@pytest.fixture
async def created_widget(create_widget) -> Widget:
    return await create_widget(name="sprocket", quantity=3)


@pytest.fixture
def sample_booking() -> Booking:
    return Booking(
        reference="BK-001",
        effective_interval_start_date=date(2024, 1, 1),
        effective_interval_end_date=date(2024, 12, 31),
    )
