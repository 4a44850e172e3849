from datetime import date
from decimal import Decimal

import pytest

from rental_booking.config.settings import Settings
from rental_booking.engine import BookingEngine, Equipment
from rental_booking.stores.memory import InMemoryStore
from rental_booking.stores.sql import SqlStore

TODAY = date(2030, 1, 1)


def make_equipment(**overrides) -> Equipment:
    fields = dict(
        id="cam-1",
        name="Cinema Camera",
        daily_rate=Decimal("50"),
        weekly_rate=Decimal("300"),
        quantity_available=1,
        is_active=True,
        damage_deposit=Decimal("100"),
    )
    fields.update(overrides)
    return Equipment(**fields)


@pytest.fixture
def settings():
    return Settings(tax_rate=Decimal("0.08"), database_url="sqlite://")


@pytest.fixture
def store():
    return InMemoryStore([
        make_equipment(),
        make_equipment(id="light-1", name="LED Panel", daily_rate=Decimal("20"), weekly_rate=None,
                       damage_deposit=Decimal("0")),
        make_equipment(id="retired-1", is_active=False),
        make_equipment(id="empty-1", quantity_available=0),
    ])


@pytest.fixture
def engine(store, settings):
    return BookingEngine(store, store, settings=settings, clock=lambda: TODAY)


@pytest.fixture
def sql_store(tmp_path):
    store = SqlStore(f"sqlite:///{(tmp_path / 'rental.db').as_posix()}")
    store.add_equipment(make_equipment())
    yield store
    store.dispose()


@pytest.fixture
def sql_engine(sql_store, settings):
    return BookingEngine(sql_store, sql_store, settings=settings, clock=lambda: TODAY)
