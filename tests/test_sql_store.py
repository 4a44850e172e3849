"""
SQLModel-backed store against a temporary SQLite file.
"""
import time
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from rental_booking.engine import BookingStatus
from rental_booking.engine.models import BookingRecord
from rental_booking.errors import Conflict, NotFound

from conftest import make_equipment


def test_equipment_round_trip(sql_store):
    sql_store.add_equipment(make_equipment(id="mic-1", name="Shotgun Mic", daily_rate=Decimal("12.50"),
                                           weekly_rate=None, damage_deposit=Decimal("25")))
    equipment = sql_store.get_equipment("mic-1")

    assert equipment.name == "Shotgun Mic"
    assert equipment.daily_rate == Decimal("12.50")
    assert equipment.weekly_rate is None
    assert equipment.damage_deposit == Decimal("25")
    assert [e.id for e in sql_store.list_equipment()] == ["cam-1", "mic-1"]


def test_missing_equipment_is_none(sql_store):
    assert sql_store.get_equipment("nope") is None


def test_create_and_read_booking(sql_engine, sql_store):
    booking = sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-10", notes="Doc shoot")

    stored = sql_store.get_booking(booking.id)
    assert stored.start_date == date(2030, 3, 1)
    assert stored.end_date == date(2030, 3, 10)
    assert stored.total_days == 10
    assert stored.subtotal == Decimal("450.00")
    assert stored.tax == Decimal("36.00")
    assert stored.total_amount == Decimal("586.00")
    assert stored.status == BookingStatus.PENDING
    assert stored.notes == "Doc shoot"


def test_overlap_query_is_inclusive(sql_engine):
    sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-05")

    assert sql_engine.is_available("cam-1", "2030-03-05", "2030-03-07") is False
    assert sql_engine.is_available("cam-1", "2030-03-06", "2030-03-07") is True
    with pytest.raises(Conflict):
        sql_engine.create_booking("user-2", "cam-1", "2030-02-25", "2030-03-01")


def test_cancel_releases_dates(sql_engine):
    booking = sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-05")
    cancelled = sql_engine.cancel_booking(booking.id, reason="Weather")

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == "Weather"
    assert sql_engine.is_available("cam-1", "2030-03-01", "2030-03-05")


def test_update_status_unknown_booking(sql_store):
    assert sql_store.update_status("nope", BookingStatus.CANCELLED) is None


def test_unknown_equipment_not_found(sql_engine):
    with pytest.raises(NotFound):
        sql_engine.create_booking("user-1", "ghost", "2030-03-01", "2030-03-05")


def test_error_inside_transaction_rolls_back(sql_store):
    with pytest.raises(RuntimeError):
        with sql_store.transaction("cam-1") as tx:
            tx.insert_booking(BookingRecord(
                user_id="user-1", equipment_id="cam-1",
                start_date=date(2030, 4, 1), end_date=date(2030, 4, 2), total_days=2,
                daily_rate=Decimal("50"), subtotal=Decimal("100"), damage_deposit=Decimal("100"),
                tax=Decimal("8"), total_amount=Decimal("208"),
            ))
            raise RuntimeError("boom")

    assert sql_store.find_overlapping("cam-1", date(2030, 4, 1), date(2030, 4, 2), set()) == []


def test_sequential_creates_do_not_wait_on_the_database_lock(sql_engine, settings):
    """A transaction that blocked on its own lock would take the full busy timeout."""
    started = time.perf_counter()
    sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-02")
    sql_engine.create_booking("user-2", "cam-1", "2030-03-03", "2030-03-04")
    elapsed = time.perf_counter() - started

    assert elapsed < 2.0, f"two creates took {elapsed:.2f}s (busy timeout {settings.sqlite_busy_timeout_ms}ms)"


def test_timestamps_are_timezone_aware(sql_engine, sql_store):
    booking = sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-02")
    cancelled = sql_engine.cancel_booking(booking.id)

    assert booking.created_at.tzinfo is not None
    assert cancelled.cancelled_at.tzinfo is not None
    assert sql_store.get_booking(booking.id).created_at.tzinfo is not None


def test_transaction_reads_equipment_through_its_own_session(sql_store):
    with sql_store.transaction("cam-1") as tx:
        equipment = tx.get_equipment("cam-1")
        assert tx.get_equipment("ghost") is None
    assert equipment.daily_rate == Decimal("50.00")


def test_foreign_key_failure_is_not_reported_as_conflict(sql_store):
    with pytest.raises(IntegrityError):
        with sql_store.transaction("ghost") as tx:
            tx.insert_booking(BookingRecord(
                user_id="user-1", equipment_id="ghost",
                start_date=date(2030, 4, 1), end_date=date(2030, 4, 2), total_days=2,
                daily_rate=Decimal("50"), subtotal=Decimal("100"), damage_deposit=Decimal("0"),
                tax=Decimal("8"), total_amount=Decimal("108"),
            ))


def test_update_status_refuses_expected_state(sql_engine, sql_store):
    booking = sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-05")
    sql_engine.update_status(booking.id, BookingStatus.COMPLETED)

    with pytest.raises(Conflict):
        sql_store.update_status(booking.id, BookingStatus.CANCELLED, expected_not_in=BookingStatus.INACTIVE)
    assert sql_store.get_booking(booking.id).status == BookingStatus.COMPLETED


def test_list_bookings_for_user(sql_engine, sql_store):
    kept = sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-02")
    dropped = sql_engine.create_booking("user-1", "cam-1", "2030-03-05", "2030-03-06")
    sql_engine.create_booking("user-2", "cam-1", "2030-03-10", "2030-03-11")
    sql_engine.cancel_booking(dropped.id)

    assert {b.id for b in sql_store.list_bookings_for_user("user-1")} == {kept.id, dropped.id}
    assert [b.id for b in sql_store.list_bookings_for_user("user-1", status=BookingStatus.PENDING)] == [kept.id]


def test_extend_booking(sql_engine, sql_store):
    booking = sql_engine.create_booking("user-1", "cam-1", "2030-03-01", "2030-03-05")
    sql_engine.create_booking("user-2", "cam-1", "2030-03-12", "2030-03-13")

    extended = sql_engine.extend_booking(booking.id, "2030-03-10")

    stored = sql_store.get_booking(booking.id)
    assert stored.end_date == date(2030, 3, 10)
    assert stored.total_days == 10
    assert stored.total_amount == extended.total_amount == Decimal("586.00")
    with pytest.raises(Conflict):
        sql_engine.extend_booking(booking.id, "2030-03-12")
    assert sql_store.get_booking(booking.id).end_date == date(2030, 3, 10)
