"""
Concurrent writes to the same booking or dates: exactly one wins.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from rental_booking.engine import BookingStatus
from rental_booking.errors import Conflict


def _race(engine, n: int, start: str = "2030-06-01", end: str = "2030-06-05"):
    barrier = threading.Barrier(n)

    def attempt(i):
        barrier.wait()
        try:
            return engine.create_booking(f"user-{i}", "cam-1", start, end)
        except Conflict as exc:
            return exc

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(attempt, range(n)))


@pytest.mark.parametrize("n", [2, 8, 32])
def test_memory_store_allows_exactly_one(engine, n):
    results = _race(engine, n)

    successes = [r for r in results if not isinstance(r, Conflict)]
    conflicts = [r for r in results if isinstance(r, Conflict)]
    assert len(successes) == 1
    assert len(conflicts) == n - 1


def test_memory_store_different_equipment_do_not_block(engine):
    barrier = threading.Barrier(2)

    def attempt(equipment_id):
        barrier.wait()
        return engine.create_booking("user-1", equipment_id, "2030-06-01", "2030-06-05")

    with ThreadPoolExecutor(max_workers=2) as pool:
        bookings = list(pool.map(attempt, ["cam-1", "light-1"]))

    assert {b.equipment_id for b in bookings} == {"cam-1", "light-1"}


@pytest.mark.parametrize("n", [2, 8])
def test_sql_store_allows_exactly_one(sql_engine, n):
    results = _race(sql_engine, n)

    successes = [r for r in results if not isinstance(r, Conflict)]
    conflicts = [r for r in results if isinstance(r, Conflict)]
    assert len(successes) == 1
    assert len(conflicts) == n - 1
    assert len(sql_engine.get_availability_calendar("cam-1", "2030-06-01", "2030-06-30")) == 1


def _race_cancel(engine, booking_id: str, n: int):
    barrier = threading.Barrier(n)

    def attempt(i):
        barrier.wait()
        try:
            return engine.cancel_booking(booking_id, reason=f"attempt {i}")
        except Conflict as exc:
            return exc

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(attempt, range(n)))


@pytest.mark.parametrize("n", [2, 8])
def test_memory_store_cancels_once(engine, n):
    booking = engine.create_booking("user-1", "cam-1", "2030-06-01", "2030-06-05")

    results = _race_cancel(engine, booking.id, n)

    successes = [r for r in results if not isinstance(r, Conflict)]
    assert len(successes) == 1
    assert sum(isinstance(r, Conflict) for r in results) == n - 1
    assert engine.get_booking(booking.id).cancellation_reason == successes[0].cancellation_reason


def test_memory_store_cancel_does_not_overwrite_completion(engine):
    booking = engine.create_booking("user-1", "cam-1", "2030-06-01", "2030-06-05")
    barrier = threading.Barrier(2)

    def complete():
        barrier.wait()
        try:
            return engine.update_status(booking.id, BookingStatus.COMPLETED)
        except Conflict as exc:
            return exc

    def cancel():
        barrier.wait()
        try:
            return engine.cancel_booking(booking.id)
        except Conflict as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = [f.result() for f in (pool.submit(complete), pool.submit(cancel))]

    winners = [r for r in results if not isinstance(r, Conflict)]
    assert len(winners) == 1
    assert engine.get_booking(booking.id).status == winners[0].status


@pytest.mark.parametrize("n", [2, 8])
def test_sql_store_cancels_once(sql_engine, n):
    booking = sql_engine.create_booking("user-1", "cam-1", "2030-06-01", "2030-06-05")

    results = _race_cancel(sql_engine, booking.id, n)

    assert sum(not isinstance(r, Conflict) for r in results) == 1
    assert sum(isinstance(r, Conflict) for r in results) == n - 1
