"""
In-memory store implementing both the equipment and booking contracts.

Thread-safe: a per-equipment lock is held for the whole of a booking
transaction and for status changes, and a store-wide lock guards the
dictionaries themselves. Locks are always taken in that order.
"""
import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Iterable, Iterator, Optional

from ..engine.availability import ranges_overlap
from ..engine.models import Booking, BookingRecord, BookingStatus, BookingWindow, Equipment
from ..errors import Conflict

logger = logging.getLogger(__name__)


def _overlapping(
    bookings: Iterable[Booking],
    equipment_id: str,
    start_date: date,
    end_date: date,
    exclude_statuses: Iterable[str],
    exclude_booking_id: Optional[str] = None,
) -> list[BookingWindow]:
    excluded = frozenset(exclude_statuses)
    matches = [
        b.window for b in bookings
        if b.equipment_id == equipment_id
        and b.id != exclude_booking_id
        and b.status not in excluded
        and ranges_overlap(b.start_date, b.end_date, start_date, end_date)
    ]
    return sorted(matches, key=lambda w: w.start_date)


class _MemoryTransaction:
    """Writes are staged and only published when the scope exits cleanly."""

    def __init__(self, store: 'InMemoryStore'):
        self._store = store
        self.pending: dict[str, Booking] = {}

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        return self._store.get_equipment(equipment_id)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self.pending.get(str(booking_id)) or self._store.get_booking(booking_id)

    def find_overlapping(
        self,
        equipment_id: str,
        start_date: date,
        end_date: date,
        exclude_statuses: Iterable[str],
        exclude_booking_id: Optional[str] = None,
    ) -> list[BookingWindow]:
        with self._store._data_lock:
            bookings = dict(self._store._bookings)
        # Staged versions shadow the published ones
        bookings.update(self.pending)
        return _overlapping(
            bookings.values(), equipment_id, start_date, end_date, exclude_statuses, exclude_booking_id
        )

    def insert_booking(self, record: BookingRecord) -> Booking:
        booking = Booking.from_record(uuid.uuid4().hex, record, created_at=datetime.now(timezone.utc))
        self.pending[booking.id] = booking
        return booking

    def update_booking(self, booking: Booking) -> Booking:
        self.pending[booking.id] = booking
        return booking


class InMemoryStore:
    """Dictionary-backed EquipmentStore + BookingStore."""

    def __init__(self, equipment: Optional[Iterable[Equipment]] = None):
        self._equipment: dict[str, Equipment] = {}
        self._bookings: dict[str, Booking] = {}
        self._data_lock = threading.Lock()
        self._equipment_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        for item in equipment or ():
            self.add_equipment(item)

    def _lock_for(self, equipment_id: str) -> threading.Lock:
        with self._data_lock:
            return self._equipment_locks[str(equipment_id)]

    # Equipment

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        with self._data_lock:
            return self._equipment.get(str(equipment_id))

    def add_equipment(self, equipment: Equipment) -> Equipment:
        with self._data_lock:
            self._equipment[equipment.id] = equipment
        return equipment

    def list_equipment(self) -> list[Equipment]:
        with self._data_lock:
            return sorted(self._equipment.values(), key=lambda e: e.id)

    # Bookings

    def find_overlapping(
        self, equipment_id: str, start_date: date, end_date: date, exclude_statuses: Iterable[str]
    ) -> list[BookingWindow]:
        with self._data_lock:
            bookings = list(self._bookings.values())
        return _overlapping(bookings, equipment_id, start_date, end_date, exclude_statuses)

    @contextmanager
    def transaction(self, equipment_id: str) -> Iterator[_MemoryTransaction]:
        with self._lock_for(equipment_id):
            tx = _MemoryTransaction(self)
            yield tx
            with self._data_lock:
                self._bookings.update(tx.pending)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._data_lock:
            return self._bookings.get(str(booking_id))

    def list_bookings_for_user(self, user_id: str, status: Optional[str] = None) -> list[Booking]:
        with self._data_lock:
            bookings = [
                b for b in self._bookings.values()
                if b.user_id == str(user_id) and (status is None or b.status == status)
            ]
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)

    def update_status(
        self,
        booking_id: str,
        status: str,
        reason: Optional[str] = None,
        expected_not_in: Iterable[str] = (),
    ) -> Optional[Booking]:
        booking = self.get_booking(booking_id)
        if booking is None:
            return None
        with self._lock_for(booking.equipment_id):
            with self._data_lock:
                booking = self._bookings[booking.id]
                if booking.status in frozenset(expected_not_in):
                    raise Conflict(
                        f"Booking is {booking.status}",
                        details={"booking_id": booking.id, "status": booking.status, "requested": status},
                    )
                changes = {"status": status}
                if status == BookingStatus.CANCELLED:
                    changes["cancelled_at"] = datetime.now(timezone.utc)
                    changes["cancellation_reason"] = reason
                updated = replace(booking, **changes)
                self._bookings[updated.id] = updated
        logger.debug("Booking %s status set to %s", booking_id, status)
        return updated
