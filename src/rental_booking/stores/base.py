"""
Store capabilities consumed by the booking engine.

The engine never talks to a database directly; it only needs these two
narrow contracts, so it can run against the SQL store in production and an
in-memory fake in tests.
"""
from contextlib import AbstractContextManager
from datetime import date
from typing import Iterable, Optional, Protocol

from ..engine.models import Booking, BookingRecord, BookingWindow, Equipment


class EquipmentStore(Protocol):

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        """Return the equipment, or None if the id is unknown."""
        ...

    def add_equipment(self, equipment: Equipment) -> Equipment:
        """Insert or replace an equipment record."""
        ...

    def list_equipment(self) -> list[Equipment]:
        ...


class BookingTransaction(Protocol):
    """
    Operations that run inside one isolated check-then-write scope.

    Every read goes through the scope itself; opening a second connection
    while the scope holds its lock would wait on that lock.
    """

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        ...

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    def find_overlapping(
        self,
        equipment_id: str,
        start_date: date,
        end_date: date,
        exclude_statuses: Iterable[str],
        exclude_booking_id: Optional[str] = None,
    ) -> list[BookingWindow]:
        ...

    def insert_booking(self, record: BookingRecord) -> Booking:
        ...

    def update_booking(self, booking: Booking) -> Booking:
        """Persist new dates and amounts for an existing booking."""
        ...


class BookingStore(Protocol):

    def find_overlapping(
        self, equipment_id: str, start_date: date, end_date: date, exclude_statuses: Iterable[str]
    ) -> list[BookingWindow]:
        """Bookings of the equipment overlapping [start_date, end_date], ordered by start date."""
        ...

    def transaction(self, equipment_id: str) -> AbstractContextManager[BookingTransaction]:
        """
        Open a scope in which no other transaction for the same equipment
        can write a booking. Commits on normal exit, rolls back on error.
        """
        ...

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    def list_bookings_for_user(self, user_id: str, status: Optional[str] = None) -> list[Booking]:
        """A user's bookings, newest first, optionally filtered by status."""
        ...

    def update_status(
        self,
        booking_id: str,
        status: str,
        reason: Optional[str] = None,
        expected_not_in: Iterable[str] = (),
    ) -> Optional[Booking]:
        """
        Set a booking's status; returns None if the booking does not exist.

        The current status is checked against ``expected_not_in`` under the
        same lock as the write, and Conflict is raised if it matches.
        """
        ...
