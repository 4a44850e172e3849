"""
Booking Engine - availability, pricing and booking creation.

The engine holds no state of its own: every decision is a function of what
the equipment and booking stores return, so it can be exercised against an
in-memory store as readily as against the SQL store.
"""
import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from ..config.settings import get_settings, Settings
from ..errors import Conflict, InvalidInput, NotFound
from .availability import first_conflict, is_bookable, parse_date, validate_range
from .models import Booking, BookingRecord, BookingStatus, BookingWindow, Equipment, PriceBreakdown
from .pricing import price_rental

if TYPE_CHECKING:
    from ..stores.base import BookingStore, BookingTransaction, EquipmentStore

logger = logging.getLogger(__name__)

NOT_AVAILABLE_MESSAGE = "Equipment not available for selected dates"


class BookingEngine:
    """
    Core booking engine.

    Resolution order for a new booking:
    1. Validate the requested range
    2. Resolve the equipment (NotFound if missing)
    3. Inside one store transaction: re-read the equipment, re-check
       availability, price, insert
    """

    def __init__(
        self,
        equipment_store: 'EquipmentStore',
        booking_store: 'BookingStore',
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.equipment_store = equipment_store
        self.booking_store = booking_store
        self.settings = settings or get_settings()
        self.clock = clock or date.today

    def _get_equipment(self, equipment_id: str) -> Equipment:
        if not equipment_id:
            raise InvalidInput("Please provide equipment_id", details={"field": "equipment_id"})
        equipment = self.equipment_store.get_equipment(str(equipment_id))
        if equipment is None:
            raise NotFound("Equipment not found", details={"equipment_id": str(equipment_id)})
        return equipment

    def validate_request(self, start_date, end_date) -> tuple[date, date]:
        """Validate a range the way new bookings are validated (past starts rejected if configured)."""
        today = self.clock() if self.settings.reject_past_start else None
        return validate_range(start_date, end_date, today=today)

    def is_available(self, equipment_id: str, start_date, end_date) -> bool:
        """
        Check whether the equipment can be booked for [start_date, end_date].

        Inactive or out-of-stock equipment is reported unavailable, not as an error.
        """
        start, end = validate_range(start_date, end_date)
        equipment = self._get_equipment(equipment_id)
        if not is_bookable(equipment):
            return False

        excluded = self.settings.excluded_statuses
        existing = self.booking_store.find_overlapping(equipment.id, start, end, excluded)
        return first_conflict(existing, start, end, excluded) is None

    def calculate_price(self, equipment_id: str, start_date, end_date) -> PriceBreakdown:
        """Price a rental; pure with respect to the stored equipment."""
        start, end = validate_range(start_date, end_date)
        equipment = self._get_equipment(equipment_id)
        return price_rental(equipment, start, end, self.settings.tax_rate)

    def create_booking(
        self,
        user_id: str,
        equipment_id: str,
        start_date,
        end_date,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Create a pending booking.

        Availability and price are recomputed inside the store transaction;
        any earlier check the caller made is not trusted.
        """
        if not user_id:
            raise InvalidInput("Please provide user_id", details={"field": "user_id"})
        start, end = self.validate_request(start_date, end_date)
        equipment = self._get_equipment(equipment_id)

        with self.booking_store.transaction(equipment.id) as tx:
            # Re-read inside the scope: rates or active flag may have changed
            current = self._locked_equipment(tx, equipment.id)
            self._ensure_free(tx, current, start, end)

            pricing = price_rental(current, start, end, self.settings.tax_rate)
            booking = tx.insert_booking(BookingRecord(
                user_id=str(user_id),
                equipment_id=current.id,
                start_date=start,
                end_date=end,
                total_days=pricing.total_days,
                daily_rate=pricing.daily_rate,
                subtotal=pricing.subtotal,
                damage_deposit=pricing.damage_deposit,
                tax=pricing.tax,
                total_amount=pricing.total_amount,
                notes=notes or None,
            ))

        logger.info(
            "Booking %s created for equipment %s (%s to %s), total %s",
            booking.id, booking.equipment_id, start.isoformat(), end.isoformat(), booking.total_amount,
        )
        return booking

    def _locked_equipment(self, tx: 'BookingTransaction', equipment_id: str) -> Equipment:
        equipment = tx.get_equipment(equipment_id)
        if equipment is None:
            raise NotFound("Equipment not found", details={"equipment_id": str(equipment_id)})
        return equipment

    def _ensure_free(
        self,
        tx: 'BookingTransaction',
        equipment: Equipment,
        start: date,
        end: date,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        excluded = self.settings.excluded_statuses
        conflict = None
        if is_bookable(equipment):
            existing = tx.find_overlapping(equipment.id, start, end, excluded, exclude_booking_id=exclude_booking_id)
            conflict = first_conflict(existing, start, end, excluded)
            if conflict is None:
                return

        logger.warning(
            "Booking rejected for equipment %s (%s to %s): not available",
            equipment.id, start.isoformat(), end.isoformat(),
        )
        details = {"equipment_id": equipment.id, "start_date": start.isoformat(), "end_date": end.isoformat()}
        if conflict is not None:
            details["conflicting_booking"] = {
                "start_date": conflict.start_date.isoformat(),
                "end_date": conflict.end_date.isoformat(),
                "status": conflict.status,
            }
        raise Conflict(NOT_AVAILABLE_MESSAGE, details=details)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_store.get_booking(str(booking_id))
        if booking is None:
            raise NotFound("Booking not found", details={"booking_id": str(booking_id)})
        return booking

    def list_user_bookings(self, user_id: str, status: Optional[str] = None) -> list[Booking]:
        """A user's bookings, newest first."""
        if not user_id:
            raise InvalidInput("Please provide user_id", details={"field": "user_id"})
        if status:
            _check_status(status)
        return self.booking_store.list_bookings_for_user(str(user_id), status=status or None)

    def update_status(self, booking_id: str, status: str) -> Booking:
        """
        Move a booking to another status.

        Completed and cancelled bookings are final; moving one on is a Conflict.
        """
        _check_status(status)
        return self._transition(booking_id, status, None, "Booking status cannot be changed")

    def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel a booking, releasing its dates. Completed or cancelled bookings cannot be cancelled."""
        return self._transition(booking_id, BookingStatus.CANCELLED, reason, "Booking cannot be cancelled")

    def _transition(self, booking_id: str, status: str, reason: Optional[str], refusal: str) -> Booking:
        booking = self.get_booking(booking_id)
        try:
            # Guard and write happen under the store's lock
            updated = self.booking_store.update_status(
                booking.id, status, reason=reason, expected_not_in=BookingStatus.INACTIVE
            )
        except Conflict as exc:
            raise Conflict(refusal, details=exc.details) from exc
        if updated is None:
            raise NotFound("Booking not found", details={"booking_id": booking.id})
        logger.info("Booking %s moved to %s", booking.id, status)
        return updated

    def extend_booking(self, booking_id: str, new_end_date) -> Booking:
        """
        Move a booking's end date later and re-price the whole rental.

        Only the added days are checked for conflicts, under the same
        transaction that writes the new amounts.
        """
        new_end = parse_date(new_end_date, "new_end_date")
        booking = self.get_booking(booking_id)

        with self.booking_store.transaction(booking.equipment_id) as tx:
            current = tx.get_booking(booking.id)
            if current is None:
                raise NotFound("Booking not found", details={"booking_id": booking.id})
            if current.status in BookingStatus.INACTIVE:
                raise Conflict(
                    "Booking cannot be extended",
                    details={"booking_id": current.id, "status": current.status},
                )
            if new_end <= current.end_date:
                raise InvalidInput(
                    "New end date must be after current end date",
                    details={"end_date": current.end_date.isoformat(), "new_end_date": new_end.isoformat()},
                )

            equipment = self._locked_equipment(tx, current.equipment_id)
            self._ensure_free(
                tx, equipment, current.end_date + timedelta(days=1), new_end, exclude_booking_id=current.id
            )

            pricing = price_rental(equipment, current.start_date, new_end, self.settings.tax_rate)
            extended = tx.update_booking(replace(
                current,
                end_date=new_end,
                total_days=pricing.total_days,
                daily_rate=pricing.daily_rate,
                subtotal=pricing.subtotal,
                damage_deposit=pricing.damage_deposit,
                tax=pricing.tax,
                total_amount=pricing.total_amount,
            ))

        logger.info(
            "Booking %s extended from %s to %s, total %s -> %s",
            extended.id, booking.end_date.isoformat(), new_end.isoformat(),
            booking.total_amount, extended.total_amount,
        )
        return extended

    def get_availability_calendar(self, equipment_id: str, start_date, end_date) -> list[BookingWindow]:
        """Active bookings of the equipment that overlap the window, earliest first."""
        start, end = validate_range(start_date, end_date)
        equipment = self._get_equipment(equipment_id)
        windows = self.booking_store.find_overlapping(equipment.id, start, end, self.settings.excluded_statuses)
        return sorted(windows, key=lambda w: w.start_date)


def _check_status(status: str) -> None:
    if status not in BookingStatus.ALL:
        raise InvalidInput(
            f"Invalid status. Must be one of: {', '.join(sorted(BookingStatus.ALL))}",
            details={"field": "status", "value": status},
        )
