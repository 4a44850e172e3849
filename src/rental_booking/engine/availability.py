"""
Date range helpers for availability decisions.

A booking date stands for the whole day, so ranges are closed on both ends:
a booking ending on day D conflicts with one starting on day D.
"""
from datetime import date
from typing import Iterable, Optional, Union

from ..errors import InvalidInput
from .models import BookingWindow, Equipment


def ranges_overlap(start1: date, end1: date, start2: date, end2: date) -> bool:
    """Inclusive interval overlap."""
    return start1 <= end2 and start2 <= end1


def parse_date(value: Union[date, str, None], field_name: str) -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if value is None or value == "":
        raise InvalidInput(f"Please provide {field_name}", details={"field": field_name})
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidInput(
            f"{field_name} must be a date in YYYY-MM-DD format",
            details={"field": field_name, "value": str(value)},
        )


def validate_range(start_date, end_date, today: Optional[date] = None) -> tuple[date, date]:
    """
    Parse and check a requested range.

    When ``today`` is given, a start date before it is rejected.
    """
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")

    if end < start:
        raise InvalidInput(
            "End date must be after start date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    if today is not None and start < today:
        raise InvalidInput(
            "Start date cannot be in the past",
            details={"start_date": start.isoformat(), "today": today.isoformat()},
        )
    return start, end


def is_bookable(equipment: Equipment) -> bool:
    return bool(equipment.is_active) and equipment.quantity_available > 0


def first_conflict(
    existing: Iterable[BookingWindow],
    start_date: date,
    end_date: date,
    excluded_statuses: frozenset,
) -> Optional[BookingWindow]:
    """Return the first active booking overlapping the request, if any."""
    for window in existing:
        if window.status in excluded_statuses:
            continue
        if ranges_overlap(window.start_date, window.end_date, start_date, end_date):
            return window
    return None
