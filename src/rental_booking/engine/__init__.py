"""Engine subpackage - availability, pricing and booking creation."""
from .booking_engine import BookingEngine
from .models import Booking, BookingStatus, BookingWindow, Equipment, PriceBreakdown

__all__ = ['BookingEngine', 'Booking', 'BookingStatus', 'BookingWindow', 'Equipment', 'PriceBreakdown']
