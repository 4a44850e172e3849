"""
Rental Booking Package

Availability and pricing engine for an equipment rental marketplace.
Decides whether equipment can be booked for an inclusive date range,
prices the rental (daily/weekly tiers + tax + damage deposit) and
creates bookings without double-booking.
"""

__version__ = "1.0.0"
