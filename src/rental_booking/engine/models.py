"""
Data models for the booking engine.

Uses dataclasses for structured, type-safe data representation.
Money is always Decimal; dates are calendar days (datetime.date).
"""
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


class BookingStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = frozenset({PENDING, CONFIRMED, ACTIVE, COMPLETED, CANCELLED})
    # Bookings in these states no longer hold their dates
    INACTIVE = frozenset({COMPLETED, CANCELLED})


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class Equipment:
    """Rental item as seen by the engine (read-only)."""
    id: str
    daily_rate: Decimal
    weekly_rate: Optional[Decimal] = None
    quantity_available: int = 1
    is_active: bool = True
    damage_deposit: Decimal = Decimal("0")
    name: str = ""


@dataclass(frozen=True)
class BookingWindow:
    """The date span and status of an existing booking."""
    start_date: date
    end_date: date
    status: str


@dataclass
class TraceStep:
    """A single step in the price resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class PriceBreakdown:
    """Complete result of a price calculation."""
    daily_rate: Decimal
    weekly_rate: Optional[Decimal]
    total_days: int
    subtotal: Decimal
    damage_deposit: Decimal
    tax: Decimal
    total_amount: Decimal
    trace: list[TraceStep] = field(default_factory=list, compare=False)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("trace")
        return data


@dataclass
class BookingRecord:
    """A priced booking ready to be inserted by a store."""
    user_id: str
    equipment_id: str
    start_date: date
    end_date: date
    total_days: int
    daily_rate: Decimal
    subtotal: Decimal
    damage_deposit: Decimal
    tax: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    status: str = BookingStatus.PENDING
    payment_status: str = PaymentStatus.PENDING


@dataclass
class Booking:
    """A persisted booking."""
    id: str
    user_id: str
    equipment_id: str
    start_date: date
    end_date: date
    total_days: int
    daily_rate: Decimal
    subtotal: Decimal
    damage_deposit: Decimal
    tax: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @property
    def window(self) -> BookingWindow:
        return BookingWindow(start_date=self.start_date, end_date=self.end_date, status=self.status)

    @classmethod
    def from_record(cls, booking_id: str, record: BookingRecord, created_at: datetime) -> 'Booking':
        return cls(id=booking_id, created_at=created_at, **asdict(record))
