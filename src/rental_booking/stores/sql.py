# rental_booking/stores/sql.py
import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Iterator, Optional

from sqlalchemy import DateTime, event
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, Field, Session, create_engine, select

from ..errors import Conflict
from ..engine.models import Booking, BookingRecord, BookingStatus, BookingWindow, Equipment

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for exclusion_violation
EXCLUSION_VIOLATION = "23P01"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without an offset; they were written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------
# Tables
# ---------------------------

class EquipmentRow(SQLModel, table=True):
    __tablename__ = "equipment"

    id: str = Field(primary_key=True)
    name: str = Field(default="", index=True)

    daily_rate: Decimal = Field(max_digits=10, decimal_places=2, nullable=False)
    weekly_rate: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    damage_deposit: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2, nullable=False)

    quantity_available: int = Field(default=1, ge=0, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

    def to_equipment(self) -> Equipment:
        return Equipment(
            id=self.id,
            name=self.name,
            daily_rate=Decimal(self.daily_rate),
            weekly_rate=Decimal(self.weekly_rate) if self.weekly_rate is not None else None,
            damage_deposit=Decimal(self.damage_deposit),
            quantity_available=self.quantity_available,
            is_active=self.is_active,
        )


class BookingRow(SQLModel, table=True):
    __tablename__ = "bookings"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)

    user_id: str = Field(nullable=False, index=True)
    equipment_id: str = Field(foreign_key="equipment.id", nullable=False, index=True)

    start_date: date = Field(nullable=False, index=True)
    end_date: date = Field(nullable=False, index=True)
    total_days: int = Field(ge=1, nullable=False)

    daily_rate: Decimal = Field(max_digits=10, decimal_places=2, nullable=False)
    subtotal: Decimal = Field(max_digits=12, decimal_places=2, nullable=False)
    damage_deposit: Decimal = Field(max_digits=10, decimal_places=2, nullable=False)
    tax: Decimal = Field(max_digits=12, decimal_places=2, nullable=False)
    total_amount: Decimal = Field(max_digits=12, decimal_places=2, nullable=False)

    status: str = Field(default=BookingStatus.PENDING, nullable=False, index=True)
    payment_status: str = Field(default="pending", nullable=False)
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False)
    cancelled_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    cancellation_reason: Optional[str] = None

    def to_booking(self) -> Booking:
        return Booking(
            id=self.id,
            user_id=self.user_id,
            equipment_id=self.equipment_id,
            start_date=self.start_date,
            end_date=self.end_date,
            total_days=self.total_days,
            daily_rate=Decimal(self.daily_rate),
            subtotal=Decimal(self.subtotal),
            damage_deposit=Decimal(self.damage_deposit),
            tax=Decimal(self.tax),
            total_amount=Decimal(self.total_amount),
            status=self.status,
            payment_status=self.payment_status,
            notes=self.notes,
            created_at=_as_utc(self.created_at),
            cancelled_at=_as_utc(self.cancelled_at),
            cancellation_reason=self.cancellation_reason,
        )


def _overlap_query(
    equipment_id: str,
    start_date: date,
    end_date: date,
    exclude_statuses: Iterable[str],
    exclude_booking_id: Optional[str] = None,
):
    query = (
        select(BookingRow)
        .where(BookingRow.equipment_id == equipment_id)
        .where(BookingRow.status.not_in(list(exclude_statuses)))
        .where(BookingRow.start_date <= end_date)
        .where(BookingRow.end_date >= start_date)
        .order_by(BookingRow.start_date)
    )
    if exclude_booking_id is not None:
        query = query.where(BookingRow.id != exclude_booking_id)
    return query


# ---------------------------------------------------------------------
# Engine factory
# ---------------------------------------------------------------------
def make_engine(db_url: str, busy_timeout_ms: int = 5000):
    """
    Create a SQLAlchemy engine for the store.

    - For SQLite: WAL, busy_timeout and foreign_keys are set on every new
      connection, and every transaction opens with BEGIN IMMEDIATE so
      concurrent writers queue on the database lock instead of both
      reading "available".
    - For other backends the row lock taken in SqlStore.transaction applies.
    """
    is_sqlite = db_url.startswith("sqlite")
    if db_url.startswith("sqlite:///") and ":memory:" not in db_url:
        Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # Hand transaction control to SQLAlchemy (see the "begin" hook)
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class _SqlTransaction:
    """Reads and writes bound to the session that holds the transaction's lock."""

    def __init__(self, session: Session):
        self.session = session

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        row = self.session.get(EquipmentRow, str(equipment_id))
        return row.to_equipment() if row else None

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        row = self._booking_row(booking_id)
        return row.to_booking() if row else None

    def _booking_row(self, booking_id: str) -> Optional[BookingRow]:
        return self.session.exec(
            select(BookingRow).where(BookingRow.id == str(booking_id)).with_for_update()
        ).first()

    def find_overlapping(
        self,
        equipment_id: str,
        start_date: date,
        end_date: date,
        exclude_statuses: Iterable[str],
        exclude_booking_id: Optional[str] = None,
    ) -> list[BookingWindow]:
        rows = self.session.exec(
            _overlap_query(equipment_id, start_date, end_date, exclude_statuses, exclude_booking_id)
        ).all()
        return [BookingWindow(r.start_date, r.end_date, r.status) for r in rows]

    def insert_booking(self, record: BookingRecord) -> Booking:
        row = BookingRow(
            user_id=record.user_id,
            equipment_id=record.equipment_id,
            start_date=record.start_date,
            end_date=record.end_date,
            total_days=record.total_days,
            daily_rate=record.daily_rate,
            subtotal=record.subtotal,
            damage_deposit=record.damage_deposit,
            tax=record.tax,
            total_amount=record.total_amount,
            status=record.status,
            payment_status=record.payment_status,
            notes=record.notes,
        )
        self.session.add(row)
        self.session.flush()
        return row.to_booking()

    def update_booking(self, booking: Booking) -> Booking:
        row = self._booking_row(booking.id)
        if row is None:
            raise LookupError(f"booking {booking.id} vanished inside its transaction")
        row.start_date = booking.start_date
        row.end_date = booking.end_date
        row.total_days = booking.total_days
        row.daily_rate = booking.daily_rate
        row.subtotal = booking.subtotal
        row.damage_deposit = booking.damage_deposit
        row.tax = booking.tax
        row.total_amount = booking.total_amount
        self.session.add(row)
        self.session.flush()
        return row.to_booking()


def _is_exclusion_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    # psycopg 3 exposes sqlstate, psycopg2 pgcode
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == EXCLUSION_VIOLATION


class SqlStore:
    """EquipmentStore + BookingStore backed by SQLModel tables."""

    def __init__(self, db_url: str, busy_timeout_ms: int = 5000, create_tables: bool = True):
        self.engine = make_engine(db_url, busy_timeout_ms=busy_timeout_ms)
        if create_tables:
            self.create_db_and_tables()

    def create_db_and_tables(self) -> None:
        """Create all tables defined in SQLModel metadata (dev / first run)."""
        SQLModel.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    # Equipment

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        with Session(self.engine) as session:
            row = session.get(EquipmentRow, str(equipment_id))
            return row.to_equipment() if row else None

    def add_equipment(self, equipment: Equipment) -> Equipment:
        with Session(self.engine) as session:
            session.merge(EquipmentRow(
                id=equipment.id,
                name=equipment.name,
                daily_rate=equipment.daily_rate,
                weekly_rate=equipment.weekly_rate,
                damage_deposit=equipment.damage_deposit,
                quantity_available=equipment.quantity_available,
                is_active=equipment.is_active,
            ))
            session.commit()
        return equipment

    def list_equipment(self) -> list[Equipment]:
        with Session(self.engine) as session:
            rows = session.exec(select(EquipmentRow).order_by(EquipmentRow.id)).all()
            return [r.to_equipment() for r in rows]

    # Bookings

    def find_overlapping(
        self, equipment_id: str, start_date: date, end_date: date, exclude_statuses: Iterable[str]
    ) -> list[BookingWindow]:
        with Session(self.engine) as session:
            return _SqlTransaction(session).find_overlapping(equipment_id, start_date, end_date, exclude_statuses)

    @contextmanager
    def transaction(self, equipment_id: str) -> Iterator[_SqlTransaction]:
        with Session(self.engine) as session:
            try:
                with session.begin():
                    # Row lock on the equipment serialises bookings per item (no-op on SQLite)
                    session.exec(
                        select(EquipmentRow).where(EquipmentRow.id == str(equipment_id)).with_for_update()
                    ).first()
                    yield _SqlTransaction(session)
            except IntegrityError as exc:
                if not _is_exclusion_violation(exc):
                    raise
                # Raised by an exclusion constraint over (equipment_id, daterange) where one exists
                logger.warning("Booking write rejected by exclusion constraint: %s", exc.orig)
                raise Conflict(
                    "Equipment not available for selected dates",
                    details={"equipment_id": str(equipment_id)},
                ) from exc

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with Session(self.engine) as session:
            row = session.get(BookingRow, str(booking_id))
            return row.to_booking() if row else None

    def list_bookings_for_user(self, user_id: str, status: Optional[str] = None) -> list[Booking]:
        query = select(BookingRow).where(BookingRow.user_id == str(user_id))
        if status is not None:
            query = query.where(BookingRow.status == status)
        with Session(self.engine) as session:
            rows = session.exec(query.order_by(BookingRow.created_at.desc())).all()
            return [r.to_booking() for r in rows]

    def update_status(
        self,
        booking_id: str,
        status: str,
        reason: Optional[str] = None,
        expected_not_in: Iterable[str] = (),
    ) -> Optional[Booking]:
        with Session(self.engine) as session:
            with session.begin():
                row = _SqlTransaction(session)._booking_row(booking_id)
                if row is None:
                    return None
                if row.status in frozenset(expected_not_in):
                    raise Conflict(
                        f"Booking is {row.status}",
                        details={"booking_id": row.id, "status": row.status, "requested": status},
                    )
                row.status = status
                if status == BookingStatus.CANCELLED:
                    row.cancelled_at = utcnow()
                    row.cancellation_reason = reason
                session.flush()
                return row.to_booking()
