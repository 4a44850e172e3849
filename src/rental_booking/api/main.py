import logging
from decimal import Decimal
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rental_booking.engine import BookingEngine
from rental_booking.errors import BookingError
from rental_booking.api.state import get_engine

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Rental Booking API",
    description="Availability, pricing and booking for rental equipment",
    version="1.0.0"
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


# Dates arrive as strings and are validated by the engine, so bad input
# comes back as the same 400 body as every other InvalidInput.
class RangeRequest(BaseModel):
    equipment_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class CreateBookingRequest(RangeRequest):
    user_id: Optional[str] = None
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class StatusRequest(BaseModel):
    status: Optional[str] = None


class ExtendRequest(BaseModel):
    new_end_date: Optional[str] = None


class PriceResponse(BaseModel):
    daily_rate: Decimal
    weekly_rate: Optional[Decimal]
    total_days: int
    subtotal: Decimal
    damage_deposit: Decimal
    tax: Decimal
    total_amount: Decimal
    trace: list[str] = []


def _price_payload(pricing) -> dict:
    payload = pricing.to_dict()
    payload["trace"] = pricing.get_trace_text().splitlines()
    return PriceResponse(**payload).model_dump()


@app.get("/")
async def root():
    return {"status": "online", "message": "Rental Booking API Active"}


@app.post("/api/bookings/check-availability")
def check_availability(req: RangeRequest, engine: BookingEngine = Depends(get_engine)):
    start, end = engine.validate_request(req.start_date, req.end_date)
    if engine.is_available(req.equipment_id, start, end):
        pricing = engine.calculate_price(req.equipment_id, start, end)
        return jsonable_encoder({
            "success": True,
            "available": True,
            "message": "Equipment is available",
            "pricing": _price_payload(pricing),
        })
    return {
        "success": True,
        "available": False,
        "message": "Equipment is not available for selected dates",
    }


@app.post("/api/bookings/price")
def calculate_price(req: RangeRequest, engine: BookingEngine = Depends(get_engine)):
    pricing = engine.calculate_price(req.equipment_id, req.start_date, req.end_date)
    return jsonable_encoder({"success": True, "pricing": _price_payload(pricing)})


@app.post("/api/bookings", status_code=201)
def create_booking(req: CreateBookingRequest, engine: BookingEngine = Depends(get_engine)):
    booking = engine.create_booking(
        user_id=req.user_id,
        equipment_id=req.equipment_id,
        start_date=req.start_date,
        end_date=req.end_date,
        notes=req.notes,
    )
    return jsonable_encoder({"success": True, "message": "Booking created successfully", "data": booking})


@app.get("/api/bookings/{booking_id}")
def get_booking(booking_id: str, engine: BookingEngine = Depends(get_engine)):
    return jsonable_encoder({"success": True, "data": engine.get_booking(booking_id)})


@app.post("/api/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: str, req: Optional[CancelRequest] = None, engine: BookingEngine = Depends(get_engine)):
    booking = engine.cancel_booking(booking_id, reason=req.reason if req else None)
    return jsonable_encoder({"success": True, "message": "Booking cancelled", "data": booking})


@app.get("/api/equipment/{equipment_id}/calendar")
def availability_calendar(
    equipment_id: str,
    start_date: str,
    end_date: str,
    engine: BookingEngine = Depends(get_engine),
):
    windows = engine.get_availability_calendar(equipment_id, start_date, end_date)
    return jsonable_encoder({"success": True, "data": windows})


@app.patch("/api/bookings/{booking_id}/status")
def update_booking_status(booking_id: str, req: StatusRequest, engine: BookingEngine = Depends(get_engine)):
    booking = engine.update_status(booking_id, req.status)
    return jsonable_encoder({"success": True, "message": "Booking status updated", "data": booking})


@app.patch("/api/bookings/{booking_id}/extend")
def extend_booking(booking_id: str, req: ExtendRequest, engine: BookingEngine = Depends(get_engine)):
    before = engine.get_booking(booking_id)
    booking = engine.extend_booking(booking_id, req.new_end_date)
    return jsonable_encoder({
        "success": True,
        "message": "Booking extended successfully",
        "data": booking,
        "changes": {
            "old_end_date": before.end_date,
            "new_end_date": booking.end_date,
            "old_total_days": before.total_days,
            "new_total_days": booking.total_days,
            "old_total_amount": before.total_amount,
            "new_total_amount": booking.total_amount,
        },
    })


@app.get("/api/users/{user_id}/bookings")
def list_user_bookings(user_id: str, status: Optional[str] = None, engine: BookingEngine = Depends(get_engine)):
    return jsonable_encoder({"success": True, "data": engine.list_user_bookings(user_id, status=status)})
