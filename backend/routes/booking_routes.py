from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, field_serializer, field_validator

from backend.core import config
from backend.core.clock import isoformat_utc
from backend.routes.dependencies import get_admission_engine, to_http_exception
from backend.services.admission import SlotAdmissionEngine
from backend.services.errors import BookingError

router = APIRouter(tags=['bookings'])


class CreateBookingRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    start: datetime | None = None
    end: datetime | None = None

    @field_validator('start', 'end', mode='before')
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BookingCreatedResponse(BaseModel):
    id: int
    message: str


class BookingResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    start_time: datetime
    end_time: datetime
    created_at: datetime | None = None
    external_event_ref: str | None = None

    class Config:
        from_attributes = True

    @field_serializer('start_time', 'end_time', 'created_at')
    def serialize_utc(self, value: datetime | None) -> str | None:
        return isoformat_utc(value) if value else None


@router.post('/bookings', response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    engine: SlotAdmissionEngine = Depends(get_admission_engine),
):
    try:
        booking = engine.admit_booking(
            name=data.name,
            email=data.email,
            phone=data.phone,
            start_time=data.start,
            end_time=data.end,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    if engine.has_side_effects:
        background_tasks.add_task(engine.dispatch_side_effects, booking)

    return BookingCreatedResponse(id=booking.id, message='Booking created.')


@router.get('/admin/bookings', response_model=list[BookingResponse])
def list_bookings(engine: SlotAdmissionEngine = Depends(get_admission_engine)):
    try:
        return engine.list_bookings(limit=config.ADMIN_BOOKINGS_LIMIT)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
