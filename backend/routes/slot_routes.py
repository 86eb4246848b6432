from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_serializer, field_validator

from backend.core.clock import isoformat_utc
from backend.routes.dependencies import get_admission_engine, to_http_exception
from backend.services.admission import SlotAdmissionEngine
from backend.services.errors import BookingError
from backend.storage import SlotOccupancy

router = APIRouter(tags=['slots'])


class CreateSlotRequest(BaseModel):
    start: datetime | None = None
    end: datetime | None = None
    capacity: int | None = 1

    @field_validator('start', 'end', mode='before')
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SlotResponse(BaseModel):
    id: int
    start: datetime
    end: datetime

    @field_serializer('start', 'end')
    def serialize_utc(self, value: datetime) -> str:
        return isoformat_utc(value)


class SlotCreatedResponse(BaseModel):
    id: int
    message: str


class MessageResponse(BaseModel):
    message: str


def to_slot_response(slot: SlotOccupancy) -> SlotResponse:
    return SlotResponse(id=slot.id, start=slot.start_time, end=slot.end_time)


@router.get('/slots', response_model=list[SlotResponse])
def list_available_slots(engine: SlotAdmissionEngine = Depends(get_admission_engine)):
    try:
        return [to_slot_response(slot) for slot in engine.list_available_slots()]
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/slots/admin', response_model=list[SlotResponse])
def list_admin_slots(engine: SlotAdmissionEngine = Depends(get_admission_engine)):
    try:
        return [to_slot_response(slot) for slot in engine.list_available_slots()]
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/admin/slots', response_model=SlotCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_slot(data: CreateSlotRequest, engine: SlotAdmissionEngine = Depends(get_admission_engine)):
    try:
        slot = engine.create_slot(data.start, data.end, data.capacity)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return SlotCreatedResponse(id=slot.id, message='Slot created.')


@router.delete('/admin/slots/{slot_id}', response_model=MessageResponse)
def delete_slot(slot_id: int, engine: SlotAdmissionEngine = Depends(get_admission_engine)):
    try:
        engine.delete_slot(slot_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return MessageResponse(message='Slot deleted.')
