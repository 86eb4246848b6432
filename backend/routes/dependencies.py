from fastapi import HTTPException, Request, status

from backend.services.admission import SlotAdmissionEngine
from backend.services.errors import BookingError


def get_admission_engine(request: Request) -> SlotAdmissionEngine:
    engine = getattr(request.app.state, 'admission_engine', None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Booking service is not ready.',
        )
    return engine


def to_http_exception(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
