import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.clock import isoformat_utc, utcnow
from backend.database import SessionLocal, init_db
from backend.routes import booking_routes, slot_routes
from backend.routes.dependencies import get_admission_engine
from backend.services.admission import SlotAdmissionEngine
from backend.services.google_calendar import build_calendar_sync
from backend.services.mailer import build_notifier
from backend.storage import BookingStorage

app = FastAPI(title='Consultation Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

ENDPOINTS = [
    'GET /health',
    'GET /api/slots',
    'GET /api/slots/admin',
    'POST /api/bookings',
    'GET /api/admin/bookings',
    'POST /api/admin/slots',
    'DELETE /api/admin/slots/{id}',
]


def build_admission_engine() -> SlotAdmissionEngine:
    return SlotAdmissionEngine(
        storage=BookingStorage(SessionLocal),
        notifier=build_notifier(),
        calendar=build_calendar_sync(),
        calendar_sync_enabled=config.SYNC_TO_GOOGLE,
    )


@app.on_event('startup')
def initialize_services() -> None:
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')
        raise
    logger.info('Database initialized')

    app.state.admission_engine = build_admission_engine()


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': jsonable_encoder(exc.errors())},
    )


@app.get('/health')
def health(engine: SlotAdmissionEngine = Depends(get_admission_engine)):
    return {
        'status': 'OK',
        'timestamp': isoformat_utc(utcnow()),
        **engine.capabilities(),
    }


app.include_router(slot_routes.router, prefix='/api')
app.include_router(booking_routes.router, prefix='/api')


@app.api_route('/api/{path:path}', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'], include_in_schema=False)
def api_not_found(path: str):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={'detail': 'API endpoint not found'})


@app.get('/{path:path}', include_in_schema=False)
def root(path: str):
    return {'message': 'Consultation Booking API', 'endpoints': ENDPOINTS}
