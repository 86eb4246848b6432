import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from backend.database import build_engine, init_db
from backend.main import app
from backend.routes.dependencies import get_admission_engine
from backend.services.admission import SlotAdmissionEngine
from backend.storage import BookingStorage


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f'sqlite:///{tmp_path / "bookings.db"}')
    init_db(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


@pytest.fixture
def storage(session_factory) -> BookingStorage:
    return BookingStorage(session_factory)


@pytest.fixture
def admission_engine(storage) -> SlotAdmissionEngine:
    return SlotAdmissionEngine(storage=storage)


@pytest.fixture
def client(admission_engine):
    app.dependency_overrides[get_admission_engine] = lambda: admission_engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
