from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from backend.database import build_engine
from backend.models.booking import Booking
from backend.models.slot import Slot
from backend.services.errors import (
    ConflictError,
    NotFoundError,
    SlotFullError,
    SlotUnavailableError,
    StorageFailure,
)
from backend.storage import BookingStorage, KeyedLock

SLOT_START = datetime(2099, 1, 5, 9, 0)
SLOT_END = datetime(2099, 1, 5, 9, 30)


def _admit(storage: BookingStorage, name: str = 'Jan', start=SLOT_START, end=SLOT_END) -> Booking:
    return storage.admit_booking(
        name=name,
        email=f'{name.lower()}@example.com',
        phone=None,
        start_time=start,
        end_time=end,
    )


def test_create_slot_rejects_duplicate_time_range(storage, session_factory) -> None:
    storage.create_slot(SLOT_START, SLOT_END, capacity=1)

    with pytest.raises(ConflictError):
        storage.create_slot(SLOT_START, SLOT_END, capacity=3)

    with session_factory() as session:
        assert session.query(Slot).count() == 1


def test_create_slot_allows_overlapping_but_distinct_ranges(storage) -> None:
    first = storage.create_slot(SLOT_START, SLOT_END)
    second = storage.create_slot(SLOT_START, SLOT_END + timedelta(minutes=30))

    assert first.id != second.id


def test_concurrent_slot_creation_inserts_one_row(storage, session_factory) -> None:
    def create():
        try:
            return storage.create_slot(SLOT_START, SLOT_END)
        except ConflictError:
            return None

    with ThreadPoolExecutor(max_workers=6) as executor:
        results = list(executor.map(lambda _: create(), range(6)))

    assert len([slot for slot in results if slot is not None]) == 1
    with session_factory() as session:
        assert session.query(Slot).count() == 1


def test_delete_slot_raises_not_found_for_unknown_id(storage) -> None:
    with pytest.raises(NotFoundError):
        storage.delete_slot(999)


def test_delete_slot_keeps_existing_bookings(storage) -> None:
    slot = storage.create_slot(SLOT_START, SLOT_END)
    booking = _admit(storage)

    storage.delete_slot(slot.id)

    assert storage.find_slot(SLOT_START, SLOT_END) is None
    assert [row.id for row in storage.list_bookings(limit=50)] == [booking.id]
    assert storage.count_bookings(SLOT_START, SLOT_END) == 1


def test_list_slots_reports_occupancy_in_start_order(storage) -> None:
    later_start = SLOT_START + timedelta(days=1)
    later_end = SLOT_END + timedelta(days=1)
    storage.create_slot(later_start, later_end, capacity=2)
    storage.create_slot(SLOT_START, SLOT_END, capacity=1)
    storage.create_slot(datetime(2000, 1, 1, 9, 0), datetime(2000, 1, 1, 9, 30))
    _admit(storage, start=later_start, end=later_end)

    slots = storage.list_slots(after=datetime(2026, 1, 1))

    assert [(slot.start_time, slot.booked, slot.capacity) for slot in slots] == [
        (SLOT_START, 0, 1),
        (later_start, 1, 2),
    ]
    assert all(slot.is_available for slot in slots)


def test_admit_booking_requires_matching_slot(storage) -> None:
    storage.create_slot(SLOT_START, SLOT_END)

    with pytest.raises(SlotUnavailableError):
        _admit(storage, end=SLOT_END + timedelta(minutes=15))

    assert storage.count_bookings(SLOT_START, SLOT_END + timedelta(minutes=15)) == 0


def test_admit_booking_rejects_when_capacity_reached(storage) -> None:
    storage.create_slot(SLOT_START, SLOT_END, capacity=2)

    _admit(storage, name='Ann')
    _admit(storage, name='Bob')
    with pytest.raises(SlotFullError):
        _admit(storage, name='Cid')

    assert storage.count_bookings(SLOT_START, SLOT_END) == 2


@pytest.mark.parametrize('capacity', [1, 3])
def test_concurrent_admission_never_overbooks(storage, capacity: int) -> None:
    storage.create_slot(SLOT_START, SLOT_END, capacity=capacity)

    def attempt(index: int) -> bool:
        try:
            _admit(storage, name=f'Client{index}')
        except SlotFullError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as executor:
        outcomes = list(executor.map(attempt, range(12)))

    assert outcomes.count(True) == capacity
    assert storage.count_bookings(SLOT_START, SLOT_END) == capacity


def test_list_bookings_orders_by_start_descending_and_limits(storage) -> None:
    for offset in range(3):
        start = SLOT_START + timedelta(days=offset)
        end = SLOT_END + timedelta(days=offset)
        storage.create_slot(start, end)
        _admit(storage, name=f'Client{offset}', start=start, end=end)

    bookings = storage.list_bookings(limit=2)

    assert [booking.name for booking in bookings] == ['Client2', 'Client1']


def test_attach_calendar_reference_updates_booking(storage, session_factory) -> None:
    storage.create_slot(SLOT_START, SLOT_END)
    booking = _admit(storage)

    storage.attach_calendar_reference(booking.id, 'evt-42')

    with session_factory() as session:
        assert session.get(Booking, booking.id).external_event_ref == 'evt-42'


def test_attach_calendar_reference_raises_for_unknown_booking(storage) -> None:
    with pytest.raises(NotFoundError):
        storage.attach_calendar_reference(404, 'evt-42')


def test_database_errors_become_storage_failures(tmp_path) -> None:
    engine = build_engine(f'sqlite:///{tmp_path / "empty.db"}')
    storage = BookingStorage(sessionmaker(bind=engine, expire_on_commit=False))

    try:
        with pytest.raises(StorageFailure) as exception_info:
            storage.list_slots(after=datetime(2026, 1, 1))
    finally:
        engine.dispose()

    assert exception_info.value.status_code == 500
    assert 'no such table' not in exception_info.value.detail


def test_keyed_lock_releases_entries_after_use() -> None:
    lock = KeyedLock()

    with lock.hold(('a', 'b')):
        assert ('a', 'b') in lock._locks

    assert lock._locks == {}


def test_create_booking_inserts_without_capacity_check(storage) -> None:
    booking = storage.create_booking('Jan', 'jan@example.com', '0470', SLOT_START, SLOT_END)

    assert booking.id is not None
    assert booking.created_at is not None
    assert storage.find_slot(SLOT_START, SLOT_END) is None
    assert storage.count_bookings(SLOT_START, SLOT_END) == 1
