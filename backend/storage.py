import logging
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Hashable, Iterator, NamedTuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.database import SessionLocal
from backend.models.booking import Booking
from backend.models.slot import Slot
from backend.services.errors import (
    ConflictError,
    NotFoundError,
    SlotFullError,
    SlotUnavailableError,
    StorageFailure,
)

logger = logging.getLogger(__name__)


class SlotOccupancy(NamedTuple):
    """A slot together with the number of bookings held against its time range."""
    id: int
    start_time: datetime
    end_time: datetime
    capacity: int
    booked: int

    @property
    def is_available(self) -> bool:
        return self.booked < self.capacity


class KeyedLock:
    """Process-local mutex per key; entries are dropped once no thread holds or waits on them."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


def _occupancy_query(session: Session, start_time: datetime, end_time: datetime):
    return session.query(func.count(Booking.id)).filter(
        Booking.start_time == start_time,
        Booking.end_time == end_time,
    )


class BookingStorage:
    """Durable store for slots and bookings.

    Every public method runs in its own session and transaction. The session
    factory must be configured with ``expire_on_commit=False`` because the
    returned rows outlive their session.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory
        self._admission_locks = KeyedLock()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception('Storage operation %s failed', operation)
            raise StorageFailure() from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_slot(self, start_time: datetime, end_time: datetime, capacity: int = 1) -> Slot:
        with self._transaction('create_slot') as session:
            slot = Slot(start_time=start_time, end_time=end_time, capacity=capacity)
            session.add(slot)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictError() from exc
            return slot

    def delete_slot(self, slot_id: int) -> None:
        with self._transaction('delete_slot') as session:
            deleted = session.query(Slot).filter(Slot.id == slot_id).delete(synchronize_session=False)
            if deleted == 0:
                raise NotFoundError()

    def list_slots(self, after: datetime) -> list[SlotOccupancy]:
        with self._transaction('list_slots') as session:
            booked = session.query(func.count(Booking.id)).filter(
                Booking.start_time == Slot.start_time,
                Booking.end_time == Slot.end_time,
            ).correlate(Slot).scalar_subquery()

            rows = session.query(
                Slot.id,
                Slot.start_time,
                Slot.end_time,
                Slot.capacity,
                booked.label('booked'),
            ).filter(
                Slot.end_time > after,
            ).order_by(Slot.start_time.asc()).all()

            return [
                SlotOccupancy(
                    id=row.id,
                    start_time=row.start_time,
                    end_time=row.end_time,
                    capacity=row.capacity or 1,
                    booked=row.booked or 0,
                )
                for row in rows
            ]

    def find_slot(self, start_time: datetime, end_time: datetime) -> Slot | None:
        with self._transaction('find_slot') as session:
            return session.query(Slot).filter(
                Slot.start_time == start_time,
                Slot.end_time == end_time,
            ).first()

    def count_bookings(self, start_time: datetime, end_time: datetime) -> int:
        with self._transaction('count_bookings') as session:
            return _occupancy_query(session, start_time, end_time).scalar() or 0

    def create_booking(
        self,
        name: str,
        email: str,
        phone: str | None,
        start_time: datetime,
        end_time: datetime,
    ) -> Booking:
        with self._transaction('create_booking') as session:
            booking = Booking(name=name, email=email, phone=phone, start_time=start_time, end_time=end_time)
            session.add(booking)
            session.flush()
            return booking

    def admit_booking(
        self,
        name: str,
        email: str,
        phone: str | None,
        start_time: datetime,
        end_time: datetime,
    ) -> Booking:
        """Insert a booking only if its slot exists and still has room.

        The occupancy check and the insert share one transaction, serialized per
        (start, end) by an in-process lock and, on backends that support it, a
        row lock on the slot.
        """
        with self._admission_locks.hold((start_time, end_time)):
            with self._transaction('admit_booking') as session:
                slot = session.query(Slot).filter(
                    Slot.start_time == start_time,
                    Slot.end_time == end_time,
                ).with_for_update().first()

                if slot is None:
                    raise SlotUnavailableError()

                booked = _occupancy_query(session, start_time, end_time).scalar() or 0
                if booked >= (slot.capacity or 1):
                    raise SlotFullError()

                booking = Booking(name=name, email=email, phone=phone, start_time=start_time, end_time=end_time)
                session.add(booking)
                session.flush()
                return booking

    def list_bookings(self, limit: int) -> list[Booking]:
        with self._transaction('list_bookings') as session:
            return session.query(Booking).order_by(Booking.start_time.desc()).limit(limit).all()

    def attach_calendar_reference(self, booking_id: int, reference: str) -> None:
        with self._transaction('attach_calendar_reference') as session:
            updated = session.query(Booking).filter(Booking.id == booking_id).update(
                {Booking.external_event_ref: reference},
                synchronize_session=False,
            )
            if updated == 0:
                raise NotFoundError('Booking not found.')
