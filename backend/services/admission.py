"""Slot admission: availability, slot administration and booking admission.

The engine owns the rules; persistence, mail and calendar are collaborators
passed in at construction so they can be swapped for fakes.
"""

import logging
from datetime import datetime
from typing import Protocol

from backend.core.clock import normalize_timestamp, utcnow
from backend.models.booking import Booking
from backend.models.slot import Slot
from backend.services.errors import ValidationError
from backend.storage import BookingStorage, SlotOccupancy

logger = logging.getLogger(__name__)

DEFAULT_BOOKINGS_LIMIT = 50


class Notifier(Protocol):
    def notify(self, booking: Booking) -> bool: ...


class CalendarSync(Protocol):
    def sync_to_calendar(self, booking: Booking) -> str: ...


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class SlotAdmissionEngine:
    def __init__(
        self,
        storage: BookingStorage,
        notifier: Notifier | None = None,
        calendar: CalendarSync | None = None,
        calendar_sync_enabled: bool = False,
    ):
        self.storage = storage
        self.notifier = notifier
        self.calendar = calendar
        self.calendar_sync_enabled = calendar_sync_enabled

    @property
    def calendar_active(self) -> bool:
        return self.calendar is not None and self.calendar_sync_enabled

    @property
    def has_side_effects(self) -> bool:
        return self.calendar_active or self.notifier is not None

    def capabilities(self) -> dict[str, bool]:
        return {'email': self.notifier is not None, 'calendar': self.calendar is not None}

    def list_available_slots(self, now: datetime | None = None) -> list[SlotOccupancy]:
        now = normalize_timestamp(now) if now else utcnow()
        return [slot for slot in self.storage.list_slots(after=now) if slot.is_available]

    def create_slot(
        self,
        start_time: datetime | None,
        end_time: datetime | None,
        capacity: int | None = 1,
    ) -> Slot:
        if not start_time or not end_time:
            raise ValidationError('Start and end are required.')

        capacity = 1 if capacity is None else capacity
        if capacity < 1:
            raise ValidationError('Capacity must be at least 1.')

        start_time = normalize_timestamp(start_time)
        end_time = normalize_timestamp(end_time)
        if end_time <= start_time:
            raise ValidationError('End must be after start.')

        slot = self.storage.create_slot(start_time, end_time, capacity)
        logger.info('Slot created: %s - %s (capacity %s)', start_time.isoformat(), end_time.isoformat(), capacity)
        return slot

    def delete_slot(self, slot_id: int) -> None:
        self.storage.delete_slot(slot_id)
        logger.info('Slot deleted: %s', slot_id)

    def admit_booking(
        self,
        name: str | None,
        email: str | None,
        phone: str | None,
        start_time: datetime | None,
        end_time: datetime | None,
    ) -> Booking:
        name = _clean_text(name)
        email = _clean_text(email)
        if not name or not email or not start_time or not end_time:
            raise ValidationError()

        booking = self.storage.admit_booking(
            name=name,
            email=email,
            phone=_clean_text(phone),
            start_time=normalize_timestamp(start_time),
            end_time=normalize_timestamp(end_time),
        )
        logger.info('Booking created: %s (%s) for %s', name, email, booking.start_time.isoformat())
        return booking

    def list_bookings(self, limit: int = DEFAULT_BOOKINGS_LIMIT) -> list[Booking]:
        return self.storage.list_bookings(limit)

    def dispatch_side_effects(self, booking: Booking) -> None:
        """Mirror a committed booking to the calendar and send its emails.

        Every failure is logged and swallowed; the booking stays valid.
        """
        if self.calendar_active:
            self._sync_calendar(booking)

        if self.notifier is not None:
            try:
                sent = self.notifier.notify(booking)
            except Exception:
                logger.exception('Notification for booking %s failed', booking.id)
            else:
                if sent:
                    logger.info('Confirmation emails sent for booking %s', booking.id)

    def _sync_calendar(self, booking: Booking) -> None:
        try:
            event_ref = self.calendar.sync_to_calendar(booking)
            self.storage.attach_calendar_reference(booking.id, event_ref)
        except Exception:
            logger.exception('Calendar sync for booking %s failed', booking.id)
            return

        booking.external_event_ref = event_ref
        logger.info('Booking %s synced to calendar event %s', booking.id, event_ref)
