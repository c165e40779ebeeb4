"""
Reservation engine.

A reservation locks the slot rows it needs (ascending start_time, the same
order for every caller), re-checks them under the lock, then writes the
booking, its slot links and the capacity decrements in one transaction.
Availability results are advisory; this is the only place capacity is
consumed.

Every outcome is returned as a ReservationResult. Only unexpected
persistence failures are logged.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.business import Business
from models.booking import Booking, BookingSlot, BookingSource, BookingStatus
from models.slot import Slot
from scheduling.capacity import count_overlapping_bookings
from scheduling.hours import hours_of
from scheduling.selection import required_slot_count, resolve_services, total_duration

logger = logging.getLogger(__name__)

SLOT_UNAVAILABLE_MESSAGE = "Time slot no longer available. Please select another time."
CUSTOMER_FIELDS = ("customer_name", "customer_phone", "customer_email", "notes")


class ReservationError(str, enum.Enum):
    SERVICES_MISSING = "services_missing"
    SERVICES_INVALID = "services_invalid"
    VALIDATION_FAILED = "validation_failed"
    SLOT_UNAVAILABLE = "slot_unavailable"
    INTERNAL = "internal"


@dataclass
class ReservationResult:
    booking: Booking = None
    category: ReservationError = None
    error: str = None
    details: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.booking is not None and self.category is None


def _failure(category, message, details=None) -> ReservationResult:
    return ReservationResult(category=category, error=message, details=details or {})


def _clean_customer(customer) -> dict:
    out = {}
    for key in CUSTOMER_FIELDS:
        value = (customer or {}).get(key)
        if isinstance(value, str):
            value = value.strip() or None
        out[key] = value
    return out


def _resolve(business, service_ids):
    """(services, failure) pair; checked before any transaction is opened."""
    ids = list(service_ids or [])
    if not ids:
        return None, _failure(ReservationError.SERVICES_MISSING, "Services must be provided")
    services = resolve_services(business, ids)
    if services is None:
        return None, _failure(
            ReservationError.SERVICES_INVALID, "One or more services do not belong to this business"
        )
    return services, None


def build_booking(business, services, scheduled_at, customer, source, status) -> Booking:
    booking = Booking(
        business_id=business.id,
        scheduled_at=scheduled_at,
        source=source,
        status=status,
        **_clean_customer(customer),
    )
    booking.services = list(services)
    booking.refresh_ends_at()
    return booking


def _online_rule_errors(business, booking, now) -> dict:
    errors = booking.validation_errors(now=now)
    if current_app.config.get("ENFORCE_BREAKS_AT_BOOKING", False) and booking.scheduled_at is not None:
        if hours_of(business).overlaps_break(booking.scheduled_at, booking.ends_at):
            errors.setdefault("scheduled_at", []).append("falls within a break")
    return errors


def validation_failure(errors) -> ReservationResult:
    message = "; ".join(f"{field} {msg}" for field, msgs in errors.items() for msg in msgs)
    return _failure(ReservationError.VALIDATION_FAILED, message, details=errors)


def _set_lock_timeout():
    timeout_ms = current_app.config.get("LOCK_TIMEOUT_MS")
    if timeout_ms and db.session.get_bind().dialect.name == "postgresql":
        db.session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))


def lock_slots_for(business_id: int, start: datetime, end: datetime) -> list:
    """SELECT ... FOR UPDATE on the slots starting inside [start, end), ascending."""
    return (
        Slot.query
        .filter(Slot.business_id == business_id, Slot.start_time >= start, Slot.start_time < end)
        .order_by(Slot.start_time.asc())
        .with_for_update()
        .populate_existing()
        .all()
    )


def is_unbroken_run(slots, start: datetime, count: int) -> bool:
    if len(slots) != count or slots[0].start_time != start:
        return False
    if any(slot.capacity <= 0 for slot in slots):
        return False
    return all(a.end_time == b.start_time for a, b in zip(slots, slots[1:]))


def reserve_slots(business, service_ids, start_time: datetime, customer, now: datetime = None) -> ReservationResult:
    """Slot-ledger reservation."""
    services, failure = _resolve(business, service_ids)
    if failure:
        return failure

    business_id = business.id
    minutes = total_duration(services)
    needed = required_slot_count(minutes)
    end_time = start_time + timedelta(minutes=minutes)
    now = now or business.local_now()

    try:
        _set_lock_timeout()
        slots = lock_slots_for(business_id, start_time, end_time)
        if not is_unbroken_run(slots, start_time, needed):
            db.session.rollback()
            logger.debug("Reservation lost for business %s at %s", business_id, start_time)
            return _failure(ReservationError.SLOT_UNAVAILABLE, SLOT_UNAVAILABLE_MESSAGE)

        booking = build_booking(
            business, services, start_time, customer, BookingSource.ONLINE, BookingStatus.PENDING
        )
        errors = _online_rule_errors(business, booking, now)
        if errors:
            db.session.rollback()
            return validation_failure(errors)

        db.session.add(booking)
        for slot in slots:
            booking.booking_slots.append(BookingSlot(slot=slot))
            slot.capacity -= 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Reservation failed for business %s at %s", business_id, start_time)
        return _failure(ReservationError.INTERNAL, "Could not complete the booking. Please try again.")

    return ReservationResult(booking=booking)


def _lock_business(business_id: int) -> Business:
    return (
        db.session.query(Business)
        .filter(Business.id == business_id)
        .with_for_update()
        .populate_existing()
        .one()
    )


def reserve_by_overlap(business, service_ids, start_time: datetime, customer, now: datetime = None) -> ReservationResult:
    """
    Legacy reservation: the business row is the lock, concurrent demand is
    the overlap count of active bookings.
    """
    services, failure = _resolve(business, service_ids)
    if failure:
        return failure

    business_id = business.id
    end_time = start_time + timedelta(minutes=total_duration(services))
    now = now or business.local_now()

    try:
        _set_lock_timeout()
        locked = _lock_business(business_id)
        window = hours_of(locked).window_for(start_time.date())
        if window is None or start_time < window[0] or end_time > window[1]:
            db.session.rollback()
            return _failure(ReservationError.SLOT_UNAVAILABLE, SLOT_UNAVAILABLE_MESSAGE)
        if count_overlapping_bookings(business_id, start_time, end_time) >= locked.capacity:
            db.session.rollback()
            return _failure(ReservationError.SLOT_UNAVAILABLE, SLOT_UNAVAILABLE_MESSAGE)

        booking = build_booking(
            locked, services, start_time, customer, BookingSource.ONLINE, BookingStatus.PENDING
        )
        errors = _online_rule_errors(locked, booking, now)
        if errors:
            db.session.rollback()
            return validation_failure(errors)

        db.session.add(booking)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Reservation failed for business %s at %s", business_id, start_time)
        return _failure(ReservationError.INTERNAL, "Could not complete the booking. Please try again.")

    return ReservationResult(booking=booking)


def release_slots(booking: Booking) -> int:
    """
    Give a booking's slot capacity back (capped at original_capacity) and drop
    its slot links. Runs inside the caller's transaction; does not commit.
    """
    slot_ids = [link.slot_id for link in booking.booking_slots]
    if not slot_ids:
        return 0
    slots = (
        Slot.query
        .filter(Slot.id.in_(slot_ids))
        .order_by(Slot.start_time.asc())
        .with_for_update()
        .populate_existing()
        .all()
    )
    for slot in slots:
        slot.capacity = min(slot.capacity + 1, slot.original_capacity)
    booking.booking_slots.clear()
    return len(slots)


def admit_by_overlap(business, start: datetime, end: datetime, exclude_booking_id=None) -> bool:
    locked = _lock_business(business.id)
    return count_overlapping_bookings(business.id, start, end, exclude_booking_id) < locked.capacity
