"""
Entry points used by routes, jobs and CLI.

Each business runs under one CapacityStrategy (Business.capacity_mode):
the slot ledger, or legacy overlap counting. A booking stays with the
strategy it was created under for its whole life.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.business import CapacityMode
from models.booking import Booking, BookingSource, BookingStatus
from scheduling import availability, reservation
from scheduling.reservation import ReservationError, ReservationResult
from scheduling.selection import resolve_services, total_duration

logger = logging.getLogger(__name__)


class CapacityStrategy:
    mode = None

    def available_start_times(self, business, services, day, now=None):
        raise NotImplementedError

    def reserve(self, business, service_ids, start_time, customer, now=None) -> ReservationResult:
        raise NotImplementedError

    def admit_walk_in(self, business, start, end, exclude_booking_id=None) -> bool:
        raise NotImplementedError


class SlotCapacity(CapacityStrategy):
    mode = CapacityMode.SLOTS

    def available_start_times(self, business, services, day, now=None):
        return availability.slot_available_start_times(business, services, day, now)

    def reserve(self, business, service_ids, start_time, customer, now=None):
        return reservation.reserve_slots(business, service_ids, start_time, customer, now)

    def admit_walk_in(self, business, start, end, exclude_booking_id=None):
        # walk-ins sit outside the slot ledger
        return True


class OverlapCapacity(CapacityStrategy):
    mode = CapacityMode.OVERLAP

    def available_start_times(self, business, services, day, now=None):
        return availability.overlap_available_start_times(business, services, day, now)

    def reserve(self, business, service_ids, start_time, customer, now=None):
        return reservation.reserve_by_overlap(business, service_ids, start_time, customer, now)

    def admit_walk_in(self, business, start, end, exclude_booking_id=None):
        return reservation.admit_by_overlap(business, start, end, exclude_booking_id)


STRATEGIES = {
    CapacityMode.SLOTS: SlotCapacity(),
    CapacityMode.OVERLAP: OverlapCapacity(),
}


def strategy_for(business) -> CapacityStrategy:
    return STRATEGIES[business.capacity_mode or CapacityMode.SLOTS]


class InvalidServices(ValueError):
    pass


def query_availability(business, service_ids, day, now=None) -> list:
    """
    Ordered start times for the requested services on `day`. Empty when no
    services are given, the day is closed or no slots exist yet. Raises
    InvalidServices when an id is not an active service of this business.
    """
    if not service_ids:
        return []
    services = resolve_services(business, service_ids)
    if services is None:
        raise InvalidServices("One or more services do not belong to this business")
    return strategy_for(business).available_start_times(business, services, day, now)


def create_booking(business, service_ids, start_time, customer, now=None) -> ReservationResult:
    return strategy_for(business).reserve(business, service_ids, start_time, customer, now)


def create_walk_in(business, service_ids, customer, scheduled_at=None, now=None) -> ReservationResult:
    """Staff-entered booking: in progress immediately, no future-time rule."""
    if not service_ids:
        return ReservationResult(category=ReservationError.SERVICES_MISSING, error="Services must be provided")
    services = resolve_services(business, service_ids, active_only=False)
    if services is None:
        return ReservationResult(
            category=ReservationError.SERVICES_INVALID,
            error="One or more services do not belong to this business",
        )

    scheduled_at = scheduled_at or now or business.local_now()
    booking = reservation.build_booking(
        business, services, scheduled_at, customer, BookingSource.WALK_IN, BookingStatus.IN_PROGRESS
    )
    booking.started_at = scheduled_at
    errors = booking.validation_errors()
    if errors:
        return reservation.validation_failure(errors)

    business_id = business.id
    try:
        end = scheduled_at + timedelta(minutes=total_duration(services))
        if not strategy_for(business).admit_walk_in(business, scheduled_at, end):
            db.session.rollback()
            return ReservationResult(
                category=ReservationError.SLOT_UNAVAILABLE, error="Business is at full capacity for that time."
            )
        db.session.add(booking)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Walk-in failed for business %s", business_id)
        return ReservationResult(category=ReservationError.INTERNAL, error="Could not save the walk-in. Please try again.")
    return ReservationResult(booking=booking)


def update_booking(booking: Booking, fields: dict, service_ids=None) -> dict:
    """
    Staff edit of customer fields / notes / time / services. Returns field
    errors ({} on success, committed). Slot links are not moved; only
    overlap-mode businesses re-check capacity here.
    """
    business = booking.business
    # invalid edits must not reach the database before validation
    with db.session.no_autoflush:
        services = None
        if service_ids is not None:
            services = resolve_services(business, service_ids, active_only=False)
            if services is None:
                db.session.rollback()
                return {"services": ["do not belong to this business"]}

        for key in reservation.CUSTOMER_FIELDS:
            if key in fields:
                value = fields[key]
                if isinstance(value, str):
                    value = value.strip() or None
                setattr(booking, key, value)
        if fields.get("scheduled_at") is not None:
            booking.scheduled_at = fields["scheduled_at"]
        if services is not None:
            booking.services = services
        booking.refresh_ends_at()

        errors = booking.validation_errors()
    if errors:
        db.session.rollback()
        return errors

    if business.capacity_mode == CapacityMode.OVERLAP and booking.status in (
        BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS
    ):
        if not strategy_for(business).admit_walk_in(
            business, booking.scheduled_at, booking.ends_at, exclude_booking_id=booking.id
        ):
            db.session.rollback()
            return {"scheduled_at": ["business is at full capacity for that time"]}

    db.session.commit()
    return {}


class TransitionNotAllowed(Exception):
    pass


def transition(booking: Booking, status: BookingStatus, now: datetime = None) -> Booking:
    """Move a booking along the status table; cancelling gives slot capacity back."""
    if not booking.can_transition_to(status):
        raise TransitionNotAllowed(
            f"Cannot change booking from {booking.status.value} to {status.value}"
        )
    now = now or booking.business.local_now()

    if status == BookingStatus.CANCELLED:
        # follows the booking's own ledger: no-op for bookings without slot links
        reservation.release_slots(booking)
    elif status == BookingStatus.IN_PROGRESS:
        booking.started_at = now
    elif status == BookingStatus.COMPLETED:
        booking.completed_at = now

    booking.status = status
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return booking
