"""
Time-range overlap accounting.

A booking occupies [scheduled_at, ends_at). Two ranges intersect when
a.start < b.end and b.start < a.end (half-open, touching ranges do not).
"""
from datetime import timedelta

from sqlalchemy import func

from models import db
from models.booking import ACTIVE_STATUSES, Booking


def count_overlapping_bookings(business_id: int, start, end, exclude_booking_id=None) -> int:
    """Active (confirmed / in-progress) bookings intersecting [start, end)."""
    q = db.session.query(func.count(Booking.id)).filter(
        Booking.business_id == business_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.scheduled_at < end,
        Booking.ends_at > start,
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.scalar()


def active_bookings_between(business_id: int, start, end) -> list:
    return (
        Booking.query
        .filter(
            Booking.business_id == business_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.scheduled_at < end,
            Booking.ends_at > start,
        )
        .all()
    )


def overlapping_count(bookings, start, end) -> int:
    """In-memory twin of count_overlapping_bookings for a prefetched day."""
    return sum(1 for b in bookings if b.scheduled_at < end and start < b.ends_at)


def current_capacity_usage(business, now=None) -> int:
    now = now or business.local_now()
    # a zero-width window never intersects, so probe the instant as [now, now + 1s)
    return count_overlapping_bookings(business.id, now, now + timedelta(seconds=1))


def capacity_percentage(business, now=None) -> int:
    if not business.capacity:
        return 0
    return round(current_capacity_usage(business, now) / business.capacity * 100)
