import enum
import re
from datetime import datetime, timedelta

from flask import current_app
from models.db import db

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DEFAULT_PHONE_PATTERN = r"^0\d{9}$"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class BookingSource(str, enum.Enum):
    ONLINE = "online"
    WALK_IN = "walk_in"


# statuses that hold capacity in overlap accounting
ACTIVE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
    },
    BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.NO_SHOW: set(),
}


def _enum_column(enum_cls, default):
    return db.Column(
        db.Enum(enum_cls, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=default,
    )


booking_services = db.Table(
    "booking_services",
    db.Column("id", db.Integer, primary_key=True),
    db.Column("booking_id", db.Integer, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True),
    db.Column("service_id", db.Integer, db.ForeignKey("services.id"), nullable=False, index=True),
    db.Column("created_at", db.DateTime, default=datetime.utcnow, nullable=False),
    db.UniqueConstraint("booking_id", "service_id", name="uq_booking_service"),
)


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(
        db.Integer, db.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=False, index=True)
    customer_email = db.Column(db.String(255), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    scheduled_at = db.Column(db.DateTime, nullable=False)
    # scheduled_at + summed service durations, kept in sync on every write
    ends_at = db.Column(db.DateTime, nullable=False)

    status = _enum_column(BookingStatus, BookingStatus.PENDING)
    source = _enum_column(BookingSource, BookingSource.ONLINE)

    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    business = db.relationship("Business", back_populates="bookings")
    services = db.relationship("Service", secondary=booking_services, order_by="Service.position")
    booking_slots = db.relationship("BookingSlot", back_populates="booking", cascade="all, delete-orphan")
    slots = db.relationship(
        "Slot", secondary="booking_slots", order_by="Slot.start_time", viewonly=True
    )

    __table_args__ = (
        db.Index("ix_bookings_business_scheduled", "business_id", "scheduled_at"),
        db.Index("ix_bookings_business_status", "business_id", "status"),
    )

    @property
    def total_duration_minutes(self) -> int:
        return sum(s.duration_minutes for s in self.services)

    def refresh_ends_at(self):
        if self.scheduled_at is not None:
            self.ends_at = self.scheduled_at + timedelta(minutes=self.total_duration_minutes)

    def can_transition_to(self, status: BookingStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def validation_errors(self, now=None) -> dict:
        """Field-level business rule errors; empty dict when valid."""
        errors = {}

        def add(field, message):
            errors.setdefault(field, []).append(message)

        def text(field):
            value = getattr(self, field)
            if value is None or isinstance(value, str):
                return (value or "").strip()
            add(field, "must be a string")
            return None

        name = text("customer_name")
        if name == "":
            add("customer_name", "can't be blank")
        elif name and len(name) > 100:
            add("customer_name", "is too long (maximum is 100 characters)")

        phone = text("customer_phone")
        pattern = current_app.config.get("CUSTOMER_PHONE_PATTERN", DEFAULT_PHONE_PATTERN)
        if phone == "":
            add("customer_phone", "can't be blank")
        elif phone and not re.match(pattern, phone):
            add("customer_phone", "must be a valid phone number (10 digits starting with 0)")

        email = text("customer_email")
        if email and not EMAIL_PATTERN.match(email):
            add("customer_email", "is not a valid email address")
        text("notes")

        if self.scheduled_at is None:
            add("scheduled_at", "can't be blank")
        elif self.source == BookingSource.ONLINE and now is not None and self.scheduled_at < now:
            # walk-ins are recorded after the fact
            add("scheduled_at", "must be in the future")

        if not self.services:
            add("services", "must have at least one service")

        return errors


class BookingSlot(db.Model):
    __tablename__ = "booking_slots"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="booking_slots")
    slot = db.relationship("Slot", back_populates="booking_slots")

    __table_args__ = (
        db.UniqueConstraint("booking_id", "slot_id", name="uq_booking_slot"),
    )
