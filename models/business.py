import enum
from datetime import datetime
from zoneinfo import ZoneInfo

from models.db import db

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class CapacityMode(str, enum.Enum):
    SLOTS = "slots"        # slot ledger is authoritative
    OVERLAP = "overlap"    # legacy time-range overlap counting


def default_operating_hours():
    hours = {
        day: {"open": "09:00", "close": "17:00", "closed": False, "breaks": [{"start": "12:00", "end": "13:00"}]}
        for day in WEEKDAYS[:6]
    }
    hours["sunday"] = {"open": None, "close": None, "closed": True, "breaks": []}
    return hours


class Business(db.Model):
    __tablename__ = "businesses"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(50), nullable=False, unique=True, index=True)
    phone = db.Column(db.String(30), nullable=True)

    # max concurrent bookings at any instant
    capacity = db.Column(db.Integer, nullable=False, default=1)
    capacity_mode = db.Column(
        db.Enum(CapacityMode, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CapacityMode.SLOTS,
    )

    time_zone = db.Column(db.String(64), nullable=False, default="UTC")
    # {"monday": {"open": "09:00", "close": "17:00", "closed": false, "breaks": [{"start", "end"}]}, ...}
    operating_hours = db.Column(db.JSON, nullable=False, default=default_operating_hours)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    services = db.relationship(
        "Service", back_populates="business", cascade="all, delete-orphan", order_by="Service.position"
    )
    slots = db.relationship("Slot", back_populates="business", cascade="all, delete-orphan", lazy="dynamic")
    bookings = db.relationship("Booking", back_populates="business", cascade="all, delete-orphan", lazy="dynamic")

    __table_args__ = (
        db.CheckConstraint("capacity > 0", name="ck_business_capacity_positive"),
    )

    def local_now(self) -> datetime:
        """Current wall-clock time in the business's zone (naive, like slot times)."""
        return datetime.now(ZoneInfo(self.time_zone or "UTC")).replace(tzinfo=None, microsecond=0)

    def __repr__(self):
        return f"<Business {self.slug} capacity={self.capacity} mode={self.capacity_mode.value}>"
