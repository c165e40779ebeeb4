from datetime import datetime
from models.db import db


class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(
        db.Integer, db.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # naive wall-clock times in the business's zone
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)
    # derived from start_time, written once by the generator
    date = db.Column(db.Date, nullable=False, index=True)

    capacity = db.Column(db.Integer, nullable=False, default=0)           # remaining
    original_capacity = db.Column(db.Integer, nullable=False, default=0)  # business capacity at generation

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    business = db.relationship("Business", back_populates="slots")
    booking_slots = db.relationship("BookingSlot", back_populates="slot")

    __table_args__ = (
        # Exactly one slot per business and start time (generator relies on this for idempotence)
        db.UniqueConstraint("business_id", "start_time", name="uq_slot_business_start"),
        db.CheckConstraint("capacity >= 0 AND capacity <= original_capacity", name="ck_slot_capacity_range"),
        db.Index("ix_slots_business_date", "business_id", "date"),
    )

    def __repr__(self):
        return f"<Slot {self.business_id} {self.start_time:%Y-%m-%d %H:%M} cap={self.capacity}/{self.original_capacity}>"
