from datetime import datetime
from models.db import db


class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(
        db.Integer, db.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name = db.Column(db.String(100), nullable=False)
    name_normalized = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    duration_minutes = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)  # smallest unit
    currency = db.Column(db.String(3), nullable=False, default="VND")

    active = db.Column(db.Boolean, default=True, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    business = db.relationship("Business", back_populates="services")

    __table_args__ = (
        # case-insensitive uniqueness per business
        db.UniqueConstraint("business_id", "name_normalized", name="uq_service_business_name"),
        db.CheckConstraint("duration_minutes > 0", name="ck_service_duration_positive"),
        db.CheckConstraint("price_cents > 0", name="ck_service_price_positive"),
        db.Index("ix_services_business_position", "business_id", "position"),
    )
