import json
import logging
import re
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.audit_log import AuditLog
from models.business import Business, CapacityMode, default_operating_hours
from models.booking import Booking, BookingStatus, booking_services
from models.service import Service
from models.slot import Slot
from routes.public import reservation_error_response
from scheduling.capacity import capacity_percentage, current_capacity_usage
from scheduling.engine import TransitionNotAllowed, create_walk_in, transition, update_booking
from scheduling.generator import generate_for_business
from scheduling.hours import validate_operating_hours
from scheduling.reservation import CUSTOMER_FIELDS
from scheduling.selection import parse_service_ids
from utils.audit import log_event
from utils.parsing import parse_date, parse_start_time
from utils.serializers import booking_json, business_json, service_json, slot_json

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{3,50}$")
PHONE_PATTERN = re.compile(r"^[0-9+\-() ]+$")
MAX_CAPACITY = 50
# top-level paths owned by other blueprints
RESERVED_SLUGS = {"dashboard", "health"}

ACTIONS = {
    "confirm": BookingStatus.CONFIRMED,
    "start": BookingStatus.IN_PROGRESS,
    "complete": BookingStatus.COMPLETED,
    "cancel": BookingStatus.CANCELLED,
    "no_show": BookingStatus.NO_SHOW,
}


def _normalize(text) -> str:
    return text.strip().lower() if isinstance(text, str) else ""


def _business_or_none(slug: str):
    return Business.query.filter_by(slug=_normalize(slug)).first()


def _business_errors(data: dict, creating: bool) -> dict:
    """Field errors for the editable business settings present in `data`."""
    errors = {}

    def add(field, message):
        errors.setdefault(field, []).append(message)

    if creating or "name" in data:
        name = data.get("name")
        name = name.strip() if isinstance(name, str) else name
        if name is not None and not isinstance(name, str):
            add("name", "must be a string")
        elif not name:
            add("name", "can't be blank")
        elif len(name) > 100:
            add("name", "is too long (maximum is 100 characters)")

    if creating:
        slug = _normalize(data.get("slug"))
        if not SLUG_PATTERN.match(slug):
            add("slug", "must be 3-50 characters of lowercase letters, digits and hyphens")
        elif slug in RESERVED_SLUGS:
            add("slug", "is reserved")

    if "capacity" in data:
        capacity = data.get("capacity")
        if isinstance(capacity, bool) or not isinstance(capacity, int):
            add("capacity", "must be an integer")
        elif not 1 <= capacity <= MAX_CAPACITY:
            add("capacity", f"must be between 1 and {MAX_CAPACITY}")

    if data.get("time_zone") is not None:
        try:
            ZoneInfo(str(data["time_zone"]))
        except (ZoneInfoNotFoundError, ValueError):
            add("time_zone", "is not a known time zone")

    if data.get("phone"):
        if not isinstance(data["phone"], str):
            add("phone", "must be a string")
        elif not PHONE_PATTERN.match(data["phone"]):
            add("phone", "may only contain digits and + - ( ) spaces")

    if data.get("capacity_mode") is not None:
        if data["capacity_mode"] not in [m.value for m in CapacityMode]:
            add("capacity_mode", "must be one of: slots, overlap")

    if data.get("operating_hours") is not None:
        for day, messages in validate_operating_hours(data["operating_hours"]).items():
            for message in messages:
                add(f"operating_hours.{day}", message)

    return errors


def _apply_business_fields(business: Business, data: dict):
    if "name" in data:
        business.name = data["name"].strip()
    if "capacity" in data:
        business.capacity = data["capacity"]
    if data.get("time_zone") is not None:
        business.time_zone = str(data["time_zone"])
    if "phone" in data:
        business.phone = (data.get("phone") or "").strip() or None
    if data.get("capacity_mode") is not None:
        business.capacity_mode = CapacityMode(data["capacity_mode"])
    if data.get("operating_hours") is not None:
        business.operating_hours = data["operating_hours"]
    if "is_active" in data:
        business.is_active = bool(data["is_active"])


# ---------- STAFF: business settings ----------
@dashboard_bp.post("/businesses")
def create_business():
    data = request.get_json(silent=True) or {}
    errors = _business_errors(data, creating=True)
    if errors:
        return jsonify(error="Invalid business settings", details=errors), 422

    slug = _normalize(data.get("slug"))
    if Business.query.filter_by(slug=slug).first():
        return jsonify(error="slug already taken"), 409

    business = Business(
        slug=slug,
        time_zone=current_app.config.get("DEFAULT_TIME_ZONE", "UTC"),
        operating_hours=default_operating_hours(),
    )
    _apply_business_fields(business, data)
    db.session.add(business)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="slug already taken"), 409

    log_event("BUSINESS_CREATE", business_id=business.id, entity="business", entity_id=business.id)
    return jsonify(business=business_json(business)), 201


@dashboard_bp.get("/<slug>")
def show_business(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    now = business.local_now()
    return jsonify(
        business=business_json(business),
        stats={
            "capacity_usage": current_capacity_usage(business, now),
            "capacity_percentage": capacity_percentage(business, now),
        },
    ), 200


@dashboard_bp.patch("/<slug>")
def update_business(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    data = request.get_json(silent=True) or {}
    errors = _business_errors(data, creating=False)
    if errors:
        return jsonify(error="Invalid business settings", details=errors), 422

    _apply_business_fields(business, data)
    db.session.commit()

    log_event("BUSINESS_UPDATE", business_id=business.id, entity="business", entity_id=business.id,
              metadata={"fields": sorted(data.keys())})
    return jsonify(business=business_json(business)), 200


# ---------- STAFF: services ----------
@dashboard_bp.get("/<slug>/services")
def list_services(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    services = (
        Service.query
        .filter_by(business_id=business.id)
        .order_by(Service.position.asc(), Service.id.asc())
        .all()
    )
    return jsonify([service_json(s) for s in services]), 200


@dashboard_bp.post("/<slug>/services")
def create_service(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    data = request.get_json(silent=True) or {}
    name = data.get("name")
    name = name.strip() if isinstance(name, str) else name
    description = data.get("description")
    currency = data.get("currency") or "VND"
    duration = data.get("duration_minutes")
    price = data.get("price_cents")
    step = current_app.config.get("SLOT_MINUTES", 15)

    errors = {}
    if name is not None and not isinstance(name, str):
        errors["name"] = ["must be a string"]
    elif not name:
        errors["name"] = ["can't be blank"]
    elif len(name) > 100:
        errors["name"] = ["is too long (maximum is 100 characters)"]
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0 or duration % step:
        errors["duration_minutes"] = [f"must be a positive multiple of {step}"]
    if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
        errors["price_cents"] = ["must be a positive integer"]
    if description is not None and not isinstance(description, str):
        errors["description"] = ["must be a string"]
    if not isinstance(currency, str):
        errors["currency"] = ["must be a string"]
    if errors:
        return jsonify(error="Invalid service", details=errors), 422

    name_norm = _normalize(name)
    if Service.query.filter_by(business_id=business.id, name_normalized=name_norm).first():
        return jsonify(error="Service name already exists"), 409

    position = data.get("position")
    if not isinstance(position, int):
        position = Service.query.filter_by(business_id=business.id).count()

    service = Service(
        business_id=business.id,
        name=name,
        name_normalized=name_norm,
        description=(description or "").strip() or None,
        duration_minutes=duration,
        price_cents=price,
        currency=currency.strip().upper()[:3],
        active=bool(data.get("active", True)),
        position=position,
    )
    db.session.add(service)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Service name already exists"), 409

    log_event("SERVICE_CREATE", business_id=business.id, entity="service", entity_id=service.id)
    return jsonify(service=service_json(service)), 201


# ---------- STAFF: bookings for a day ----------
@dashboard_bp.get("/<slug>/bookings")
def list_bookings(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    now = business.local_now()
    try:
        day = parse_date(request.args["date"]) if request.args.get("date") else now.date()
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    start = datetime.combine(day, datetime.min.time())
    q = Booking.query.filter(
        Booking.business_id == business.id,
        Booking.scheduled_at >= start,
        Booking.scheduled_at < start + timedelta(days=1),
    )

    status = _normalize(request.args.get("status"))
    if status:
        try:
            q = q.filter(Booking.status == BookingStatus(status))
        except ValueError:
            return jsonify(error="Unknown status"), 400

    service_id = request.args.get("service_id")
    if service_id:
        if not service_id.isdigit():
            return jsonify(error="service_id must be an integer"), 400
        q = q.filter(Booking.id.in_(
            db.session.query(booking_services.c.booking_id)
            .filter(booking_services.c.service_id == int(service_id))
        ))

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Booking.customer_name.ilike(like), Booking.customer_phone.ilike(like)))

    rows = q.order_by(Booking.scheduled_at.asc(), Booking.id.asc()).all()
    return jsonify(
        date=day.isoformat(),
        bookings=[booking_json(b) for b in rows],
        capacity={
            "capacity": business.capacity,
            "usage": current_capacity_usage(business, now),
            "percentage": capacity_percentage(business, now),
        },
    ), 200


@dashboard_bp.post("/<slug>/bookings")
def create_walk_in_booking(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        service_ids = parse_service_ids(data.get("service_ids"))
    except (TypeError, ValueError):
        return jsonify(error="service_ids must be a list of integers", category="services_invalid"), 422

    scheduled_at = None
    if data.get("start_time") or data.get("scheduled_at") or data.get("time"):
        try:
            scheduled_at = parse_start_time(data, business)
        except ValueError:
            return jsonify(error="Invalid start_time. Use ISO e.g. 2026-01-20T09:00:00"), 400

    result = create_walk_in(business, service_ids, data, scheduled_at=scheduled_at)
    if not result.ok:
        return reservation_error_response(result)

    booking = result.booking
    log_event("WALK_IN_CREATE", business_id=business.id, entity="booking", entity_id=booking.id)
    return jsonify(booking=booking_json(booking)), 201


def _booking_or_none(business, booking_id: int):
    return Booking.query.filter_by(id=booking_id, business_id=business.id).first()


@dashboard_bp.get("/<slug>/bookings/<int:booking_id>")
def show_booking(slug: str, booking_id: int):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404
    booking = _booking_or_none(business, booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404
    return jsonify(booking=booking_json(booking)), 200


@dashboard_bp.patch("/<slug>/bookings/<int:booking_id>")
def edit_booking(slug: str, booking_id: int):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404
    booking = _booking_or_none(business, booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404

    data = request.get_json(silent=True) or {}
    fields = {key: data[key] for key in CUSTOMER_FIELDS if key in data}
    if data.get("start_time") or data.get("scheduled_at"):
        try:
            fields["scheduled_at"] = parse_start_time(data, business)
        except ValueError:
            return jsonify(error="Invalid start_time. Use ISO e.g. 2026-01-20T09:00:00"), 400

    service_ids = None
    if "service_ids" in data:
        try:
            service_ids = parse_service_ids(data.get("service_ids"))
        except (TypeError, ValueError):
            return jsonify(error="service_ids must be a list of integers", category="services_invalid"), 422

    errors = update_booking(booking, fields, service_ids=service_ids)
    if errors:
        return jsonify(error="Invalid booking", category="validation_failed", details=errors), 422

    log_event("BOOKING_UPDATE", business_id=business.id, entity="booking", entity_id=booking.id,
              metadata={"fields": sorted(data.keys())})
    return jsonify(booking=booking_json(booking)), 200


@dashboard_bp.post("/<slug>/bookings/<int:booking_id>/<action>")
def change_booking_status(slug: str, booking_id: int, action: str):
    target = ACTIONS.get(action)
    if target is None:
        return jsonify(error="Unknown action"), 404

    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404
    booking = _booking_or_none(business, booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404

    previous = booking.status
    try:
        transition(booking, target)
    except TransitionNotAllowed as e:
        return jsonify(error=str(e)), 409
    except SQLAlchemyError:
        logger.exception("Status change to %s failed for booking %s", target.value, booking_id)
        return jsonify(error="Could not update the booking. Please try again."), 503

    log_event(f"BOOKING_{target.name}", business_id=business.id, entity="booking", entity_id=booking.id,
              metadata={"from": previous.value, "to": target.value})
    return jsonify(booking=booking_json(booking)), 200


# ---------- STAFF: slots ----------
@dashboard_bp.get("/<slug>/slots")
def list_slots(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    try:
        day = parse_date(request.args["date"]) if request.args.get("date") else business.local_now().date()
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    slots = (
        Slot.query
        .filter_by(business_id=business.id, date=day)
        .order_by(Slot.start_time.asc())
        .all()
    )
    return jsonify(date=day.isoformat(), slots=[slot_json(s) for s in slots]), 200


@dashboard_bp.post("/<slug>/slots/generate")
def generate_slots(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    data = request.get_json(silent=True) or {}
    day = None
    if data.get("date"):
        try:
            day = parse_date(data["date"])
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    try:
        result = generate_for_business(business, day)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Slot generation failed for business %s", business.id)
        return jsonify(success=False, error="Could not generate slots. Please try again."), 503

    return jsonify(
        success=result.success,
        slots_created=result.slots_created,
        message=result.message,
        dates=[d.isoformat() for d in result.dates],
    ), 200


# ---------- STAFF: audit trail ----------
@dashboard_bp.get("/<slug>/audit-logs")
def list_audit_logs(slug: str):
    business = _business_or_none(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    q = AuditLog.query.filter(AuditLog.business_id == business.id)
    action = (request.args.get("action") or "").strip().upper()
    if action:
        q = q.filter(AuditLog.action == action)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat(),
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": json.loads(r.metadata_json) if r.metadata_json else None,
        }
        for r in rows
    ]), 200
