from flask import Blueprint, request, jsonify

from models.business import Business
from models.booking import Booking
from models.service import Service
from scheduling.availability import format_hhmm
from scheduling.engine import InvalidServices, create_booking, query_availability
from scheduling.reservation import ReservationError
from scheduling.selection import parse_service_ids
from utils.audit import log_event
from utils.parsing import parse_date, parse_start_time
from utils.serializers import booking_json, service_json

public_bp = Blueprint("public", __name__)

# HTTP status per reservation failure category
CATEGORY_STATUS = {
    ReservationError.SERVICES_MISSING: 400,
    ReservationError.SERVICES_INVALID: 422,
    ReservationError.VALIDATION_FAILED: 422,
    ReservationError.SLOT_UNAVAILABLE: 409,
    ReservationError.INTERNAL: 503,
}


def _active_business(slug: str):
    return Business.query.filter_by(slug=(slug or "").strip().lower(), is_active=True).first()


def _service_ids_from_args():
    raw = request.args.getlist("service_ids") or request.args.getlist("service_ids[]")
    return parse_service_ids(raw)


def reservation_error_response(result):
    return jsonify(
        error=result.error,
        category=result.category.value,
        details=result.details,
    ), CATEGORY_STATUS[result.category]


# ---------- CUSTOMERS: service menu ----------
@public_bp.get("/<slug>/services")
def list_services(slug: str):
    business = _active_business(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    services = (
        Service.query
        .filter_by(business_id=business.id, active=True)
        .order_by(Service.position.asc(), Service.id.asc())
        .all()
    )
    return jsonify(business={"name": business.name, "slug": business.slug},
                   services=[service_json(s) for s in services]), 200


# ---------- CUSTOMERS: availability (advisory, lock-free) ----------
@public_bp.get("/<slug>/availability")
def availability(slug: str):
    business = _active_business(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    try:
        day = parse_date(request.args.get("date"))
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD", available_slots=[]), 400
    try:
        service_ids = _service_ids_from_args()
    except ValueError:
        return jsonify(error="service_ids must be integers", available_slots=[]), 400

    try:
        times = query_availability(business, service_ids, day)
    except InvalidServices as e:
        return jsonify(error=str(e), available_slots=[]), 422

    return jsonify(date=day.isoformat(), available_slots=format_hhmm(times)), 200


# ---------- CUSTOMERS: book (lock + re-check + commit) ----------
@public_bp.post("/<slug>/bookings")
def book(slug: str):
    business = _active_business(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        service_ids = parse_service_ids(data.get("service_ids"))
    except (TypeError, ValueError):
        return jsonify(error="service_ids must be a list of integers", category="services_invalid"), 422
    try:
        start_time = parse_start_time(data, business)
    except ValueError:
        return jsonify(error="Invalid start_time. Use ISO e.g. 2026-01-20T09:00:00"), 400

    customer = data.get("customer") if isinstance(data.get("customer"), dict) else data
    result = create_booking(business, service_ids, start_time, customer)
    if not result.ok:
        return reservation_error_response(result)

    booking = result.booking
    log_event("BOOKING_CREATE", business_id=business.id, entity="booking", entity_id=booking.id,
              metadata={"scheduled_at": booking.scheduled_at.isoformat(), "slots": len(booking.booking_slots)})
    return jsonify(booking=booking_json(booking), business={"name": business.name, "slug": business.slug}), 201


# ---------- CUSTOMERS: confirmation page data ----------
@public_bp.get("/<slug>/bookings/<int:booking_id>")
def confirmation(slug: str, booking_id: int):
    business = _active_business(slug)
    if not business:
        return jsonify(error="Business not found"), 404

    booking = Booking.query.filter_by(id=booking_id, business_id=business.id).first()
    if not booking:
        return jsonify(error="Booking not found"), 404

    return jsonify(booking=booking_json(booking), business={"name": business.name, "slug": business.slug}), 200
