import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.slot import Slot
from tests.helpers import FRIDAY, friday_only

DAY = FRIDAY.isoformat()


@pytest.fixture
def salon(make_business, make_slots):
    business = make_business(capacity=2, hours=friday_only("09:00", "10:00"), slug="lan-salon")
    make_slots(business, FRIDAY)
    return business


@pytest.fixture
def haircut(salon, make_service):
    return make_service(salon, duration=30)


def _book(client, service_ids, time="09:00", **customer):
    body = {
        "service_ids": service_ids,
        "start_time": f"{DAY}T{time}:00",
        "customer_name": "Lan Nguyen",
        "customer_phone": "0912345678",
    }
    body.update(customer)
    return client.post("/lan-salon/bookings", json=body)


# ---------- public ----------
def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_public_services_lists_active_only(client, salon, haircut, make_service):
    make_service(salon, name="Old perm", active=False)
    resp = client.get("/lan-salon/services")
    assert resp.status_code == 200
    assert [s["name"] for s in resp.get_json()["services"]] == ["Haircut"]


def test_unknown_business_is_404(client):
    assert client.get("/nobody/services").status_code == 404
    assert client.get(f"/nobody/availability?date={DAY}").status_code == 404


def test_availability(client, haircut):
    resp = client.get(f"/lan-salon/availability?date={DAY}&service_ids={haircut.id}")
    assert resp.status_code == 200
    assert resp.get_json()["available_slots"] == ["09:00", "09:15", "09:30"]


def test_availability_bad_input(client, haircut):
    bad_date = client.get(f"/lan-salon/availability?date=04-01-2030&service_ids={haircut.id}")
    assert bad_date.status_code == 400
    assert bad_date.get_json()["available_slots"] == []

    unknown = client.get(f"/lan-salon/availability?date={DAY}&service_ids=999")
    assert unknown.status_code == 422

    none = client.get(f"/lan-salon/availability?date={DAY}")
    assert none.get_json()["available_slots"] == []


def test_book_then_confirmation(client, salon, haircut):
    resp = _book(client, [haircut.id])
    assert resp.status_code == 201
    booking = resp.get_json()["booking"]
    assert booking["status"] == "pending"
    assert booking["time"] == "09:00"
    assert len(booking["slot_ids"]) == 2

    page = client.get(f"/lan-salon/bookings/{booking['id']}")
    assert page.status_code == 200
    assert page.get_json()["booking"]["customer_name"] == "Lan Nguyen"

    assert AuditLog.query.filter_by(action="BOOKING_CREATE", entity_id=str(booking["id"])).count() == 1


def test_booking_error_categories(client, haircut):
    assert _book(client, []).status_code == 400
    assert _book(client, [999]).status_code == 422

    invalid = _book(client, [haircut.id], customer_phone="123")
    assert invalid.status_code == 422
    assert invalid.get_json()["category"] == "validation_failed"
    assert "customer_phone" in invalid.get_json()["details"]

    assert _book(client, [haircut.id]).status_code == 201
    assert _book(client, [haircut.id]).status_code == 201
    full = _book(client, [haircut.id])
    assert full.status_code == 409
    assert full.get_json()["category"] == "slot_unavailable"


def test_booking_bad_start_time(client, haircut):
    resp = client.post("/lan-salon/bookings", json={"service_ids": [haircut.id], "start_time": "soon"})
    assert resp.status_code == 400


def test_booking_with_non_text_customer_fields(client, salon, haircut):
    resp = _book(client, [haircut.id], customer_phone=912345678, customer_name=["Lan"])
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["category"] == "validation_failed"
    assert body["details"] == {"customer_name": ["must be a string"], "customer_phone": ["must be a string"]}
    assert Booking.query.count() == 0
    assert {s.capacity for s in Slot.query.filter_by(business_id=salon.id)} == {2}


def test_confirmation_is_scoped_to_business(client, haircut, make_business):
    booking_id = _book(client, [haircut.id]).get_json()["booking"]["id"]
    other = make_business(slug="other-salon")
    assert client.get(f"/{other.slug}/bookings/{booking_id}").status_code == 404


# ---------- dashboard: settings ----------
def test_create_business_defaults(client):
    resp = client.post("/dashboard/businesses", json={"name": "Mai Spa", "slug": " Mai-Spa ", "capacity": 3})
    assert resp.status_code == 201
    business = resp.get_json()["business"]
    assert business["slug"] == "mai-spa"
    assert business["capacity_mode"] == "slots"
    assert business["operating_hours"]["sunday"]["closed"] is True
    assert business["operating_hours"]["monday"]["breaks"] == [{"start": "12:00", "end": "13:00"}]

    assert client.post("/dashboard/businesses", json={"name": "Again", "slug": "mai-spa"}).status_code == 409


def test_business_fields_must_be_text(client, salon):
    created = client.post("/dashboard/businesses", json={"name": 123, "slug": 45})
    assert created.status_code == 422
    assert created.get_json()["details"]["name"] == ["must be a string"]
    assert "slug" in created.get_json()["details"]

    updated = client.patch("/dashboard/lan-salon", json={"name": 5, "phone": 12345})
    assert updated.status_code == 422
    assert updated.get_json()["details"] == {"name": ["must be a string"], "phone": ["must be a string"]}


def test_create_business_validation(client):
    resp = client.post("/dashboard/businesses", json={
        "name": "",
        "slug": "a!",
        "capacity": 51,
        "time_zone": "Mars/Olympus",
        "phone": "call me",
        "capacity_mode": "magic",
    })
    assert resp.status_code == 422
    assert set(resp.get_json()["details"]) == {"name", "slug", "capacity", "time_zone", "phone", "capacity_mode"}


def test_update_business_hours(client, salon):
    bad = client.patch("/dashboard/lan-salon", json={
        "operating_hours": {"monday": {"open": "10:00", "close": "09:00", "closed": False}},
    })
    assert bad.status_code == 422
    assert "operating_hours.monday" in bad.get_json()["details"]

    good = client.patch("/dashboard/lan-salon", json={"capacity": 4, "time_zone": "Asia/Ho_Chi_Minh"})
    assert good.status_code == 200
    assert good.get_json()["business"]["capacity"] == 4
    assert good.get_json()["business"]["time_zone"] == "Asia/Ho_Chi_Minh"


def test_dashboard_shows_capacity_stats(client, salon):
    resp = client.get("/dashboard/lan-salon")
    assert resp.status_code == 200
    assert resp.get_json()["stats"] == {"capacity_usage": 0, "capacity_percentage": 0}


def test_create_service_rules(client, salon):
    ok = client.post("/dashboard/lan-salon/services",
                     json={"name": "Beard Trim", "duration_minutes": 15, "price_cents": 50000})
    assert ok.status_code == 201
    assert ok.get_json()["service"]["currency"] == "VND"

    dup = client.post("/dashboard/lan-salon/services",
                      json={"name": " beard trim", "duration_minutes": 30, "price_cents": 50000})
    assert dup.status_code == 409

    bad = client.post("/dashboard/lan-salon/services",
                      json={"name": "Odd", "duration_minutes": 20, "price_cents": 0})
    assert bad.status_code == 422
    assert set(bad.get_json()["details"]) == {"duration_minutes", "price_cents"}

    listed = client.get("/dashboard/lan-salon/services").get_json()
    assert [s["name"] for s in listed] == ["Beard Trim"]


def test_service_fields_must_be_text(client, salon):
    resp = client.post("/dashboard/lan-salon/services",
                       json={"name": 42, "duration_minutes": 15, "price_cents": 50000,
                             "description": 7, "currency": 704})
    assert resp.status_code == 422
    assert resp.get_json()["details"] == {
        "name": ["must be a string"],
        "description": ["must be a string"],
        "currency": ["must be a string"],
    }


def test_generate_and_list_slots(client, make_business):
    make_business(hours=friday_only("09:00", "10:00"), slug="new-salon")

    resp = client.post("/dashboard/new-salon/slots/generate", json={"date": DAY})
    assert resp.status_code == 200
    assert resp.get_json()["slots_created"] == 4
    assert resp.get_json()["message"] == "4 slots created"

    again = client.post("/dashboard/new-salon/slots/generate", json={"date": DAY})
    assert again.get_json()["slots_created"] == 0

    slots = client.get(f"/dashboard/new-salon/slots?date={DAY}").get_json()["slots"]
    assert [s["time"] for s in slots] == ["09:00", "09:15", "09:30", "09:45"]

    assert client.post("/dashboard/new-salon/slots/generate", json={"date": "tomorrow"}).status_code == 400


# ---------- dashboard: bookings ----------
def test_walk_in_and_day_listing(client, salon, haircut, make_service):
    colour = make_service(salon, name="Colour", duration=60, position=1)
    _book(client, [haircut.id], time="09:30", customer_name="Binh Tran", customer_phone="0987654321")

    walk_in = client.post("/dashboard/lan-salon/bookings", json={
        "service_ids": [colour.id],
        "start_time": f"{DAY}T09:00:00",
        "customer_name": "Walk In",
        "customer_phone": "0900000000",
    })
    assert walk_in.status_code == 201
    assert walk_in.get_json()["booking"]["status"] == "in_progress"
    assert walk_in.get_json()["booking"]["source"] == "walk_in"

    listing = client.get(f"/dashboard/lan-salon/bookings?date={DAY}").get_json()
    assert [b["customer_name"] for b in listing["bookings"]] == ["Walk In", "Binh Tran"]
    assert listing["capacity"]["capacity"] == 2

    def names(query):
        data = client.get(f"/dashboard/lan-salon/bookings?date={DAY}&{query}").get_json()
        return [b["customer_name"] for b in data["bookings"]]

    assert names("status=pending") == ["Binh Tran"]
    assert names(f"service_id={colour.id}") == ["Walk In"]
    assert names("search=0987") == ["Binh Tran"]
    assert names("search=walk") == ["Walk In"]

    assert client.get(f"/dashboard/lan-salon/bookings?date={DAY}&status=lost").status_code == 400


def test_status_actions(client, salon, haircut):
    booking_id = _book(client, [haircut.id]).get_json()["booking"]["id"]
    base = f"/dashboard/lan-salon/bookings/{booking_id}"

    assert client.post(f"{base}/confirm").get_json()["booking"]["status"] == "confirmed"
    started = client.post(f"{base}/start").get_json()["booking"]
    assert started["status"] == "in_progress"
    assert started["started_at"] is not None

    refused = client.post(f"{base}/confirm")
    assert refused.status_code == 409

    completed = client.post(f"{base}/complete").get_json()["booking"]
    assert completed["completed_at"] is not None
    assert client.post(f"{base}/cancel").status_code == 409
    assert client.post(f"{base}/teleport").status_code == 404

    assert AuditLog.query.filter_by(action="BOOKING_COMPLETED").count() == 1


def test_cancel_frees_slots_for_the_next_customer(client, salon, haircut):
    first = _book(client, [haircut.id]).get_json()["booking"]["id"]
    _book(client, [haircut.id])
    assert _book(client, [haircut.id]).status_code == 409

    resp = client.post(f"/dashboard/lan-salon/bookings/{first}/cancel")
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["slot_ids"] == []

    capacities = [s.capacity for s in Slot.query.filter_by(business_id=salon.id).order_by(Slot.start_time)]
    assert capacities == [1, 1, 2, 2]
    assert _book(client, [haircut.id]).status_code == 201


def test_edit_booking(client, salon, haircut):
    booking_id = _book(client, [haircut.id]).get_json()["booking"]["id"]
    base = f"/dashboard/lan-salon/bookings/{booking_id}"

    resp = client.patch(base, json={"notes": "prefers scissors", "customer_email": "lan@example.com"})
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["notes"] == "prefers scissors"

    bad = client.patch(base, json={"customer_email": "not-an-email"})
    assert bad.status_code == 422
    assert bad.get_json()["details"] == {"customer_email": ["is not a valid email address"]}

    typed = client.patch(base, json={"customer_phone": 912345678})
    assert typed.status_code == 422
    assert typed.get_json()["category"] == "validation_failed"
    assert typed.get_json()["details"] == {"customer_phone": ["must be a string"]}

    db.session.expire_all()
    assert client.get(base).get_json()["booking"]["customer_email"] == "lan@example.com"


def test_reserved_slug(client):
    resp = client.post("/dashboard/businesses", json={"name": "Ops", "slug": "dashboard"})
    assert resp.status_code == 422
    assert resp.get_json()["details"] == {"slug": ["is reserved"]}


def test_audit_logs_for_business(client, salon, haircut):
    booking_id = _book(client, [haircut.id]).get_json()["booking"]["id"]
    client.post(f"/dashboard/lan-salon/bookings/{booking_id}/cancel")

    rows = client.get("/dashboard/lan-salon/audit-logs").get_json()
    assert {r["action"] for r in rows} == {"BOOKING_CREATE", "BOOKING_CANCELLED"}

    cancelled = client.get("/dashboard/lan-salon/audit-logs?action=booking_cancelled").get_json()
    assert cancelled[0]["metadata"] == {"from": "pending", "to": "cancelled"}
