import pytest

from models import db
from models.slot import Slot
from scheduling.availability import format_hhmm
from scheduling.engine import InvalidServices, create_booking, query_availability
from tests.helpers import CUSTOMER, EARLIER, FRIDAY, SUNDAY, at, friday_only


@pytest.fixture
def salon(make_business, make_service, make_slots):
    business = make_business(capacity=2, hours=friday_only("09:00", "10:00"))
    make_slots(business, FRIDAY)
    return business


def _available(business, services, now=EARLIER, day=FRIDAY):
    return format_hhmm(query_availability(business, [s.id for s in services], day, now=now))


def test_every_start_with_a_full_run(salon, make_service):
    haircut = make_service(salon, duration=30)
    assert _available(salon, [haircut]) == ["09:00", "09:15", "09:30"]


def test_full_slots_drop_out(salon, make_service):
    haircut = make_service(salon, duration=30)
    for _ in range(2):
        assert create_booking(salon, [haircut.id], at(FRIDAY, "09:00"), CUSTOMER, now=EARLIER).ok

    assert _available(salon, [haircut]) == ["09:30"]


def test_gap_in_the_grid_breaks_a_run(salon, make_service):
    haircut = make_service(salon, duration=30)
    Slot.query.filter_by(business_id=salon.id, start_time=at(FRIDAY, "09:30")).delete()
    db.session.commit()

    assert _available(salon, [haircut]) == ["09:00"]


def test_longer_duration_needs_more_slots(salon, make_service):
    colour = make_service(salon, name="Colour", duration=45)
    assert _available(salon, [colour]) == ["09:00", "09:15"]


def test_durations_are_summed_across_services(salon, make_service):
    wash = make_service(salon, name="Wash", duration=15)
    cut = make_service(salon, name="Cut", duration=30, position=1)
    assert _available(salon, [wash, cut]) == ["09:00", "09:15"]


def test_past_starts_are_excluded(salon, make_service):
    haircut = make_service(salon, duration=30)
    assert _available(salon, [haircut], now=at(FRIDAY, "09:10")) == ["09:15", "09:30"]


def test_empty_cases(salon, make_business, make_service):
    haircut = make_service(salon, duration=30)
    assert query_availability(salon, [], FRIDAY, now=EARLIER) == []
    assert _available(salon, [haircut], day=SUNDAY) == []

    no_grid = make_business(hours=friday_only("09:00", "10:00"))
    trim = make_service(no_grid, duration=15)
    assert _available(no_grid, [trim]) == []


def test_unknown_or_inactive_services_are_rejected(salon, make_business, make_service):
    other = make_business()
    foreign = make_service(other, duration=30)
    retired = make_service(salon, name="Retired", duration=30, active=False)

    with pytest.raises(InvalidServices):
        query_availability(salon, [foreign.id], FRIDAY, now=EARLIER)
    with pytest.raises(InvalidServices):
        query_availability(salon, [retired.id], FRIDAY, now=EARLIER)


def test_break_period_starts_are_listed(make_business, make_service, make_slots):
    business = make_business(hours=friday_only("11:00", "13:00", breaks=[{"start": "12:00", "end": "13:00"}]))
    make_slots(business, FRIDAY)
    haircut = make_service(business, duration=30)

    times = _available(business, [haircut])
    assert "12:00" in times
    assert times[-1] == "12:30"
