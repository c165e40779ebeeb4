from datetime import date, datetime, timedelta

# a Friday; scenarios are pinned to this week
FRIDAY = date(2030, 1, 4)
SATURDAY = date(2030, 1, 5)
SUNDAY = date(2030, 1, 6)

# "now" well before every pinned scenario
EARLIER = datetime(2029, 12, 1, 8, 0)

CUSTOMER = {"customer_name": "Lan Nguyen", "customer_phone": "0912345678"}

WEEKDAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def next_weekday(start: date, weekday: int) -> date:
    """First date on or after `start` falling on `weekday` (Monday=0)."""
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def at(day: date, hhmm: str) -> datetime:
    return datetime.combine(day, datetime.strptime(hhmm, "%H:%M").time())


def friday_only(open_="09:00", close="10:00", breaks=None):
    """Hours map open on Fridays only, for compact slot grids."""
    hours = {d: {"open": None, "close": None, "closed": True, "breaks": []} for d in WEEKDAY_NAMES}
    hours["friday"] = {"open": open_, "close": close, "closed": False, "breaks": breaks or []}
    return hours
