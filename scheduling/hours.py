"""
Operating hours: per-weekday open/close window plus break intervals.

Stored on Business.operating_hours as
    {"monday": {"open": "09:00", "close": "17:00", "closed": false,
                "breaks": [{"start": "12:00", "end": "13:00"}]}, ...}
"""
from datetime import date, datetime

from models.business import WEEKDAYS


def parse_hhmm(value):
    """'09:30' -> time(9, 30); None for blank or malformed input."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except ValueError:
        return None


def day_name(d) -> str:
    return WEEKDAYS[d.weekday()]


def validate_operating_hours(hours) -> dict:
    """
    Returns {day: [messages]} for every rule violation; {} when valid.
    Each weekday is checked independently and closed days skip the time checks.
    """
    errors = {}

    def add(day, message):
        errors.setdefault(day, []).append(message)

    if hours is None:
        return errors
    if not isinstance(hours, dict):
        return {"operating_hours": ["must be a mapping of weekday to hours"]}

    for key in hours:
        if key not in WEEKDAYS:
            add(key, "is not a weekday")

    for day in WEEKDAYS:
        entry = hours.get(day)
        if entry is None:
            continue
        if not isinstance(entry, dict):
            add(day, "must be an object")
            continue
        if entry.get("closed"):
            continue

        open_raw, close_raw = entry.get("open"), entry.get("close")
        open_t, close_t = parse_hhmm(open_raw), parse_hhmm(close_raw)
        if not open_raw:
            add(day, "must have an opening time")
        elif open_t is None:
            add(day, "opening time must be HH:MM")
        if not close_raw:
            add(day, "must have a closing time")
        elif close_t is None:
            add(day, "closing time must be HH:MM")
        if open_t is None or close_t is None:
            continue

        if close_t <= open_t:
            add(day, "closing time must be after opening time")
            continue

        breaks = entry.get("breaks") or []
        if not isinstance(breaks, list):
            add(day, "breaks must be a list")
            continue

        parsed = []
        for brk in breaks:
            start = parse_hhmm(brk.get("start")) if isinstance(brk, dict) else None
            end = parse_hhmm(brk.get("end")) if isinstance(brk, dict) else None
            if start is None or end is None:
                add(day, "break must have a start and end time (HH:MM)")
                continue
            if end <= start:
                add(day, "break end time must be after start time")
                continue
            if start < open_t or end > close_t:
                add(day, f"break must be within operating hours ({open_raw} - {close_raw})")
                continue
            parsed.append((start, end))

        parsed.sort()
        for (_, prev_end), (next_start, _) in zip(parsed, parsed[1:]):
            if prev_end > next_start:
                add(day, "has overlapping break times")
                break

    return errors


class OperatingHours:
    """Read-side view over a business's hours map."""

    def __init__(self, hours):
        self.hours = hours or {}

    def hours_for(self, day):
        return self.hours.get(str(day).lower())

    def is_open(self, day) -> bool:
        entry = self.hours_for(day)
        if not entry or entry.get("closed"):
            return False
        return parse_hhmm(entry.get("open")) is not None and parse_hhmm(entry.get("close")) is not None

    def window_for(self, d: date):
        """(open, close) datetimes for a calendar date, or None when closed/unset."""
        name = day_name(d)
        if not self.is_open(name):
            return None
        entry = self.hours_for(name)
        return (
            datetime.combine(d, parse_hhmm(entry["open"])),
            datetime.combine(d, parse_hhmm(entry["close"])),
        )

    def breaks_for(self, d: date):
        entry = self.hours_for(day_name(d))
        if not entry or entry.get("closed"):
            return []
        out = []
        for brk in entry.get("breaks") or []:
            start, end = parse_hhmm(brk.get("start")), parse_hhmm(brk.get("end"))
            if start and end:
                out.append((datetime.combine(d, start), datetime.combine(d, end)))
        return sorted(out)

    def is_on_break(self, dt: datetime) -> bool:
        return any(start <= dt < end for start, end in self.breaks_for(dt.date()))

    def is_within_hours(self, dt: datetime) -> bool:
        window = self.window_for(dt.date())
        if window is None:
            return False
        open_dt, close_dt = window
        return open_dt <= dt < close_dt and not self.is_on_break(dt)

    def overlaps_break(self, start: datetime, end: datetime) -> bool:
        return any(start < b_end and b_start < end for b_start, b_end in self.breaks_for(start.date()))


def hours_of(business) -> OperatingHours:
    return OperatingHours(business.operating_hours)


__all__ = ["OperatingHours", "validate_operating_hours", "parse_hhmm", "day_name", "hours_of"]
