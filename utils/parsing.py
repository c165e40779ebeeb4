from datetime import date, datetime
from zoneinfo import ZoneInfo


def parse_date(value: str) -> date:
    # Expect "YYYY-MM-DD"
    return date.fromisoformat((value or "").strip())


def parse_start_time(data: dict, business) -> datetime:
    """
    Booking start from a request body: ISO "start_time"/"scheduled_at"
    (e.g. "2026-01-20T09:00:00"), or "date" + "time" ("HH:MM").
    Aware values are converted to the business's zone; the result is naive
    wall-clock time like slot times. Raises ValueError.
    """
    raw = data.get("start_time") or data.get("scheduled_at")
    if raw:
        dt = datetime.fromisoformat(str(raw).strip())
    elif data.get("date") and data.get("time"):
        dt = datetime.combine(
            parse_date(data["date"]),
            datetime.strptime(str(data["time"]).strip(), "%H:%M").time(),
        )
    else:
        raise ValueError("start_time is required")

    if dt.tzinfo is not None:
        dt = dt.astimezone(ZoneInfo(business.time_zone or "UTC")).replace(tzinfo=None)
    return dt.replace(second=0, microsecond=0)
