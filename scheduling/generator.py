"""
Slot generation: expand operating hours into fixed-width slots.

Slots inside break periods are generated like any other slot; breaks are
applied when availability is computed or a booking is committed, so the
grid never has to be rebuilt when break policy changes.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from models import db
from models.business import Business
from models.slot import Slot
from scheduling.hours import hours_of

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    success: bool
    slots_created: int
    message: str
    dates: list = field(default_factory=list)


def slot_step() -> timedelta:
    return timedelta(minutes=current_app.config.get("SLOT_MINUTES", 15))


def slot_starts(business: Business, day: date) -> list:
    """Every slot start between open and close; a trailing partial slot is dropped."""
    window = hours_of(business).window_for(day)
    if window is None:
        return []
    open_dt, close_dt = window
    step = slot_step()
    starts = []
    t = open_dt
    while t + step <= close_dt:
        starts.append(t)
        t += step
    return starts


def _count_for_date(business_id: int, day: date) -> int:
    return (
        db.session.query(func.count(Slot.id))
        .filter(Slot.business_id == business_id, Slot.date == day)
        .scalar()
    )


def _insert_ignoring_duplicates(rows: list):
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(Slot).values(rows).on_conflict_do_nothing(index_elements=["business_id", "start_time"])
        db.session.execute(stmt)
    elif dialect == "sqlite":
        stmt = sqlite_insert(Slot).values(rows).on_conflict_do_nothing(index_elements=["business_id", "start_time"])
        db.session.execute(stmt)
    else:
        for row in rows:
            try:
                with db.session.begin_nested():
                    db.session.execute(insert(Slot).values(**row))
            except IntegrityError:
                # another generator run won the insert
                continue


def generate_for_date(business: Business, day: date) -> int:
    """Create the missing slots for one date. Returns the number of new rows."""
    starts = slot_starts(business, day)
    if not starts:
        return 0

    existing = {
        start for (start,) in db.session.query(Slot.start_time).filter(
            Slot.business_id == business.id, Slot.date == day
        )
    }
    step = slot_step()
    now = datetime.utcnow()
    rows = [
        {
            "business_id": business.id,
            "start_time": t,
            "end_time": t + step,
            "date": day,
            "capacity": business.capacity,
            "original_capacity": business.capacity,
            "created_at": now,
            "updated_at": now,
        }
        for t in starts
        if t not in existing
    ]
    if not rows:
        return 0

    before = _count_for_date(business.id, day)
    _insert_ignoring_duplicates(rows)
    return _count_for_date(business.id, day) - before


def generate_for_business(business: Business, day: date = None, window_days: int = None) -> GenerationResult:
    """
    Generate slots for `day`, or for the rolling window starting today
    (`window_days`, default SLOT_WINDOW_DAYS dates) when no date is given.
    Idempotent.
    """
    if day is not None:
        days = [day]
    else:
        today = business.local_now().date()
        window = window_days or current_app.config.get("SLOT_WINDOW_DAYS", 7)
        days = [today + timedelta(days=i) for i in range(window)]

    created = 0
    for d in days:
        created += generate_for_date(business, d)
    db.session.commit()

    return GenerationResult(
        success=True,
        slots_created=created,
        message=f"{created} slots created",
        dates=days,
    )


def generate_for_all(day: date = None) -> list:
    """
    Daily batch: generate tomorrow's slots (in each business's zone) for every
    active business. A failing business is rolled back and logged; the rest
    of the batch still runs.
    """
    outcomes = []
    business_ids = [
        row.id for row in db.session.query(Business.id).filter(Business.is_active.is_(True)).order_by(Business.id)
    ]

    for business_id in business_ids:
        try:
            business = db.session.get(Business, business_id)
            target = day or business.local_now().date() + timedelta(days=1)
            result = generate_for_business(business, target)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Failed to generate slots for business %s: %s", business_id, exc)
            outcomes.append({"business_id": business_id, "success": False, "error": str(exc)})
            continue

        logger.info(
            "Slot generation for business %s (%s) on %s: %s",
            business_id, business.slug, target.isoformat(), result.message,
        )
        outcomes.append({
            "business_id": business_id,
            "success": True,
            "date": target.isoformat(),
            "slots_created": result.slots_created,
        })

    return outcomes
