"""
Availability: which slot-aligned start times can take the requested duration.

Read-only and lock-free. Results are advisory; the reservation engine
re-checks everything under lock.
"""
from datetime import date, datetime, timedelta

from models.slot import Slot
from scheduling.capacity import active_bookings_between, overlapping_count
from scheduling.generator import slot_step
from scheduling.hours import hours_of
from scheduling.selection import required_slot_count, total_duration


def find_run(slots_by_start: dict, start: datetime, count: int):
    """
    The `count` consecutive slots beginning at `start`, each with capacity
    left, chained end_time -> start_time. None if any link is missing or full.
    """
    run = []
    cursor = start
    for _ in range(count):
        slot = slots_by_start.get(cursor)
        if slot is None or slot.capacity <= 0:
            return None
        run.append(slot)
        cursor = slot.end_time
    return run


def slot_available_start_times(business, services, day: date, now: datetime = None) -> list:
    """
    Slot-ledger availability. Break periods are not excluded here: slots
    inside a break still carry capacity and are listed.
    """
    if not services:
        return []
    window = hours_of(business).window_for(day)
    if window is None:
        return []
    _, close_dt = window

    slots = (
        Slot.query
        .filter(Slot.business_id == business.id, Slot.date == day)
        .order_by(Slot.start_time.asc())
        .all()
    )
    if not slots:
        return []

    now = now or business.local_now()
    needed = required_slot_count(total_duration(services))
    by_start = {s.start_time: s for s in slots}

    times = []
    for slot in slots:
        if slot.start_time < now:
            continue
        run = find_run(by_start, slot.start_time, needed)
        if run is None:
            continue
        if run[-1].end_time > close_dt:
            continue
        times.append(slot.start_time)
    return times


def overlap_available_start_times(business, services, day: date, now: datetime = None) -> list:
    """
    Legacy availability for businesses without a slot ledger: walk the day in
    slot-width steps and keep starts whose window avoids breaks and stays
    under capacity by overlap count.
    """
    if not services:
        return []
    hours = hours_of(business)
    window = hours.window_for(day)
    if window is None:
        return []
    open_dt, close_dt = window

    now = now or business.local_now()
    step = slot_step()
    duration = timedelta(minutes=total_duration(services))
    bookings = active_bookings_between(business.id, open_dt, close_dt)

    times = []
    cursor = open_dt
    while cursor + duration <= close_dt:
        end = cursor + duration
        if (
            cursor >= now
            and not hours.overlaps_break(cursor, end)
            and overlapping_count(bookings, cursor, end) < business.capacity
        ):
            times.append(cursor)
        cursor += step
    return times


def format_hhmm(times) -> list:
    return [t.strftime("%H:%M") for t in times]
