def _iso(value):
    return value.isoformat() if value else None


def business_json(b):
    return {
        "id": b.id,
        "name": b.name,
        "slug": b.slug,
        "phone": b.phone,
        "capacity": b.capacity,
        "capacity_mode": b.capacity_mode.value,
        "time_zone": b.time_zone,
        "operating_hours": b.operating_hours,
        "is_active": b.is_active,
        "created_at": _iso(b.created_at),
    }


def service_json(s):
    return {
        "id": s.id,
        "name": s.name,
        "description": s.description,
        "duration_minutes": s.duration_minutes,
        "price_cents": s.price_cents,
        "currency": s.currency,
        "active": s.active,
        "position": s.position,
    }


def slot_json(s):
    return {
        "id": s.id,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat(),
        "time": s.start_time.strftime("%H:%M"),
        "capacity": s.capacity,
        "original_capacity": s.original_capacity,
    }


def booking_json(b):
    return {
        "id": b.id,
        "customer_name": b.customer_name,
        "customer_phone": b.customer_phone,
        "customer_email": b.customer_email,
        "notes": b.notes,
        "scheduled_at": _iso(b.scheduled_at),
        "ends_at": _iso(b.ends_at),
        "time": b.scheduled_at.strftime("%H:%M") if b.scheduled_at else None,
        "status": b.status.value,
        "source": b.source.value,
        "total_duration_minutes": b.total_duration_minutes,
        "services": [{"id": s.id, "name": s.name, "duration_minutes": s.duration_minutes} for s in b.services],
        "slot_ids": [link.slot_id for link in b.booking_slots],
        "started_at": _iso(b.started_at),
        "completed_at": _iso(b.completed_at),
        "created_at": _iso(b.created_at),
    }
