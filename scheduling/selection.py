import math

from flask import current_app

from models.service import Service


def parse_service_ids(raw) -> list:
    """
    Accepts [1, "2"], "1,2" or None. Raises ValueError on anything that is
    not an integer id.
    """
    if raw is None:
        return []
    if isinstance(raw, (int, str)):
        raw = [raw]
    ids = []
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, (int, str)):
            raise ValueError("service id must be an integer")
        if isinstance(item, str):
            # repeated query params may themselves be "1,2"
            ids.extend(int(part) for part in item.split(",") if part.strip())
            continue
        ids.append(item)
    # de-duplicate, keep request order
    return list(dict.fromkeys(ids))


def resolve_services(business, service_ids, active_only=True):
    """
    Services for the given ids, or None when any id is unknown, belongs to
    another business, or (with active_only) is switched off.
    """
    ids = list(dict.fromkeys(service_ids))
    if not ids:
        return []
    q = Service.query.filter(Service.business_id == business.id, Service.id.in_(ids))
    if active_only:
        q = q.filter(Service.active.is_(True))
    services = q.order_by(Service.position, Service.id).all()
    if len(services) != len(ids):
        return None
    return services


def total_duration(services) -> int:
    return sum(s.duration_minutes for s in services)


def required_slot_count(total_minutes: int) -> int:
    step = current_app.config.get("SLOT_MINUTES", 15)
    return math.ceil(total_minutes / step)
