from .hours import OperatingHours, validate_operating_hours
from .generator import generate_for_all, generate_for_business, generate_for_date
from .reservation import ReservationError, ReservationResult
from .engine import (
    InvalidServices,
    TransitionNotAllowed,
    create_booking,
    create_walk_in,
    query_availability,
    strategy_for,
    transition,
    update_booking,
)
