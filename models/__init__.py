from .db import db
from .business import Business, CapacityMode, WEEKDAYS
from .service import Service
from .slot import Slot
from .booking import Booking, BookingSlot, BookingSource, BookingStatus, booking_services
from .audit_log import AuditLog
