# backend/bookflow/services/slots/__init__.py
"""
Slots calculation module.

calculator:   pure slot math over minute windows
schedule:     staff weekly schedule + date overrides
availability: per-slot capacity, bookings and blackouts
"""

from .config import BookingConfig, build_booking_config, get_booking_config
from .calculator import generate_slot_starts, normalize_window, parse_window
from .schedule import ScheduleResolver, StaffDaySchedule, weekday_index
from .availability import calculate_service_availability

__all__ = [
    "BookingConfig",
    "build_booking_config",
    "get_booking_config",
    "generate_slot_starts",
    "normalize_window",
    "parse_window",
    "ScheduleResolver",
    "StaffDaySchedule",
    "weekday_index",
    "calculate_service_availability",
]
