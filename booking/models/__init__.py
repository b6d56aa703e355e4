from booking.models.service import Service
from booking.models.availability import (
    AvailabilityWindow,
    AvailabilityWindowCreate,
    AvailabilityWindowPublic,
    BlockedSlot,
    BlockedSlotCreate,
    BlockedSlotPublic,
)
from booking.models.appointment import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentPublic,
    AppointmentStatus,
)
from booking.models.appointment_history import (
    Actor,
    AppointmentHistory,
    AppointmentHistoryPublic,
    HistoryAction,
)

__all__ = [
    "Service",
    "AvailabilityWindow",
    "AvailabilityWindowCreate",
    "AvailabilityWindowPublic",
    "BlockedSlot",
    "BlockedSlotCreate",
    "BlockedSlotPublic",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Appointment",
    "AppointmentPublic",
    "AppointmentStatus",
    "Actor",
    "AppointmentHistory",
    "AppointmentHistoryPublic",
    "HistoryAction",
]
