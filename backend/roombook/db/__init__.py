from roombook.db.base import Base
from roombook.db.models import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_STATUSES,
    Booking,
    Room,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING_REVIEW,
)

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "BOOKING_STATUSES",
    "Base",
    "Booking",
    "Room",
    "STATUS_APPROVED",
    "STATUS_CANCELLED",
    "STATUS_COMPLETED",
    "STATUS_PENDING_REVIEW",
]
