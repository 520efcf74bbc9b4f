from roombook.bookings.admission import (
    SubmitBookingArgs,
    parse_submit_booking_args,
    serialize_booking,
    submit_booking,
)
from roombook.bookings.status import (
    ChangeBookingStatusArgs,
    change_booking_status,
    parse_change_status_args,
)

__all__ = [
    "ChangeBookingStatusArgs",
    "SubmitBookingArgs",
    "change_booking_status",
    "parse_change_status_args",
    "parse_submit_booking_args",
    "serialize_booking",
    "submit_booking",
]
