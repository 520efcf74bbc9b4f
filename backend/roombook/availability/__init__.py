from roombook.availability.intervals import (
    BusyInterval,
    IntervalSet,
    Slot,
    intervals_from_bookings,
    overlaps,
)
from roombook.availability.selection import SelectionResult, validate_selection

__all__ = [
    "BusyInterval",
    "IntervalSet",
    "SelectionResult",
    "Slot",
    "intervals_from_bookings",
    "overlaps",
    "validate_selection",
]
