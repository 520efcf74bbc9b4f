"""Contiguous-range selection over a generated slot grid.

The grid is two sequences: the requested day's hourly slots and the carryover
tail of the following morning. A selection runs from a start slot to an end
slot (inclusive) and may cross midnight forwards, never backwards. The same
function backs the interactive picker and the server-side re-check at
submission, so both always agree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from roombook.availability.intervals import Slot, ensure_aware

CONTINUOUS = "CONTINUOUS"
END_BEFORE_START = "END_BEFORE_START"
DISCONTINUOUS = "DISCONTINUOUS"
REVERSED_DAY_ORDER = "REVERSED_DAY_ORDER"
UNKNOWN_SLOT = "UNKNOWN_SLOT"

CURRENT_DAY = "current_day"
CARRYOVER = "carryover"


@dataclass(frozen=True)
class SelectionResult:
    status: str
    slot_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == CONTINUOUS

    def to_json(self) -> dict[str, Any]:
        return {"result": self.status, "slot_ids": list(self.slot_ids)}


def validate_selection(
    current_day: Sequence[Slot],
    carryover: Sequence[Slot],
    start_slot_id: str,
    end_slot_id: str,
) -> SelectionResult:
    start = _locate(current_day, carryover, start_slot_id)
    end = _locate(current_day, carryover, end_slot_id)
    if start is None or end is None:
        return SelectionResult(status=UNKNOWN_SLOT)

    start_sequence, start_index = start
    end_sequence, end_index = end

    if start_slot_id == end_slot_id:
        return SelectionResult(status=CONTINUOUS, slot_ids=[start_slot_id])

    if start_sequence == CARRYOVER and end_sequence == CURRENT_DAY:
        return SelectionResult(status=REVERSED_DAY_ORDER)

    start_slot = _pick(current_day, carryover, start_sequence, start_index)
    end_slot = _pick(current_day, carryover, end_sequence, end_index)
    if ensure_aware(end_slot.start) < ensure_aware(start_slot.start):
        return SelectionResult(status=END_BEFORE_START)

    if start_sequence == end_sequence:
        sequence = current_day if start_sequence == CURRENT_DAY else carryover
        span = list(sequence[start_index : end_index + 1])
    else:
        span = list(current_day[start_index:]) + list(carryover[: end_index + 1])

    if not all(slot.available for slot in span):
        return SelectionResult(status=DISCONTINUOUS)
    return SelectionResult(status=CONTINUOUS, slot_ids=[slot.id for slot in span])


def _locate(
    current_day: Sequence[Slot],
    carryover: Sequence[Slot],
    slot_id: str,
) -> tuple[str, int] | None:
    for index, slot in enumerate(current_day):
        if slot.id == slot_id:
            return CURRENT_DAY, index
    for index, slot in enumerate(carryover):
        if slot.id == slot_id:
            return CARRYOVER, index
    return None


def _pick(
    current_day: Sequence[Slot],
    carryover: Sequence[Slot],
    sequence_name: str,
    index: int,
) -> Slot:
    if sequence_name == CURRENT_DAY:
        return current_day[index]
    return carryover[index]
