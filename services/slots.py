"""
Slot generation.

Turns one schedule rule (exception already merged) into fixed-length slots for
a date and annotates each one with how much of its capacity the existing
active appointments use up.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional

from services.records import BookedInterval, RuleView


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    capacity: int
    taken: int
    available: int
    doctor_id: Optional[int]
    schedule_id: int

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "capacity": self.capacity,
            "taken": self.taken,
            "available": self.available,
            "doctorId": self.doctor_id,
            "scheduleId": self.schedule_id,
        }


def time_to_minutes(value) -> int:
    """Minutes since midnight for a ``time`` or an "HH:MM[:SS]" string."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = str(value).split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_datetime(the_date: date, total_minutes: int) -> datetime:
    # past-midnight offsets roll into the next day
    return datetime.combine(the_date, time(0, 0)) + timedelta(minutes=total_minutes)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # half-open intervals: touching ends do not overlap
    return start_a < end_b and end_a > start_b


def generate_slots(rule: RuleView, the_date: date, appointments: Iterable[BookedInterval]) -> List[Slot]:
    if rule.is_closed:
        return []

    start_minutes = time_to_minutes(rule.effective_start)
    end_minutes = time_to_minutes(rule.effective_end)
    step = rule.slot_minutes

    relevant = [
        apt for apt in appointments
        if rule.doctor_id is None or apt.doctor_id == rule.doctor_id
    ]

    slots = []
    current = start_minutes
    # A step is emitted whenever it starts before the window end, so the last
    # slot may run past time_end when the window is not a multiple of step.
    while current < end_minutes:
        slot_start = minutes_to_datetime(the_date, current)
        slot_end = minutes_to_datetime(the_date, current + step)

        taken = sum(
            1 for apt in relevant
            if overlaps(slot_start, slot_end, apt.start_dt, apt.end_dt)
        )

        slots.append(Slot(
            start=slot_start,
            end=slot_end,
            capacity=rule.capacity,
            taken=taken,
            available=max(0, rule.capacity - taken),
            doctor_id=rule.doctor_id,
            schedule_id=rule.id,
        ))
        current += step

    return slots
