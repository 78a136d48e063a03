from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional


@dataclass(frozen=True)
class SpecialtyView:
    id: int
    name: str
    booking_mode: str


@dataclass(frozen=True)
class DoctorView:
    id: int
    display_name: str
    specialty_ids: tuple = ()


@dataclass(frozen=True)
class RuleView:
    """A schedule rule with the exception for the queried date already merged in."""
    id: int
    specialty_id: int
    doctor_id: Optional[int]
    type: str
    days_mask: int
    date_start: date
    date_end: Optional[date]
    time_start: time
    time_end: time
    slot_minutes: int
    capacity: int
    is_closed: bool = False
    ex_time_start: Optional[time] = None
    ex_time_end: Optional[time] = None

    @property
    def effective_start(self) -> time:
        return self.ex_time_start or self.time_start

    @property
    def effective_end(self) -> time:
        return self.ex_time_end or self.time_end


@dataclass(frozen=True)
class BookedInterval:
    start_dt: datetime
    end_dt: datetime
    doctor_id: Optional[int]
