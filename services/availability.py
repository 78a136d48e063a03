"""
Availability resolution.

Resolves the specialty's booking mode, collects the schedule rules that apply
to a date, reads the active appointments once and runs the slot generator
for every rule. Results are re-read on every call; nothing is cached.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from services.errors import InfrastructureFailure, InvalidBookingMode, NotFound, SchedulingError
from services.records import SpecialtyView
from services.slots import Slot, generate_slots

logger = logging.getLogger(__name__)

DAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}

WALKIN_MESSAGE = "Patients are seen in order of arrival. No appointment needed."
REQUEST_MESSAGE = "This specialty requires a prior request. Times cannot be booked directly."


def available_count(slots: List[Slot]) -> int:
    return sum(s.available for s in slots)


class AvailabilityResolver:
    def __init__(self, store):
        self.store = store

    def get_specialty(self, specialty_id: int) -> SpecialtyView:
        specialty = self.store.find_specialty_by_id(specialty_id)
        if specialty is None:
            raise NotFound("Specialty not found", specialty_id=specialty_id)
        return specialty

    def require_slot_specialty(self, specialty_id: int) -> SpecialtyView:
        specialty = self.get_specialty(specialty_id)
        if specialty.booking_mode == "WALKIN":
            raise InvalidBookingMode(
                "This specialty does not take appointments by time. " + WALKIN_MESSAGE,
                booking_mode="WALKIN",
            )
        if specialty.booking_mode == "REQUEST":
            raise InvalidBookingMode(REQUEST_MESSAGE, booking_mode="REQUEST")
        return specialty

    def get_available_slots(self, specialty_id: int, doctor_id: Optional[int], the_date: date) -> List[Slot]:
        self.require_slot_specialty(specialty_id)

        rules = self.store.find_applicable_rules(specialty_id, doctor_id, the_date, the_date.isoweekday())
        if not rules:
            return []

        # one read shared by every rule
        appointments = self.store.find_active_appointments(specialty_id, doctor_id, the_date)

        slots = []
        for rule in rules:
            slots.extend(generate_slots(rule, the_date, appointments))

        logger.debug(
            "specialty=%s doctor=%s date=%s rules=%d slots=%d",
            specialty_id, doctor_id, the_date, len(rules), len(slots),
        )
        # sorted() is stable: equal starts keep rule order, then generation order
        return sorted(slots, key=lambda s: s.start)

    def find_slot(self, specialty_id: int, doctor_id: Optional[int],
                  start: datetime, end: datetime) -> Optional[Slot]:
        """The first currently bookable slot matching the exact window, if any."""
        for slot in self.get_available_slots(specialty_id, doctor_id, start.date()):
            if (
                slot.start == start
                and slot.end == end
                and slot.available > 0
                and (doctor_id is None or slot.doctor_id == doctor_id)
            ):
                return slot
        return None

    def get_weekly_availability(self, specialty_id: int, doctor_id: Optional[int],
                                start_date: date, days: int = 7) -> Dict[date, Union[List[Slot], SchedulingError]]:
        """Slots for each of the next ``days`` dates.

        A domain error on one date is kept as that date's value so the other
        dates are still reported. Store failures abort the whole view.
        """
        self.require_slot_specialty(specialty_id)
        week = {}
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            try:
                week[day] = self.get_available_slots(specialty_id, doctor_id, day)
            except InfrastructureFailure:
                raise
            except SchedulingError as exc:
                logger.info("weekly availability skipped %s: %s", day, exc.code)
                week[day] = exc
        return week

    def get_doctor_availability(self, doctor_id: int, the_date: date,
                                specialty_id: Optional[int] = None) -> Dict[SpecialtyView, List[Slot]]:
        doctor = self.store.find_doctor_by_id(doctor_id)
        if doctor is None:
            raise NotFound("Doctor not found", doctor_id=doctor_id)

        if specialty_id:
            specialty = self.get_specialty(specialty_id)
            return {specialty: self.get_available_slots(specialty_id, doctor_id, the_date)}

        result = {}
        for specialty in self.store.list_doctor_specialties(doctor_id):
            if specialty.booking_mode != "SLOT":
                continue
            result[specialty] = self.get_available_slots(specialty.id, doctor_id, the_date)
        return result

    def get_walkin_schedule(self, specialty_id: int) -> dict:
        specialty = self.get_specialty(specialty_id)
        if specialty.booking_mode != "WALKIN":
            raise InvalidBookingMode("This specialty is not walk-in", booking_mode=specialty.booking_mode)

        hours = {}
        for day_of_week, start, end in self.store.list_clinic_hours():
            hours.setdefault(DAY_NAMES[day_of_week], []).append({
                "start": start.strftime("%H:%M"),
                "end": end.strftime("%H:%M"),
            })

        return {
            "specialty": specialty.name,
            "mode": "WALKIN",
            "message": WALKIN_MESSAGE,
            "hours": hours,
        }
