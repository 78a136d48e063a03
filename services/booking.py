"""
Booking transaction.

Steps 1-3 of ``create_appointment`` are optimistic pre-checks that only exist
to give a friendly error before writing. The insert is the real guarantee:
the appointments table carries the patient-per-day and doctor-slot unique
indexes, so of two requests racing past the pre-checks exactly one commits
and the other gets PatientConflict / DoctorConflict. No locks are taken.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from services.availability import AvailabilityResolver
from services.errors import (
    CancellationTooLate,
    DoctorConflict,
    InvalidTransition,
    NotFound,
    PatientConflict,
    SlotNotAvailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

# cancelled is terminal, there is no way back into the active set
STATUS_TRANSITIONS = {
    "booked": {"confirmed", "checked_in", "cancelled"},
    "confirmed": {"checked_in", "cancelled"},
    "checked_in": {"cancelled"},
    "cancelled": set(),
}


@dataclass(frozen=True)
class PatientInfo:
    name: str
    dni: str
    birthdate: date
    phone: Optional[str] = None


class BookingService:
    def __init__(self, store, resolver: Optional[AvailabilityResolver] = None, cancel_cutoff_hours: int = 2):
        self.store = store
        self.resolver = resolver or AvailabilityResolver(store)
        self.cancel_cutoff_hours = cancel_cutoff_hours

    def create_appointment(self, specialty_id: int, doctor_id: Optional[int], patient: PatientInfo,
                           start: datetime, end: datetime, created_by: Optional[int] = None,
                           now: Optional[datetime] = None):
        now = now or datetime.now()
        if start >= end:
            raise ValidationError("start must be before end")
        if start <= now:
            raise ValidationError("Appointment must be in the future")

        # 1. the window must still be a generated slot with room left
        slot = self.resolver.find_slot(specialty_id, doctor_id, start, end)
        if slot is None:
            logger.info("slot not available specialty=%s doctor=%s start=%s", specialty_id, doctor_id, start)
            raise SlotNotAvailable()

        # a doctor-specific slot is booked against that doctor
        if doctor_id is None:
            doctor_id = slot.doctor_id

        # 2. one active appointment per patient per day
        if self.store.has_patient_conflict(patient.dni, start.date()):
            raise PatientConflict()

        # 3. the doctor must be free for the whole window
        if doctor_id and self.store.has_doctor_conflict(doctor_id, start, end):
            raise DoctorConflict()

        # 4. constrained insert, raises PatientConflict / DoctorConflict on a lost race
        appointment = self.store.insert_appointment({
            "specialty_id": specialty_id,
            "doctor_id": doctor_id,
            "patient_name": patient.name,
            "dni": patient.dni,
            "birthdate": patient.birthdate,
            "phone": patient.phone,
            "start_dt": start,
            "end_dt": end,
            "created_by": created_by,
            "status": "booked",
        })
        logger.info("appointment %s booked on schedule %s", appointment.id, slot.schedule_id)
        return appointment

    def get_appointment(self, appointment_id: int):
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found", appointment_id=appointment_id)
        return appointment

    def transition(self, appointment_id: int, new_status: str, now: Optional[datetime] = None):
        if new_status not in STATUS_TRANSITIONS:
            raise ValidationError(
                "Invalid status",
                valid_statuses=sorted(STATUS_TRANSITIONS),
            )

        appointment = self.get_appointment(appointment_id)
        current = appointment.status
        if new_status not in STATUS_TRANSITIONS[current]:
            raise InvalidTransition(
                f"Cannot change appointment from {current} to {new_status}",
                current=current,
                requested=new_status,
            )

        self.store.update_status(appointment_id, new_status, now=now)
        return appointment

    def cancel(self, appointment_id: int, enforce_cutoff: bool = True, now: Optional[datetime] = None):
        """Cancel an appointment. Patients may not cancel inside the cutoff window."""
        now = now or datetime.now()
        appointment = self.get_appointment(appointment_id)

        if appointment.status == "cancelled":
            raise InvalidTransition("Appointment is already cancelled", current="cancelled", requested="cancelled")

        if enforce_cutoff and appointment.start_dt - now < timedelta(hours=self.cancel_cutoff_hours):
            raise CancellationTooLate(
                f"Appointments cannot be cancelled less than {self.cancel_cutoff_hours} hours in advance",
                cutoff_hours=self.cancel_cutoff_hours,
            )

        return self.transition(appointment_id, "cancelled", now=now)
