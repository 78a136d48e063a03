"""
Persistence boundary for the availability and booking engine.

``SchedulingStore`` wraps an explicit SQLAlchemy session; every row that
leaves it is mapped to one of the frozen records in ``services.records``.
Database faults surface as ``InfrastructureFailure`` and uniqueness
violations on appointments surface as ``PatientConflict`` / ``DoctorConflict``.
"""
import logging
from datetime import date, datetime
from functools import wraps
from typing import List, Optional

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from models.appointment import Appointment, ACTIVE_STATUSES
from models.clinic_hour import ClinicHour
from models.doctor import Doctor
from models.doctor_day_lock import DoctorDayLock
from models.schedule import Schedule, ScheduleException
from models.specialty import Specialty
from services.errors import (
    DoctorConflict,
    InfrastructureFailure,
    PatientConflict,
    ValidationError,
)
from services.records import BookedInterval, DoctorView, RuleView, SpecialtyView

logger = logging.getLogger(__name__)

# Constraint names (PostgreSQL) and column lists (SQLite) that identify which
# appointment invariant an IntegrityError came from.
_PATIENT_DAY_MARKERS = ("uq_appointments_patient_day", "appointments.dni")
_DOCTOR_MARKERS = (
    "uq_appointments_doctor_slot",
    "ex_appointments_doctor_overlap",
    "appointments.doctor_id",
)


def _guarded(fn):
    """Turn driver level failures into InfrastructureFailure after a rollback."""
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except IntegrityError:
            raise
        except (DBAPIError, SQLAlchemyError) as exc:
            self.session.rollback()
            logger.warning("store operation %s failed: %s", fn.__name__, exc.__class__.__name__)
            raise InfrastructureFailure() from exc
    return wrapper


def conflict_for_integrity_error(exc: IntegrityError):
    """Map an appointment insert IntegrityError to the domain conflict it encodes."""
    diag = getattr(exc.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None) or ""
    text = f"{constraint} {exc.orig}"

    if any(marker in text for marker in _PATIENT_DAY_MARKERS):
        return PatientConflict()
    if any(marker in text for marker in _DOCTOR_MARKERS):
        return DoctorConflict()
    return None


def _specialty_view(row: Specialty) -> SpecialtyView:
    return SpecialtyView(id=row.id, name=row.name, booking_mode=row.booking_mode)


class SchedulingStore:
    def __init__(self, session):
        self.session = session

    # ---------- lookups ----------
    @_guarded
    def find_specialty_by_id(self, specialty_id: int) -> Optional[SpecialtyView]:
        row = self.session.get(Specialty, specialty_id)
        return _specialty_view(row) if row else None

    @_guarded
    def find_doctor_by_id(self, doctor_id: int) -> Optional[DoctorView]:
        row = self.session.get(Doctor, doctor_id)
        if not row:
            return None
        return DoctorView(
            id=row.id,
            display_name=row.display_name,
            specialty_ids=tuple(sorted(s.id for s in row.specialties)),
        )

    @_guarded
    def list_doctor_specialties(self, doctor_id: int) -> List[SpecialtyView]:
        row = self.session.get(Doctor, doctor_id)
        if not row:
            return []
        return [_specialty_view(s) for s in sorted(row.specialties, key=lambda s: s.id)]

    @_guarded
    def list_clinic_hours(self) -> list:
        rows = (
            self.session.query(ClinicHour)
            .filter(ClinicHour.active.is_(True))
            .order_by(ClinicHour.day_of_week, ClinicHour.start_time)
            .all()
        )
        return [(r.day_of_week, r.start_time, r.end_time) for r in rows]

    @_guarded
    def find_applicable_rules(self, specialty_id: int, doctor_id: Optional[int],
                              the_date: date, weekday: int) -> List[RuleView]:
        weekday_bit = 1 << (weekday - 1)

        q = (
            self.session.query(Schedule, ScheduleException)
            .outerjoin(
                ScheduleException,
                and_(
                    ScheduleException.schedule_id == Schedule.id,
                    ScheduleException.the_date == the_date,
                ),
            )
            .filter(
                Schedule.specialty_id == specialty_id,
                Schedule.active.is_(True),
                or_(
                    and_(
                        Schedule.type == "WEEKLY",
                        Schedule.days_mask.op("&")(weekday_bit) != 0,
                        Schedule.date_start <= the_date,
                        or_(Schedule.date_end.is_(None), Schedule.date_end >= the_date),
                    ),
                    and_(Schedule.type == "ONE_OFF", Schedule.date_start == the_date),
                ),
                or_(ScheduleException.id.is_(None), ScheduleException.is_closed.is_(False)),
            )
        )
        if doctor_id:
            q = q.filter(or_(Schedule.doctor_id == doctor_id, Schedule.doctor_id.is_(None)))

        rules = []
        for sched, exc in q.order_by(Schedule.id.asc()).all():
            rules.append(RuleView(
                id=sched.id,
                specialty_id=sched.specialty_id,
                doctor_id=sched.doctor_id,
                type=sched.type,
                days_mask=sched.days_mask,
                date_start=sched.date_start,
                date_end=sched.date_end,
                time_start=sched.time_start,
                time_end=sched.time_end,
                slot_minutes=sched.slot_minutes,
                capacity=sched.capacity,
                is_closed=bool(exc.is_closed) if exc else False,
                ex_time_start=exc.ex_time_start if exc else None,
                ex_time_end=exc.ex_time_end if exc else None,
            ))
        return rules

    @_guarded
    def find_active_appointments(self, specialty_id: int, doctor_id: Optional[int],
                                 the_date: date) -> List[BookedInterval]:
        q = self.session.query(Appointment.start_dt, Appointment.end_dt, Appointment.doctor_id).filter(
            Appointment.specialty_id == specialty_id,
            Appointment.appointment_date == the_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if doctor_id:
            q = q.filter(Appointment.doctor_id == doctor_id)

        return [
            BookedInterval(start_dt=r.start_dt, end_dt=r.end_dt, doctor_id=r.doctor_id)
            for r in q.order_by(Appointment.start_dt.asc()).all()
        ]

    # ---------- conflict pre-checks ----------
    @_guarded
    def has_patient_conflict(self, dni: str, the_date: date, exclude_id: Optional[int] = None) -> bool:
        q = self.session.query(Appointment.id).filter(
            Appointment.dni == dni,
            Appointment.appointment_date == the_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if exclude_id:
            q = q.filter(Appointment.id != exclude_id)
        return q.first() is not None

    @_guarded
    def has_doctor_conflict(self, doctor_id: int, start: datetime, end: datetime,
                            exclude_id: Optional[int] = None) -> bool:
        return self._doctor_overlaps(doctor_id, start, end, exclude_id)

    def _doctor_overlaps(self, doctor_id, start, end, exclude_id=None) -> bool:
        q = self.session.query(Appointment.id).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_dt < end,
            Appointment.end_dt > start,
        )
        if exclude_id:
            q = q.filter(Appointment.id != exclude_id)
        return q.first() is not None

    # ---------- writes ----------
    def _enforces_doctor_overlap(self) -> bool:
        # Only the PostgreSQL schema carries ex_appointments_doctor_overlap.
        return self.session.get_bind().dialect.name == "postgresql"

    def _claim_doctor_day(self, doctor_id: int, the_date: date) -> None:
        """Write the doctor's lock row for the day; the write holds the store's
        writer lock (whole database on SQLite, the row elsewhere) until commit."""
        table = DoctorDayLock.__table__
        match = and_(table.c.doctor_id == doctor_id, table.c.the_date == the_date)

        if self.session.get_bind().dialect.name == "sqlite":
            self.session.execute(
                sqlite_insert(table)
                .values(doctor_id=doctor_id, the_date=the_date, claims=0)
                .on_conflict_do_nothing(index_elements=["doctor_id", "the_date"])
            )
        elif self.session.execute(select(table.c.id).where(match)).first() is None:
            try:
                with self.session.begin_nested():
                    self.session.execute(insert(table).values(doctor_id=doctor_id, the_date=the_date, claims=0))
            except IntegrityError:
                # a concurrent booking created the row first
                pass

        self.session.execute(update(table).where(match).values(claims=table.c.claims + 1))

    @_guarded
    def insert_appointment(self, data: dict) -> Appointment:
        doctor_id = data.get("doctor_id")
        start, end = data["start_dt"], data["end_dt"]

        if doctor_id and not self._enforces_doctor_overlap():
            self._claim_doctor_day(doctor_id, start.date())
            if self._doctor_overlaps(doctor_id, start, end):
                self.session.rollback()
                logger.info("doctor %s already holds an overlapping appointment at %s", doctor_id, start)
                raise DoctorConflict()

        row = Appointment(
            specialty_id=data["specialty_id"],
            doctor_id=doctor_id,
            patient_name=data["patient_name"],
            dni=data["dni"],
            birthdate=data["birthdate"],
            phone=data.get("phone"),
            start_dt=start,
            end_dt=end,
            appointment_date=start.date(),
            status=data.get("status", "booked"),
            created_by=data.get("created_by"),
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            conflict = conflict_for_integrity_error(exc)
            if conflict is None:
                raise ValidationError("Appointment data violates a store constraint") from exc
            raise conflict from exc
        return row

    @_guarded
    def get_appointment(self, appointment_id: int) -> Optional[Appointment]:
        return self.session.get(Appointment, appointment_id)

    @_guarded
    def update_status(self, appointment_id: int, new_status: str,
                      now: Optional[datetime] = None) -> bool:
        row = self.session.get(Appointment, appointment_id)
        if not row:
            return False
        row.status = new_status
        if new_status == "cancelled":
            # Same naive local clock as start_dt/end_dt.
            row.cancelled_at = now or datetime.now()
        self.session.commit()
        return True
