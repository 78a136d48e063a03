from datetime import datetime
from models.db import db

APPOINTMENT_STATUSES = ("booked", "confirmed", "checked_in", "cancelled")

# Only these statuses occupy capacity and count for conflicts
ACTIVE_STATUSES = ("booked", "confirmed", "checked_in")

_ACTIVE_WHERE = "status IN ('booked', 'confirmed', 'checked_in')"
_ACTIVE_DOCTOR_WHERE = _ACTIVE_WHERE + " AND doctor_id IS NOT NULL"


class Appointment(db.Model):
    __tablename__ = "appointments"

    id = db.Column(db.Integer, primary_key=True)

    specialty_id = db.Column(db.Integer, db.ForeignKey("specialties.id"), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=True, index=True)

    patient_name = db.Column(db.String(150), nullable=False)
    dni = db.Column(db.String(20), nullable=False, index=True)
    birthdate = db.Column(db.Date, nullable=False)
    phone = db.Column(db.String(30), nullable=True)

    start_dt = db.Column(db.DateTime, nullable=False, index=True)
    end_dt = db.Column(db.DateTime, nullable=False)
    # calendar date of start_dt, kept as a column so the patient-per-day rule is an index
    appointment_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="booked")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    specialty = db.relationship("Specialty")
    doctor = db.relationship("Doctor")

    __table_args__ = (
        db.CheckConstraint("start_dt < end_dt", name="ck_appointments_time_range"),
        db.CheckConstraint(
            "status IN ('booked', 'confirmed', 'checked_in', 'cancelled')",
            name="ck_appointments_status",
        ),
        # Hard business rules, the final word on concurrent bookings:
        # one active appointment per patient per day ...
        db.Index(
            "uq_appointments_patient_day",
            "dni",
            "appointment_date",
            unique=True,
            sqlite_where=db.text(_ACTIVE_WHERE),
            postgresql_where=db.text(_ACTIVE_WHERE),
        ),
        # ... and one active appointment per doctor per start time.
        # On PostgreSQL the migration adds ex_appointments_doctor_overlap on top.
        db.Index(
            "uq_appointments_doctor_slot",
            "doctor_id",
            "start_dt",
            unique=True,
            sqlite_where=db.text(_ACTIVE_DOCTOR_WHERE),
            postgresql_where=db.text(_ACTIVE_DOCTOR_WHERE),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
