from flask import Blueprint, request, jsonify, g

from models.appointment import Appointment, APPOINTMENT_STATUSES
from models.user import ROLE_PATIENT
from security.rate_limit import rate_limited
from security.rbac import can_access_appointment, doctor_for, is_patient_only, login_required, require_roles
from services.booking import PatientInfo
from services.errors import SchedulingError, ValidationError
from utils.events import log_event
from utils.parsing import clean_text, is_valid_dni, parse_date, parse_datetime, parse_int
from utils.services import get_booking_service

appointments_bp = Blueprint("appointments", __name__, url_prefix="/appointments")


def serialize_appointment(apt: Appointment) -> dict:
    return {
        "id": apt.id,
        "specialty": {
            "id": apt.specialty_id,
            "name": apt.specialty.name if apt.specialty else None,
        },
        "doctor": {
            "id": apt.doctor_id,
            "name": apt.doctor.display_name if apt.doctor else None,
        } if apt.doctor_id else None,
        "patient": {
            "name": apt.patient_name,
            "dni": apt.dni,
            "birthdate": apt.birthdate.isoformat(),
            "phone": apt.phone,
        },
        "datetime": {
            "start": apt.start_dt.isoformat(),
            "end": apt.end_dt.isoformat(),
            "date": apt.appointment_date.isoformat(),
        },
        "status": apt.status,
        "created_by": apt.created_by,
        "created_at": apt.created_at.isoformat(),
        "cancelled_at": apt.cancelled_at.isoformat() if apt.cancelled_at else None,
    }


def _parse_patient(raw) -> PatientInfo:
    if not isinstance(raw, dict):
        raise ValidationError("Incomplete patient data", required=["name", "dni", "birthdate"])

    name = clean_text(raw.get("name"), 150)
    dni = (raw.get("dni") or "").strip()
    phone = clean_text(raw.get("phone"), 30) or None

    if len(name) < 2:
        raise ValidationError("Patient name must have between 2 and 150 characters", field="patient.name")
    if not is_valid_dni(dni):
        raise ValidationError("DNI must have 6-20 alphanumeric characters", field="patient.dni")

    return PatientInfo(
        name=name,
        dni=dni,
        birthdate=parse_date(raw.get("birthdate"), "patient.birthdate"),
        phone=phone,
    )


# ---------- PUBLIC: book a slot (DOUBLE-BOOKING SAFE) ----------
@appointments_bp.post("")
@rate_limited("public_booking")
def create_appointment():
    data = request.get_json(silent=True) or {}
    specialty_id = parse_int(data.get("specialty_id"), "specialty_id")
    doctor_id = parse_int(data.get("doctor_id"), "doctor_id", required=False)
    patient = _parse_patient(data.get("patient"))
    start = parse_datetime(data.get("start"), "start")
    end = parse_datetime(data.get("end"), "end")

    user = getattr(g, "user", None)
    service = get_booking_service()
    try:
        appointment = service.create_appointment(
            specialty_id,
            doctor_id,
            patient,
            start,
            end,
            created_by=user.id if user else None,
        )
    except SchedulingError as exc:
        log_event(
            "BOOKING_CONFLICT" if exc.http_status == 409 else "BOOKING_FAIL",
            user_id=user.id if user else None,
            entity="specialty",
            entity_id=specialty_id,
            metadata={"code": exc.code, "doctor_id": doctor_id, "start": start.isoformat()},
        )
        raise

    log_event(
        "BOOKING_CREATE",
        user_id=user.id if user else None,
        entity="appointment",
        entity_id=appointment.id,
        metadata={"specialty_id": specialty_id, "doctor_id": doctor_id},
    )
    return jsonify(message="Appointment created", appointment=serialize_appointment(appointment)), 201


# ---------- STAFF/DOCTOR: search appointments ----------
@appointments_bp.get("")
@require_roles("OPERATOR", "DOCTOR")
def list_appointments():
    q = Appointment.query

    if request.args.get("from"):
        q = q.filter(Appointment.start_dt >= parse_datetime(request.args["from"], "from"))
    if request.args.get("to"):
        q = q.filter(Appointment.start_dt <= parse_datetime(request.args["to"], "to"))

    specialty_id = parse_int(request.args.get("specialtyId"), "specialtyId", required=False)
    if specialty_id:
        q = q.filter(Appointment.specialty_id == specialty_id)

    doctor_id = parse_int(request.args.get("doctorId"), "doctorId", required=False)
    if not g.user.is_staff:
        # doctors only ever see their own agenda
        doctor = doctor_for(g.user)
        doctor_id = doctor.id if doctor else -1
    if doctor_id:
        q = q.filter(Appointment.doctor_id == doctor_id)

    dni = (request.args.get("dni") or "").strip()
    if dni:
        q = q.filter(Appointment.dni == dni)

    status = (request.args.get("status") or "").strip()
    if status:
        if status not in APPOINTMENT_STATUSES:
            return jsonify(error="Invalid status", code="VALIDATION_ERROR"), 400
        q = q.filter(Appointment.status == status)

    rows = q.order_by(Appointment.start_dt.asc()).limit(500).all()
    return jsonify(appointments=[serialize_appointment(a) for a in rows]), 200


# ---------- PATIENT/DOCTOR: my appointments ----------
@appointments_bp.get("/me")
@login_required
def my_appointments():
    doctor = doctor_for(g.user)
    if doctor:
        q = Appointment.query.filter_by(doctor_id=doctor.id).order_by(Appointment.start_dt.asc())
    elif g.user.has_role(ROLE_PATIENT):
        if not g.user.dni:
            return jsonify(error="DNI required to look up appointments", code="DNI_REQUIRED"), 400
        q = Appointment.query.filter_by(dni=g.user.dni).order_by(Appointment.start_dt.desc())
    else:
        return jsonify(error="Role not valid for this query", code="INVALID_ROLE_FOR_QUERY"), 400

    return jsonify(appointments=[serialize_appointment(a) for a in q.all()]), 200


@appointments_bp.get("/<int:appointment_id>")
@login_required
def get_appointment(appointment_id: int):
    appointment = get_booking_service().get_appointment(appointment_id)
    if not can_access_appointment(g.user, appointment):
        return jsonify(error="You cannot view this appointment", code="ACCESS_DENIED"), 403
    return jsonify(appointment=serialize_appointment(appointment)), 200


# ---------- STAFF/DOCTOR: confirm, check in, cancel ----------
@appointments_bp.patch("/<int:appointment_id>/status")
@require_roles("OPERATOR", "DOCTOR")
def update_status(appointment_id: int):
    data = request.get_json(silent=True) or {}
    status = (data.get("status") or "").strip()

    service = get_booking_service()
    appointment = service.get_appointment(appointment_id)
    if not can_access_appointment(g.user, appointment):
        return jsonify(error="You cannot change this appointment", code="ACCESS_DENIED"), 403

    previous = appointment.status
    service.transition(appointment_id, status)

    log_event(
        "APPOINTMENT_STATUS",
        user_id=g.user.id,
        entity="appointment",
        entity_id=appointment_id,
        metadata={"from": previous, "to": status},
    )
    return jsonify(message="Appointment status updated", status=status), 200


# ---------- cancel (patient: own + cutoff, doctor: own, staff: any) ----------
@appointments_bp.delete("/<int:appointment_id>")
@login_required
def cancel_appointment(appointment_id: int):
    service = get_booking_service()
    appointment = service.get_appointment(appointment_id)
    if not can_access_appointment(g.user, appointment):
        return jsonify(error="You cannot cancel this appointment", code="ACCESS_DENIED"), 403

    service.cancel(appointment_id, enforce_cutoff=is_patient_only(g.user))

    log_event("APPOINTMENT_CANCEL", user_id=g.user.id, entity="appointment", entity_id=appointment_id)
    return jsonify(message="Appointment cancelled"), 200
