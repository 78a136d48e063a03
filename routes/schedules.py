from flask import Blueprint, request, jsonify, g

from models import db
from models.doctor import Doctor
from models.schedule import Schedule, ScheduleException, SCHEDULE_TYPES
from models.specialty import Specialty
from security.rbac import require_roles
from services.errors import ValidationError
from utils.events import log_event
from utils.parsing import parse_date, parse_int, parse_time

schedules_bp = Blueprint("schedules", __name__, url_prefix="/schedules")

ALL_DAYS_MASK = 0b1111111


def serialize_schedule(s: Schedule) -> dict:
    return {
        "id": s.id,
        "specialty_id": s.specialty_id,
        "doctor_id": s.doctor_id,
        "type": s.type,
        "days_mask": s.days_mask,
        "date_start": s.date_start.isoformat(),
        "date_end": s.date_end.isoformat() if s.date_end else None,
        "time_start": s.time_start.strftime("%H:%M"),
        "time_end": s.time_end.strftime("%H:%M"),
        "slot_minutes": s.slot_minutes,
        "capacity": s.capacity,
        "active": s.active,
    }


def serialize_exception(e: ScheduleException) -> dict:
    return {
        "schedule_id": e.schedule_id,
        "date": e.the_date.isoformat(),
        "is_closed": e.is_closed,
        "time_start": e.ex_time_start.strftime("%H:%M") if e.ex_time_start else None,
        "time_end": e.ex_time_end.strftime("%H:%M") if e.ex_time_end else None,
    }


def _int_field(value, field, default=0):
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)


def _check_window(schedule: Schedule):
    if schedule.time_start >= schedule.time_end:
        raise ValidationError("time_start must be before time_end")
    if schedule.slot_minutes is None or schedule.slot_minutes <= 0:
        raise ValidationError("slot_minutes must be greater than 0")
    if schedule.capacity is None or schedule.capacity < 1:
        raise ValidationError("capacity must be at least 1")
    if schedule.type == "WEEKLY":
        if not 0 < schedule.days_mask <= ALL_DAYS_MASK:
            raise ValidationError("days_mask must select at least one weekday (bits 0-6)")
        if schedule.date_end and schedule.date_end < schedule.date_start:
            raise ValidationError("date_end must not be before date_start")


@schedules_bp.get("")
@require_roles("OPERATOR", "DOCTOR")
def list_schedules():
    specialty_id = request.args.get("specialty_id", type=int)
    doctor_id = request.args.get("doctor_id", type=int)
    include_inactive = request.args.get("include_inactive") == "1"

    q = Schedule.query
    if specialty_id:
        q = q.filter_by(specialty_id=specialty_id)
    if doctor_id:
        q = q.filter_by(doctor_id=doctor_id)
    if not include_inactive:
        q = q.filter_by(active=True)

    rows = q.order_by(Schedule.specialty_id.asc(), Schedule.id.asc()).all()
    return jsonify([serialize_schedule(s) for s in rows]), 200


@schedules_bp.post("")
@require_roles("ADMIN")
def create_schedule():
    data = request.get_json(silent=True) or {}

    specialty_id = parse_int(data.get("specialty_id"), "specialty_id")
    doctor_id = parse_int(data.get("doctor_id"), "doctor_id", required=False)
    schedule_type = (data.get("type") or "WEEKLY").strip().upper()
    if schedule_type not in SCHEDULE_TYPES:
        return jsonify(error="type must be WEEKLY or ONE_OFF", code="VALIDATION_ERROR"), 400

    specialty = db.session.get(Specialty, specialty_id)
    if not specialty:
        return jsonify(error="Specialty not found", code="NOT_FOUND"), 404
    if doctor_id and not db.session.get(Doctor, doctor_id):
        return jsonify(error="Doctor not found", code="NOT_FOUND"), 404

    schedule = Schedule(
        specialty_id=specialty_id,
        doctor_id=doctor_id,
        type=schedule_type,
        days_mask=_int_field(data.get("days_mask"), "days_mask"),
        date_start=parse_date(data.get("date_start"), "date_start"),
        date_end=parse_date(data["date_end"], "date_end") if data.get("date_end") else None,
        time_start=parse_time(data.get("time_start"), "time_start"),
        time_end=parse_time(data.get("time_end"), "time_end"),
        slot_minutes=_int_field(data.get("slot_minutes"), "slot_minutes", 30),
        capacity=_int_field(data.get("capacity"), "capacity", 1),
        active=bool(data.get("active", True)),
    )
    _check_window(schedule)

    db.session.add(schedule)
    db.session.commit()

    log_event("SCHEDULE_CREATE", user_id=g.user.id, entity="schedule", entity_id=schedule.id)
    return jsonify(serialize_schedule(schedule)), 201


@schedules_bp.patch("/<int:schedule_id>")
@require_roles("ADMIN")
def update_schedule(schedule_id: int):
    schedule = db.session.get(Schedule, schedule_id)
    if not schedule:
        return jsonify(error="Schedule not found", code="NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    if "time_start" in data:
        schedule.time_start = parse_time(data["time_start"], "time_start")
    if "time_end" in data:
        schedule.time_end = parse_time(data["time_end"], "time_end")
    if "date_end" in data:
        schedule.date_end = parse_date(data["date_end"], "date_end") if data["date_end"] else None
    if "days_mask" in data:
        schedule.days_mask = _int_field(data["days_mask"], "days_mask")
    if "slot_minutes" in data:
        schedule.slot_minutes = _int_field(data["slot_minutes"], "slot_minutes")
    if "capacity" in data:
        schedule.capacity = _int_field(data["capacity"], "capacity")
    if "active" in data:
        schedule.active = bool(data["active"])

    # a ValidationError here rolls the pending changes back in the app error handler
    _check_window(schedule)
    db.session.commit()
    log_event("SCHEDULE_UPDATE", user_id=g.user.id, entity="schedule", entity_id=schedule.id)
    return jsonify(serialize_schedule(schedule)), 200


@schedules_bp.post("/<int:schedule_id>/exceptions")
@require_roles("ADMIN")
def upsert_exception(schedule_id: int):
    schedule = db.session.get(Schedule, schedule_id)
    if not schedule:
        return jsonify(error="Schedule not found", code="NOT_FOUND"), 404

    data = request.get_json(silent=True) or {}
    the_date = parse_date(data.get("date"))
    is_closed = bool(data.get("is_closed", False))

    ex_start = ex_end = None
    if not is_closed:
        ex_start = parse_time(data.get("time_start"), "time_start")
        ex_end = parse_time(data.get("time_end"), "time_end")
        if ex_start >= ex_end:
            return jsonify(error="time_start must be before time_end", code="VALIDATION_ERROR"), 400

    row = ScheduleException.query.filter_by(schedule_id=schedule_id, the_date=the_date).first()
    created = row is None
    if created:
        row = ScheduleException(schedule_id=schedule_id, the_date=the_date)
        db.session.add(row)
    row.is_closed = is_closed
    row.ex_time_start = ex_start
    row.ex_time_end = ex_end
    db.session.commit()

    log_event(
        "SCHEDULE_EXCEPTION_SET",
        user_id=g.user.id,
        entity="schedule",
        entity_id=schedule_id,
        metadata={"date": the_date.isoformat(), "is_closed": is_closed},
    )
    return jsonify(serialize_exception(row)), 201 if created else 200


@schedules_bp.delete("/<int:schedule_id>/exceptions/<the_date>")
@require_roles("ADMIN")
def delete_exception(schedule_id: int, the_date: str):
    day = parse_date(the_date)
    row = ScheduleException.query.filter_by(schedule_id=schedule_id, the_date=day).first()
    if not row:
        return jsonify(error="Exception not found", code="NOT_FOUND"), 404

    db.session.delete(row)
    db.session.commit()

    log_event("SCHEDULE_EXCEPTION_DELETE", user_id=g.user.id, entity="schedule", entity_id=schedule_id)
    return jsonify(message="Exception removed"), 200
