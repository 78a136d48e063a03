from datetime import date

from flask import Blueprint, request, jsonify, current_app

from utils.parsing import parse_date, parse_int
from utils.services import get_resolver
from services.availability import available_count, REQUEST_MESSAGE
from services.errors import SchedulingError, ValidationError

availability_bp = Blueprint("availability", __name__, url_prefix="/availability")


def _not_in_past(the_date: date):
    if the_date < date.today():
        raise ValidationError("Cannot query availability for past dates", code="PAST_DATE_NOT_ALLOWED")


def _specialty_dict(specialty) -> dict:
    return {"id": specialty.id, "name": specialty.name, "booking_mode": specialty.booking_mode}


# ---------- availability for one specialty and date ----------
@availability_bp.get("")
def get_availability():
    specialty_id = parse_int(request.args.get("specialtyId"), "specialtyId")
    doctor_id = parse_int(request.args.get("doctorId"), "doctorId", required=False)
    the_date = parse_date(request.args.get("date"))
    _not_in_past(the_date)

    resolver = get_resolver()
    specialty = resolver.get_specialty(specialty_id)

    # WALKIN and REQUEST are answered here instead of surfacing InvalidBookingMode
    if specialty.booking_mode == "WALKIN":
        schedule = resolver.get_walkin_schedule(specialty_id)
        return jsonify(
            specialty=_specialty_dict(specialty),
            date=the_date.isoformat(),
            schedule=schedule,
            message=schedule["message"],
        ), 200

    if specialty.booking_mode == "REQUEST":
        return jsonify(
            specialty=_specialty_dict(specialty),
            date=the_date.isoformat(),
            available_slots=[],
            message=REQUEST_MESSAGE,
        ), 200

    slots = resolver.get_available_slots(specialty_id, doctor_id, the_date)
    return jsonify(
        specialty=_specialty_dict(specialty),
        date=the_date.isoformat(),
        doctor_id=doctor_id,
        available_slots=[s.to_dict() for s in slots],
        total_slots=len(slots),
        available_count=available_count(slots),
    ), 200


# ---------- next N days ----------
def _day_entry(day, slots):
    entry = {"day_name": day.strftime("%A"), "slots": [], "total_available": 0}
    if isinstance(slots, SchedulingError):
        entry.update(slots.to_dict())
        return entry
    entry["slots"] = [s.to_dict() for s in slots]
    entry["total_available"] = available_count(slots)
    return entry


@availability_bp.get("/weekly")
def get_weekly_availability():
    specialty_id = parse_int(request.args.get("specialtyId"), "specialtyId")
    doctor_id = parse_int(request.args.get("doctorId"), "doctorId", required=False)
    start = parse_date(request.args["from"], "from") if request.args.get("from") else date.today()
    _not_in_past(start)

    resolver = get_resolver()
    specialty = resolver.require_slot_specialty(specialty_id)
    week = resolver.get_weekly_availability(
        specialty_id,
        doctor_id,
        start,
        days=current_app.config.get("WEEKLY_AVAILABILITY_DAYS", 7),
    )

    return jsonify(
        specialty=_specialty_dict(specialty),
        doctor_id=doctor_id,
        weekly_availability={day.isoformat(): _day_entry(day, slots) for day, slots in week.items()},
    ), 200


# ---------- one doctor, all their SLOT specialties ----------
@availability_bp.get("/doctor/<int:doctor_id>")
def get_doctor_availability(doctor_id: int):
    the_date = parse_date(request.args.get("date"))
    specialty_id = parse_int(request.args.get("specialtyId"), "specialtyId", required=False)

    resolver = get_resolver()
    by_specialty = resolver.get_doctor_availability(doctor_id, the_date, specialty_id=specialty_id)
    doctor = resolver.store.find_doctor_by_id(doctor_id)

    return jsonify(
        doctor={"id": doctor.id, "name": doctor.display_name},
        date=the_date.isoformat(),
        specialties={
            str(specialty.id): {
                "specialty_name": specialty.name,
                "slots": [s.to_dict() for s in slots],
                "available_count": available_count(slots),
            }
            for specialty, slots in by_specialty.items()
        },
    ), 200
