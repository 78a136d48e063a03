from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.specialty import Specialty, BOOKING_MODES
from security.rbac import require_roles
from utils.events import log_event
from utils.parsing import clean_text

specialties_bp = Blueprint("specialties", __name__, url_prefix="/specialties")


def serialize_specialty(s: Specialty) -> dict:
    return {"id": s.id, "name": s.name, "booking_mode": s.booking_mode}


@specialties_bp.get("")
def list_specialties():
    booking_mode = (request.args.get("booking_mode") or "").strip().upper()
    q = Specialty.query
    if booking_mode:
        if booking_mode not in BOOKING_MODES:
            return jsonify(error="Invalid booking_mode", code="VALIDATION_ERROR"), 400
        q = q.filter_by(booking_mode=booking_mode)

    rows = q.order_by(Specialty.name.asc()).all()
    return jsonify([serialize_specialty(s) for s in rows]), 200


@specialties_bp.post("")
@require_roles("ADMIN")
def create_specialty():
    data = request.get_json(silent=True) or {}
    name = clean_text(data.get("name"), 120)
    booking_mode = (data.get("booking_mode") or "SLOT").strip().upper()

    if not name:
        return jsonify(error="Specialty name required", code="VALIDATION_ERROR"), 400
    if booking_mode not in BOOKING_MODES:
        return jsonify(
            error="booking_mode must be one of " + ", ".join(BOOKING_MODES),
            code="VALIDATION_ERROR",
        ), 400

    specialty = Specialty(name=name, booking_mode=booking_mode)
    db.session.add(specialty)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Specialty name already exists", code="DUPLICATE_ENTRY"), 409

    log_event("SPECIALTY_CREATE", user_id=g.user.id, entity="specialty", entity_id=specialty.id)
    return jsonify(serialize_specialty(specialty)), 201


@specialties_bp.get("/<int:specialty_id>/doctors")
def specialty_doctors(specialty_id: int):
    specialty = db.session.get(Specialty, specialty_id)
    if not specialty:
        return jsonify(error="Specialty not found", code="NOT_FOUND"), 404

    doctors = sorted(
        (d for d in specialty.doctors if d.is_visible),
        key=lambda d: (d.sort_order, d.display_name),
    )
    return jsonify([
        {"id": d.id, "display_name": d.display_name, "title_prefix": d.title_prefix}
        for d in doctors
    ]), 200
