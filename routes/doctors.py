from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.doctor import Doctor
from models.specialty import Specialty
from models.user import User
from security.rbac import require_roles
from utils.events import log_event
from utils.parsing import clean_text

doctors_bp = Blueprint("doctors", __name__, url_prefix="/doctors")


def serialize_doctor(d: Doctor) -> dict:
    return {
        "id": d.id,
        "display_name": d.display_name,
        "title_prefix": d.title_prefix,
        "is_visible": d.is_visible,
        "specialties": [{"id": s.id, "name": s.name} for s in d.specialties],
    }


@doctors_bp.get("")
def list_doctors():
    specialty_id = request.args.get("specialty_id", type=int)

    q = Doctor.query.filter(Doctor.is_visible.is_(True))
    if specialty_id:
        q = q.filter(Doctor.specialties.any(Specialty.id == specialty_id))

    rows = q.order_by(Doctor.sort_order.asc(), Doctor.display_name.asc()).all()
    return jsonify([serialize_doctor(d) for d in rows]), 200


@doctors_bp.post("")
@require_roles("ADMIN")
def create_doctor():
    data = request.get_json(silent=True) or {}
    display_name = clean_text(data.get("display_name"), 150)
    specialty_ids = data.get("specialty_ids") or []
    user_id = data.get("user_id")

    if not display_name:
        return jsonify(error="display_name required", code="VALIDATION_ERROR"), 400
    if not isinstance(specialty_ids, list) or not all(isinstance(i, int) for i in specialty_ids):
        return jsonify(error="specialty_ids must be a list of ids", code="VALIDATION_ERROR"), 400

    specialties = Specialty.query.filter(Specialty.id.in_(specialty_ids)).all() if specialty_ids else []
    if len(specialties) != len(set(specialty_ids)):
        return jsonify(error="Specialty not found", code="NOT_FOUND"), 404

    if user_id is not None and not db.session.get(User, user_id):
        return jsonify(error="User not found", code="NOT_FOUND"), 404

    doctor = Doctor(
        display_name=display_name,
        title_prefix=clean_text(data.get("title_prefix"), 20) or None,
        user_id=user_id,
        specialties=specialties,
    )
    db.session.add(doctor)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="User already linked to a doctor", code="DUPLICATE_ENTRY"), 409

    log_event("DOCTOR_CREATE", user_id=g.user.id, entity="doctor", entity_id=doctor.id)
    return jsonify(serialize_doctor(doctor)), 201
