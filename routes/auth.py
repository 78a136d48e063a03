from flask import Blueprint, request, jsonify, g

from models import db
from models.user import User, Role, ROLE_PATIENT
from security.password import hash_password, verify_password, password_problem
from security.rate_limit import rate_limited
from security.rbac import login_required
from security.session import open_session, close_session
from utils.events import log_event
from utils.parsing import clean_text, is_valid_dni

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def serialize_user(user: User) -> dict:
    doctor = user.doctor_profile
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone_number": user.phone_number,
        "dni": user.dni,
        "roles": user.role_names,
        "doctor_id": doctor.id if doctor else None,
    }


# ---------- patient self-registration ----------
@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    dni = (data.get("dni") or "").strip() or None

    if not _is_valid_email(email):
        return jsonify(error="Invalid email", code="VALIDATION_ERROR"), 400
    if dni and not is_valid_dni(dni):
        return jsonify(error="DNI must be 6-20 alphanumeric characters", code="VALIDATION_ERROR"), 400
    problem = password_problem(password, email=email, dni=dni)
    if problem:
        return jsonify(error=problem, code="VALIDATION_ERROR"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL", metadata={"reason": "duplicate_email"})
        return jsonify(error="Email already registered", code="DUPLICATE_ENTRY"), 409

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=clean_text(data.get("full_name"), 150) or None,
        phone_number=clean_text(data.get("phone_number"), 30) or None,
        dni=dni,
    )
    patient_role = Role.query.filter_by(name=ROLE_PATIENT).first()
    if patient_role:
        user.roles.append(patient_role)

    db.session.add(user)
    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, entity="user", entity_id=user.id)

    return jsonify(id=user.id, message="Registered successfully"), 201


@auth_bp.post("/login")
@rate_limited("login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None)
        return jsonify(error="Invalid credentials", code="INVALID_CREDENTIALS"), 401

    resp = jsonify(message="Login OK", roles=user.role_names)
    revoked = open_session(user, resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(serialize_user(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    log_event("LOGOUT", user_id=g.user.id)
    return close_session(jsonify(message="Logged out")), 200
