from datetime import datetime, timedelta

import pytest

from models import db
from models.session import UserSession
from security.password import hash_password, password_problem, verify_password
from security.rbac import can_access_appointment, doctor_for, is_patient_only
from tests.conftest import at


class TestPasswords:
    def test_hash_roundtrip_and_wrong_password(self):
        hashed = hash_password("a-decent-password", rounds=4)

        assert verify_password("a-decent-password", hashed)
        assert not verify_password("another-password", hashed)
        assert not verify_password("a-decent-password", "not-a-bcrypt-hash")

    @pytest.mark.parametrize("password, email, dni, expected", [
        ("short", None, None, "at least"),
        ("id-12345678-pw", "x@y.com", "12345678", "DNI"),
        ("maria.lopez2024", "maria.lopez@example.com", None, "email"),
        ("plenty-long-pw", "maria@example.com", "12345678", None),
    ])
    def test_policy(self, password, email, dni, expected):
        problem = password_problem(password, email=email, dni=dni)

        if expected is None:
            assert problem is None
        else:
            assert expected in problem


class TestUserSession:
    def _session(self, **overrides):
        now = datetime(2030, 1, 1, 12, 0)
        fields = dict(created_at=now, last_seen_at=now, expires_at=now + timedelta(hours=8), revoked_at=None)
        fields.update(overrides)
        return UserSession(user_id=1, token_hash="x" * 64, **fields)

    def test_fresh_session_is_usable(self):
        assert self._session().is_usable(datetime(2030, 1, 1, 12, 10), idle_seconds=1800)

    def test_idle_session_is_not(self):
        assert not self._session().is_usable(datetime(2030, 1, 1, 12, 31), idle_seconds=1800)

    def test_expired_or_revoked_session_is_not(self):
        now = datetime(2030, 1, 1, 12, 10)

        assert not self._session(expires_at=now).is_usable(now, idle_seconds=1800)
        assert not self._session(revoked_at=now).is_usable(now, idle_seconds=1800)


class TestSessionFlow:
    def test_second_login_revokes_the_first(self, client, make_user, login):
        user = make_user("juan@example.com", "PATIENT")

        login("juan@example.com")
        login("juan@example.com")

        rows = UserSession.query.filter_by(user_id=user.id).all()
        assert len(rows) == 2
        assert sum(1 for s in rows if s.revoked_at is None) == 1

    def test_deactivated_user_is_logged_out(self, client, make_user, login):
        user = make_user("juan@example.com", "PATIENT")
        login("juan@example.com")
        user.is_active = False
        db.session.commit()

        assert client.get("/auth/me").status_code == 401

    def test_login_rate_limit(self, app, client, make_user):
        make_user("juan@example.com", "PATIENT")
        app.config["LOGIN_RATE_MAX_REQUESTS"] = 2
        body = {"email": "juan@example.com", "password": "wrong-password"}

        codes = [client.post("/auth/login", json=body).status_code for _ in range(3)]

        assert codes == [401, 401, 429]


class TestAccessRules:
    @pytest.fixture
    def appointment(self, make_specialty, make_doctor, make_appointment, monday):
        cardiology = make_specialty("Cardiology")
        cairo = make_doctor("Cairo", [cardiology])
        return make_appointment(cardiology, at(monday, 9), at(monday, 9, 30), dni="12345678", doctor=cairo)

    def test_operator_sees_everything(self, make_user, appointment):
        operator = make_user("desk@example.com", "OPERATOR")

        assert can_access_appointment(operator, appointment)
        assert not is_patient_only(operator)

    def test_doctor_sees_own_agenda_only(self, make_user, make_doctor, appointment):
        own_user = make_user("cairo@example.com", "DOCTOR")
        appointment.doctor.user_id = own_user.id
        other_user = make_user("other@example.com", "DOCTOR")
        make_doctor("Other", user=other_user)
        db.session.commit()

        assert doctor_for(own_user).id == appointment.doctor_id
        assert can_access_appointment(own_user, appointment)
        assert not can_access_appointment(other_user, appointment)

    def test_patient_matches_by_dni(self, make_user, appointment):
        owner = make_user("juan@example.com", "PATIENT", dni="12345678")
        stranger = make_user("ana@example.com", "PATIENT", dni="87654321")

        assert is_patient_only(owner)
        assert can_access_appointment(owner, appointment)
        assert not can_access_appointment(stranger, appointment)
