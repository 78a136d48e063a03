"""
Cookie backed login sessions.

The browser keeps a random token in an HttpOnly cookie and the database keeps
its sha256 in ``user_sessions``. Opening a session revokes every other live
session of the same user.
"""
import hashlib
import secrets
from datetime import datetime, timedelta

from flask import current_app, g, request

from models import db
from models.session import UserSession
from security.csrf import issue_csrf_token


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "clinic_session")


def client_ip() -> str:
    return request.headers.get("X-Forwarded-For", request.remote_addr) or "unknown"


def open_session(user, resp) -> int:
    """Start a session for user, set the auth and CSRF cookies on resp.

    Returns how many older sessions were revoked.
    """
    now = datetime.utcnow()
    revoked = (
        UserSession.query
        .filter(UserSession.user_id == user.id, UserSession.revoked_at.is_(None))
        .update({"revoked_at": now}, synchronize_session=False)
    )

    token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60)
    db.session.add(UserSession(
        user_id=user.id,
        token_hash=_digest(token),
        created_at=now,
        last_seen_at=now,
        expires_at=now + timedelta(seconds=lifetime),
        client_ip=client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    ))
    db.session.commit()

    resp.set_cookie(
        _cookie_name(),
        token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=lifetime,
        path="/",
    )
    issue_csrf_token(resp)
    return revoked


def close_session(resp):
    sess = getattr(g, "session", None)
    if sess is not None:
        sess.revoked_at = datetime.utcnow()
        db.session.commit()
    resp.delete_cookie(_cookie_name(), path="/")
    return resp


def load_current_user():
    """before_request hook: resolve the cookie into g.user / g.session."""
    g.user = None
    g.session = None

    token = request.cookies.get(_cookie_name())
    if not token:
        return

    sess = UserSession.query.filter_by(token_hash=_digest(token)).first()
    now = datetime.utcnow()
    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 30 * 60)
    if sess is None or not sess.is_usable(now, idle_seconds) or not sess.user.is_active:
        return

    sess.last_seen_at = now
    db.session.commit()
    g.user = sess.user
    g.session = sess
