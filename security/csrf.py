import secrets
from flask import current_app, g, jsonify, request

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")

# reachable before any session exists
EXEMPT_PATHS = {"/auth/login", "/auth/register", "/health"}


def issue_csrf_token(resp):
    """Double-submit token: a script readable cookie the client echoes in a header."""
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def csrf_protect():
    """before_request hook. Anonymous writes (public booking) carry no cookie to forge."""
    if request.method not in UNSAFE_METHODS or request.path in EXEMPT_PATHS:
        return None
    if getattr(g, "user", None) is None:
        return None

    cookie_token = request.cookies.get(CSRF_COOKIE) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    if not cookie_token or not secrets.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed", code="CSRF_FAILED"), 403
    return None
