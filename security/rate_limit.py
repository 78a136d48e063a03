"""Fixed window rate limiting per client IP, counted in ``rate_limit_windows``."""
from collections import namedtuple
from datetime import datetime, timedelta
from functools import wraps

from flask import current_app, jsonify

from models import db
from models.rate_limit_window import RateLimitWindow
from security.session import client_ip
from utils.events import log_event

RateDecision = namedtuple("RateDecision", "allowed retry_after")

# bucket -> (window seconds key, max hits key, message)
BUCKETS = {
    "login": (
        "LOGIN_RATE_WINDOW_SECONDS",
        "LOGIN_RATE_MAX_REQUESTS",
        "Too many login requests. Slow down.",
    ),
    "public_booking": (
        "BOOKING_RATE_WINDOW_SECONDS",
        "BOOKING_RATE_MAX_REQUESTS",
        "Too many booking attempts. Try again later.",
    ),
}


def hit(bucket: str) -> RateDecision:
    window_key, max_key, _ = BUCKETS[bucket]
    window = timedelta(seconds=current_app.config.get(window_key, 60))
    limit = current_app.config.get(max_key, 15)

    ip = client_ip()
    now = datetime.utcnow()

    row = RateLimitWindow.query.filter_by(client_ip=ip, bucket=bucket).first()
    if row is None:
        row = RateLimitWindow(client_ip=ip, bucket=bucket, window_start=now, hits=0)
        db.session.add(row)
    elif now >= row.window_start + window:
        row.window_start = now
        row.hits = 0

    row.hits += 1
    db.session.commit()

    if row.hits <= limit:
        return RateDecision(True, 0)
    retry_after = int((row.window_start + window - now).total_seconds())
    return RateDecision(False, max(retry_after, 1))


def rate_limited(bucket: str):
    """Answer 429 once the caller's IP has used up the bucket's window."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            decision = hit(bucket)
            if not decision.allowed:
                log_event(bucket.upper() + "_RATE_LIMIT", metadata={"retry_after": decision.retry_after})
                return jsonify(
                    error=BUCKETS[bucket][2],
                    code="RATE_LIMITED",
                    retry_after_seconds=decision.retry_after,
                ), 429
            return fn(*args, **kwargs)
        return wrapper
    return decorator
