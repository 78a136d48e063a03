from datetime import datetime
from models.db import db


class RateLimitWindow(db.Model):
    """Fixed window hit counter per client IP and endpoint bucket."""
    __tablename__ = "rate_limit_windows"

    id = db.Column(db.Integer, primary_key=True)
    client_ip = db.Column(db.String(64), nullable=False)
    bucket = db.Column(db.String(40), nullable=False)  # "login", "public_booking"

    window_start = db.Column(db.DateTime, nullable=False)
    hits = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("client_ip", "bucket", name="uq_rate_limit_windows_ip_bucket"),
    )
