from datetime import datetime, timedelta
from models.db import db


class UserSession(db.Model):
    """Server side half of the login cookie. Only sha256(token) is stored."""
    __tablename__ = "user_sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked_at = db.Column(db.DateTime, nullable=True)

    client_ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", back_populates="sessions")

    def is_usable(self, now: datetime, idle_seconds: int) -> bool:
        if self.revoked_at is not None or self.expires_at <= now:
            return False
        return self.last_seen_at + timedelta(seconds=idle_seconds) > now
