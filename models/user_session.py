from models.db import db
from utils.clock import utcnow

class UserSession(db.Model):
    __tablename__ = "user_sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # store only hashed token in DB (never store raw token)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    last_activity = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)

    # once False it never flips back
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    country = db.Column(db.String(100), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    country_code = db.Column(db.String(8), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    device_type = db.Column(db.String(20), nullable=True)
    browser = db.Column(db.String(40), nullable=True)
    operating_system = db.Column(db.String(40), nullable=True)

    is_suspicious = db.Column(db.Boolean, default=False, nullable=False)
    security_notes = db.Column(db.String(500), nullable=True)

    terminated_at = db.Column(db.DateTime, nullable=True)
    termination_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", back_populates="sessions")
