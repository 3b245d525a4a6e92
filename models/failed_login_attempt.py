import json

from models.db import db
from utils.clock import utcnow

class FailedLoginAttempt(db.Model):
    """One failed credential check. Rows are append-only and never updated."""

    __tablename__ = "failed_login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # Tracked by identity and by ip to catch both targeted and spraying attacks
    identity = db.Column(db.String(255), nullable=False, index=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    user_agent = db.Column(db.String(255), nullable=True)

    attempt_time = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    failure_reason = db.Column(db.String(255), nullable=True)

    country = db.Column(db.String(100), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    country_code = db.Column(db.String(8), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    is_suspicious = db.Column(db.Boolean, default=False, nullable=False, index=True)
    risk_factors_json = db.Column(db.Text, nullable=True)

    @property
    def risk_factors(self) -> list[str]:
        if not self.risk_factors_json:
            return []
        return json.loads(self.risk_factors_json)
