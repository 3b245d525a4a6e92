import json

from models.db import db
from utils.clock import utcnow

class AuditLog(db.Model):
    """Append-only record of security-relevant events (lockouts, unlocks, session admin)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # acting user, null for anonymous/CLI events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. ACCOUNT_LOCKED, IP_BLOCKED
    entity = db.Column(db.String(80), nullable=True)   # identity, session, ip, user
    entity_id = db.Column(db.String(255), nullable=True)  # identities are emails, so not an int

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    @property
    def details(self) -> dict:
        if not self.metadata_json:
            return {}
        return json.loads(self.metadata_json)
