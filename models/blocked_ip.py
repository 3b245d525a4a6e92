from models.db import db
from utils.clock import utcnow


class BlockedIp(db.Model):
    __tablename__ = "blocked_ips"

    id = db.Column(db.Integer, primary_key=True)
    ip = db.Column(db.String(64), nullable=False, unique=True, index=True)
    reason = db.Column(db.String(255), nullable=True)
    blocked_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
