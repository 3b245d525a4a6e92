from models.db import db
from utils.clock import utcnow

class AccountUnlock(db.Model):
    # Marker row: attempts at or before unlocked_at no longer count toward a lockout
    __tablename__ = "account_unlocks"

    id = db.Column(db.Integer, primary_key=True)
    identity = db.Column(db.String(255), nullable=False, index=True)
    unlocked_by = db.Column(db.String(255), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    unlocked_at = db.Column(db.DateTime, default=utcnow, nullable=False)
