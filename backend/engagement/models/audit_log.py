import json
from datetime import datetime

from engagement.extensions import db


class AuditLog(db.Model):
    """Operational findings, e.g. a points balance that disagrees with its ledger."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # points_anomaly
    user_id = db.Column(db.String(64), nullable=True, index=True)

    computed_points = db.Column(db.Integer, nullable=True)
    stored_points = db.Column(db.Integer, nullable=True)
    meta = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def issues(self) -> list:
        try:
            return list(json.loads(self.meta or "{}").get("issues") or [])
        except Exception:
            return []

    def to_dict(self):
        return {
            "id": int(self.id),
            "action": self.action,
            "user_id": self.user_id,
            "computed_points": self.computed_points,
            "stored_points": self.stored_points,
            "issues": self.issues,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
