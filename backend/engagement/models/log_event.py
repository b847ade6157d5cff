from datetime import datetime

from engagement.extensions import db


class LogEvent(db.Model):
    """A daily-activity submission. The payload fields are opaque to the streak math."""

    __tablename__ = "log_events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    title = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    time_spent = db.Column(db.Integer, nullable=False, default=0)  # minutes

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("idx_log_events_user_occurred", "user_id", "occurred_at"),
    )

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": self.user_id,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "title": self.title or "",
            "description": self.description or "",
            "time_spent": int(self.time_spent or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
