from datetime import datetime

from engagement.extensions import db


class StreakState(db.Model):
    __tablename__ = "streak_states"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    current_streak = db.Column(db.Integer, nullable=False, default=0)
    longest_streak = db.Column(db.Integer, nullable=False, default=0)
    last_logged_date = db.Column(db.Date, nullable=True)
    total_logs = db.Column(db.Integer, nullable=False, default=0)

    # optimistic lock: concurrent writers for the same user get StaleDataError
    version = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "current_streak": int(self.current_streak or 0),
            "longest_streak": int(self.longest_streak or 0),
            "last_logged_date": self.last_logged_date.isoformat() if self.last_logged_date else None,
            "total_logs": int(self.total_logs or 0),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
