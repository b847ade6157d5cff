import json
from datetime import datetime

from engagement.extensions import db

WINDOW_TYPES = ("DAILY", "WEEKLY", "MONTHLY")


class LeaderboardSnapshot(db.Model):
    """Ranked view of one window type. Replaced wholesale on each generation."""

    __tablename__ = "leaderboard_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    window_type = db.Column(db.String(16), nullable=False, unique=True, index=True)  # DAILY|WEEKLY|MONTHLY

    window_start = db.Column(db.DateTime, nullable=False)
    window_end = db.Column(db.DateTime, nullable=False)
    generated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    entries_json = db.Column(db.Text, nullable=False, default="[]")

    @property
    def entries(self) -> list:
        try:
            return json.loads(self.entries_json or "[]")
        except Exception:
            return []

    @entries.setter
    def entries(self, rows: list) -> None:
        self.entries_json = json.dumps(list(rows or []))

    def to_dict(self):
        return {
            "type": self.window_type,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "entries": self.entries,
        }
