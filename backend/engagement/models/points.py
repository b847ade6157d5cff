from datetime import datetime

from engagement.extensions import db


class PointsAccount(db.Model):
    __tablename__ = "points_accounts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    points = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    actions = db.relationship(
        "PointsAction",
        back_populates="account",
        order_by="PointsAction.id",
        lazy="dynamic",
    )

    def to_dict(self, with_actions: bool = False):
        out = {
            "user_id": self.user_id,
            "points": int(self.points or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_actions:
            out["actions"] = [a.to_dict() for a in self.actions]
        return out


class PointsAction(db.Model):
    """One ledger entry. Rows are append-only: never updated, never deleted."""

    __tablename__ = "points_actions"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("points_accounts.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    action_type = db.Column(db.String(40), nullable=False)
    points_earned = db.Column(db.Integer, nullable=False, default=0)  # signed: deductions are negative
    balance_after = db.Column(db.Integer, nullable=False, default=0)

    idempotency_key = db.Column(db.String(160), nullable=True, unique=True, index=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    account = db.relationship("PointsAccount", back_populates="actions")

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": self.user_id,
            "action_type": self.action_type,
            "points_earned": int(self.points_earned or 0),
            "balance_after": int(self.balance_after or 0),
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
        }
