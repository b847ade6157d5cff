from __future__ import annotations

import json

from flask import current_app

from engagement.extensions import db
from engagement.models import AuditLog, PointsAccount, PointsAction
from engagement.services.points import replay_balance
from engagement.utils.clock import _now


def _replayed_balance(account_id: int) -> int:
    deltas = (
        db.session.query(PointsAction.points_earned)
        .filter(PointsAction.account_id == int(account_id))
        .order_by(PointsAction.id.asc())
        .all()
    )
    return replay_balance(d for (d,) in deltas)


def reconcile_points(*, limit: int = 500) -> dict:
    """Detect points anomalies (replayed ledger vs stored balance).

    This does NOT auto-correct balances. It logs anomalies into AuditLog so they are visible.
    """
    checked = 0
    anomalies = 0
    now = _now()

    accounts = PointsAccount.query.order_by(PointsAccount.id.asc()).limit(int(limit)).all()

    for acct in accounts:
        checked += 1
        try:
            computed = _replayed_balance(int(acct.id))
            stored = int(acct.points or 0)

            issues = []
            if computed != stored:
                issues.append("ledger_mismatch")
            if stored < 0:
                issues.append("negative_balance")

            if not issues:
                continue

            anomalies += 1
            meta = {
                "issues": issues,
                "account_id": int(acct.id),
                "at": now.isoformat(),
            }
            current_app.logger.warning("points anomaly for %s: %s (stored=%s computed=%s)", acct.user_id, ",".join(issues), stored, computed)
            log = AuditLog(
                action="points_anomaly",
                user_id=acct.user_id,
                computed_points=computed,
                stored_points=stored,
                meta=json.dumps(meta),
                created_at=now,
            )
            db.session.add(log)
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("points reconcile failed for account %s", acct.id)

    return {"checked": checked, "anomalies": anomalies}
