"""Points ledger: per-user balance plus an append-only action log.

Balance changes are issued as a single SQL UPDATE (``points = points + :v``)
in the same transaction as the ledger insert, so concurrent awards for one
user compose without a read-then-write race.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from engagement.errors import AccountNotFound, InvalidPayload, PersistenceFailure
from engagement.models import PointsAccount, PointsAction
from engagement.utils.catalog import ActionKind, parse_action, value_of
from engagement.utils.clock import _now, to_utc_naive


def normalize_user_id(user_id) -> str:
    uid = str(user_id if user_id is not None else "").strip()
    if not uid:
        raise AccountNotFound("user_id is required")
    return uid[:64]


def replay_balance(deltas: Iterable[int]) -> int:
    """Fold signed deltas in order, flooring the running balance at zero after each step."""
    balance = 0
    for d in deltas:
        balance = max(0, balance + int(d or 0))
    return balance


@dataclass
class LedgerResult:
    account: PointsAccount
    action: PointsAction | None = None
    duplicate: bool = False

    @property
    def points(self) -> int:
        return int(self.account.points or 0)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "points": self.points,
            "duplicate": bool(self.duplicate),
            "account": self.account.to_dict(),
            "action": self.action.to_dict() if self.action else None,
        }


class PointsLedger:
    def __init__(self, session):
        self.session = session

    # ---------------------------------------------------------------
    # accounts
    # ---------------------------------------------------------------

    def _find_account(self, uid: str) -> PointsAccount | None:
        return self.session.query(PointsAccount).filter_by(user_id=uid).first()

    def get_or_create_account(self, user_id) -> PointsAccount:
        uid = normalize_user_id(user_id)
        acct = self._find_account(uid)
        if acct:
            return acct
        acct = PointsAccount(user_id=uid, points=0, updated_at=_now())
        try:
            self.session.add(acct)
            self.session.commit()
            return acct
        except IntegrityError:
            # lost a concurrent create; the other writer's row is the account
            self.session.rollback()
            acct = self._find_account(uid)
            if acct:
                return acct
            raise

    def get_account(self, user_id) -> PointsAccount:
        uid = normalize_user_id(user_id)
        acct = self._find_account(uid)
        if not acct:
            raise AccountNotFound(f"No points account for user {uid}", user_id=uid)
        return acct

    def get_balance(self, user_id) -> int | None:
        try:
            uid = normalize_user_id(user_id)
        except AccountNotFound:
            return None
        acct = self._find_account(uid)
        if not acct:
            return None
        return int(acct.points or 0)

    # ---------------------------------------------------------------
    # mutations
    # ---------------------------------------------------------------

    def award(self, user_id, action, idempotency_key: str | None = None, occurred_at=None) -> LedgerResult:
        return self._apply(user_id, action, +1, idempotency_key, occurred_at)

    def deduct(self, user_id, action, idempotency_key: str | None = None, occurred_at=None) -> LedgerResult:
        return self._apply(user_id, action, -1, idempotency_key, occurred_at)

    def toggle(self, user_id, action, is_completed: bool, idempotency_key: str | None = None, occurred_at=None) -> LedgerResult:
        """Award when the caller's completion flag flipped on, deduct when it flipped off."""
        if is_completed:
            return self.award(user_id, action, idempotency_key=idempotency_key, occurred_at=occurred_at)
        return self.deduct(user_id, action, idempotency_key=idempotency_key, occurred_at=occurred_at)

    def _duplicate_of(self, key: str | None) -> PointsAction | None:
        if not key:
            return None
        return self.session.query(PointsAction).filter_by(idempotency_key=key).first()

    def _check_key_owner(self, existing: PointsAction, uid: str) -> None:
        if existing.user_id != uid:
            raise InvalidPayload("idempotency_key already used for another user", field="idempotency_key")

    def _apply(self, user_id, action, sign: int, idempotency_key, occurred_at) -> LedgerResult:
        kind: ActionKind = parse_action(action)
        value = value_of(kind)
        uid = normalize_user_id(user_id)
        key = str(idempotency_key).strip()[:160] if idempotency_key else None
        verb = "award" if sign > 0 else "deduct"

        try:
            existing = self._duplicate_of(key)
            if existing:
                self._check_key_owner(existing, uid)
                current_app.logger.info("points %s skipped for %s: duplicate key %s", verb, uid, key)
                return LedgerResult(account=self.get_account(uid), action=existing, duplicate=True)

            acct = self.get_or_create_account(uid)

            if sign > 0:
                new_points = PointsAccount.points + value
            else:
                # clamp at decrement time; history is never rewritten
                new_points = case(
                    (PointsAccount.points - value < 0, 0),
                    else_=PointsAccount.points - value,
                )
            self.session.execute(
                update(PointsAccount)
                .where(PointsAccount.id == acct.id)
                .values(points=new_points, updated_at=_now())
                .execution_options(synchronize_session=False)
            )
            balance = self.session.execute(
                select(PointsAccount.points).where(PointsAccount.id == acct.id)
            ).scalar_one()

            row = PointsAction(
                account_id=int(acct.id),
                user_id=uid,
                action_type=kind.value,
                points_earned=value * sign,
                balance_after=int(balance),
                idempotency_key=key,
                occurred_at=to_utc_naive(occurred_at),
            )
            self.session.add(row)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            existing = self._duplicate_of(key)
            if existing:
                self._check_key_owner(existing, uid)
                current_app.logger.info("points %s raced on key %s for %s", verb, key, uid)
                return LedgerResult(account=self.get_account(uid), action=existing, duplicate=True)
            raise PersistenceFailure(f"Failed to {verb} points", user_id=uid) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            current_app.logger.exception("points %s failed for %s", verb, uid)
            raise PersistenceFailure(f"Failed to {verb} points", user_id=uid) from e

        self.session.refresh(acct)
        return LedgerResult(account=acct, action=row)

    # ---------------------------------------------------------------
    # reads
    # ---------------------------------------------------------------

    def history(self, user_id, limit: int = 200) -> list[PointsAction]:
        acct = self.get_account(user_id)
        return (
            self.session.query(PointsAction)
            .filter_by(account_id=acct.id)
            .order_by(PointsAction.id.desc())
            .limit(int(limit))
            .all()
        )

    def top_n(self, n: int = 10) -> list[dict]:
        rows = (
            self.session.query(PointsAccount)
            .order_by(PointsAccount.points.desc(), PointsAccount.id.asc())
            .limit(max(0, int(n)))
            .all()
        )
        return [{"user_id": a.user_id, "points": int(a.points or 0)} for a in rows]
