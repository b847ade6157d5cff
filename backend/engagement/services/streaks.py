"""Daily-logging streaks.

Each user has one ``StreakState`` row that is folded forward by every
``record_daily_log`` call and can be rebuilt from the ``LogEvent`` history by
``recalculate``. Writes for one user are serialized by a row lock where the
database supports it and by the row's version column everywhere; a lost race
surfaces as ``StaleDataError`` and the whole step is retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from engagement.errors import LogEventNotFound, MilestoneAwardFailure, PersistenceFailure, EngagementError
from engagement.models import LogEvent, StreakState
from engagement.services.points import PointsLedger, normalize_user_id
from engagement.utils.catalog import STREAK_MILESTONES, milestone_action
from engagement.utils.clock import _now, day_start_utc, local_day, previous_day, to_utc_naive


def fold_streak(days: Iterable[date], today: date) -> tuple[int, int, date | None]:
    """Return (current, longest, last active day) for a set of active days.

    ``current`` counts consecutive active days walking back from ``today`` and
    is 0 when ``today`` itself is inactive.
    """
    active = sorted(set(days))
    if not active:
        return 0, 0, None

    active_set = set(active)
    current = 0
    cursor = today
    while cursor in active_set:
        current += 1
        cursor -= timedelta(days=1)

    longest = 0
    run = 0
    prev = None
    for d in active:
        run = run + 1 if prev is not None and (d - prev).days == 1 else 1
        longest = max(longest, run)
        prev = d

    return current, max(longest, current), active[-1]


def _payload_fields(payload: dict | None) -> dict:
    payload = payload or {}
    try:
        time_spent = int(payload.get("time_spent") or payload.get("timeSpent") or 0)
    except Exception:
        time_spent = 0
    return {
        "title": str(payload.get("title") or "")[:200],
        "description": payload.get("description"),
        "time_spent": max(0, time_spent),
    }


@dataclass
class DailyLogResult:
    log: LogEvent
    state: StreakState
    already_logged_today: bool = False
    backfilled: bool = False
    milestone_hit: int | None = None

    def to_dict(self) -> dict:
        data = self.state.to_dict()
        data.update({
            "ok": True,
            "log": self.log.to_dict(),
            "already_logged_today": bool(self.already_logged_today),
            "backfilled": bool(self.backfilled),
            "milestone_hit": self.milestone_hit,
        })
        return data


class StreakTracker:
    def __init__(self, session, ledger: PointsLedger, tz: tzinfo = timezone.utc, retries: int = 3):
        self.session = session
        self.ledger = ledger
        self.tz = tz
        self.retries = max(1, int(retries or 1))

    # ---------------------------------------------------------------
    # state rows
    # ---------------------------------------------------------------

    def _find_state(self, uid: str) -> StreakState | None:
        return self.session.query(StreakState).filter_by(user_id=uid).first()

    def _get_or_create_state(self, uid: str) -> StreakState:
        state = self._find_state(uid)
        if state:
            return state
        state = StreakState(user_id=uid, current_streak=0, longest_streak=0, total_logs=0, updated_at=_now())
        try:
            self.session.add(state)
            self.session.commit()
            return state
        except IntegrityError:
            self.session.rollback()
            state = self._find_state(uid)
            if state:
                return state
            raise

    def _locked_state(self, uid: str) -> StreakState:
        self._get_or_create_state(uid)
        # SELECT ... FOR UPDATE on PostgreSQL; SQLite ignores it and relies on the version column
        return (
            self.session.query(StreakState)
            .filter_by(user_id=uid)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def _with_retries(self, uid: str, step: Callable, what: str):
        for attempt in range(1, self.retries + 1):
            try:
                return step()
            except StaleDataError as e:
                self.session.rollback()
                current_app.logger.warning("%s conflict for user %s (attempt %s/%s)", what, uid, attempt, self.retries)
                if attempt >= self.retries:
                    raise PersistenceFailure(f"{what} kept conflicting", user_id=uid) from e
            except SQLAlchemyError as e:
                self.session.rollback()
                current_app.logger.exception("%s failed for user %s", what, uid)
                raise PersistenceFailure(f"{what} failed", user_id=uid) from e

    # ---------------------------------------------------------------
    # incremental path
    # ---------------------------------------------------------------

    def record_daily_log(self, user_id, occurred_at: datetime | None = None, payload: dict | None = None) -> DailyLogResult:
        uid = normalize_user_id(user_id)
        ts = to_utc_naive(occurred_at)
        day = local_day(ts, self.tz)

        def step():
            state = self._locked_state(uid)
            previous = int(state.current_streak or 0)
            last = state.last_logged_date

            log = LogEvent(user_id=uid, occurred_at=ts, created_at=_now(), **_payload_fields(payload))
            self.session.add(log)

            if last is not None and day < last:
                # backfilled day: history changes in the past, state is rebuilt below
                self.session.commit()
                return DailyLogResult(log=log, state=state, backfilled=True), previous

            if last == day:
                state.total_logs = int(state.total_logs or 0) + 1
                state.updated_at = _now()
                self.session.commit()
                return DailyLogResult(log=log, state=state, already_logged_today=True), previous

            if last is not None and last == previous_day(day):
                if previous == 0:
                    # stored as 0 by a rebuild on a day with no log yet; the run ending yesterday is intact
                    previous, _, _ = fold_streak(self._active_days(uid), last)
                state.current_streak = previous + 1
            else:
                state.current_streak = 1
            state.longest_streak = max(int(state.longest_streak or 0), int(state.current_streak))
            state.last_logged_date = day
            state.total_logs = int(state.total_logs or 0) + 1
            state.updated_at = _now()
            self.session.commit()
            return DailyLogResult(log=log, state=state), previous

        result, previous = self._with_retries(uid, step, "streak update")

        if result.backfilled:
            result.state = self._rebuild(uid, result.state.last_logged_date or day)
            return result
        if result.already_logged_today:
            return result

        current = int(result.state.current_streak or 0)
        run_start = day - timedelta(days=current - 1)
        result.milestone_hit = self.pay_milestones(uid, previous, current, run_start)
        return result

    def pay_milestones(self, user_id, previous: int, current: int, run_start: date) -> int | None:
        """Award every milestone the streak has just stepped onto. Never raises."""
        uid = normalize_user_id(user_id)
        hit = None
        for milestone in STREAK_MILESTONES:
            if current == milestone and previous < milestone:
                hit = milestone
                try:
                    self._award_milestone(uid, milestone, run_start)
                except MilestoneAwardFailure as e:
                    current_app.logger.error("streak bonus %s for user %s not paid: %s", milestone, uid, e.message)
        return hit

    def _award_milestone(self, uid: str, milestone: int, run_start: date) -> None:
        # one payout per milestone per streak run, even if the caller retries
        key = f"streak:{uid}:{milestone}:{run_start.isoformat()}"
        try:
            self.ledger.award(uid, milestone_action(milestone), idempotency_key=key)
        except Exception as e:
            raise MilestoneAwardFailure(str(e), user_id=uid, milestone=milestone) from e

    # ---------------------------------------------------------------
    # repair path
    # ---------------------------------------------------------------

    def recalculate(self, user_id, as_of: datetime | None = None) -> StreakState:
        """Rebuild the streak state from the full log history. Never pays bonuses."""
        uid = normalize_user_id(user_id)
        return self._rebuild(uid, local_day(as_of, self.tz))

    def _log_stamps(self, uid: str) -> list[datetime]:
        return [
            r.occurred_at
            for r in self.session.query(LogEvent.occurred_at)
            .filter(LogEvent.user_id == uid)
            .order_by(LogEvent.occurred_at.asc(), LogEvent.id.asc())
            .all()
        ]

    def _active_days(self, uid: str) -> list[date]:
        return [local_day(s, self.tz) for s in self._log_stamps(uid)]

    def _rebuild(self, uid: str, today: date) -> StreakState:
        def step():
            state = self._locked_state(uid)
            stamps = self._log_stamps(uid)
            current, longest, last = fold_streak((local_day(s, self.tz) for s in stamps), today)
            state.current_streak = current
            state.longest_streak = longest
            state.last_logged_date = last
            state.total_logs = len(stamps)
            state.updated_at = _now()
            self.session.commit()
            return state

        return self._with_retries(uid, step, "streak recalculation")

    def delete_log_event(self, log_id) -> StreakState | None:
        log = self.get_log_event(log_id)
        uid = log.user_id
        try:
            self.session.delete(log)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure("Failed to delete log event", log_id=str(log_id)) from e

        try:
            return self.recalculate(uid)
        except EngagementError as e:
            # the deletion stands; state can be repaired by a later recalculation
            current_app.logger.error("recalculation after deleting log %s failed: %s", log_id, e.message)
            return None

    # ---------------------------------------------------------------
    # log events
    # ---------------------------------------------------------------

    def get_log_event(self, log_id) -> LogEvent:
        try:
            lid = int(log_id)
        except Exception:
            raise LogEventNotFound(f"Log event not found: {log_id}")
        log = self.session.get(LogEvent, lid)
        if not log:
            raise LogEventNotFound(f"Log event not found: {log_id}")
        return log

    def update_log_event(self, log_id, payload: dict | None) -> LogEvent:
        """Edit the opaque payload. The timestamp is immutable, so streaks are unaffected."""
        log = self.get_log_event(log_id)
        payload = payload or {}
        fields = _payload_fields(payload)
        for name in ("title", "description", "time_spent"):
            if name in payload or (name == "time_spent" and "timeSpent" in payload):
                setattr(log, name, fields[name])
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceFailure("Failed to update log event", log_id=str(log_id)) from e
        return log

    def list_logs(self, user_id, limit: int = 50) -> list[LogEvent]:
        uid = normalize_user_id(user_id)
        return (
            self.session.query(LogEvent)
            .filter_by(user_id=uid)
            .order_by(LogEvent.occurred_at.desc(), LogEvent.id.desc())
            .limit(int(limit))
            .all()
        )

    def get_stats(self, user_id, as_of: datetime | None = None) -> dict:
        uid = normalize_user_id(user_id)
        today = local_day(as_of, self.tz)
        state = self._find_state(uid)
        if state:
            data = state.to_dict()
        else:
            data = {"user_id": uid, "current_streak": 0, "longest_streak": 0, "last_logged_date": None, "total_logs": 0}

        last = state.last_logged_date if state else None
        week_start = day_start_utc(today - timedelta(days=6), self.tz)
        week_end = day_start_utc(today + timedelta(days=1), self.tz)
        recent = (
            self.session.query(LogEvent)
            .filter(
                LogEvent.user_id == uid,
                LogEvent.occurred_at >= week_start,
                LogEvent.occurred_at < week_end,
            )
            .count()
        )
        data["has_logged_today"] = bool(last and last >= today)
        data["recent_logs"] = int(recent)
        return data
