from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone, tzinfo

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from engagement.errors import LeaderboardGenerationFailure, SnapshotNotFound, UnknownWindowType
from engagement.models import LeaderboardSnapshot, PointsAction, WINDOW_TYPES
from engagement.utils.clock import _now, day_start_utc, local_day, to_utc_naive


def parse_window(raw) -> str:
    key = str(raw or "").strip().upper()
    if key not in WINDOW_TYPES:
        raise UnknownWindowType(f"Unknown leaderboard type: {raw!r}", allowed=list(WINDOW_TYPES))
    return key


class LeaderboardGenerator:
    def __init__(self, session, tz: tzinfo = timezone.utc, artifact_dir: str | None = None):
        self.session = session
        self.tz = tz
        self.artifact_dir = artifact_dir or None

    def window_bounds(self, window_type, as_of: datetime | None = None) -> tuple[datetime, datetime]:
        """[start, end) in naive UTC. Weeks start on Sunday."""
        kind = parse_window(window_type)
        end = to_utc_naive(as_of)
        today = local_day(end, self.tz)
        if kind == "DAILY":
            start_day = today
        elif kind == "WEEKLY":
            start_day = today - timedelta(days=(today.weekday() + 1) % 7)
        else:
            start_day = today.replace(day=1)
        return day_start_utc(start_day, self.tz), end

    def rank(self, start: datetime, end: datetime) -> list[dict]:
        total = func.sum(PointsAction.points_earned)
        first_seen = func.min(PointsAction.id)
        rows = (
            self.session.query(PointsAction.user_id, total.label("points"), first_seen.label("first_id"))
            .filter(PointsAction.occurred_at >= start, PointsAction.occurred_at < end)
            .group_by(PointsAction.user_id)
            .having(total != 0)
            .order_by(total.desc(), first_seen.asc())
            .all()
        )
        return [{"user_id": uid, "points": int(points or 0)} for uid, points, _ in rows]

    def generate(self, window_type, as_of: datetime | None = None) -> LeaderboardSnapshot:
        kind = parse_window(window_type)
        start, end = self.window_bounds(kind, as_of)

        snap = None
        for attempt in (1, 2):
            try:
                entries = self.rank(start, end)
                snap = self.session.query(LeaderboardSnapshot).filter_by(window_type=kind).first()
                if not snap:
                    snap = LeaderboardSnapshot(window_type=kind)
                    self.session.add(snap)
                snap.window_start = start
                snap.window_end = end
                snap.generated_at = _now()
                snap.entries = entries
                self.session.commit()
                break
            except IntegrityError as e:
                # another run inserted the first snapshot for this type; update that one instead
                self.session.rollback()
                if attempt == 2:
                    raise LeaderboardGenerationFailure(f"Failed to save {kind} leaderboard", type=kind) from e
            except SQLAlchemyError as e:
                self.session.rollback()
                current_app.logger.exception("leaderboard %s generation failed", kind)
                raise LeaderboardGenerationFailure(f"Failed to generate {kind} leaderboard", type=kind) from e

        current_app.logger.info("leaderboard %s generated with %s entries", kind, len(snap.entries))
        self.write_artifact(kind, snap.entries)
        return snap

    def generate_all(self, as_of: datetime | None = None) -> dict:
        return {kind: self.generate(kind, as_of) for kind in WINDOW_TYPES}

    def get_snapshot(self, window_type) -> LeaderboardSnapshot:
        kind = parse_window(window_type)
        snap = self.session.query(LeaderboardSnapshot).filter_by(window_type=kind).first()
        if not snap:
            raise SnapshotNotFound(f"No {kind} leaderboard generated yet", type=kind)
        return snap

    def list_snapshots(self) -> list[LeaderboardSnapshot]:
        return self.session.query(LeaderboardSnapshot).order_by(LeaderboardSnapshot.generated_at.desc()).all()

    # ---------------------------------------------------------------
    # static artifact
    # ---------------------------------------------------------------

    def artifact_path(self, window_type) -> str | None:
        if not self.artifact_dir:
            return None
        return os.path.join(self.artifact_dir, f"{parse_window(window_type).lower()}.json")

    def write_artifact(self, window_type, entries: list) -> str | None:
        path = self.artifact_path(window_type)
        if not path:
            return None
        tmp = path + ".tmp"
        try:
            os.makedirs(self.artifact_dir, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(entries, fh, indent=2)
            os.replace(tmp, path)
            return path
        except OSError as e:
            current_app.logger.warning("leaderboard artifact %s not written: %s", path, e)
            return None

    def read_artifact(self, window_type) -> list | None:
        path = self.artifact_path(window_type)
        if not path or not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as e:
            current_app.logger.warning("leaderboard artifact %s unreadable: %s", path, e)
            return None
