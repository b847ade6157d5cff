"""Explicitly constructed engagement services, one set per Flask app."""

from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from engagement.extensions import db
from engagement.services.leaderboards import LeaderboardGenerator
from engagement.services.points import PointsLedger
from engagement.services.streaks import StreakTracker
from engagement.utils.clock import resolve_tz

EXTENSION_KEY = "engagement"


@dataclass
class EngagementServices:
    ledger: PointsLedger
    streaks: StreakTracker
    leaderboards: LeaderboardGenerator


def build_services(session, *, timezone_name: str = "UTC", artifact_dir: str | None = None, retries: int = 3) -> EngagementServices:
    tz = resolve_tz(timezone_name)
    ledger = PointsLedger(session)
    return EngagementServices(
        ledger=ledger,
        streaks=StreakTracker(session, ledger, tz=tz, retries=retries),
        leaderboards=LeaderboardGenerator(session, tz=tz, artifact_dir=artifact_dir),
    )


def init_engagement(app: Flask) -> EngagementServices:
    services = build_services(
        db.session,
        timezone_name=app.config.get("ENGAGEMENT_TIMEZONE", "UTC"),
        artifact_dir=app.config.get("LEADERBOARD_ARTIFACT_DIR") or None,
        retries=int(app.config.get("STREAK_UPDATE_RETRIES", 3) or 3),
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> EngagementServices:
    return current_app.extensions[EXTENSION_KEY]
