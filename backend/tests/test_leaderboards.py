import json
import os
from datetime import datetime
from zoneinfo import ZoneInfoNotFoundError

import pytest
from sqlalchemy.exc import OperationalError

from engagement.errors import LeaderboardGenerationFailure, SnapshotNotFound, UnknownWindowType
from engagement.extensions import db
from engagement.jobs.leaderboard_runner import run_leaderboards
from engagement.models import LeaderboardSnapshot
from engagement.services.registry import build_services

# Wednesday; the week started on Sunday 2026-03-01
AS_OF = datetime(2026, 3, 4, 15, 0)


@pytest.mark.parametrize("kind,start", [
    ("DAILY", datetime(2026, 3, 4)),
    ("WEEKLY", datetime(2026, 3, 1)),
    ("MONTHLY", datetime(2026, 3, 1)),
])
def test_window_bounds(services, kind, start):
    assert services.leaderboards.window_bounds(kind, AS_OF) == (start, AS_OF)


def test_week_starting_sunday_includes_sunday(services):
    sunday = datetime(2026, 3, 8, 9, 0)
    assert services.leaderboards.window_bounds("weekly", sunday)[0] == datetime(2026, 3, 8)


def test_window_bounds_in_reference_timezone(app):
    try:
        kolkata = build_services(db.session, timezone_name="Asia/Kolkata").leaderboards
    except ZoneInfoNotFoundError:
        pytest.skip("tz database not installed")

    # 15:00 UTC is 20:30 in Kolkata, so the local day began at 18:30 UTC the day before
    start, _ = kolkata.window_bounds("DAILY", AS_OF)
    assert start == datetime(2026, 3, 3, 18, 30)


def test_weekly_board_ignores_out_of_window_actions(services):
    services.ledger.award("u1", "REFER", occurred_at=datetime(2026, 3, 2, 10, 0))
    services.ledger.award("u1", "ENROLL_COURSE", occurred_at=datetime(2026, 3, 3, 10, 0))
    services.ledger.award("u2", "COMPLETE_PROJECT", occurred_at=datetime(2026, 2, 25, 10, 0))

    snap = services.leaderboards.generate("WEEKLY", AS_OF)

    assert snap.entries == [{"user_id": "u1", "points": 30}]
    assert snap.window_start == datetime(2026, 3, 1)


def test_ranking_sums_signed_points_and_breaks_ties_by_first_action(services):
    when = datetime(2026, 3, 4, 9, 0)
    services.ledger.award("early", "REFER", occurred_at=when)
    services.ledger.award("late", "REFER", occurred_at=when)
    services.ledger.award("top", "COMPLETE_PROJECT", occurred_at=when)
    services.ledger.deduct("top", "PROFILE_COMPLETION", occurred_at=when)
    services.ledger.award("even", "REFER", occurred_at=when)
    services.ledger.deduct("even", "REFER", occurred_at=when)

    entries = services.leaderboards.generate("DAILY", AS_OF).entries

    assert entries == [
        {"user_id": "top", "points": 30},
        {"user_id": "early", "points": 25},
        {"user_id": "late", "points": 25},
    ]


def test_regeneration_replaces_snapshot(services):
    services.ledger.award("u1", "REFER", occurred_at=datetime(2026, 3, 2, 10, 0))
    services.leaderboards.generate("WEEKLY", AS_OF)
    services.ledger.award("u2", "COMPLETE_PROJECT", occurred_at=datetime(2026, 3, 3, 10, 0))
    snap = services.leaderboards.generate("WEEKLY", AS_OF)

    assert LeaderboardSnapshot.query.filter_by(window_type="WEEKLY").count() == 1
    assert [e["user_id"] for e in snap.entries] == ["u2", "u1"]


def test_empty_window_gives_empty_board(services):
    assert services.leaderboards.generate("MONTHLY", AS_OF).entries == []


def test_artifact_mirrors_snapshot(app, services):
    services.ledger.award("u1", "REFER", occurred_at=datetime(2026, 3, 4, 10, 0))
    services.leaderboards.generate("DAILY", AS_OF)

    path = os.path.join(app.config["LEADERBOARD_ARTIFACT_DIR"], "daily.json")
    with open(path, "r", encoding="utf-8") as fh:
        assert json.load(fh) == [{"user_id": "u1", "points": 25}]
    assert services.leaderboards.read_artifact("DAILY") == [{"user_id": "u1", "points": 25}]
    assert not os.path.exists(path + ".tmp")


def test_unknown_window_type(services):
    with pytest.raises(UnknownWindowType):
        services.leaderboards.generate("YEARLY", AS_OF)


def test_get_snapshot_before_generation(services):
    with pytest.raises(SnapshotNotFound):
        services.leaderboards.get_snapshot("DAILY")


def test_runner_generates_every_window(services):
    summary = run_leaderboards(services.leaderboards, as_of=AS_OF)

    assert summary["errors"] == []
    assert sorted(g["type"] for g in summary["generated"]) == ["DAILY", "MONTHLY", "WEEKLY"]
    assert len(services.leaderboards.list_snapshots()) == 3


def test_runner_reports_failures_and_keeps_going(services):
    summary = run_leaderboards(services.leaderboards, types=["DAILY", "YEARLY"], as_of=AS_OF)

    assert [g["type"] for g in summary["generated"]] == ["DAILY"]
    assert summary["errors"][0]["code"] == "UNKNOWN_WINDOW_TYPE"


def test_generate_all_covers_each_window(services):
    services.ledger.award("u1", "REFER", occurred_at=datetime(2026, 3, 1, 8, 0))

    snaps = services.leaderboards.generate_all(AS_OF)

    assert set(snaps) == {"DAILY", "WEEKLY", "MONTHLY"}
    assert snaps["DAILY"].entries == []
    assert snaps["WEEKLY"].entries == snaps["MONTHLY"].entries == [{"user_id": "u1", "points": 25}]


def test_failed_scan_keeps_previous_snapshot(services, monkeypatch):
    services.ledger.award("u1", "REFER", occurred_at=datetime(2026, 3, 2, 10, 0))
    before = services.leaderboards.generate("WEEKLY", AS_OF)
    entries, generated_at = before.entries, before.generated_at

    def broken(start, end):
        raise OperationalError("SELECT points_actions", {}, Exception("database is locked"))

    services.ledger.award("u2", "COMPLETE_PROJECT", occurred_at=datetime(2026, 3, 3, 10, 0))
    monkeypatch.setattr(services.leaderboards, "rank", broken)

    with pytest.raises(LeaderboardGenerationFailure):
        services.leaderboards.generate("WEEKLY", datetime(2026, 3, 4, 16, 0))

    snap = services.leaderboards.get_snapshot("WEEKLY")
    assert snap.entries == entries == [{"user_id": "u1", "points": 25}]
    assert snap.generated_at == generated_at
    assert snap.window_end == AS_OF
    assert services.leaderboards.read_artifact("WEEKLY") == entries
