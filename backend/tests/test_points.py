from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from engagement.errors import AccountNotFound, InvalidPayload, PersistenceFailure, UnknownActionKind
from engagement.extensions import db
from engagement.jobs.points_reconciler import reconcile_points
from engagement.models import AuditLog, PointsAccount, PointsAction
from engagement.services import points as points_service
from engagement.services.points import replay_balance


def test_award_creates_account_and_one_entry(services):
    ledger = services.ledger
    assert ledger.get_balance("u1") is None

    result = ledger.award("u1", "ENROLL_PROJECT")

    assert result.points == 5
    assert result.duplicate is False
    assert ledger.get_balance("u1") == 5
    assert [a.points_earned for a in ledger.history("u1")] == [5]


def test_complete_then_uncomplete_keeps_both_entries(services):
    ledger = services.ledger
    ledger.award("u1", "COMPLETE_PROJECT_CHAPTER")
    ledger.deduct("u1", "COMPLETE_PROJECT_CHAPTER")

    assert ledger.get_balance("u1") == 0
    rows = ledger.history("u1")
    assert [r.points_earned for r in rows] == [-10, 10]
    assert [r.balance_after for r in rows] == [0, 10]


def test_deduct_clamps_at_zero(services):
    ledger = services.ledger
    ledger.award("u1", "ENROLL_PROJECT")
    result = ledger.deduct("u1", "COMPLETE_PROJECT_CHAPTER")

    assert result.points == 0
    assert result.action.points_earned == -10
    assert result.action.balance_after == 0


def test_deduct_on_fresh_account_stays_at_zero(services):
    result = services.ledger.deduct("u2", "REFER")
    assert result.points == 0
    assert services.ledger.get_balance("u2") == 0


def test_idempotency_key_applies_once(services):
    ledger = services.ledger
    first = ledger.award("u1", "REFER", idempotency_key="refer:u1:friend-9")
    second = ledger.award("u1", "REFER", idempotency_key="refer:u1:friend-9")

    assert first.duplicate is False
    assert second.duplicate is True
    assert second.action.id == first.action.id
    assert ledger.get_balance("u1") == 25
    assert PointsAction.query.filter_by(user_id="u1").count() == 1


def test_unknown_action_leaves_no_trace(services):
    with pytest.raises(UnknownActionKind):
        services.ledger.award("u1", "HACK_THE_PLANET")
    assert services.ledger.get_balance("u1") is None


def test_blank_user_is_rejected(services):
    with pytest.raises(AccountNotFound):
        services.ledger.award("  ", "REFER")


def test_toggle_follows_completion_flag(services):
    ledger = services.ledger
    assert ledger.toggle("u1", "COMPLETE_QUESTION", True).points == 5
    assert ledger.toggle("u1", "COMPLETE_QUESTION", False).points == 0
    assert ledger.history("u1")[0].points_earned == -5


def test_occurred_at_is_stored_as_naive_utc(services):
    result = services.ledger.award("u1", "DAILY_VISIT", occurred_at=datetime(2026, 3, 2, 10, 0))
    assert result.action.occurred_at == datetime(2026, 3, 2, 10, 0)


def test_get_account_missing(services):
    with pytest.raises(AccountNotFound) as exc:
        services.ledger.get_account("ghost")
    assert exc.value.status_code == 404


def test_top_n_orders_by_points_then_age(services):
    ledger = services.ledger
    ledger.award("a", "REFER")
    ledger.award("b", "REFER")
    ledger.award("c", "COMPLETE_PROJECT")

    assert ledger.top_n(2) == [
        {"user_id": "c", "points": 50},
        {"user_id": "a", "points": 25},
    ]


def test_replay_balance_floors_each_step():
    assert replay_balance([5, -10, 10]) == 10
    assert replay_balance([]) == 0


def test_reconciler_flags_tampered_balance(services):
    services.ledger.award("u1", "REFER")
    services.ledger.award("u2", "REFER")
    services.ledger.deduct("u2", "COMPLETE_PROJECT")

    assert reconcile_points() == {"checked": 2, "anomalies": 0}

    acct = PointsAccount.query.filter_by(user_id="u1").one()
    acct.points = 999
    db.session.commit()

    assert reconcile_points() == {"checked": 2, "anomalies": 1}
    log = AuditLog.query.filter_by(action="points_anomaly").one()
    assert log.user_id == "u1"
    assert log.computed_points == 25
    assert log.stored_points == 999
    assert log.issues == ["ledger_mismatch"]


def test_idempotency_key_is_not_shared_across_users(services):
    ledger = services.ledger
    ledger.award("alice", "REFER", idempotency_key="refer:42")

    with pytest.raises(InvalidPayload):
        ledger.award("bob", "REFER", idempotency_key="refer:42")

    assert ledger.get_balance("alice") == 25
    assert ledger.get_balance("bob") is None


@pytest.mark.parametrize("verb", ["award", "deduct"])
def test_failed_write_leaves_no_partial_state(services, monkeypatch, verb):
    ledger = services.ledger
    ledger.award("u1", "COMPLETE_PROJECT")

    def broken(value):
        raise OperationalError("INSERT INTO points_actions", {}, Exception("disk I/O error"))

    # fails after the balance UPDATE has run, before the ledger row is written
    monkeypatch.setattr(points_service, "to_utc_naive", broken)

    with pytest.raises(PersistenceFailure):
        getattr(ledger, verb)("u1", "REFER", idempotency_key=f"{verb}-1")

    monkeypatch.undo()
    assert ledger.get_balance("u1") == 50
    assert PointsAction.query.filter_by(user_id="u1").count() == 1
    assert PointsAction.query.filter_by(idempotency_key=f"{verb}-1").count() == 0
