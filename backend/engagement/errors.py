"""Error taxonomy for the engagement ledger.

Every error carries a machine code and the HTTP status the API answers with.
"""

from __future__ import annotations


class EngagementError(Exception):
    code = "ENGAGEMENT_ERROR"
    status_code = 500

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        out = {"ok": False, "message": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class UnknownActionKind(EngagementError):
    code = "UNKNOWN_ACTION_KIND"
    status_code = 400


class InvalidPayload(EngagementError):
    code = "INVALID_PAYLOAD"
    status_code = 400


class UnknownWindowType(EngagementError):
    code = "UNKNOWN_WINDOW_TYPE"
    status_code = 400


class AccountNotFound(EngagementError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404


class LogEventNotFound(EngagementError):
    code = "LOG_EVENT_NOT_FOUND"
    status_code = 404


class SnapshotNotFound(EngagementError):
    code = "SNAPSHOT_NOT_FOUND"
    status_code = 404


class PersistenceFailure(EngagementError):
    code = "PERSISTENCE_FAILURE"
    status_code = 503


class LeaderboardGenerationFailure(PersistenceFailure):
    code = "LEADERBOARD_GENERATION_FAILURE"


class MilestoneAwardFailure(EngagementError):
    """Raised around a failed streak bonus. Callers log it and carry on."""

    code = "MILESTONE_AWARD_FAILURE"
