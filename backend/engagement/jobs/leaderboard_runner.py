from __future__ import annotations

from datetime import datetime

from flask import current_app

from engagement.errors import EngagementError
from engagement.models import WINDOW_TYPES
from engagement.services.leaderboards import LeaderboardGenerator


def run_leaderboards(generator: LeaderboardGenerator, *, types=None, as_of: datetime | None = None) -> dict:
    """Regenerate leaderboard snapshots; one failing window does not stop the others."""
    generated = []
    errors = []

    for kind in (types or WINDOW_TYPES):
        try:
            snap = generator.generate(kind, as_of)
            generated.append({"type": snap.window_type, "entries": len(snap.entries)})
        except EngagementError as e:
            current_app.logger.error("leaderboard job: %s failed: %s", kind, e.message)
            errors.append({"type": str(kind), "code": e.code, "message": e.message})

    return {"generated": generated, "errors": errors}
