from .points import PointsAccount, PointsAction  # noqa: F401
from .streak import StreakState  # noqa: F401
from .log_event import LogEvent  # noqa: F401
from .leaderboard import LeaderboardSnapshot, WINDOW_TYPES  # noqa: F401
from .audit_log import AuditLog  # noqa: F401
