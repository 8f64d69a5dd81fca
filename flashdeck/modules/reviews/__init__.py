"""Review sessions: engine, player and keyboard shortcuts."""

from .models import ReviewOutcome, ReviewSessionConfig, SessionStatus
from .player import ReviewPlayer, build_session_config
from .session import ReviewSessionEngine

__all__ = [
    "ReviewOutcome",
    "ReviewPlayer",
    "ReviewSessionConfig",
    "ReviewSessionEngine",
    "SessionStatus",
    "build_session_config",
]
