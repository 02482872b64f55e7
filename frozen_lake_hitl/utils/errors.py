from __future__ import annotations

from enum import Enum


class ConfigurationError(ValueError):
    """Raised at construction time for a malformed map, schedule or parameter set."""


class Failure(str, Enum):
    """Reasons a soft-failing operation was rejected without touching any state."""

    INVALID_STATE = "invalid_state"
    STATE_MISMATCH = "state_mismatch"
    BUSY = "busy"
    NO_ANNOUNCEMENT = "no_announcement"
    EPISODE_DONE = "episode_done"
    NO_PENDING_ACTION = "no_pending_action"
    UNKNOWN_RULE = "unknown_rule"
