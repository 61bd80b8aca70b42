"""
Admission state machine enumerations.
"""

from enum import Enum


class Action(str, Enum):
    """Terminal action applied to a pending member."""

    ADMIT = "admit"
    BAN = "ban"


class Outcome(str, Enum):
    """Result of evaluating a chat message against an open challenge."""

    NOT_APPLICABLE = "not_applicable"
    PASSED = "passed"
    RETRIED = "retried"
    BANNED = "banned"


class Resolution(str, Enum):
    """Result of trying to claim a pending member record."""

    CLAIMED = "claimed"
    LOST_RACE = "lost_race"
