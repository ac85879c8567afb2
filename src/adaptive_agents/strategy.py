"""Strategy profiles and utilities."""

from enum import Enum


class StrategyProfile(str, Enum):
    """How patient a session is before giving up."""
    CONSERVATIVE = "conservative"
    EXPLORATORY = "exploratory"
    FALLBACK = "fallback"


def default_limits(strategy: StrategyProfile) -> dict[str, int]:
    """Return default limits for a strategy profile."""
    if strategy == StrategyProfile.CONSERVATIVE:
        return {
            "max_iterations": 3,
            "max_turns": 20,
            "max_unrouted_turns": 1,
            "max_delegation_rounds": 3,
        }
    elif strategy == StrategyProfile.EXPLORATORY:
        return {
            "max_iterations": 8,
            "max_turns": 60,
            "max_unrouted_turns": 3,
            "max_delegation_rounds": 8,
        }
    else:  # FALLBACK
        return {
            "max_iterations": 5,
            "max_turns": 40,
            "max_unrouted_turns": 2,
            "max_delegation_rounds": 5,
        }
