"""Environment-bound configuration.

Values load from ``ADAPTIVE_AGENTS_*`` environment variables or a local
``.env`` file. Limits default to the selected strategy profile and can be
overridden one by one::

    ADAPTIVE_AGENTS_STRATEGY=exploratory
    ADAPTIVE_AGENTS_MAX_ITERATIONS=4
    ADAPTIVE_AGENTS_CALL_TIMEOUT_SECONDS=90
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import UnroutablePolicy
from .strategy import StrategyProfile, default_limits


class AdaptiveAgentsSettings(BaseSettings):
    """Limits and timeouts for planning and conversation sessions."""

    model_config = SettingsConfigDict(
        env_prefix="ADAPTIVE_AGENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    strategy: StrategyProfile = StrategyProfile.FALLBACK
    call_timeout_seconds: float = Field(default=120.0, gt=0.0, le=3600.0)
    unroutable_policy: UnroutablePolicy = UnroutablePolicy.REPROMPT

    max_iterations: Optional[int] = Field(default=None, ge=1, le=100)
    max_turns: Optional[int] = Field(default=None, ge=1, le=1000)
    max_unrouted_turns: Optional[int] = Field(default=None, ge=0, le=20)
    max_delegation_rounds: Optional[int] = Field(default=None, ge=0, le=50)

    def limits(self) -> dict[str, int]:
        """Strategy defaults with any explicit overrides applied."""
        limits = default_limits(self.strategy)
        for key in limits:
            override = getattr(self, key)
            if override is not None:
                limits[key] = override
        return limits


@lru_cache(maxsize=1)
def get_settings() -> AdaptiveAgentsSettings:
    """Cached settings singleton."""
    return AdaptiveAgentsSettings()
