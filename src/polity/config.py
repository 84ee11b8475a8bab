"""Runtime configuration for the governance engine."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from polity.domain.enums import GovernanceType


class Settings(BaseSettings):
    """Application settings, read from ``POLITY_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="POLITY_", extra="ignore"
    )

    database_url: str = Field(default="sqlite:///./polity.db", description="SQLAlchemy URL")
    database_echo: bool = Field(default=False, description="Log emitted SQL")
    database_pool_size: int = Field(default=5, ge=1)
    database_max_overflow: int = Field(default=10, ge=0)
    database_pool_recycle: int = Field(default=1800, description="Seconds before recycling")
    database_pool_timeout: int = Field(default=30, ge=1)

    default_governance_type: GovernanceType = Field(
        default=GovernanceType.MONARCHY,
        description="Governance type assumed for communities that do not store one",
    )
    agitation_window_hours: float = Field(
        default=1.0, gt=0.0, description="How long an uprising may gather support"
    )
    negotiation_cooldown_hours: float = Field(
        default=72.0, ge=0.0, description="Quiet period after an accepted negotiation"
    )
    failure_cooldown_hours: float = Field(
        default=72.0, ge=0.0, description="Quiet period after a lost civil war"
    )
    support_ratio: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Share of non-sovereign members needed to reach battle",
    )
    effect_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Upper bound for applying one law effect"
    )
    announcement_cooldown_hours: float = Field(
        default=24.0, ge=0.0, description="Minimum spacing between community announcements"
    )
    max_active_alliances: int = Field(default=5, ge=1)
    civil_war_duration_hours: float = Field(default=1.0, gt=0.0)
    battle_referee_ids: list[int] = Field(
        default_factory=list, description="Users allowed to record civil war results over HTTP"
    )
    sweep_enabled: bool = Field(
        default=True, description="Run the background sweep for overdue proposals and uprisings"
    )
    sweep_interval_seconds: float = Field(
        default=60.0, gt=0.0, description="Real-time seconds between background sweeps"
    )

    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
        description="Origins allowed to call the HTTP API",
    )
    log_level: str = Field(default="INFO")

    @property
    def agitation_window(self) -> timedelta:
        return timedelta(hours=self.agitation_window_hours)

    @property
    def negotiation_cooldown(self) -> timedelta:
        return timedelta(hours=self.negotiation_cooldown_hours)

    @property
    def failure_cooldown(self) -> timedelta:
        return timedelta(hours=self.failure_cooldown_hours)

    @property
    def announcement_cooldown(self) -> timedelta:
        return timedelta(hours=self.announcement_cooldown_hours)

    @property
    def civil_war_duration(self) -> timedelta:
        return timedelta(hours=self.civil_war_duration_hours)


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
