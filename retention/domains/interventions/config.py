"""Intervention engine configuration.

Passed explicitly into the scheduler, lifecycle manager and reconciler so no
engine component reads process-wide state.
"""

from dataclasses import dataclass, field

from retention.domains.scoring.config import ScoringConfig, default_config as default_scoring

from .models import Channel

DEFAULT_CHANNEL_PRIORITY: tuple[Channel, ...] = (Channel.EMAIL, Channel.SMS, Channel.WHATSAPP)


@dataclass
class EngineConfig:
    # Match channel preference, highest first
    channel_priority: tuple[Channel, ...] = DEFAULT_CHANNEL_PRIORITY

    # Used when the tenant has no timezone of its own
    default_timezone: str = "Europe/London"

    # Bounded worker pool for member processing within one tenant run
    max_concurrency: int = 8
    # Per-tenant timeout for run_all_tenants
    run_timeout_seconds: float = 300.0

    expected_visits_per_week: float = 2.0

    # Trailing window for the per-member weekly cap
    weekly_cap_window_days: int = 7

    scoring: ScoringConfig = field(default_factory=lambda: default_scoring)

    def __post_init__(self) -> None:
        self.channel_priority = tuple(Channel(c) for c in self.channel_priority)
        if not self.channel_priority:
            raise ValueError("Channel priority must list at least one channel")
        if len(set(self.channel_priority)) != len(self.channel_priority):
            raise ValueError(
                f"Channel priority has duplicates: {[c.value for c in self.channel_priority]}"
            )
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

    @classmethod
    def from_settings(cls, settings) -> "EngineConfig":
        """Build from application Settings, with SCORING_ env overrides applied."""
        return cls(
            channel_priority=parse_channel_priority(settings.channel_priority),
            default_timezone=settings.default_timezone,
            max_concurrency=settings.scheduler_max_concurrency,
            run_timeout_seconds=settings.scheduler_run_timeout_seconds,
            expected_visits_per_week=settings.expected_visits_per_week,
            scoring=ScoringConfig.from_env(),
        )


def parse_channel_priority(value: str) -> tuple[Channel, ...]:
    """Parse "EMAIL,SMS" style configuration. Unknown names raise ValueError."""
    return tuple(Channel(part.strip().upper()) for part in value.split(",") if part.strip())
