"""
Usage tracking for commands, AI tokens and logged hours.

Stored as usage.json. Feeds the token-limit and budget policy rules.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from waypost.lib.timeutil import format_timestamp, utc_now


@dataclass
class ProviderStats:
    """Token counts for one AI model."""
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class UsageStats:
    total_commands: int = 0
    last_command_at: Optional[str] = None
    provider_stats: dict[str, ProviderStats] = field(default_factory=dict)
    logged_hours: float = 0.0

    def increment_command(self, now: Optional[datetime] = None) -> None:
        self.total_commands += 1
        self.last_command_at = format_timestamp(now or utc_now())

    def record_token_usage(self, model: str, input_tokens: int, output_tokens: int) -> None:
        stats = self.provider_stats.setdefault(model or "unknown", ProviderStats())
        stats.calls += 1
        stats.input_tokens += max(0, int(input_tokens))
        stats.output_tokens += max(0, int(output_tokens))

    def record_logged_hours(self, hours: float) -> None:
        if hours < 0:
            raise ValueError(f"Logged hours must be non-negative, got {hours}")
        self.logged_hours += hours

    def total_tokens(self) -> int:
        return sum(s.total_tokens for s in self.provider_stats.values())

    def to_dict(self) -> dict:
        return {
            "total_commands": self.total_commands,
            "last_command_at": self.last_command_at,
            "logged_hours": self.logged_hours,
            "provider_stats": {
                model: {
                    "calls": s.calls,
                    "input_tokens": s.input_tokens,
                    "output_tokens": s.output_tokens,
                }
                for model, s in self.provider_stats.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UsageStats":
        return cls(
            total_commands=int(data.get("total_commands", 0)),
            last_command_at=data.get("last_command_at"),
            logged_hours=float(data.get("logged_hours", 0.0)),
            provider_stats={
                model: ProviderStats(
                    calls=int(s.get("calls", 0)),
                    input_tokens=int(s.get("input_tokens", 0)),
                    output_tokens=int(s.get("output_tokens", 0)),
                )
                for model, s in (data.get("provider_stats") or {}).items()
            },
        )
