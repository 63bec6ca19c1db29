"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

DEDUP_SCOPES = ("global", "per_watch")
MISSING_CALLBACK_POLICIES = ("retry", "suppress")


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication settings for the dispatch engine.

    - scope: "global" keys markers by event instance, "per_watch" also by watch
    - success_ttl_hours: lifetime of a "processed" marker
    - error_ttl_hours: lifetime of an "error" marker (shorter, faster retry)
    - missing_callback: "retry" leaves no marker, "suppress" writes an error one
    """

    scope: str = "global"
    success_ttl_hours: float = 6
    error_ttl_hours: float = 1
    missing_callback: str = "retry"

    def __post_init__(self) -> None:
        if self.scope not in DEDUP_SCOPES:
            raise ValueError(f"Unsupported dedup scope: {self.scope}")
        if self.missing_callback not in MISSING_CALLBACK_POLICIES:
            raise ValueError(f"Unsupported missing_callback policy: {self.missing_callback}")

    @property
    def success_ttl_seconds(self) -> int:
        return int(self.success_ttl_hours * 3600)

    @property
    def error_ttl_seconds(self) -> int:
        return int(self.error_ttl_hours * 3600)


@dataclass(frozen=True)
class WatchDefaults:
    """Defaults applied by setup when the caller leaves a field out."""

    calendar_id: str | None = None
    check_frequency_hours: int = 6
