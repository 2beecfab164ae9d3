"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class ReplicationConfig:
    """Replication settings shared by the provisioner, forwarder, and engine."""

    subscription_name: str = "replicationapi"
    default_ttl_minutes: int = 10
    max_delivery_count: int = 10
    max_concurrent_calls: int = 1
    isolate_topic_failures: bool = False

    def __post_init__(self) -> None:
        # Fail fast so a bad config never reaches the broker.
        if not self.subscription_name or not self.subscription_name.strip():
            raise ValueError("subscription_name must not be empty")
        if self.default_ttl_minutes <= 0:
            raise ValueError(f"default_ttl_minutes must be > 0, got {self.default_ttl_minutes}")
        if self.max_delivery_count < 1:
            raise ValueError(f"max_delivery_count must be >= 1, got {self.max_delivery_count}")
        if self.max_concurrent_calls < 1:
            raise ValueError(f"max_concurrent_calls must be >= 1, got {self.max_concurrent_calls}")

    @property
    def default_ttl(self) -> timedelta:
        return timedelta(minutes=self.default_ttl_minutes)


@dataclass(frozen=True)
class ProcessorOptions:
    """Receive-loop settings handed to a messaging adapter's processor."""

    max_concurrent_calls: int = 1
    max_wait_seconds: float = 5.0
    error_delay_seconds: float = 1.0
