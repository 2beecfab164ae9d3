from __future__ import annotations

from datetime import timedelta

import pytest

from core.config import ReplicationConfig


def test_defaults_match_replication_contract() -> None:
    config = ReplicationConfig()
    assert config.subscription_name == "replicationapi"
    assert config.default_ttl == timedelta(minutes=10)
    assert config.max_delivery_count == 10
    assert config.max_concurrent_calls == 1
    assert config.isolate_topic_failures is False


@pytest.mark.parametrize("minutes", [0, -5])
def test_rejects_non_positive_default_ttl(minutes: int) -> None:
    with pytest.raises(ValueError, match="default_ttl_minutes"):
        ReplicationConfig(default_ttl_minutes=minutes)


def test_rejects_blank_subscription_name() -> None:
    with pytest.raises(ValueError, match="subscription_name"):
        ReplicationConfig(subscription_name="  ")


def test_rejects_zero_concurrency() -> None:
    with pytest.raises(ValueError, match="max_concurrent_calls"):
        ReplicationConfig(max_concurrent_calls=0)
