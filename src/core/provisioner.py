"""Replication subscription provisioning on the source namespace.

Every source topic gets one subscription with a SQL filter that only accepts
messages without a ``replicated`` property and an action that sets it. The
broker evaluates the rule per message, so a message read by the replication
subscription is never matched twice and replicas never loop back.
"""

from __future__ import annotations

import logging

from core.config import ReplicationConfig
from core.errors import BrokerErrorReason, ProvisionError, broker_reason
from core.models import DEFAULT_RULE_NAME, RuleSpec, SubscriptionSpec
from core.ports import BrokerAdminPort

LOGGER = logging.getLogger(__name__)


class SubscriptionProvisioner:
    """Idempotently ensure the filtered replication subscription per topic."""

    def __init__(self, admin: BrokerAdminPort, config: ReplicationConfig) -> None:
        self._admin = admin
        self._config = config
        self._rule = RuleSpec()

    @property
    def rule(self) -> RuleSpec:
        return self._rule

    def subscription_spec(self, topic_name: str) -> SubscriptionSpec:
        return SubscriptionSpec(
            topic_name=topic_name,
            subscription_name=self._config.subscription_name,
            max_delivery_count=self._config.max_delivery_count,
            default_ttl=self._config.default_ttl,
        )

    async def ensure(self, topic_name: str) -> None:
        """Create the subscription or repair its rules.

        Raises ProvisionError for anything other than the two tolerated
        races (rule already deleted, rule already created).
        """

        subscription_name = self._config.subscription_name
        try:
            exists = await self._admin.subscription_exists(topic_name, subscription_name)
            if not exists and await self._create_subscription(topic_name):
                return

            await self._remove_default_rule(topic_name, subscription_name)
            await self._add_replication_rule(topic_name, subscription_name)
        except Exception as exc:
            LOGGER.error(
                "Failed to provision subscription %s on topic %s: %s",
                subscription_name,
                topic_name,
                exc,
            )
            raise ProvisionError(topic_name, exc) from exc

    async def _create_subscription(self, topic_name: str) -> bool:
        """Return False when another instance created the subscription first."""

        subscription_name = self._config.subscription_name
        try:
            await self._admin.create_subscription(self.subscription_spec(topic_name), self._rule)
        except Exception as exc:
            if broker_reason(exc) is not BrokerErrorReason.ENTITY_ALREADY_EXISTS:
                raise
            LOGGER.info("Subscription %s on topic %s appeared concurrently; repairing rules", subscription_name, topic_name)
            return False
        LOGGER.info("Created subscription %s for topic %s", subscription_name, topic_name)
        return True

    async def _remove_default_rule(self, topic_name: str, subscription_name: str) -> None:
        try:
            await self._admin.delete_rule(topic_name, subscription_name, DEFAULT_RULE_NAME)
            LOGGER.info("Removed %s rule from %s/%s", DEFAULT_RULE_NAME, topic_name, subscription_name)
        except Exception as exc:
            if broker_reason(exc) is not BrokerErrorReason.ENTITY_NOT_FOUND:
                raise
            # Already gone.

    async def _add_replication_rule(self, topic_name: str, subscription_name: str) -> None:
        try:
            await self._admin.create_rule(topic_name, subscription_name, self._rule)
            LOGGER.info("Added %s rule to %s/%s", self._rule.name, topic_name, subscription_name)
        except Exception as exc:
            if broker_reason(exc) is not BrokerErrorReason.ENTITY_ALREADY_EXISTS:
                raise
            # Another replicator instance may have won the race.
            LOGGER.debug("Rule %s already present on %s/%s", self._rule.name, topic_name, subscription_name)
