"""Service Bus administration adapter.

Implements the core BrokerAdminPort over the async management client.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.servicebus.aio.management import ServiceBusAdministrationClient
from azure.servicebus.management import SqlRuleAction, SqlRuleFilter

from adapters.servicebus_mapper import broker_error_from
from core.models import DEFAULT_RULE_NAME, RuleSpec, SubscriptionSpec

LOGGER = logging.getLogger(__name__)


class ServiceBusAdmin:
    """Thin management-client wrapper that satisfies the BrokerAdminPort contract."""

    def __init__(self, client: ServiceBusAdministrationClient) -> None:
        self._client = client

    async def list_topics(self) -> AsyncIterator[str]:
        try:
            async for topic in self._client.list_topics():
                yield topic.name
        except Exception as exc:
            raise broker_error_from(exc) from exc

    async def subscription_exists(self, topic_name: str, subscription_name: str) -> bool:
        # The Python SDK has no exists call; a 404 on get is the answer.
        try:
            await self._client.get_subscription(topic_name, subscription_name)
        except ResourceNotFoundError:
            return False
        except Exception as exc:
            raise broker_error_from(exc) from exc
        return True

    async def create_subscription(self, spec: SubscriptionSpec, rule: RuleSpec) -> None:
        """Create the subscription and swap its default rule for ``rule``.

        The SDK always attaches a catch-all ``$Default`` rule on creation, so
        the filter is added first and the default removed afterwards.
        """

        try:
            await self._client.create_subscription(
                spec.topic_name,
                spec.subscription_name,
                max_delivery_count=spec.max_delivery_count,
                default_message_time_to_live=spec.default_ttl,
            )
        except Exception as exc:
            raise broker_error_from(exc) from exc

        try:
            await self._create_rule(spec.topic_name, spec.subscription_name, rule)
        except ResourceExistsError:
            pass
        except Exception as exc:
            raise broker_error_from(exc) from exc

        try:
            await self._client.delete_rule(spec.topic_name, spec.subscription_name, DEFAULT_RULE_NAME)
        except ResourceNotFoundError:
            pass
        except Exception as exc:
            raise broker_error_from(exc) from exc

    async def delete_rule(self, topic_name: str, subscription_name: str, rule_name: str) -> None:
        try:
            await self._client.delete_rule(topic_name, subscription_name, rule_name)
        except Exception as exc:
            raise broker_error_from(exc) from exc

    async def create_rule(self, topic_name: str, subscription_name: str, rule: RuleSpec) -> None:
        try:
            await self._create_rule(topic_name, subscription_name, rule)
        except Exception as exc:
            raise broker_error_from(exc) from exc

    async def _create_rule(self, topic_name: str, subscription_name: str, rule: RuleSpec) -> None:
        action = SqlRuleAction(rule.action_expression) if rule.action_expression else None
        await self._client.create_rule(
            topic_name,
            subscription_name,
            rule.name,
            filter=SqlRuleFilter(rule.filter_expression),
            action=action,
        )
        LOGGER.debug("Created rule %s on %s/%s", rule.name, topic_name, subscription_name)

    async def close(self) -> None:
        await self._client.close()
