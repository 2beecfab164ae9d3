"""Top-level replication orchestration.

Startup is sequential and all-or-nothing: topics are discovered first, then
each topic gets its subscription ensured and its worker started. If any step
fails the workers already running are stopped and the error propagates,
unless per-topic isolation is enabled in the config.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.config import ProcessorOptions, ReplicationConfig
from core.errors import StartupError
from core.forwarder import MessageForwarder
from core.ports import BrokerAdminPort, BrokerMessagingPort
from core.provisioner import SubscriptionProvisioner
from core.worker import TopicWorker

LOGGER = logging.getLogger(__name__)


class ReplicationEngine:
    """Discovers source topics and owns one TopicWorker per topic."""

    def __init__(
        self,
        admin: BrokerAdminPort,
        source: BrokerMessagingPort,
        provisioner: SubscriptionProvisioner,
        forwarder: MessageForwarder,
        config: ReplicationConfig,
        processor_options: Optional[ProcessorOptions] = None,
    ) -> None:
        self._admin = admin
        self._source = source
        self._provisioner = provisioner
        self._forwarder = forwarder
        self._config = config
        self._options = processor_options or ProcessorOptions(max_concurrent_calls=config.max_concurrent_calls)
        # Mutated only by start/stop, which run sequentially.
        self._workers: dict[str, TopicWorker] = {}

    @property
    def workers(self) -> dict[str, TopicWorker]:
        return dict(self._workers)

    async def discover_topics(self) -> list[str]:
        try:
            topics = [name async for name in self._admin.list_topics()]
        except Exception as exc:
            LOGGER.error("Failed to retrieve topics from source namespace: %s", exc)
            raise StartupError(f"Topic discovery failed: {exc}") from exc
        LOGGER.info("Successfully retrieved %s topics from source namespace", len(topics))
        return topics

    async def start(self) -> None:
        """Provision and start a worker for every source topic.

        Cancelling the awaiting task aborts startup the same way a failure does.
        """

        LOGGER.info("Starting service bus replication")
        topics = await self.discover_topics()
        try:
            for topic_name in topics:
                if topic_name in self._workers:
                    continue
                LOGGER.info("Processing topic: %s", topic_name)
                try:
                    await self._start_topic(topic_name)
                except Exception:
                    if not self._config.isolate_topic_failures:
                        raise
                    LOGGER.exception("Skipping topic %s after startup failure", topic_name)
        except (Exception, asyncio.CancelledError):
            LOGGER.error("Failed to start service bus replication; stopping %s started workers", len(self._workers))
            await self.stop()
            raise

        LOGGER.info("Replication running for %s topics", len(self._workers))

    async def _start_topic(self, topic_name: str) -> None:
        await self._provisioner.ensure(topic_name)
        worker = TopicWorker(
            topic_name=topic_name,
            subscription_name=self._config.subscription_name,
            source=self._source,
            forwarder=self._forwarder,
            options=self._options,
        )
        await worker.start()
        self._workers[topic_name] = worker

    async def stop(self) -> None:
        """Stop every worker, continuing past individual failures."""

        workers, self._workers = self._workers, {}
        for topic_name, worker in workers.items():
            try:
                await worker.stop()
            except Exception:
                LOGGER.exception("Failed to stop worker for topic %s", topic_name)
