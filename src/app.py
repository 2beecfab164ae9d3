"""Application entry point for the Service Bus replicator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.servicebus_admin import ServiceBusAdmin
from adapters.servicebus_messaging import ServiceBusMessaging
from client import ReplicatorClients, build_clients
from core.config import ProcessorOptions, ReplicationConfig
from core.engine import ReplicationEngine
from core.forwarder import MessageForwarder
from core.provisioner import SubscriptionProvisioner

NAME = "REPLICATOR"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    # Redaction reads the secrets from the environment, so .env must be loaded first.
    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/replicator.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # The AMQP stack is chatty at INFO; keep our own records readable.
    logging.getLogger("azure").setLevel(max(level, logging.WARNING))


def _replication_config() -> ReplicationConfig:
    return ReplicationConfig(
        subscription_name=settings.SUBSCRIPTION_NAME,
        default_ttl_minutes=settings.DEFAULT_TTL_MINUTES,
        max_delivery_count=settings.MAX_DELIVERY_COUNT,
        max_concurrent_calls=settings.MAX_CONCURRENT_CALLS,
        isolate_topic_failures=settings.ISOLATE_TOPIC_FAILURES,
    )


async def _close_clients(clients: ReplicatorClients) -> None:
    for closeable in (clients.source, clients.target, clients.source_admin):
        try:
            await closeable.close()
        except Exception:
            logging.getLogger(__name__).exception("Failed to close %s", type(closeable).__name__)


async def _replicate() -> None:
    logger = logging.getLogger(__name__)

    # Validate config before opening any connection.
    config = _replication_config()
    options = ProcessorOptions(
        max_concurrent_calls=config.max_concurrent_calls,
        max_wait_seconds=settings.MAX_WAIT_SECONDS,
        error_delay_seconds=settings.ERROR_DELAY_SECONDS,
    )

    clients = build_clients()
    admin = ServiceBusAdmin(clients.source_admin)
    engine = ReplicationEngine(
        admin=admin,
        source=ServiceBusMessaging(clients.source),
        provisioner=SubscriptionProvisioner(admin, config),
        forwarder=MessageForwarder(ServiceBusMessaging(clients.target), config),
        config=config,
        processor_options=options,
    )

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Signal handlers are unavailable on some platforms (Windows).
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    try:
        await engine.start()
        logger.info("Replication started. Waiting for shutdown signal...")
        await stop_requested.wait()
        logger.info("Shutdown requested")
    finally:
        await engine.stop()
        await _close_clients(clients)


def _run() -> None:
    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting replicator")
    asyncio.run(_replicate())


async def _list_topics() -> None:
    clients = build_clients()
    admin = ServiceBusAdmin(clients.source_admin)
    try:
        found = False
        async for topic_name in admin.list_topics():
            found = True
            exists = await admin.subscription_exists(topic_name, settings.SUBSCRIPTION_NAME)
            status = "provisioned" if exists else "not provisioned"
            print(f"{topic_name} | {settings.SUBSCRIPTION_NAME} {status}")
        if not found:
            print("No topics found in the source namespace.")
    finally:
        await _close_clients(clients)


def _topics() -> None:
    _print_banner()
    _configure_logging()
    asyncio.run(_list_topics())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="replicator")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start replicating all source topics")
    subparsers.add_parser(
        "topics",
        help="List source topics and whether the replication subscription exists.",
    )

    args = parser.parse_args(argv)
    if args.command == "topics":
        _topics()
        return
    _run()


if __name__ == "__main__":
    main()
