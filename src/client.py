"""Service Bus client factory for the replicator.

We explicitly build and close the clients so it is obvious which namespace
each one talks to: the source namespace is read and administered, the target
namespace only receives replicas.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient
from dotenv import load_dotenv

SOURCE_CONNECTION_ENV = "SOURCE_CONNECTION_STRING"
TARGET_CONNECTION_ENV = "TARGET_CONNECTION_STRING"


@dataclass(frozen=True)
class ReplicatorClients:
    source: ServiceBusClient
    target: ServiceBusClient
    source_admin: ServiceBusAdministrationClient


def build_clients() -> ReplicatorClients:
    """Create the source/target clients from environment variables.

    We read the connection strings via python-dotenv to keep secrets out of
    the repo and out of config.json.
    """

    load_dotenv()

    source_connection = os.getenv(SOURCE_CONNECTION_ENV)
    target_connection = os.getenv(TARGET_CONNECTION_ENV)

    # Fail fast on missing credentials instead of an opaque AMQP error later.
    if not source_connection or not target_connection:
        raise RuntimeError(f"Missing {SOURCE_CONNECTION_ENV} or {TARGET_CONNECTION_ENV} in environment")

    logging.getLogger(__name__).info("Initializing Service Bus clients")

    return ReplicatorClients(
        source=ServiceBusClient.from_connection_string(source_connection),
        target=ServiceBusClient.from_connection_string(target_connection),
        source_admin=ServiceBusAdministrationClient.from_connection_string(source_connection),
    )
