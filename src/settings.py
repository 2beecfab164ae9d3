"""Static configuration for the replicator.

All user-editable settings (replication, processor, logging) live in a
single JSON file for quick edits without touching Python. Connection strings
are secrets and are read from the environment instead (see client.py).
"""

import json
import os

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# The config path can be pointed elsewhere per deployment.
CONFIG_PATH = os.getenv("REPLICATOR_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Replication controls consumed by the core.
# - SUBSCRIPTION_NAME: subscription created on every source topic
# - DEFAULT_TTL_MINUTES: TTL for replicas of messages that never expire
# - ISOLATE_TOPIC_FAILURES: skip a failing topic instead of aborting startup
_replication = _CONFIG.get("replication", {})
SUBSCRIPTION_NAME = _replication.get("subscription_name", "replicationapi")
DEFAULT_TTL_MINUTES = int(_replication.get("default_ttl_minutes", 10))
MAX_DELIVERY_COUNT = int(_replication.get("max_delivery_count", 10))
ISOLATE_TOPIC_FAILURES = bool(_replication.get("isolate_topic_failures", False))

# Receive loop tuning for the Service Bus processor adapter.
_processor = _CONFIG.get("processor", {})
MAX_CONCURRENT_CALLS = int(_processor.get("max_concurrent_calls", 1))
MAX_WAIT_SECONDS = float(_processor.get("max_wait_seconds", 5))
ERROR_DELAY_SECONDS = float(_processor.get("error_delay_seconds", 1))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
