"""Constants and key helpers for the Redis task store."""

from pathlib import Path

SCRIPTS_DIR = Path(__file__).parent / "scripts"

# Key suffixes under the queue name.
SCHEDULE_SUFFIX = "delayed"
PAYLOAD_SUFFIX = "tasks"

# Orphan scan batching
DEFAULT_SCAN_COUNT = 200


def queue_key(queue_name: str, *parts: str) -> str:
    """Build a Redis key under the queue name."""
    return ":".join([queue_name, *parts])


def schedule_key(queue_name: str) -> str:
    """Redis sorted-set key for the schedule index (score = due_at)."""
    return queue_key(queue_name, SCHEDULE_SUFFIX)


def payload_key(queue_name: str) -> str:
    """Redis hash key for the payload table (field = task ID)."""
    return queue_key(queue_name, PAYLOAD_SUFFIX)
