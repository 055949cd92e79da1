from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import timedelta

import pytest
from delayq.config import LogFormat, QueueConfig, Settings
from delayq.engine.store.base import SerializationError, TaskNotFoundError
from delayq.logging import JSONFormatter, configure_logging
from delayq.models import QueueSnapshot, Task, TaskContext, TaskOutcome, new_task_id
from delayq.payloads import decode_payload, encode_payload
from pydantic import BaseModel, ValidationError


class _Invoice(BaseModel):
    invoice_id: str
    amount_cents: int


def test_queue_config_defaults_and_duration_coercion() -> None:
    config = QueueConfig(
        queue_name="emails",
        poll_interval=timedelta(milliseconds=250),
        handler_timeout=timedelta(minutes=2),
    )

    assert config.poll_interval == 0.25
    assert config.handler_timeout == 120.0
    assert config.concurrency == 10
    assert config.logger is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"queue_name": ""},
        {"poll_interval": 0},
        {"poll_interval": -1.0},
        {"handler_timeout": 0},
        {"concurrency": 0},
    ],
)
def test_queue_config_rejects_invalid_values(overrides: dict) -> None:
    values = {"queue_name": "emails", **overrides}
    with pytest.raises(ValidationError):
        QueueConfig(**values)


def test_queue_config_is_frozen() -> None:
    config = QueueConfig(queue_name="emails")
    with pytest.raises(ValidationError):
        config.concurrency = 3  # type: ignore[misc]


def test_queue_config_accepts_custom_logger() -> None:
    custom = logging.getLogger("app.queues")
    config = QueueConfig(queue_name="emails", logger=custom)
    assert config.logger is custom


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("DELAYQ_REDIS_URL", "redis://cache:6380/2")
    monkeypatch.setenv("DELAYQ_CONCURRENCY", "4")
    monkeypatch.setenv("DELAYQ_POLL_INTERVAL", "0.5")
    monkeypatch.setenv("DELAYQ_LOG_FORMAT", "json")

    settings = Settings(_env_file=None)

    assert settings.redis_url == "redis://cache:6380/2"
    assert settings.concurrency == 4
    assert settings.poll_interval == 0.5
    assert settings.log_format == LogFormat.JSON


def test_from_settings_fills_defaults_and_applies_overrides() -> None:
    settings = Settings(_env_file=None, concurrency=4, poll_interval=2.0)

    config = QueueConfig.from_settings("emails", settings, concurrency=8)

    assert config.queue_name == "emails"
    assert config.concurrency == 8
    assert config.poll_interval == 2.0
    assert config.handler_timeout is None


def test_from_settings_none_override_clears_handler_timeout() -> None:
    settings = Settings(_env_file=None, handler_timeout=30.0)

    assert QueueConfig.from_settings("emails", settings).handler_timeout == 30.0
    cleared = QueueConfig.from_settings("emails", settings, handler_timeout=None)
    assert cleared.handler_timeout is None


def test_encode_payload_uses_compact_json_and_pydantic_dump() -> None:
    assert encode_payload({"a": [1, 2], "b": None}) == b'{"a":[1,2],"b":null}'
    assert encode_payload("plain") == b'"plain"'
    assert encode_payload(_Invoice(invoice_id="inv-1", amount_cents=995)) == (
        b'{"invoice_id":"inv-1","amount_cents":995}'
    )


@pytest.mark.parametrize("payload", [object(), {1, 2}, float("inf"), b"raw"])
def test_encode_payload_rejects_non_json_values(payload: object) -> None:
    with pytest.raises(SerializationError):
        encode_payload(payload)


def test_decode_payload_returns_python_values() -> None:
    assert decode_payload(b'{"n":1}') == {"n": 1}


def test_task_ids_are_unique_hex() -> None:
    ids = {new_task_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(len(task_id) == 32 for task_id in ids)

    first = Task(payload=b"{}", due_at=10)
    second = Task(payload=b"{}", due_at=10)
    assert first.id != second.id


def test_orphaning_outcomes() -> None:
    assert TaskOutcome.FAILED.is_orphaning()
    assert TaskOutcome.TIMED_OUT.is_orphaning()
    assert TaskOutcome.STORE_ERROR.is_orphaning()
    assert not TaskOutcome.COMPLETED.is_orphaning()
    assert not TaskOutcome.MISSING.is_orphaning()


def test_queue_snapshot_unscheduled_count() -> None:
    assert QueueSnapshot(scheduled=3, payloads=5).unscheduled == 2
    assert QueueSnapshot(scheduled=3, payloads=3).unscheduled == 0


@pytest.mark.asyncio
async def test_task_context_time_remaining() -> None:
    loop = asyncio.get_running_loop()
    bounded = TaskContext(task_id="t", queue_name="q", deadline=loop.time() + 10)
    expired = TaskContext(task_id="t", queue_name="q", deadline=loop.time() - 1)

    assert 9 < bounded.time_remaining() <= 10  # type: ignore[operator]
    assert expired.time_remaining() == 0.0
    assert TaskContext(task_id="t", queue_name="q").time_remaining() is None


def test_task_not_found_error_carries_task_id() -> None:
    err = TaskNotFoundError("abc")
    assert err.task_id == "abc"
    assert "abc" in str(err)


def test_json_formatter_includes_queue_fields() -> None:
    record = logging.LogRecord(
        name="delayq.engine.executor",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="Handle task %s error",
        args=("t-1",),
        exc_info=None,
    )
    record.queue = "emails"
    record.task_id = "t-1"
    record.outcome = "failed"

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Handle task t-1 error"
    assert entry["level"] == "ERROR"
    assert entry["queue"] == "emails"
    assert entry["task_id"] == "t-1"
    assert entry["outcome"] == "failed"
    assert "error" not in entry


def test_json_formatter_serializes_exceptions() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        exc_info = sys.exc_info()

    record = logging.LogRecord(
        name="delayq",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="failed",
        args=(),
        exc_info=exc_info,
    )

    entry = json.loads(JSONFormatter().format(record))

    assert entry["error"]["type"] == "RuntimeError"
    assert entry["error"]["message"] == "boom"
    assert "Traceback" in entry["error"]["stacktrace"]


def test_configure_logging_installs_single_handler() -> None:
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        configure_logging(log_format="json", debug=True)
        configure_logging(log_format="json", debug=True)

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
