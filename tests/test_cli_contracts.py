from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import fakeredis
import pytest
import typer
from delayq.cli import _version_callback, app
from delayq.cli._console import error, error_panel, info, setup_logging, success
from delayq.cli._loader import build_queue, load_handler
from delayq.cli.run import serve
from delayq.config import QueueConfig, Settings
from delayq.queue import DelayQueue
from fakeredis.aioredis import FakeRedis
from typer.testing import CliRunner


def _run_coroutine(coro: Any) -> Any:
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def outputs(monkeypatch) -> list[str]:
    lines: list[str] = []
    monkeypatch.setattr(
        "delayq.cli._console.console.print",
        lambda *args, **kwargs: lines.append(str(args[0]) if args else ""),
    )
    return lines


@pytest.fixture
def fake_queues(monkeypatch, server: fakeredis.FakeServer) -> None:
    """Route CLI-built queues to an in-memory Redis server."""

    def _queue(config: QueueConfig, redis_url: str | None = None) -> DelayQueue:
        return DelayQueue(config, client=FakeRedis(server=server))

    monkeypatch.setattr("delayq.cli._loader.DelayQueue", _queue)


def test_cli_app_help_and_version() -> None:
    runner = CliRunner()
    help_result = runner.invoke(app, ["--help"])
    assert help_result.exit_code == 0
    for command in ("add", "run", "stats", "orphans", "requeue"):
        assert command in help_result.stdout

    version_result = runner.invoke(app, ["--version"])
    assert version_result.exit_code == 0
    assert "delayq" in version_result.stdout


def test_version_callback_noop_when_false() -> None:
    assert _version_callback(False) is None


def test_console_helpers_emit_output(outputs: list[str]) -> None:
    success("ok")
    error("bad")
    info("info")
    error_panel("boom", title="Failed")

    assert any("ok" in line for line in outputs)
    assert any("bad" in line for line in outputs)
    assert any("info" in line for line in outputs)
    assert len(outputs) == 4


def test_setup_logging_sets_expected_levels() -> None:
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        setup_logging(verbose=False)
        assert logging.getLogger("delayq").level == logging.INFO
        assert logging.getLogger("redis").level == logging.WARNING

        setup_logging(verbose=True)
        assert logging.getLogger("delayq").level == logging.DEBUG
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
        logging.getLogger("delayq").setLevel(logging.NOTSET)


def test_add_schedules_task(
    fake_queues: None, server: fakeredis.FakeServer, outputs: list[str]
) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["add", "emails", '{"to": "a@b.c"}', "--delay", "60"])

    assert result.exit_code == 0, result.output
    assert any("Scheduled" in line for line in outputs)

    client = fakeredis.FakeRedis(server=server)
    assert client.zcard("emails:delayed") == 1
    assert client.hvals("emails:tasks") == [b'{"to":"a@b.c"}']


def test_add_rejects_invalid_json(fake_queues: None, outputs: list[str]) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["add", "emails", "{not json"])

    assert result.exit_code == 1
    assert any("Invalid JSON" in line for line in outputs)


def test_add_rejects_negative_delay(fake_queues: None) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["add", "emails", "{}", "--delay", "-5"])

    assert result.exit_code != 0


def test_stats_and_orphans_report_queue_state(
    fake_queues: None, server: fakeredis.FakeServer, outputs: list[str]
) -> None:
    client = fakeredis.FakeRedis(server=server)
    client.zadd("emails:delayed", {"scheduled-1": 2_000_000_000})
    client.hset("emails:tasks", "scheduled-1", b"{}")
    client.hset("emails:tasks", "orphan-1", b"{}")

    runner = CliRunner()
    stats_result = runner.invoke(app, ["stats", "emails"])
    assert stats_result.exit_code == 0, stats_result.output

    orphans_result = runner.invoke(app, ["orphans", "emails"])
    assert orphans_result.exit_code == 0, orphans_result.output
    assert "orphan-1" in outputs
    assert "scheduled-1" not in outputs


def test_orphans_reports_empty_queue(fake_queues: None, outputs: list[str]) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["orphans", "emails"])

    assert result.exit_code == 0
    assert any("No orphaned tasks" in line for line in outputs)


def test_requeue_reschedules_orphan_and_fails_for_unknown(
    fake_queues: None, server: fakeredis.FakeServer, outputs: list[str]
) -> None:
    client = fakeredis.FakeRedis(server=server)
    client.hset("emails:tasks", "orphan-1", b"{}")

    runner = CliRunner()
    ok = runner.invoke(app, ["requeue", "emails", "orphan-1"])
    assert ok.exit_code == 0, ok.output
    assert client.zscore("emails:delayed", "orphan-1") is not None

    missing = runner.invoke(app, ["requeue", "emails", "unknown"])
    assert missing.exit_code == 1
    assert any("unknown" in line for line in outputs)


def test_build_queue_keeps_settings_for_unset_options(monkeypatch) -> None:
    monkeypatch.setattr(
        "delayq.config.get_settings",
        lambda: Settings(_env_file=None, handler_timeout=30.0, concurrency=4),
    )

    queue = build_queue(
        "emails",
        "redis://localhost:6379",
        concurrency=None,
        poll_interval=0.5,
        handler_timeout=None,
    )

    assert queue.config.handler_timeout == 30.0
    assert queue.config.concurrency == 4
    assert queue.config.poll_interval == 0.5


def test_build_queue_exits_on_invalid_config(outputs: list[str]) -> None:
    with pytest.raises(typer.Exit):
        build_queue("emails", None, concurrency=0)
    assert len(outputs) == 1


def test_load_handler_imports_module_attribute(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "delayq_cli_handlers.py").write_text(
        "async def handle(ctx, payload):\n    return payload\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.syspath_prepend(str(tmp_path))

    handler = load_handler("delayq_cli_handlers:handle")
    assert callable(handler)


@pytest.mark.parametrize(
    "target",
    ["no-colon", ":handle", "delayq_missing_module:handle", "delayq:not_there"],
)
def test_load_handler_rejects_bad_targets(target: str, outputs: list[str]) -> None:
    with pytest.raises(typer.Exit):
        load_handler(target)


@dataclass
class _QueueStub:
    calls: list[str] = field(default_factory=list)
    close_timeout: float | None = None

    async def start(self, handler: Any) -> None:
        self.calls.append("start")

    async def close(self, timeout: float = 30.0) -> None:
        self.calls.append("close")
        self.close_timeout = timeout


def test_serve_starts_queue_and_closes_on_stop() -> None:
    queue = _QueueStub()

    async def _serve() -> None:
        stop_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop_event.set)
        await serve(
            queue,  # type: ignore[arg-type]
            lambda ctx, payload: None,
            shutdown_timeout=5.0,
            stop_event=stop_event,
        )

    _run_coroutine(_serve())

    assert queue.calls == ["start", "close"]
    assert queue.close_timeout == 5.0
