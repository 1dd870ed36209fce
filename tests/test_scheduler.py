"""Tests for the periodic scheduler and daemon helpers."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from thinktwice.config import SchedulerConfig, ThinkTwiceConfig
from thinktwice.daemon import ThinkTwiceDaemon
from thinktwice.errors import StoreUnavailable
from thinktwice.scheduler.jobs import Scheduler
from thinktwice.store import JsonFileBackend, MemoryBackend


def _app(badges=("",)):
    app = MagicMock()
    app.backend = MemoryBackend()
    app.sweep_due = AsyncMock(return_value=0)
    app.badge = AsyncMock(side_effect=list(badges))
    return app


class TestScheduler:
    @pytest.mark.asyncio
    async def test_badge_callback_only_on_change(self):
        app = _app(badges=["1", "1", "", "2"])
        seen = []
        scheduler = Scheduler(app, ThinkTwiceConfig(), on_badge=seen.append)

        for _ in range(4):
            await scheduler.run_once()

        assert seen == ["1", "", "2"]
        assert app.sweep_due.await_count == 4

    @pytest.mark.asyncio
    async def test_sweep_failure_does_not_stop_badge(self):
        app = _app(badges=["3"])
        app.sweep_due.side_effect = StoreUnavailable("gone")
        seen = []
        await Scheduler(app, ThinkTwiceConfig(), on_badge=seen.append).run_once()
        assert seen == ["3"]

    @pytest.mark.asyncio
    async def test_unexpected_sweep_error_does_not_stop_badge(self):
        app = _app(badges=["1"])
        app.sweep_due.side_effect = RuntimeError("journal parse error")
        seen = []
        await Scheduler(app, ThinkTwiceConfig(), on_badge=seen.append).run_once()
        assert seen == ["1"]

    @pytest.mark.asyncio
    async def test_failed_job_does_not_leave_watcher_running(self, tmp_path: Path):
        app = _app()
        app.backend = JsonFileBackend(tmp_path / "storage.json")
        app.badge = AsyncMock(side_effect=RuntimeError("boom"))
        shutdown = asyncio.Event()

        with pytest.raises(RuntimeError):
            await Scheduler(app, ThinkTwiceConfig()).start(shutdown)

        others = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        assert others == []

    @pytest.mark.asyncio
    async def test_start_runs_once_and_stops_on_shutdown(self):
        app = _app(badges=["", ""])
        config = ThinkTwiceConfig(scheduler=SchedulerConfig(badge_interval=60))
        shutdown = asyncio.Event()
        task = asyncio.create_task(Scheduler(app, config).start(shutdown))

        await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1)

        assert app.sweep_due.await_count == 1


class TestDaemonPidFile:
    def test_write_and_remove(self, tmp_path: Path):
        daemon = ThinkTwiceDaemon(ThinkTwiceConfig(pid_file=tmp_path / "run" / "t.pid"))
        daemon._write_pid()
        assert daemon.config.pid_file.read_text() == str(os.getpid())
        daemon._remove_pid()
        assert not daemon.config.pid_file.exists()

    def test_stale_pid_file_is_removed(self, tmp_path: Path):
        pid_file = tmp_path / "t.pid"
        pid_file.write_text("not-a-pid")
        ThinkTwiceDaemon(ThinkTwiceConfig(pid_file=pid_file))._check_existing()
        assert not pid_file.exists()

    def test_running_instance_exits(self, tmp_path: Path):
        pid_file = tmp_path / "t.pid"
        pid_file.write_text(str(os.getpid()))
        with pytest.raises(SystemExit):
            ThinkTwiceDaemon(ThinkTwiceConfig(pid_file=pid_file))._check_existing()
