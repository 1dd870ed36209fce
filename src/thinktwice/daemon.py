"""Daemon process: the long-lived background context.

Usage: python -m thinktwice serve

Manages:
- Restoring reminder wake-ups from storage at startup
- Scheduler (due-check sweep, badge, cross-process store watch)
- PID file (prevent duplicate instances)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from thinktwice.config import ThinkTwiceConfig, load_config
from thinktwice.core import ThinkTwice
from thinktwice.scheduler.jobs import Scheduler

logger = logging.getLogger(__name__)


class ThinkTwiceDaemon:
    """Always-on background process."""

    def __init__(self, config: ThinkTwiceConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"ThinkTwice daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    # ── Build components ─────────────────────────────────────

    def build_app(self) -> ThinkTwice:
        return ThinkTwice(self.config)

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        app = self.build_app()
        scheduler = Scheduler(app, self.config)

        try:
            armed, overdue = await app.start()
            logger.info(
                "ThinkTwice daemon started (store=%s, %d armed, %d overdue)",
                self.config.store_path,
                armed,
                overdue,
            )
            await scheduler.start(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            await app.stop()
            self._remove_pid()
            logger.info("ThinkTwice daemon stopped.")
