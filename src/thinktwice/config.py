"""Configuration loading from environment variables and thinktwice.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_HOME_DIR = Path.home() / ".thinktwice"
_DEFAULT_STORE = _HOME_DIR / "storage.json"
_DEFAULT_HISTORY_DIR = _HOME_DIR / "history"
_CONFIG_FILENAME = "thinktwice.toml"


@dataclass
class SchedulerConfig:
    """Periodic job configuration (seconds)."""

    badge_interval: int = 60
    watch_interval: float = 2.0


@dataclass
class GateConfig:
    """Decision gate configuration."""

    read_timeout: float = 2.0


@dataclass
class NotificationConfig:
    """Desktop notification configuration. No command means log only."""

    command: str | None = None
    default_icon: str = "icon128.png"


@dataclass
class ThinkTwiceConfig:
    """Top-level ThinkTwice configuration."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    store_path: Path = _DEFAULT_STORE
    history_dir: Path = _DEFAULT_HISTORY_DIR
    pid_file: Path = _HOME_DIR / "thinktwice.pid"
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> ThinkTwiceConfig:
    """Load configuration from environment variables and optional thinktwice.toml.

    Priority: environment variables > thinktwice.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.thinktwice/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _HOME_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    scheduler_data = file_data.get("scheduler", {})
    gate_data = file_data.get("gate", {})
    notify_data = file_data.get("notifications", {})

    config = ThinkTwiceConfig(
        scheduler=SchedulerConfig(
            badge_interval=int(
                os.getenv("THINKTWICE_BADGE_INTERVAL", scheduler_data.get("badge_interval", 60))
            ),
            watch_interval=float(scheduler_data.get("watch_interval", 2.0)),
        ),
        gate=GateConfig(
            read_timeout=float(
                os.getenv("THINKTWICE_READ_TIMEOUT", gate_data.get("read_timeout", 2.0))
            ),
        ),
        notifications=NotificationConfig(
            command=os.getenv("THINKTWICE_NOTIFY_COMMAND", notify_data.get("command")),
            default_icon=notify_data.get("default_icon", "icon128.png"),
        ),
        store_path=Path(
            os.getenv("THINKTWICE_STORE", file_data.get("store_path", str(_DEFAULT_STORE)))
        ).expanduser(),
        history_dir=Path(
            os.getenv(
                "THINKTWICE_HISTORY_DIR", file_data.get("history_dir", str(_DEFAULT_HISTORY_DIR))
            )
        ).expanduser(),
        log_level=os.getenv("THINKTWICE_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
