"""Tests for configuration loading."""

import pytest
from pathlib import Path

from thinktwice.config import load_config

_ENV_KEYS = [
    "THINKTWICE_STORE",
    "THINKTWICE_HISTORY_DIR",
    "THINKTWICE_LOG_LEVEL",
    "THINKTWICE_BADGE_INTERVAL",
    "THINKTWICE_READ_TIMEOUT",
    "THINKTWICE_NOTIFY_COMMAND",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self):
        config = load_config()
        assert config.store_path.name == "storage.json"
        assert config.history_dir.name == "history"
        assert config.scheduler.badge_interval == 60
        assert config.gate.read_timeout == 2.0
        assert config.notifications.command is None
        assert config.notifications.default_icon == "icon128.png"
        assert config.log_level == "INFO"

    def test_env_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("THINKTWICE_STORE", str(tmp_path / "custom.json"))
        monkeypatch.setenv("THINKTWICE_BADGE_INTERVAL", "15")
        monkeypatch.setenv("THINKTWICE_READ_TIMEOUT", "0.5")

        config = load_config()
        assert config.store_path == tmp_path / "custom.json"
        assert config.scheduler.badge_interval == 15
        assert config.gate.read_timeout == 0.5

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "thinktwice.toml"
        toml_path.write_text("""
log_level = "DEBUG"

[scheduler]
badge_interval = 30
watch_interval = 0.5

[notifications]
command = "notify-send -i {icon} {title} {body}"
""")
        config = load_config(toml_path)
        assert config.log_level == "DEBUG"
        assert config.scheduler.badge_interval == 30
        assert config.scheduler.watch_interval == 0.5
        assert config.notifications.command.startswith("notify-send")

    def test_toml_discovered_in_cwd(self, tmp_path: Path):
        (tmp_path / "thinktwice.toml").write_text('[gate]\nread_timeout = 5\n')
        config = load_config()
        assert config.gate.read_timeout == 5.0

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("THINKTWICE_BADGE_INTERVAL", "5")

        toml_path = tmp_path / "thinktwice.toml"
        toml_path.write_text("""
[scheduler]
badge_interval = 30
""")
        config = load_config(toml_path)
        assert config.scheduler.badge_interval == 5  # env wins
