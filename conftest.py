"""Pytest configuration and fixtures for volshrink tests.

CRITICAL: Protects the real ~/.volshrink/config.toml from test modifications.
"""

import shutil
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def protect_production_config():
    """Back up ~/.volshrink/config.toml before the run and restore it afterwards."""
    config_path = Path.home() / ".volshrink" / "config.toml"
    backup_path = Path.home() / ".volshrink" / ".config.toml.pytest-backup"

    config_existed = config_path.exists()
    if config_existed:
        shutil.copy2(config_path, backup_path)

    yield

    if config_existed and backup_path.exists():
        shutil.copy2(backup_path, config_path)
        backup_path.unlink()
    elif backup_path.exists():
        backup_path.unlink()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point ConfigManager at a per-test directory instead of ~/.volshrink.

    Returns:
        Path of the config file tests should read or write
    """
    from volshrink.config_manager import ConfigManager

    config_dir = tmp_path / ".volshrink"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    return config_dir / "config.toml"
