"""Unit tests for config_manager module.

All tests run against the per-test config file provided by the
isolated_config fixture, never ~/.volshrink.
"""

import os

import pytest

from volshrink.config_manager import ConfigError, ConfigManager, VolshrinkConfig


class TestVolshrinkConfig:
    def test_defaults(self):
        config = VolshrinkConfig()

        assert config.default_user == "Administrator"
        assert config.ssh_port == 22
        assert config.query_timeout == 120
        assert config.resize_timeout == 1800
        assert config.collection_workers == 4
        assert config.strict_host_key_checking is False
        assert config.key_path is None

    def test_to_dict_excludes_none(self):
        data = VolshrinkConfig().to_dict()

        assert "ssh_key_path" not in data
        assert "last_targets" not in data

    @pytest.mark.parametrize(
        "field,value",
        [
            ("ssh_port", 0),
            ("ssh_port", 70000),
            ("query_timeout", -1),
            ("collection_workers", "4"),
            ("strict_host_key_checking", "yes"),
        ],
    )
    def test_invalid_values_raise(self, field, value):
        with pytest.raises(ConfigError):
            VolshrinkConfig.from_dict({field: value})

    def test_last_targets_must_be_strings(self):
        with pytest.raises(ConfigError, match="last_targets"):
            VolshrinkConfig.from_dict({"last_targets": [1, 2]})

    def test_key_path_expands_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))

        config = VolshrinkConfig(ssh_key_path="~/.ssh/id_ed25519")

        assert config.key_path == tmp_path / ".ssh" / "id_ed25519"


class TestConfigManager:
    def test_missing_file_gives_defaults(self, isolated_config):
        assert not isolated_config.exists()
        assert ConfigManager.load_config() == VolshrinkConfig()

    def test_save_and_load(self, isolated_config):
        ConfigManager.save_config(VolshrinkConfig(default_user="ops", ssh_port=2222))

        assert isolated_config.exists()
        assert os.stat(isolated_config).st_mode & 0o777 == 0o600
        loaded = ConfigManager.load_config()
        assert loaded.default_user == "ops"
        assert loaded.ssh_port == 2222

    def test_save_preserves_comments(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text('# fleet defaults\ndefault_user = "ops"\n')

        ConfigManager.update_config(ssh_port=2200)

        text = isolated_config.read_text()
        assert "# fleet defaults" in text
        assert "ssh_port = 2200" in text

    def test_invalid_toml_raises(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text("default_user = [")

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config()

    def test_insecure_permissions_are_fixed(self, isolated_config):
        isolated_config.parent.mkdir(parents=True)
        isolated_config.write_text('default_user = "ops"\n')
        os.chmod(isolated_config, 0o644)

        ConfigManager.load_config()

        assert os.stat(isolated_config).st_mode & 0o777 == 0o600

    def test_update_unknown_key_raises(self):
        with pytest.raises(ConfigError, match="Unknown config key"):
            ConfigManager.update_config(color="blue")

    def test_set_value_coerces_types(self):
        config = ConfigManager.set_value("resize_timeout", "3600")

        assert config.resize_timeout == 3600
        assert ConfigManager.load_config().resize_timeout == 3600

    def test_set_value_rejects_bad_int(self):
        with pytest.raises(ConfigError, match="Invalid value"):
            ConfigManager.set_value("ssh_port", "twenty-two")

    @pytest.mark.parametrize("raw,expected", [("true", True), ("YES", True), ("off", False), ("0", False)])
    def test_set_strict_host_key_checking(self, raw, expected):
        config = ConfigManager.set_value("strict_host_key_checking", raw)

        assert config.strict_host_key_checking is expected
        assert ConfigManager.load_config().strict_host_key_checking is expected

    def test_set_strict_host_key_checking_rejects_non_boolean(self):
        with pytest.raises(ConfigError, match="Invalid value"):
            ConfigManager.set_value("strict_host_key_checking", "maybe")

    def test_set_value_rejects_unsettable_key(self):
        with pytest.raises(ConfigError, match="Cannot set"):
            ConfigManager.set_value("last_targets", "a,b")

    def test_remember_session(self):
        ConfigManager.remember_session(["web01", "web02"], "D")

        loaded = ConfigManager.load_config()
        assert loaded.last_targets == ["web01", "web02"]
        assert loaded.last_drive == "D"

    def test_custom_path_in_tmp_is_allowed(self, tmp_path):
        custom = tmp_path / "custom.toml"

        ConfigManager.save_config(VolshrinkConfig(default_user="x"), str(custom))

        assert ConfigManager.load_config(str(custom)).default_user == "x"

    def test_custom_path_outside_allowed_dirs_raises(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigError, match="outside allowed directories"):
            ConfigManager.get_config_path("/etc/volshrink.toml")
