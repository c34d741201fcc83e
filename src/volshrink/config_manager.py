"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores connection defaults, timeouts, and the last targets used.

Security:
- Config directory permissions: 0700, file permissions: 0600
- Path validation
- Type checking of every value read from disk
"""

import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import tomli
import tomlkit

from volshrink.errors import VolshrinkError

logger = logging.getLogger(__name__)


class ConfigError(VolshrinkError):
    """Raised when configuration operations fail."""

    pass


@dataclass
class VolshrinkConfig:
    """Volshrink configuration data."""

    default_user: str = "Administrator"
    ssh_key_path: str | None = None
    ssh_port: int = 22
    query_timeout: int = 120
    resize_timeout: int = 1800  # Resize-Partition can run for many minutes on large volumes
    collection_workers: int = 4
    strict_host_key_checking: bool = False
    last_targets: list[str] | None = None
    last_drive: str | None = None

    def __post_init__(self) -> None:
        for name in ("ssh_port", "query_timeout", "resize_timeout", "collection_workers"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        if self.ssh_port > 65535:
            raise ConfigError(f"ssh_port out of range: {self.ssh_port}")
        if not isinstance(self.strict_host_key_checking, bool):
            raise ConfigError(
                f"strict_host_key_checking must be true or false, got {self.strict_host_key_checking!r}"
            )

    @property
    def key_path(self) -> Path | None:
        """SSH key path with ~ expanded."""
        return Path(self.ssh_key_path).expanduser() if self.ssh_key_path else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # Filter out None values as TOML doesn't support them
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VolshrinkConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

        last_targets = data.get("last_targets")
        if last_targets is not None and not (
            isinstance(last_targets, list) and all(isinstance(t, str) for t in last_targets)
        ):
            raise ConfigError("last_targets must be a list of host names")

        defaults = cls()
        return cls(
            default_user=str(data.get("default_user", defaults.default_user)),
            ssh_key_path=data.get("ssh_key_path"),
            ssh_port=data.get("ssh_port", defaults.ssh_port),
            query_timeout=data.get("query_timeout", defaults.query_timeout),
            resize_timeout=data.get("resize_timeout", defaults.resize_timeout),
            collection_workers=data.get("collection_workers", defaults.collection_workers),
            strict_host_key_checking=data.get(
                "strict_host_key_checking", defaults.strict_host_key_checking
            ),
            last_targets=last_targets,
            last_drive=data.get("last_drive"),
        )


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on", "1"):
        return True
    if lowered in ("false", "no", "off", "0"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


# Keys settable from the command line and how to coerce them
SETTABLE_KEYS: dict[str, Callable[[str], Any]] = {
    "default_user": str,
    "ssh_key_path": str,
    "ssh_port": int,
    "query_timeout": int,
    "resize_timeout": int,
    "collection_workers": int,
    "strict_host_key_checking": _parse_bool,
}


class ConfigManager:
    """Manage volshrink configuration file.

    Configuration is stored at ~/.volshrink/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".volshrink"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Validate configuration file path for security.

        Allowed locations are ~/.volshrink/, the current working directory,
        and the system temporary directory.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()

        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),  # Allow pytest tmp_path
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None) -> Path:
        """Get configuration file path.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        if custom_path:
            return cls._validate_config_path(Path(custom_path).expanduser())
        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def ensure_config_dir(cls) -> Path:
        """Ensure config directory exists with secure permissions.

        Raises:
            ConfigError: If directory creation fails
        """
        try:
            cls.DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
            os.chmod(cls.DEFAULT_CONFIG_DIR, 0o700)
            logger.debug(f"Config directory ready: {cls.DEFAULT_CONFIG_DIR}")
            return cls.DEFAULT_CONFIG_DIR
        except OSError as e:
            raise ConfigError(f"Failed to create config directory: {e}") from e

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> VolshrinkConfig:
        """Load configuration from file, falling back to defaults if absent.

        Raises:
            ConfigError: If the file cannot be read or holds invalid values
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return VolshrinkConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        logger.debug(f"Loaded config from: {config_path}")
        return VolshrinkConfig.from_dict(data)

    @classmethod
    def save_config(cls, config: VolshrinkConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file, preserving comments in an existing file.

        Returns:
            Path the configuration was written to

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            if custom_path:
                config_path = cls.get_config_path(custom_path)
                config_path.parent.mkdir(parents=True, exist_ok=True)
            else:
                cls.ensure_config_dir()
                config_path = cls.DEFAULT_CONFIG_FILE

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            values = config.to_dict()
            for key in list(doc.keys()):
                if key not in values and key in {f.name for f in fields(VolshrinkConfig)}:
                    del doc[key]
            for key, value in values.items():
                doc[key] = value

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)

            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except OSError as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def update_config(cls, custom_path: str | None = None, **updates: Any) -> VolshrinkConfig:
        """Update configuration values and save.

        Raises:
            ConfigError: If a key is unknown or a value invalid
        """
        data = cls.load_config(custom_path).to_dict()
        known = {f.name for f in fields(VolshrinkConfig)}
        for key, value in updates.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            data[key] = value

        config = VolshrinkConfig.from_dict(data)
        cls.save_config(config, custom_path)
        return config

    @classmethod
    def set_value(cls, key: str, raw_value: str, custom_path: str | None = None) -> VolshrinkConfig:
        """Set a single key from its command-line string form.

        Raises:
            ConfigError: If the key is not settable or the value does not parse
        """
        if key not in SETTABLE_KEYS:
            raise ConfigError(
                f"Cannot set '{key}'. Settable keys: {', '.join(sorted(SETTABLE_KEYS))}"
            )
        try:
            value = SETTABLE_KEYS[key](raw_value)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: {raw_value!r}") from e
        return cls.update_config(custom_path, **{key: value})

    @classmethod
    def remember_session(
        cls, targets: list[str], drive: str, custom_path: str | None = None
    ) -> None:
        """Record the targets and drive of the last executed session."""
        cls.update_config(custom_path, last_targets=list(targets), last_drive=drive)


__all__ = ["SETTABLE_KEYS", "ConfigError", "ConfigManager", "VolshrinkConfig"]
