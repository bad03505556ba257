"""
Configuration loader for dd-backup.

This module provides YAML configuration loading and validation using
Pydantic. JSON is a subset of YAML, so JSON configuration files load as well.

Example configuration:

    mountpath: /mnt
    backups:
      - uuid: 8b2a3c1e-0f4d-4a57-9d6e-3f1b2c4d5e6f
        destination_path: /images
        backup_devices:
          - serial: WD-WCC4N1234567
            name: nas-disk
            copies: 2
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from core.errors import ConfigError
from lib.logger import get_logger
from lib.utils import ensure_directory

CONFIG_HOME = Path.home() / ".config" / "dd_backup"
CONFIG_FILE_NAMES = ("config.yaml", "config.json")

DEFAULT_DESTINATION_PATH = "/."
DEFAULT_FSCK_COMMAND = "fsck -n"
DEFAULT_MOUNTPATH = "/mnt"
DEFAULT_COPIES = 1


class BackupDevice(BaseModel):
    """A source device to back up, identified by its serial number."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    serial: str = Field(..., description="Serial number of the whole device")
    name: Optional[str] = Field(None, description="Human readable device name")
    copies: Optional[int] = Field(
        None, description="Number of backups to retain (default 1)"
    )

    @field_validator("serial")
    @classmethod
    def validate_serial(cls, v: str) -> str:
        """Reject empty serials."""
        if not v.strip():
            raise ValueError("Device serial cannot be empty")
        return v

    @field_validator("copies")
    @classmethod
    def validate_copies(cls, v: Optional[int]) -> Optional[int]:
        """A retention count must keep at least the backup just taken."""
        if v is not None and v < 1:
            raise ValueError(
                f"Invalid number of copies ({v}). Must be greater than 0."
            )
        return v

    @property
    def effective_copies(self) -> int:
        return self.copies if self.copies is not None else DEFAULT_COPIES


class BackupGroupConfig(BaseModel):
    """A destination filesystem and the devices backed up onto it."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    uuid: str = Field(..., description="UUID of the destination filesystem")
    backup_devices: List[BackupDevice] = Field(
        ..., description="Devices to back up onto this filesystem"
    )
    destination_path: str = Field(
        DEFAULT_DESTINATION_PATH,
        description="Directory on the destination filesystem",
    )
    fsck_command: str = Field(
        DEFAULT_FSCK_COMMAND, description="Filesystem check command"
    )
    skip_fsck: bool = Field(False, description="Skip the filesystem check")
    skip_mount: bool = Field(False, description="Skip mounting and unmounting")

    @field_validator("uuid")
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Reject empty UUIDs."""
        if not v.strip():
            raise ValueError("Filesystem UUID cannot be empty")
        return v

    @field_validator("fsck_command")
    @classmethod
    def validate_fsck_command(cls, v: str) -> str:
        """Reject blank fsck commands."""
        if not v.split():
            raise ValueError("fsck_command cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_unique_serials(self) -> "BackupGroupConfig":
        """Ensure serial numbers are unique within the group."""
        seen = set()
        for device in self.backup_devices:
            if device.serial in seen:
                raise ValueError(
                    f"Duplicate serial number '{device.serial}' found in backup "
                    f"with UUID '{self.uuid}'"
                )
            seen.add(device.serial)
        return self


class BackupPlan(BaseModel):
    """Root configuration model for dd-backup."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    backups: List[BackupGroupConfig] = Field(default_factory=list)
    mountpath: str = Field(
        DEFAULT_MOUNTPATH, description="Where destination filesystems are mounted"
    )

    @field_validator("mountpath")
    @classmethod
    def validate_mountpath(cls, v: str) -> str:
        """Ensure the mount path is absolute."""
        if not Path(v).is_absolute():
            raise ValueError("mountpath must be an absolute path")
        return v

    @model_validator(mode="after")
    def validate_unique_uuids(self) -> "BackupPlan":
        """Ensure each destination UUID appears once."""
        seen = set()
        for group in self.backups:
            if group.uuid in seen:
                raise ValueError(f"Duplicate UUID '{group.uuid}' found in backups")
            seen.add(group.uuid)
        return self


def config_home_path(config_home: Optional[Path] = None) -> Path:
    """
    Return the configuration directory, creating it if needed.

    Raises:
        ConfigError: If the directory cannot be created
    """
    home = config_home or CONFIG_HOME
    try:
        return ensure_directory(home)
    except OSError as e:
        raise ConfigError(
            f"Failed reading or creating config directory {home}: {e}"
        ) from e


def default_config_file_path(config_home: Optional[Path] = None) -> Path:
    """
    Return the default configuration file.

    Prefers config.yaml, falls back to config.json when only that exists.
    """
    home = config_home_path(config_home)
    for file_name in CONFIG_FILE_NAMES:
        candidate = home / file_name
        if candidate.exists():
            return candidate
    return home / CONFIG_FILE_NAMES[0]


class ConfigLoader:
    """
    Configuration loader with YAML parsing and Pydantic validation.

    The loaded plan is immutable.

    Example:
        >>> loader = ConfigLoader(Path("config.yaml"))
        >>> for group in loader.get_groups():
        ...     print(group.uuid, len(group.backup_devices))
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Load and validate the configuration.

        Args:
            config_path: Path to the configuration file. Defaults to
                ~/.config/dd_backup/config.yaml

        Raises:
            ConfigError: If the file is missing, unparsable or invalid
        """
        self.logger = get_logger()
        self.config_path = (
            Path(config_path) if config_path else default_config_file_path()
        )
        self._validated_config: Optional[BackupPlan] = None

        self._load_and_validate()

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """
        Load a YAML file and return parsed content.

        Raises:
            ConfigError: If the file doesn't exist or can't be parsed
        """
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse config file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                f"Configuration must be a mapping, got {type(content).__name__}"
            )
        return content

    def _load_and_validate(self) -> None:
        """
        Load the config file and validate it.

        Raises:
            ConfigError: If loading or validation fails
        """
        raw_config = self._load_yaml(self.config_path)

        try:
            self._validated_config = BackupPlan.model_validate(raw_config)
        except ValidationError as e:
            error_msg = (
                f"Configuration validation failed with {len(e.errors())} error(s):\n"
            )
            for error in e.errors():
                loc = ".".join(str(l) for l in error["loc"]) or "<root>"
                error_msg += f"  - {loc}: {error['msg']}\n"
            raise ConfigError(error_msg.rstrip()) from e

        self.logger.info(f"Config is successfully validated: {self.config_path}")
        self.logger.debug(f"{self._validated_config!r}")

    @property
    def plan(self) -> BackupPlan:
        return self._validated_config

    @property
    def mountpath(self) -> str:
        return self.plan.mountpath

    def get_groups(self) -> List[BackupGroupConfig]:
        """Return the backup groups in configuration order."""
        return list(self.plan.backups)
