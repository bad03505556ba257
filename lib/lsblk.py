"""
Block device enumeration via lsblk.

A Lsblk instance is a snapshot of the devices visible when it was created.
Mount points and free space change when filesystems are mounted or
unmounted, so callers create a new snapshot (or call refresh()) whenever
they need live values.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from core.errors import CommandError, EnumerationError
from lib.command import CommandRunner
from lib.logger import get_logger
from lib.utils import format_bytes, parse_size

LSBLK_COLUMNS = ["NAME", "MODEL", "SERIAL", "UUID", "MOUNTPOINT", "SIZE", "FSAVAIL", "TYPE"]


@dataclass(frozen=True)
class BlockDevice:
    """One lsblk entry."""

    name: str
    model: Optional[str] = None
    serial: Optional[str] = None
    uuid: Optional[str] = None
    mountpoint: Optional[str] = None
    size: Optional[int] = None
    fsavail: Optional[int] = None
    type: Optional[str] = None

    @property
    def device_path(self) -> str:
        return f"/dev/{self.name}"

    @classmethod
    def from_lsblk(cls, entry: Dict[str, Any]) -> "BlockDevice":
        """Build from one lsblk JSON object; blank strings become None."""

        def text(key: str) -> Optional[str]:
            value = entry.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        name = text("name")
        if not name:
            raise EnumerationError(f"lsblk entry without a name: {entry}")

        return cls(
            name=name,
            model=text("model"),
            serial=text("serial"),
            uuid=text("uuid"),
            mountpoint=text("mountpoint"),
            size=parse_size(entry.get("size")),
            fsavail=parse_size(entry.get("fsavail")),
            type=text("type"),
        )


def _flatten(entries: Iterable[Dict[str, Any]]) -> Iterable[Dict[str, Any]]:
    for entry in entries:
        yield entry
        yield from _flatten(entry.get("children") or [])


class Lsblk:
    """
    Snapshot of the system's block devices.

    Attributes:
        available_devices: Whole devices (top-level lsblk entries), the
            candidates for backup sources
        available_filesystems: Every entry carrying a UUID, including
            partitions, the candidates for backup destinations
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        """
        Run lsblk and parse its output.

        Raises:
            EnumerationError: If lsblk fails or its output can't be parsed
        """
        self.runner = runner or CommandRunner()
        self.logger = get_logger()
        self.available_devices: List[BlockDevice] = []
        self.available_filesystems: List[BlockDevice] = []
        self.refresh()

    def refresh(self) -> None:
        """Re-query lsblk and replace the snapshot."""
        try:
            result = self.runner.run(
                ["lsblk", "--json", "--bytes", "--output", ",".join(LSBLK_COLUMNS)],
                "list block devices",
            )
        except CommandError as e:
            raise EnumerationError(f"Failed to list block devices: {e}") from e

        self.available_devices, self.available_filesystems = self.parse(result.stdout)
        self.logger.debug(
            f"lsblk found {len(self.available_devices)} devices and "
            f"{len(self.available_filesystems)} filesystems"
        )

    @staticmethod
    def parse(output: str):
        """
        Parse `lsblk --json` output.

        Returns:
            Tuple of (devices, filesystems)

        Raises:
            EnumerationError: If the output is not the expected JSON structure
        """
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise EnumerationError(f"Unable to parse lsblk output: {e}") from e

        entries = data.get("blockdevices") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise EnumerationError(
                "Unexpected lsblk JSON structure: blockdevices should be a list"
            )

        devices = [BlockDevice.from_lsblk(entry) for entry in entries]
        filesystems = [
            device
            for device in (BlockDevice.from_lsblk(entry) for entry in _flatten(entries))
            if device.uuid
        ]
        return devices, filesystems

    def find_filesystem(self, uuid: str) -> Optional[BlockDevice]:
        """Return the first filesystem with this UUID, or None."""
        for filesystem in self.available_filesystems:
            if filesystem.uuid == uuid:
                return filesystem
        return None

    def describe(self) -> List[str]:
        """Human readable listing of the snapshot, used by `dd-backup --list`."""

        def size(value: Optional[int]) -> str:
            return format_bytes(value) if value is not None else "-"

        lines = ["Devices (use 'serial' in backup_devices):"]
        for device in self.available_devices:
            lines.append(
                f"  {device.device_path:<16} serial={device.serial or '-'} "
                f"model={device.model or '-'} size={size(device.size)}"
            )

        lines.append("Filesystems (use 'uuid' for backups):")
        for filesystem in self.available_filesystems:
            lines.append(
                f"  {filesystem.device_path:<16} uuid={filesystem.uuid} "
                f"mountpoint={filesystem.mountpoint or '-'} "
                f"available={size(filesystem.fsavail)}"
            )
        return lines
