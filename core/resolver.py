"""
Resolution of configured identifiers to live block devices.

A destination UUID or a source serial must match exactly one enumerated
device. No match means the device isn't attached right now; more than one
match is always an error, since acting on the wrong disk is destructive.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from core.config_loader import BackupDevice, BackupGroupConfig
from core.errors import AmbiguityError
from lib.logger import get_logger
from lib.lsblk import BlockDevice, Lsblk


@dataclass(frozen=True)
class ResolvedFilesystem:
    """Destination filesystem bound to one enumerated device."""

    uuid: str
    device_path: str
    model: Optional[str]
    serial: Optional[str]
    mountpoint: Optional[str]
    fsavail: Optional[int]


@dataclass(frozen=True)
class ResolvedDevice:
    """Source device bound to one enumerated device."""

    serial: str
    name: str
    device_path: str
    model: Optional[str]
    size: Optional[int]
    copies: int


def resolve_unique(
    candidates: Sequence[BlockDevice], attribute: str, value: str, kind: str
) -> Optional[BlockDevice]:
    """
    Find the single candidate whose `attribute` equals `value`.

    Args:
        candidates: Enumerated block devices
        attribute: BlockDevice attribute to compare ("uuid", "serial")
        value: Configured identifier
        kind: Identifier name for error messages

    Returns:
        The matching device, or None when nothing matches

    Raises:
        AmbiguityError: If two or more candidates match
    """
    matches = [c for c in candidates if getattr(c, attribute) == value]

    if len(matches) > 1:
        raise AmbiguityError(kind, value, [m.device_path for m in matches])
    if matches:
        return matches[0]
    return None


def resolve_filesystem(
    group: BackupGroupConfig, snapshot: Lsblk
) -> Optional[ResolvedFilesystem]:
    """
    Resolve a group's destination UUID.

    Returns:
        ResolvedFilesystem, or None when the filesystem is not present

    Raises:
        AmbiguityError: If the UUID is not unique
    """
    blockdevice = resolve_unique(
        snapshot.available_filesystems, "uuid", group.uuid, "UUID"
    )

    if blockdevice is None:
        get_logger().info(f"Filesystem with uuid {group.uuid} not found, skipping it")
        return None

    filesystem = ResolvedFilesystem(
        uuid=group.uuid,
        device_path=blockdevice.device_path,
        model=blockdevice.model,
        serial=blockdevice.serial,
        mountpoint=blockdevice.mountpoint,
        fsavail=blockdevice.fsavail,
    )
    get_logger().debug(f"{filesystem!r}")
    return filesystem


def resolve_device(
    device: BackupDevice, snapshot: Lsblk
) -> Optional[ResolvedDevice]:
    """
    Resolve one configured source device by serial.

    Returns:
        ResolvedDevice, or None when no attached device has the serial

    Raises:
        AmbiguityError: If the serial is not unique
    """
    blockdevice = resolve_unique(
        snapshot.available_devices, "serial", device.serial, "serial"
    )

    if blockdevice is None:
        return None

    return ResolvedDevice(
        serial=device.serial,
        name=device.name or blockdevice.name,
        device_path=blockdevice.device_path,
        model=blockdevice.model,
        size=blockdevice.size,
        copies=device.effective_copies,
    )


def resolve_devices(group: BackupGroupConfig, snapshot: Lsblk) -> List[ResolvedDevice]:
    """
    Resolve every device of a group, dropping those not attached.

    Raises:
        AmbiguityError: If any serial matches more than one device
    """
    logger = get_logger()
    resolved = []

    for device in group.backup_devices:
        result = resolve_device(device, snapshot)
        if result is None:
            logger.info(
                f"Device with serial {device.serial} not found, skipping it"
            )
            continue
        resolved.append(result)

    return resolved
