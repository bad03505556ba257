"""
Per-device backup: naming, retention and the device copy.

A BackupTask lives for a single device's attempt against a mounted
destination. File names share a stable suffix built from the device model
and serial, so earlier backups of the same device can be found and the
oldest evicted once the retention count is reached.

The count-then-evict logic assumes this process is the only writer to the
destination directory for the duration of the run.
"""

import os
from pathlib import Path
from typing import List, Optional

from core.errors import (
    AlreadyBackedUpError,
    CommandError,
    CopyError,
    InsufficientSpaceError,
    MountError,
    OwnershipError,
    RetentionError,
)
from core.filesystem import DestinationFilesystem
from core.resolver import ResolvedDevice
from lib.command import CommandRunner
from lib.logger import get_logger, log_context
from lib.utils import (
    current_date,
    format_bytes,
    human_readable_duration,
    join_normalized,
    safe_remove,
    sanitize_filename,
)


def creation_time(path: Path) -> float:
    """
    Return the creation timestamp of a file.

    Uses st_birthtime where the platform reports it, otherwise st_mtime.
    Unreadable metadata yields 0.0 (the epoch), so such files sort as oldest.
    """
    try:
        stat = path.stat()
    except OSError:
        return 0.0
    return getattr(stat, "st_birthtime", stat.st_mtime)


def invoking_user_ids():
    """Return (uid, gid) of the user who started the run, looking through sudo."""
    uid = os.environ.get("SUDO_UID")
    gid = os.environ.get("SUDO_GID")
    if uid and gid and uid.isdigit() and gid.isdigit():
        return int(uid), int(gid)
    return os.getuid(), os.getgid()


class BackupTask:
    """
    Back up one source device into a dated image file.

    Attributes:
        filesystem: Mounted destination filesystem
        device: Resolved source device
        destination_path: Group destination path, relative to the mountpoint
        dry_run: Log mutating actions instead of performing them
        progress: Let dd report progress on the terminal
        today: Date prefix for the file name (YYYY-MM-DD)
    """

    def __init__(
        self,
        filesystem: DestinationFilesystem,
        device: ResolvedDevice,
        destination_path: str,
        runner: CommandRunner,
        dry_run: bool = False,
        progress: bool = False,
        today: Optional[str] = None,
    ):
        self.filesystem = filesystem
        self.device = device
        self.destination_path = destination_path
        self.runner = runner
        self.dry_run = dry_run
        self.progress = progress
        self.today = today or current_date()
        self.logger = get_logger().bind(
            **log_context(uuid=filesystem.uuid, serial=device.serial)
        )

    # ========================================================================
    # Naming
    # ========================================================================

    @property
    def suffix(self) -> str:
        """Stable, date independent part of the file name: <model>_<serial>.img"""
        parts = [p for p in (self.device.model, self.device.serial) if p]
        return f"{'_'.join(parts)}.img".replace(" ", "-")

    @property
    def file_name(self) -> str:
        """Full file name: <date>_<device name>_<suffix>"""
        return f"{self.today}_{sanitize_filename(self.device.name)}_{self.suffix}"

    @property
    def backup_dir(self) -> Path:
        """
        Destination directory under the mountpoint.

        Raises:
            MountError: If the filesystem is not mounted
        """
        mountpoint = self.filesystem.mountpoint
        if mountpoint is None:
            raise MountError(
                f"Filesystem {self.filesystem.device_path} is not mounted"
            )
        return join_normalized(mountpoint, self.destination_path)

    @property
    def backup_file_path(self) -> Path:
        return self.backup_dir / self.file_name

    # ========================================================================
    # Checks
    # ========================================================================

    def present_backup_files(self) -> List[Path]:
        """Files in the destination directory belonging to this device."""
        try:
            entries = list(self.backup_dir.iterdir())
        except OSError as e:
            self.logger.debug(f"Cannot read backup directory {self.backup_dir}: {e}")
            return []

        return [
            entry for entry in entries if self.suffix in entry.name and entry.is_file()
        ]

    def needs_deletion(self) -> bool:
        """True if keeping another backup would exceed the retention count."""
        return len(self.present_backup_files()) >= self.device.copies

    def oldest_backup(self) -> Optional[Path]:
        """Oldest backup of this device; ties are broken by file name."""
        files = self.present_backup_files()
        if not files:
            return None
        return min(files, key=lambda f: (creation_time(f), f.name))

    def target_file_is_absent(self) -> None:
        """
        Raises:
            AlreadyBackedUpError: If today's backup file already exists
        """
        file_path = self.backup_file_path
        if file_path.is_file():
            raise AlreadyBackedUpError(
                f"Backup file for today is already present {file_path}. Skipping it"
            )

    def delete_oldest_backup_if_needed(self) -> bool:
        """
        Evict the oldest backup when the retention count is reached.

        Returns:
            True if an eviction was needed (performed, or logged in dry run)

        Raises:
            RetentionError: If the file cannot be deleted
        """
        if not self.needs_deletion():
            return False

        if self.dry_run:
            self.logger.info(
                f"[DRY RUN] Would delete oldest backup file with suffix: "
                f"{self.suffix} in {self.backup_dir}"
            )
            return True

        oldest = self.oldest_backup()
        if oldest is None:
            return True

        self.logger.info(f"Delete old back up file: {oldest}")
        try:
            safe_remove(oldest, missing_ok=False)
        except OSError as e:
            raise RetentionError(
                f"Failed to delete oldest backup file '{oldest}': {e}"
            ) from e
        return True

    def target_filesystem_has_enough_space(self) -> None:
        """
        Compare free space on the destination with the device size.

        Proceeds with a warning when either figure is unknown.

        Raises:
            InsufficientSpaceError: If available space <= needed space
        """
        available = self.filesystem.available_space()
        needed = self.device.size

        if available is None or needed is None:
            self.logger.warning("Could not check if sufficient space is available")
            return

        if available <= needed:
            raise InsufficientSpaceError(
                f"Not enough space on destination filesystem "
                f"{self.filesystem.device_path} ({format_bytes(available)} available) "
                f"to backup device {self.device.device_path} "
                f"({format_bytes(needed)} needed)",
                available=available,
                needed=needed,
            )

        self.logger.debug(
            f"{format_bytes(available)} available, {format_bytes(needed)} needed"
        )

    def validate_state(self) -> None:
        """
        Run the checks in order: today's file absent, retention, free space.

        The space check is skipped when a backup was just evicted; the freed
        space is assumed to be enough.
        """
        self.target_file_is_absent()
        needed_deletion = self.delete_oldest_backup_if_needed()
        if not needed_deletion:
            self.target_filesystem_has_enough_space()

    # ========================================================================
    # Execution
    # ========================================================================

    def copy_command(self) -> List[str]:
        command = ["dd", f"if={self.device.device_path}", f"of={self.backup_file_path}"]
        if self.progress:
            command.append("status=progress")
        return command

    def run(self) -> bool:
        """
        Validate state and copy the device.

        Returns:
            True if a copy was made, False in dry run

        Raises:
            PreconditionError: If a check fails
            ExternalOperationError: If deletion, copy or chown fails
        """
        self.validate_state()

        command = self.copy_command()
        command_line = " ".join(command)

        if self.dry_run:
            self.logger.info(f"[DRY RUN] backup would run with command: {command_line}")
            return False

        self.logger.info(
            f"Backing up {self.device.device_path} to {self.backup_file_path}"
        )
        try:
            result = self.runner.run(
                command,
                f"run dd command: {command_line}",
                elevate=True,
                stream_stderr=self.progress,
            )
        except CommandError as e:
            raise CopyError(
                f"Error running dd command {command_line}: {e.stderr.strip() or e}"
            ) from e

        self.logger.info(
            f"Success running backup with dd command {command_line} "
            f"in {human_readable_duration(result.duration_seconds)}"
        )

        self.chown()
        return True

    def chown(self) -> None:
        """
        Give the backup file to the invoking user and group.

        Raises:
            OwnershipError: If chown fails
        """
        uid, gid = invoking_user_ids()
        try:
            self.runner.run(
                ["chown", f"{uid}:{gid}", str(self.backup_file_path)],
                "change owner of backup file to $UID",
                elevate=True,
            )
        except CommandError as e:
            raise OwnershipError(
                f"Failed to change owner of {self.backup_file_path}: {e}"
            ) from e
