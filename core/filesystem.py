"""
Destination filesystem lifecycle.

Before any backup is written the destination is brought into a known state:
unmounted, checked with fsck, then mounted at the configured mount path.
After the group's devices have been attempted it is unmounted again.

    UNMOUNTED -> CHECK_PENDING -> CHECK_PASSED -> MOUNTED -> UNMOUNTED
                              \\-> CHECK_FAILED
"""

from enum import Enum
from typing import Optional

from core.config_loader import BackupGroupConfig
from core.errors import CommandError, EnumerationError, FsckError, MountError
from core.resolver import ResolvedFilesystem
from lib.command import CommandRunner
from lib.logger import get_logger, log_context
from lib.lsblk import Lsblk


class FilesystemState(Enum):
    UNMOUNTED = "unmounted"
    CHECK_PENDING = "check_pending"
    CHECK_PASSED = "check_passed"
    CHECK_FAILED = "check_failed"
    MOUNTED = "mounted"


class DestinationFilesystem:
    """
    Mount state and integrity check of one destination filesystem.

    Attributes:
        resolved: The resolved filesystem this instance manages
        group: Group settings (fsck command, skip flags)
        mountpath: Where to mount when mount management is on
        state: Current FilesystemState
    """

    def __init__(
        self,
        resolved: ResolvedFilesystem,
        group: BackupGroupConfig,
        mountpath: str,
        runner: CommandRunner,
    ):
        self.resolved = resolved
        self.group = group
        self.mountpath = mountpath
        self.runner = runner
        self.logger = get_logger().bind(
            **log_context(uuid=resolved.uuid, device=resolved.device_path)
        )
        self._mountpoint: Optional[str] = resolved.mountpoint
        self.state = (
            FilesystemState.MOUNTED if self._mountpoint else FilesystemState.UNMOUNTED
        )

    @property
    def uuid(self) -> str:
        return self.resolved.uuid

    @property
    def device_path(self) -> str:
        return self.resolved.device_path

    @property
    def mountpoint(self) -> Optional[str]:
        return self._mountpoint

    def is_mounted(self) -> bool:
        return self._mountpoint is not None

    def mount(self) -> None:
        """
        Mount the filesystem at the configured mount path.

        Raises:
            MountError: If mount fails
        """
        try:
            self.runner.run(
                ["mount", self.device_path, self.mountpath],
                f"mount filesystem {self.device_path} at {self.mountpath}",
                elevate=True,
            )
        except CommandError as e:
            raise MountError(
                f"Error mounting filesystem {self.device_path} on {self.mountpath}: {e}"
            ) from e

        self._mountpoint = self.mountpath
        self.state = FilesystemState.MOUNTED
        self.logger.info(
            f"Filesystem {self.device_path} mounted successfully on {self.mountpath}"
        )

    def unmount(self) -> None:
        """
        Flush pending writes and unmount.

        Raises:
            MountError: If sync or umount fails
        """
        if not self.is_mounted():
            self.logger.debug(f"Filesystem {self.device_path} is not mounted")
            return

        mountpoint = self._mountpoint
        try:
            self.runner.run(["sync"], "execute sync")
            self.runner.run(
                ["umount", mountpoint],
                f"unmount filesystem {self.device_path} at {mountpoint}",
                elevate=True,
            )
        except CommandError as e:
            raise MountError(
                f"Error unmounting filesystem {self.device_path} at {mountpoint}: {e}"
            ) from e

        self._mountpoint = None
        self.state = FilesystemState.UNMOUNTED
        self.logger.info(f"Filesystem {self.device_path} unmounted successfully")

    def check(self) -> None:
        """
        Run the configured fsck command unless skip_fsck is set.

        Raises:
            FsckError: If the check fails or cannot run
        """
        if self.group.skip_fsck:
            self.logger.info(f"Skipping filesystem check for {self.device_path}")
            self.state = FilesystemState.CHECK_PASSED
            return

        self.state = FilesystemState.CHECK_PENDING
        command = self.group.fsck_command.split() + [self.device_path]

        try:
            result = self.runner.run(command, "check fs", elevate=True, check=False)
        except CommandError as e:
            self.state = FilesystemState.CHECK_FAILED
            raise FsckError(f"ATTENTION: fsck could not run: {e}") from e

        if not result.success:
            self.state = FilesystemState.CHECK_FAILED
            raise FsckError(
                f"ATTENTION: fsck was not successful for {self.device_path} "
                f"(exit code {result.returncode})"
            )

        self.state = FilesystemState.CHECK_PASSED
        self.logger.info(f"Filesystem check passed for {self.device_path}")

    def prepare(self) -> None:
        """
        Bring the filesystem into the mounted, checked state.

        Raises:
            MountError: If (un)mounting fails, or skip_mount is set and the
                filesystem is not mounted anywhere
            FsckError: If the check fails
        """
        if not self.group.skip_mount and self.is_mounted():
            self.unmount()

        self.check()

        if not self.group.skip_mount:
            self.mount()
        elif not self.is_mounted():
            raise MountError(
                f"Filesystem {self.device_path} is not mounted and skip_mount is set"
            )

    def release(self) -> None:
        """
        Unmount after the group's backups, unless mount management is off.

        Raises:
            MountError: If unmounting fails
        """
        if not self.group.skip_mount:
            self.unmount()

    def available_space(self) -> Optional[int]:
        """
        Return free bytes on the filesystem, or None if unknown.

        Re-enumerates, since free space is only reported while mounted.
        """
        try:
            snapshot = Lsblk(self.runner)
        except EnumerationError as e:
            self.logger.warning(f"Could not read available space: {e}")
            return None

        filesystem = snapshot.find_filesystem(self.uuid)
        if filesystem is None:
            self.logger.warning(
                f"Filesystem with uuid {self.uuid} disappeared from lsblk output"
            )
            return None
        return filesystem.fsavail
