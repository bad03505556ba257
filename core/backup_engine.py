"""
Backup Engine for dd-backup.

This module runs one pass over the configured backup groups: resolve the
destination filesystem and source devices against a fresh lsblk snapshot,
check and mount the destination, back up each device, unmount.

Groups and devices are processed sequentially. A failure in one device or
group is logged and the run moves on; only configuration errors (raised
before the engine exists) stop the run.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.backup_task import BackupTask
from core.config_loader import BackupGroupConfig, ConfigLoader
from core.errors import (
    AlreadyBackedUpError,
    AmbiguityError,
    DdBackupError,
    EnumerationError,
    FsckError,
)
from core.filesystem import DestinationFilesystem
from core.resolver import ResolvedDevice, resolve_devices, resolve_filesystem
from lib.command import CommandRunner
from lib.logger import get_logger, log_context
from lib.lsblk import Lsblk
from lib.utils import human_readable_duration

# Group statuses
GROUP_COMPLETED = "completed"
GROUP_ABSENT = "absent"
GROUP_CHECK_FAILED = "check_failed"
GROUP_FAILED = "failed"

# Device outcomes
DEVICE_SUCCESS = "success"
DEVICE_SKIPPED = "skipped"
DEVICE_FAILED = "failed"
DEVICE_DRY_RUN = "dry_run"


@dataclass
class GroupResult:
    """Outcome of one backup group."""

    uuid: str
    status: str = GROUP_COMPLETED
    devices: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def failed_devices(self) -> List[str]:
        return [s for s, outcome in self.devices.items() if outcome == DEVICE_FAILED]


class BackupEngine:
    """
    Orchestrates device backups across all configured groups.

    Attributes:
        config: Configuration loader instance
        runner: Command runner used for every external call
        dry_run: If True, log deletions and copies without performing them
        progress: If True, dd reports progress on the terminal
        logger: Logger instance
    """

    def __init__(
        self,
        config_loader: ConfigLoader,
        runner: Optional[CommandRunner] = None,
        dry_run: bool = False,
        progress: bool = False,
    ):
        """
        Initialize BackupEngine.

        Args:
            config_loader: Loaded, validated configuration
            runner: Command runner (a default one is created if omitted)
            dry_run: If True, simulate mutating actions
            progress: If True, show dd progress

        Example:
            >>> engine = BackupEngine(ConfigLoader(Path("config.yaml")))
            >>> results = engine.run()
        """
        self.config = config_loader
        self.runner = runner or CommandRunner()
        self.dry_run = dry_run
        self.progress = progress
        self.logger = get_logger()

        if self.dry_run:
            self.logger.info("BackupEngine initialized in DRY RUN mode")
        else:
            self.logger.info("BackupEngine initialized")

    # ========================================================================
    # Main Orchestration Methods
    # ========================================================================

    def run(self) -> Dict[str, GroupResult]:
        """
        Back up every configured group.

        Returns:
            Dict mapping group UUID -> GroupResult. Never raises for group
            or device failures.
        """
        start_time = time.time()
        results: Dict[str, GroupResult] = {}

        for group in self.config.get_groups():
            try:
                snapshot = Lsblk(self.runner)
            except EnumerationError as e:
                self.logger.error(f"Skipping backups for uuid {group.uuid}: {e}")
                results[group.uuid] = GroupResult(
                    uuid=group.uuid, status=GROUP_FAILED, error=str(e)
                )
                continue

            results[group.uuid] = self.backup_group(group, snapshot)

        self._log_summary(results, time.time() - start_time)
        return results

    def backup_group(self, group: BackupGroupConfig, snapshot: Lsblk) -> GroupResult:
        """
        Back up all devices of one group onto its destination filesystem.

        Args:
            group: Group configuration
            snapshot: Fresh lsblk snapshot used for resolution

        Returns:
            GroupResult for the group
        """
        result = GroupResult(uuid=group.uuid)
        log = self.logger.bind(**log_context(uuid=group.uuid))

        try:
            resolved = resolve_filesystem(group, snapshot)
            if resolved is None:
                result.status = GROUP_ABSENT
                return result
            devices = resolve_devices(group, snapshot)
        except AmbiguityError as e:
            log.error(f"Skipping backups for uuid {group.uuid}: {e}")
            result.status = GROUP_FAILED
            result.error = str(e)
            return result

        filesystem = DestinationFilesystem(
            resolved, group, self.config.mountpath, self.runner
        )

        try:
            filesystem.prepare()
        except FsckError as e:
            log.error(f"{e}, skipping backups for filesystem {filesystem.device_path}")
            result.status = GROUP_CHECK_FAILED
            result.error = str(e)
            return result
        except DdBackupError as e:
            log.error(
                f"Error preparing filesystem {filesystem.device_path}, "
                f"skipping its backups: {e}"
            )
            result.status = GROUP_FAILED
            result.error = str(e)
            return result

        try:
            for device in devices:
                result.devices[device.serial] = self.backup_device(
                    filesystem, device, group
                )
        finally:
            self._release(filesystem, result)

        return result

    def backup_device(
        self,
        filesystem: DestinationFilesystem,
        device: ResolvedDevice,
        group: BackupGroupConfig,
    ) -> str:
        """
        Back up a single device onto a mounted filesystem.

        Returns:
            Device outcome: "success", "skipped", "failed" or "dry_run"
        """
        task = BackupTask(
            filesystem,
            device,
            group.destination_path,
            self.runner,
            dry_run=self.dry_run,
            progress=self.progress,
        )

        try:
            copied = task.run()
        except AlreadyBackedUpError as e:
            task.logger.info(str(e))
            return DEVICE_SKIPPED
        except DdBackupError as e:
            task.logger.error(f"Error performing backup of {device.device_path}: {e}")
            return DEVICE_FAILED

        return DEVICE_SUCCESS if copied else DEVICE_DRY_RUN

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def _release(self, filesystem: DestinationFilesystem, result: GroupResult) -> None:
        """Unmount after the device loop; failures are recorded, not raised."""
        try:
            filesystem.release()
        except DdBackupError as e:
            self.logger.error(str(e))
            result.status = GROUP_FAILED
            result.error = str(e)

    def _log_summary(self, results: Dict[str, GroupResult], duration: float) -> None:
        outcomes = [o for r in results.values() for o in r.devices.values()]
        self.logger.info(
            f"Backup run finished in {human_readable_duration(duration)}: "
            f"{len(results)} group(s), "
            f"{outcomes.count(DEVICE_SUCCESS)} succeeded, "
            f"{outcomes.count(DEVICE_SKIPPED)} skipped, "
            f"{outcomes.count(DEVICE_FAILED)} failed"
            + (f", {outcomes.count(DEVICE_DRY_RUN)} dry run" if self.dry_run else "")
        )
        for result in results.values():
            if result.status in (GROUP_FAILED, GROUP_CHECK_FAILED):
                self.logger.warning(
                    f"Group {result.uuid}: {result.status}: {result.error}"
                )
