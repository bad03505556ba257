"""
Command execution for dd-backup.

Every OS-level action (lsblk, mount, umount, sync, fsck, dd, chown) goes
through CommandRunner.run(), which adds sudo when a privileged call needs it
and normalizes the outcome into a CommandResult or a CommandError.
"""

import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from core.errors import CommandError
from lib.logger import get_logger


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """
    Runs external commands, optionally elevated with sudo.

    Elevation is decided per call: nothing is held between calls.

    Attributes:
        use_sudo: Force sudo on (True) or off (False); None detects it
        logger: Logger instance
    """

    def __init__(self, use_sudo: Optional[bool] = None):
        self.use_sudo = use_sudo
        self.logger = get_logger()
        self._sudo_available: Optional[bool] = None

    def sudo_available(self) -> bool:
        """
        Check whether privileged calls should be prefixed with sudo.

        Not needed when already running as root; otherwise sudo must be on
        PATH. The result is cached.
        """
        if self.use_sudo is not None:
            return self.use_sudo

        if self._sudo_available is None:
            if hasattr(os, "geteuid") and os.geteuid() == 0:
                self._sudo_available = False
            else:
                self._sudo_available = shutil.which("sudo") is not None

        return self._sudo_available

    def build_command(
        self, command: Sequence[str], description: str, elevate: bool = False
    ) -> List[str]:
        """Return the final argv, with sudo prepended if elevation applies."""
        parts = [str(part) for part in command]
        if elevate and self.sudo_available():
            self.logger.info(f"Sudo is needed to {description}")
            return ["sudo"] + parts
        return parts

    def run(
        self,
        command: Sequence[str],
        description: str,
        elevate: bool = False,
        check: bool = True,
        stream_stderr: bool = False,
    ) -> CommandResult:
        """
        Run a command and wait for it.

        Args:
            command: Command and arguments
            description: What the command does, used in log and error messages
            elevate: Run with sudo when available
            check: Raise CommandError on non-zero exit
            stream_stderr: Leave stderr attached to the terminal (progress output)

        Output is decoded as UTF-8; undecodable bytes (file names fsck
        reports, messages in a legacy locale) become U+FFFD.

        Returns:
            CommandResult with captured output

        Raises:
            CommandError: If the command cannot be started, or exits non-zero
                and check is True
        """
        argv = self.build_command(command, description, elevate)
        command_line = " ".join(argv)
        self.logger.trace(f"Command: {command_line}")

        start_time = time.time()
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=None if stream_stderr else subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as e:
            raise CommandError(
                f"Failed to {description}: {e}: {command_line}", command=argv
            ) from e

        result = CommandResult(
            command=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_seconds=round(time.time() - start_time, 2),
        )

        if check and not result.success:
            raise CommandError(
                f"Error running {command_line}: {result.stderr.strip()}",
                command=argv,
                returncode=result.returncode,
                stderr=result.stderr,
            )

        return result
