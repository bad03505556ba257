"""
Error types for dd-backup.

Every failure the run can hit is one of the classes below. Each class
carries a `scope` telling the orchestrator how far the failure reaches:

- "run":    abort before any group is attempted (configuration problems)
- "group":  skip the current destination filesystem, continue with others
- "device": skip the current source device, continue with the group

Best-effort problems (e.g. unknown free space) are logged as warnings and
never raised.
"""

from typing import Optional, Sequence


class DdBackupError(Exception):
    """Base class for all dd-backup errors."""

    scope = "run"


class ConfigError(DdBackupError):
    """Configuration missing, malformed or invalid."""

    scope = "run"


class AmbiguityError(DdBackupError):
    """More than one block device matches a UUID or serial."""

    scope = "group"

    def __init__(self, kind: str, identifier: str, matches: Sequence[str] = ()):
        self.kind = kind
        self.identifier = identifier
        self.matches = list(matches)
        detail = f" (matches: {', '.join(self.matches)})" if self.matches else ""
        super().__init__(f"Not a unique {kind}: {identifier}{detail}")


class EnumerationError(DdBackupError):
    """Block devices could not be listed."""

    scope = "group"


# Preconditions


class PreconditionError(DdBackupError):
    """A check before copying failed."""

    scope = "device"


class FsckError(PreconditionError):
    """Filesystem check of the destination failed."""

    scope = "group"


class AlreadyBackedUpError(PreconditionError):
    """Today's backup file is already present."""


class InsufficientSpaceError(PreconditionError):
    """Destination has less free space than the source device needs."""

    def __init__(self, message: str, available: Optional[int] = None, needed: Optional[int] = None):
        self.available = available
        self.needed = needed
        super().__init__(message)


# External operations


class ExternalOperationError(DdBackupError):
    """An OS-level operation failed."""

    scope = "device"


class CommandError(ExternalOperationError):
    """A command exited non-zero or could not be started."""

    def __init__(self, message: str, command: Sequence[str] = (), returncode: Optional[int] = None, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class MountError(ExternalOperationError):
    """Mounting or unmounting the destination failed."""

    scope = "group"


class RetentionError(ExternalOperationError):
    """Evicting the oldest backup failed."""


class CopyError(ExternalOperationError):
    """The device copy failed."""


class OwnershipError(ExternalOperationError):
    """Changing the owner of the backup file failed."""
