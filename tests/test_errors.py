"""Tests for the error hierarchy."""

import pytest

from core.errors import (
    AlreadyBackedUpError,
    AmbiguityError,
    CommandError,
    ConfigError,
    CopyError,
    DdBackupError,
    EnumerationError,
    ExternalOperationError,
    FsckError,
    InsufficientSpaceError,
    MountError,
    OwnershipError,
    PreconditionError,
    RetentionError,
)


class TestScopes:
    """Test how far each failure reaches."""

    @pytest.mark.parametrize(
        "error_class, scope",
        [
            (ConfigError, "run"),
            (AmbiguityError, "group"),
            (EnumerationError, "group"),
            (FsckError, "group"),
            (MountError, "group"),
            (AlreadyBackedUpError, "device"),
            (InsufficientSpaceError, "device"),
            (RetentionError, "device"),
            (CopyError, "device"),
            (OwnershipError, "device"),
            (CommandError, "device"),
        ],
    )
    def test_scope(self, error_class, scope):
        """Test the scope attribute."""
        assert error_class.scope == scope

    @pytest.mark.parametrize(
        "error_class, base",
        [
            (FsckError, PreconditionError),
            (AlreadyBackedUpError, PreconditionError),
            (InsufficientSpaceError, PreconditionError),
            (MountError, ExternalOperationError),
            (RetentionError, ExternalOperationError),
            (CopyError, ExternalOperationError),
            (OwnershipError, ExternalOperationError),
            (CommandError, ExternalOperationError),
        ],
    )
    def test_hierarchy(self, error_class, base):
        """Test every error is catchable by category and by the base class."""
        assert issubclass(error_class, base)
        assert issubclass(error_class, DdBackupError)


class TestMessages:
    """Test error construction."""

    def test_ambiguity_message(self):
        """Test the identifier and matches are reported."""
        error = AmbiguityError("serial", "ABC", ["/dev/sda", "/dev/sdb"])

        assert str(error) == "Not a unique serial: ABC (matches: /dev/sda, /dev/sdb)"
        assert error.kind == "serial"
        assert error.identifier == "ABC"

    def test_ambiguity_without_matches(self):
        """Test the message without match list."""
        assert str(AmbiguityError("UUID", "u1")) == "Not a unique UUID: u1"

    def test_command_error_fields(self):
        """Test command details are kept."""
        error = CommandError("failed", command=["dd"], returncode=1, stderr="oops")

        assert error.command == ["dd"]
        assert error.returncode == 1
        assert error.stderr == "oops"
