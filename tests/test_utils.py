"""Tests for lib.utils helpers."""

import re
from pathlib import Path

import pytest

from lib.utils import (
    current_date,
    ensure_directory,
    format_bytes,
    human_readable_duration,
    join_normalized,
    parse_size,
    safe_remove,
    sanitize_filename,
)

# Paths


class TestEnsureDirectory:
    """Tests for ensure_directory function."""

    def test_creates_parents(self, tmp_path):
        """Test the config home is created with its parents."""
        config_home = tmp_path / ".config" / "dd_backup"
        assert ensure_directory(config_home).is_dir()

    def test_existing_directory_is_fine(self, tmp_path):
        """Test calling twice is not an error."""
        ensure_directory(tmp_path / "x")
        assert ensure_directory(tmp_path / "x").is_dir()

    def test_empty_path_rejected(self):
        """Test an empty path is refused instead of meaning the cwd."""
        with pytest.raises(ValueError, match="cannot be empty"):
            ensure_directory("")


class TestSafeRemove:
    """Tests for safe_remove function."""

    def test_removes_file(self, tmp_path):
        """Test a file is removed."""
        f = tmp_path / "backup.img"
        f.write_bytes(b"data")
        assert safe_remove(f) is True
        assert not f.exists()

    def test_missing_ok(self, tmp_path):
        """Test a missing file returns False."""
        assert safe_remove(tmp_path / "missing") is False

    def test_missing_not_ok(self, tmp_path):
        """Test a missing file raises when missing_ok is False."""
        with pytest.raises(FileNotFoundError):
            safe_remove(tmp_path / "missing", missing_ok=False)

    def test_refuses_directory(self, tmp_path):
        """Test directories are never removed."""
        d = tmp_path / "dir"
        d.mkdir()
        with pytest.raises(IsADirectoryError):
            safe_remove(d)
        assert d.exists()


class TestJoinNormalized:
    """Tests for join_normalized function."""

    @pytest.mark.parametrize(
        "relative, expected",
        [
            ("/.", "/mnt"),
            ("", "/mnt"),
            ("/images", "/mnt/images"),
            ("images/disks/", "/mnt/images/disks"),
            ("./a/./b", "/mnt/a/b"),
            ("/a/../b", "/mnt/b"),
            ("../../etc", "/mnt/etc"),
            ("/a/b/../../..", "/mnt"),
        ],
    )
    def test_stays_under_root(self, relative, expected):
        """Test dot segments collapse without leaving the root."""
        assert join_normalized("/mnt", relative) == Path(expected)


# Dates and durations


class TestCurrentDate:
    """Tests for current_date function."""

    def test_format(self):
        """Test the date is YYYY-MM-DD."""
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", current_date())


class TestHumanReadableDuration:
    """Tests for human_readable_duration function."""

    @pytest.mark.parametrize(
        "seconds, expected",
        [(0, "0s"), (45, "45s"), (3665, "1h 1m 5s"), (90000, "1d 1h"), (12.7, "12s")],
    )
    def test_durations(self, seconds, expected):
        """Test duration formatting."""
        assert human_readable_duration(seconds) == expected

    def test_negative_raises(self):
        """Test negative durations are rejected."""
        with pytest.raises(ValueError):
            human_readable_duration(-1)


# Size Tests


class TestFormatBytes:
    """Tests for format_bytes function."""

    def test_values(self):
        """Test common sizes."""
        assert format_bytes(512) == "512.00 B"
        assert format_bytes(1536) == "1.50 KB"
        assert format_bytes(1073741824) == "1.00 GB"

    def test_negative_raises(self):
        """Test negative sizes are rejected."""
        with pytest.raises(ValueError):
            format_bytes(-1)


class TestParseSize:
    """Tests for parse_size function."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (2048, 2048),
            ("2048", 2048),
            ("1K", 1024),
            ("50G", 50 * 1024**3),
            ("100GB", 100 * 1024**3),
            ("1.5T", int(1.5 * 1024**4)),
            ("1,5T", int(1.5 * 1024**4)),
            ("512MiB", 512 * 1024**2),
            (" 7M ", 7 * 1024**2),
        ],
    )
    def test_parses(self, value, expected):
        """Test numbers and human sizes."""
        assert parse_size(value) == expected

    @pytest.mark.parametrize("value", [None, "", "n/a", "12X", -5, True])
    def test_unparsable_is_none(self, value):
        """Test unknown sizes become None."""
        assert parse_size(value) is None


# Filename Tests


class TestSanitizeFilename:
    """Tests for sanitize_filename function."""

    def test_spaces_and_slashes(self):
        """Test whitespace and path separators are replaced."""
        assert sanitize_filename("my disk/2") == "my_disk_2"

    def test_plain_name_unchanged(self):
        """Test a safe name passes through."""
        assert sanitize_filename("nas-disk_1") == "nas-disk_1"

    def test_only_dots(self):
        """Test a name that sanitizes to nothing."""
        assert sanitize_filename("...") == "unnamed"

    def test_empty_raises(self):
        """Test empty names are rejected."""
        with pytest.raises(ValueError):
            sanitize_filename("")
