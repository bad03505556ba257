"""
Helpers shared by dd-backup modules: paths under a mountpoint, sizes as
lsblk reports them, durations for log messages, and backup file names.
"""

import re
from datetime import date
from pathlib import Path, PurePosixPath
from typing import Optional, Union

PathLike = Union[str, Path]

# Paths


def ensure_directory(path: PathLike, mode: int = 0o755) -> Path:
    """
    Create a directory and its parents if missing.

    Args:
        path: Directory to create
        mode: Permissions for newly created directories (default: 0o755)

    Returns:
        The directory as a Path

    Raises:
        ValueError: If path is empty
        OSError: If the directory cannot be created
    """
    if not path:
        raise ValueError("Path cannot be empty")

    directory = Path(path)
    directory.mkdir(mode=mode, parents=True, exist_ok=True)
    return directory


def safe_remove(path: PathLike, missing_ok: bool = True) -> bool:
    """
    Delete one backup file. Directories are never removed.

    Args:
        path: File to delete
        missing_ok: If True, a file that is already gone is not an error

    Returns:
        True if a file was deleted, False if there was nothing to delete

    Raises:
        FileNotFoundError: If the file is gone and missing_ok is False
        IsADirectoryError: If path is a directory
        OSError: If unlinking fails
    """
    target = Path(path)

    if target.is_dir():
        raise IsADirectoryError(f"Refusing to remove directory: {target}")

    try:
        target.unlink()
    except FileNotFoundError:
        if missing_ok:
            return False
        raise
    return True


def join_normalized(root: PathLike, relative: str) -> Path:
    """
    Join a relative path under root, collapsing "." and ".." segments.

    Leading slashes in `relative` are ignored and ".." never climbs above
    root, so the result always stays inside it.

    Args:
        root: Directory the result must stay under (a mountpoint)
        relative: Configured destination path, absolute or relative

    Returns:
        root joined with the normalized segments of relative

    Example:
        >>> join_normalized("/mnt", "/backups/../images")
        PosixPath('/mnt/images')
        >>> join_normalized("/mnt", "../../etc")
        PosixPath('/mnt/etc')
    """
    parts = []
    for segment in PurePosixPath(relative or ".").parts:
        if segment in ("/", "", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)

    return Path(root).joinpath(*parts)


# Dates and durations


def current_date() -> str:
    """
    Return today's local date, used as the backup file name prefix.

    Returns:
        Date string in YYYY-MM-DD format

    Example:
        >>> current_date()
        '2024-01-15'
    """
    return date.today().isoformat()


def human_readable_duration(seconds: Union[int, float]) -> str:
    """
    Render a duration for log lines, largest units first.

    Zero-valued units are left out; sub-second precision is dropped.

    Args:
        seconds: Duration in seconds

    Returns:
        Duration string such as "1h 1m 5s"

    Raises:
        ValueError: If seconds is negative

    Example:
        >>> human_readable_duration(3665)
        '1h 1m 5s'
        >>> human_readable_duration(90000)
        '1d 1h'
    """
    if seconds < 0:
        raise ValueError("Duration cannot be negative")

    remaining = int(seconds)
    parts = []
    for suffix, length in (("d", 86400), ("h", 3600), ("m", 60)):
        count, remaining = divmod(remaining, length)
        if count:
            parts.append(f"{count}{suffix}")
    if remaining or not parts:
        parts.append(f"{remaining}s")

    return " ".join(parts)


# Sizes

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
_SIZE_UNITS = {"": 0, "K": 1, "M": 2, "G": 3, "T": 4, "P": 5, "E": 6}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:[.,]\d+)?)\s*([KMGTPE]?)(?:I?B)?\s*$", re.IGNORECASE)


def format_bytes(bytes_value: Union[int, float], precision: int = 2) -> str:
    """
    Format a byte count with binary multiples.

    Args:
        bytes_value: Size in bytes
        precision: Number of decimal places (default: 2)

    Returns:
        Size string such as "1.50 GB"

    Raises:
        ValueError: If bytes_value is negative

    Example:
        >>> format_bytes(1536)
        '1.50 KB'
    """
    if bytes_value < 0:
        raise ValueError("Bytes value cannot be negative")

    size = float(bytes_value)
    unit = _BYTE_UNITS[0]
    for unit in _BYTE_UNITS:
        if size < 1024.0 or unit == _BYTE_UNITS[-1]:
            break
        size /= 1024.0

    return f"{size:.{precision}f} {unit}"


def parse_size(value: Union[None, int, float, str]) -> Optional[int]:
    """
    Parse a size as reported by lsblk into bytes.

    Accepts plain integers, numeric strings and human sizes using binary
    multiples ("50G", "1,5T", "100GB", "512MiB").

    Args:
        value: lsblk SIZE or FSAVAIL value

    Returns:
        Size in bytes, or None for None, negative, empty or unparsable input

    Example:
        >>> parse_size("1K")
        1024
        >>> parse_size(2048)
        2048
        >>> parse_size("n/a") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None

    match = _SIZE_PATTERN.match(str(value))
    if not match:
        return None

    number = float(match.group(1).replace(",", "."))
    exponent = _SIZE_UNITS[match.group(2).upper()]
    return int(number * (1024**exponent))


def sanitize_filename(name: str, replacement: str = "_") -> str:
    """
    Make a configured device name usable inside a backup file name.

    Characters unsafe in file names, whitespace included, become
    `replacement`. Leading and trailing dots are dropped; a name with
    nothing left becomes "unnamed".

    Args:
        name: Configured device name
        replacement: Substitute for unsafe characters (default: "_")

    Returns:
        Name safe to embed in a file name

    Raises:
        ValueError: If name is empty

    Example:
        >>> sanitize_filename("my disk/2")
        'my_disk_2'
    """
    if not name:
        raise ValueError("Filename cannot be empty")

    cleaned = re.sub(r'[<>:"/\\|?*\s\x00-\x1f]', replacement, name.strip()).strip(".")
    return cleaned or "unnamed"
