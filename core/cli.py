"""
Command-line interface for dd-backup.

Parses arguments, sets up logging, loads the configuration and runs the
backup engine once.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from core.backup_engine import BackupEngine
from core.config_loader import CONFIG_FILE_NAMES, CONFIG_HOME, ConfigLoader
from core.errors import ConfigError, EnumerationError
from lib.command import CommandRunner
from lib.logger import VALID_LOG_LEVELS, get_logger, setup_logger
from lib.lsblk import Lsblk


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dd-backup",
        description=(
            "Back up whole block devices into dated image files on "
            "destination filesystems, keeping a bounded number of copies."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="path to the configuration file (default: ~/.config/dd_backup/config.yaml)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="run all checks but do not delete, copy or chown anything",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="list block devices with their serials and UUIDs, then exit",
    )
    parser.add_argument(
        "--progress", action="store_true", help="show dd progress while copying"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=VALID_LOG_LEVELS,
        help="minimum log level (default: INFO)",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="also log to this file")
    return parser


def list_devices(runner: CommandRunner) -> int:
    """Print the current lsblk snapshot."""
    try:
        snapshot = Lsblk(runner)
    except EnumerationError as e:
        get_logger().error(str(e))
        return 1

    print("\n".join(snapshot.describe()))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point.

    Returns:
        0 once every group has been attempted, whatever their outcome;
        1 if logging or configuration could not be set up; 130 on Ctrl-C.
    """
    args = build_parser().parse_args(argv)

    try:
        setup_logger(log_level=args.log_level, log_file=args.log_file)
    except (ValueError, OSError) as e:
        print(f"Error: cannot set up logging: {e}", file=sys.stderr)
        return 1

    logger = get_logger()
    runner = CommandRunner()

    try:
        if args.list:
            return list_devices(runner)

        try:
            config = ConfigLoader(args.config)
        except ConfigError as e:
            logger.error(str(e))
            if args.config is None:
                logger.info(
                    f"Create {CONFIG_HOME / CONFIG_FILE_NAMES[0]} or pass --config PATH"
                )
            return 1

        BackupEngine(
            config, runner=runner, dry_run=args.dry_run, progress=args.progress
        ).run()
        return 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
