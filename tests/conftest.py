"""
Shared pytest fixtures and configuration for dd-backup tests.

No test runs real lsblk, mount, fsck or dd: the CommandRunner is replaced
by a Mock whose run() answers lsblk with canned JSON and succeeds for
everything else unless told otherwise.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from core.config_loader import BackupGroupConfig
from core.errors import CommandError
from lib.command import CommandResult, CommandRunner
from lib.lsblk import Lsblk

DEST_UUID = "0a1b2c3d-1111-2222-3333-444455556666"
SSD_SERIAL = "S3Z1NB0K123456"
HDD_SERIAL = "WD-WCC4E1234567"
USB_SERIAL = "USB123"


def lsblk_entry(name: str, **fields: Any) -> Dict[str, Any]:
    """One lsblk JSON object with every column present."""
    entry = {
        "name": name,
        "model": None,
        "serial": None,
        "uuid": None,
        "mountpoint": None,
        "size": None,
        "fsavail": None,
        "type": "disk",
    }
    entry.update(fields)
    return entry


def make_lsblk_json(entries: List[Dict[str, Any]]) -> str:
    return json.dumps({"blockdevices": entries})


def default_lsblk_entries(
    dest_mountpoint: Optional[str] = None, dest_fsavail: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Two source disks, a USB stick, and a backup disk with one partition."""
    return [
        lsblk_entry(
            "sda",
            model="Samsung SSD 860",
            serial=SSD_SERIAL,
            size=500107862016,
            children=[
                lsblk_entry(
                    "sda1",
                    uuid="root-uuid",
                    mountpoint="/",
                    size=500106813440,
                    fsavail=100 * 1024**3,
                    type="part",
                )
            ],
        ),
        lsblk_entry("sdb", model="WDC WD40EFRX", serial=HDD_SERIAL, size=4000787030016),
        lsblk_entry("sdc", serial=USB_SERIAL, size=32010928128),
        lsblk_entry(
            "sdd",
            model="Backup Disk",
            serial="BACKUP-0001",
            size=8001563222016,
            children=[
                lsblk_entry(
                    "sdd1",
                    uuid=DEST_UUID,
                    mountpoint=dest_mountpoint,
                    size=8001562173440,
                    fsavail=dest_fsavail,
                    type="part",
                )
            ],
        ),
    ]


def make_runner(
    lsblk_output: Optional[str] = None,
    failures: Optional[Dict[str, str]] = None,
    returncodes: Optional[Dict[str, int]] = None,
) -> Mock:
    """
    Build a Mock CommandRunner.

    Args:
        lsblk_output: JSON returned for lsblk (default: default_lsblk_entries())
        failures: command name -> stderr; run() raises CommandError for it
        returncodes: command name -> exit code returned without raising
            (for calls made with check=False)
    """
    lsblk_output = lsblk_output or make_lsblk_json(default_lsblk_entries())
    failures = failures or {}
    returncodes = returncodes or {}

    def run(command, description, elevate=False, check=True, stream_stderr=False):
        name = command[0]
        if name in failures:
            raise CommandError(
                f"Error running {' '.join(command)}: {failures[name]}",
                command=command,
                returncode=1,
                stderr=failures[name],
            )
        returncode = returncodes.get(name, 0)
        if returncode and check:
            raise CommandError(
                f"Error running {' '.join(command)}", command=command, returncode=returncode
            )
        stdout = lsblk_output if name == "lsblk" else ""
        return CommandResult(command=list(command), returncode=returncode, stdout=stdout)

    runner = Mock(spec=CommandRunner)
    runner.run.side_effect = run
    return runner


def commands_run(runner: Mock) -> List[str]:
    """Names of the commands a mock runner was asked to run, in order."""
    return [c.args[0][0] for c in runner.run.call_args_list]


@pytest.fixture
def fixtures_dir():
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def valid_config_path(fixtures_dir):
    """Return path to the full valid config."""
    return fixtures_dir / "valid_config.yaml"


@pytest.fixture
def runner():
    """Mock CommandRunner answering lsblk with the default device set."""
    return make_runner()


@pytest.fixture
def snapshot(runner):
    """Lsblk snapshot of the default device set."""
    return Lsblk(runner)


@pytest.fixture
def group_config():
    """A group with two devices and default settings."""
    return BackupGroupConfig(
        uuid=DEST_UUID,
        backup_devices=[
            {"serial": SSD_SERIAL, "name": "system", "copies": 2},
            {"serial": HDD_SERIAL},
        ],
    )


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
