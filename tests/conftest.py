import logging
import os
import stat
import sys
from pathlib import Path
from typing import List

import pytest

from pm2_console.command.models import ProcessRecord, ProcessStatus

CMD_SCRIPT_PATH = Path(__file__).parent / "pm2_console" / "command" / "cmd_for_test.py"
"""
Path to the helper script for testing.

Each sub-command (echo, fail, sleep, spawn_tree, orphan, pwd, fake_pm2, fake_npm)
stands in for a real external tool so the executor can be exercised with
real subprocesses.
"""


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def cmd_script() -> Path:
    return CMD_SCRIPT_PATH


@pytest.fixture
def python_cmd(cmd_script: Path):
    """Build an argv that runs one sub-command of the helper script."""

    def build(*args: str) -> List[str]:
        return [sys.executable, str(cmd_script), *args]

    return build


@pytest.fixture
def make_tool(tmp_path: Path, cmd_script: Path):
    """
    Create an executable named ``name`` that forwards to a helper sub-command,
    so code that only takes a single executable name (e.g. ``pm2``) can run it.
    """
    if sys.platform == "win32":
        pytest.skip("shebang wrappers are POSIX only")

    def make(name: str, sub_command: str) -> str:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        tool = bin_dir / name
        tool.write_text(
            f"#!{sys.executable}\n"
            "import runpy, sys\n"
            f"sys.argv = [{str(cmd_script)!r}, {sub_command!r}] + sys.argv[1:]\n"
            f"runpy.run_path({str(cmd_script)!r}, run_name='__main__')\n",
            encoding="utf-8",
        )
        tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(tool)

    return make


@pytest.fixture
def records(tmp_path: Path) -> List[ProcessRecord]:
    web_dir = tmp_path / "srv" / "web"
    web_dir.mkdir(parents=True)
    return [
        ProcessRecord(name="api", id=0, status=ProcessStatus.ONLINE, restart_count=2,
                      cpu_percent=1.5, memory_bytes=50 * 1024 * 1024, working_directory=None),
        ProcessRecord(name="worker", id=1, status=ProcessStatus.STOPPED,
                      working_directory=str(tmp_path / "srv" / "worker")),
        ProcessRecord(name="web", id=2, status=ProcessStatus.ONLINE,
                      working_directory=str(web_dir)),
    ]


logger = logging.getLogger()


def pytest_configure(config):
    """
    Raise the root log level to DEBUG when pytest runs with -v.
    """
    verbose_level = config.getoption("verbose")

    if verbose_level > 0:
        print("\nPytest running in verbose mode, setting log level to DEBUG.")
        logger.setLevel(logging.DEBUG)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            handler.setFormatter(formatter)
            logger.addHandler(handler)


os.environ.setdefault("PYTHONUNBUFFERED", "1")
