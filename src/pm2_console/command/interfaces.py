"""
This module defines the interfaces (Protocols) for the core components
of the PM2 console, establishing the contracts between the web layer,
the deployment runner and the command executor.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from .models import ActionKind, ActionOutcome, LogFileDescriptor, LogKind, ProcessRecord


@runtime_checkable
class ICommandExecutor(Protocol):
    """
    Interface for running a single external command to completion.
    """

    async def run(
        self,
        command: Sequence[str],
        directory: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ActionOutcome:
        """
        Runs a command and waits for it to exit or time out.

        Args:
            command (Sequence[str]): The executable and its arguments. No shell is involved.
            directory (Optional[str]): Working directory for the command.
            timeout (Optional[float]): Maximum execution time in seconds. None waits forever.

        Returns:
            ActionOutcome: Never raises for command-level failures; spawn errors,
            non-zero exits and timeouts are reported through ``error_code``.
        """
        ...


@runtime_checkable
class IProcessDirectoryClient(Protocol):
    """
    Interface for querying and commanding the process supervisor.
    """

    async def list_processes(self) -> List[ProcessRecord]:
        """
        Returns a fresh snapshot of every supervised process.

        Raises:
            DirectoryUnavailableError: If the supervisor cannot be reached or
                its output cannot be parsed.
        """
        ...

    async def get_process(self, name: str) -> ProcessRecord:
        """
        Returns the record named ``name`` from a fresh listing.

        Raises:
            DirectoryUnavailableError: If the listing fails.
            ProcessNotFoundError: If no process has that name.
        """
        ...

    async def apply_lifecycle_action(self, name: str, action: ActionKind) -> ActionOutcome:
        """
        Asks the supervisor to start, stop or restart ``name``.
        """
        ...


@runtime_checkable
class ILogReader(Protocol):
    """
    Interface for locating and tailing the supervisor's per-process log files.
    """

    def get_log_descriptors(self, name: str) -> List[LogFileDescriptor]:
        ...

    def get_log_descriptor(self, name: str, kind: LogKind) -> Optional[LogFileDescriptor]:
        ...

    def log_path(self, name: str, kind: LogKind) -> Optional[Path]:
        ...

    def tail(self, path: Path, max_lines: int) -> str:
        ...
