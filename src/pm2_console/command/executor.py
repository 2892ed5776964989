from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
from typing import Dict, List, Optional, Sequence

import anyio
import psutil
from anyio import create_task_group, move_on_after, open_process, to_thread
from anyio.abc import ByteReceiveStream, Process

from .interfaces import ICommandExecutor
from .models import ActionOutcome, ErrorCode

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 3.0


def get_windows_executable_command(command: str, path: Optional[str] = None) -> str:
    """
    Get the correct executable command normalized for Windows.

    On Windows, commands might exist with specific extensions (.exe, .cmd, etc.)
    that need to be located for proper execution, e.g. ``npm`` is ``npm.cmd``.

    Args:
        command: Base command (e.g., 'npm', 'pm2')
        path: Search path, defaults to PATH

    Returns:
        str: Windows-appropriate command path
    """
    try:
        if command_path := shutil.which(command, path=path):
            return command_path

        for ext in [".cmd", ".bat", ".exe"]:
            if ext_path := shutil.which(f"{command}{ext}", path=path):
                return ext_path

        return command
    except OSError:
        # Permission problems or broken symlinks while scanning PATH
        return command


def resolve_executable(command: str, path: Optional[str] = None) -> str:
    """
    Get the correct executable command normalized for the current platform.
    """
    if sys.platform == "win32":
        return get_windows_executable_command(command, path)
    return command


def _collect_children(pid: int) -> List[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        logger.debug("process %s not found", pid)
        return []


def _signal_group(pgid: int, sig: int) -> None:
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.debug("unable to signal process group %s: %s", pgid, e)


async def terminate_process_tree(
    process: Process,
    grace: float = TERMINATE_GRACE_SECONDS,
    process_group: bool = False,
) -> None:
    """
    Terminate a process and every descendant it spawned.

    Descendants are enumerated before the parent is signalled, since they are
    re-parented (and no longer discoverable) once it exits. With
    ``process_group`` the process must lead its own session (POSIX only); the
    whole group is signalled too, which also reaches descendants orphaned
    before this call. Each process gets ``grace`` seconds to exit after
    SIGTERM before it is killed.

    Args:
        process: The process to terminate
        grace: Seconds to wait between terminate and kill
        process_group: Also signal the process group led by ``process``
    """
    children = await to_thread.run_sync(_collect_children, process.pid)
    logger.debug(
        "terminating process tree of %s (%d descendants)", process.pid, len(children)
    )

    if process_group:
        _signal_group(process.pid, signal.SIGTERM)

    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            continue

    try:
        process.terminate()
    except ProcessLookupError:
        logger.debug("process %s already exited", process.pid)

    with move_on_after(grace):
        await process.wait()
    if process.returncode is None:
        logger.warning("process %s ignored terminate, killing it", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    if children:
        _, alive = await to_thread.run_sync(psutil.wait_procs, children, grace)
        for child in alive:
            logger.warning("descendant %s ignored terminate, killing it", child.pid)
            try:
                child.kill()
            except psutil.NoSuchProcess:
                continue

    if process_group:
        _signal_group(process.pid, signal.SIGKILL)


async def _read_stream(stream: Optional[ByteReceiveStream], chunks: List[bytes]) -> None:
    if stream is None:
        return
    try:
        async for chunk in stream:
            chunks.append(chunk)
    except (anyio.ClosedResourceError, anyio.BrokenResourceError):
        logger.debug("stream closed while reading", exc_info=True)


class CommandExecutor(ICommandExecutor):
    """
    Runs external commands as argument vectors and reports the result as an
    ``ActionOutcome``. Command-level failures are returned, never raised.
    """

    def __init__(
        self,
        encoding: str = "utf-8",
        envs: Optional[Dict[str, str]] = None,
        terminate_grace: float = TERMINATE_GRACE_SECONDS,
    ):
        self._encoding = encoding
        self._envs = {**os.environ, **(envs or {})}
        self._terminate_grace = terminate_grace
        # POSIX: each command leads its own process group.
        self._process_group = sys.platform != "win32"

    async def _terminate(self, process: Process) -> None:
        await terminate_process_tree(process, self._terminate_grace, self._process_group)

    def _decode(self, chunks: List[bytes]) -> str:
        return b"".join(chunks).decode(self._encoding, errors="replace")

    async def run(
        self,
        command: Sequence[str],
        directory: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ActionOutcome:
        if not command:
            raise ValueError("Command is empty")

        display = " ".join(command)
        argv = [resolve_executable(command[0], self._envs.get("PATH")), *command[1:]]
        logger.debug("running %s in %s (timeout: %s)", argv, directory, timeout)

        start_time = anyio.current_time()
        try:
            process = await open_process(
                argv,
                cwd=directory,
                env=self._envs,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=self._process_group,
            )
        except OSError as e:
            logger.warning("Failed to start %r: %s", display, e)
            return ActionOutcome.failure(
                ErrorCode.COMMAND_NOT_STARTED,
                f"Failed to start command '{display}': {e}",
                stderr=str(e),
                working_directory=directory,
            )

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        timed_out = False
        try:
            with move_on_after(timeout) as scope:
                async with create_task_group() as tg:
                    tg.start_soon(_read_stream, process.stdout, stdout_chunks)
                    tg.start_soon(_read_stream, process.stderr, stderr_chunks)
                    await process.wait()
            if scope.cancelled_caught:
                # Also covers a parent that exited while a descendant holds its pipes.
                timed_out = True
                logger.warning("%r timed out after %s seconds", display, timeout)
                await self._terminate(process)
        finally:
            with anyio.CancelScope(shield=True):
                if process.returncode is None:
                    await self._terminate(process)
                await process.aclose()

        execution_time = anyio.current_time() - start_time
        stdout = self._decode(stdout_chunks)
        stderr = self._decode(stderr_chunks)

        if timed_out:
            return ActionOutcome(
                succeeded=False,
                stdout=stdout,
                stderr=stderr,
                error_code=ErrorCode.COMMAND_TIMED_OUT,
                error_message=f"Command '{display}' timed out after {timeout} seconds",
                working_directory=directory,
                execution_time=execution_time,
            )

        exit_code = process.returncode
        if exit_code == 0:
            logger.debug("%r completed in %.2fs", display, execution_time)
            return ActionOutcome(
                succeeded=True,
                stdout=stdout,
                stderr=stderr,
                exit_code=0,
                working_directory=directory,
                execution_time=execution_time,
            )

        logger.warning("%r exited with code %s", display, exit_code)
        return ActionOutcome(
            succeeded=False,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            error_code=ErrorCode.COMMAND_FAILED,
            error_message=f"Command '{display}' exited with code {exit_code}",
            working_directory=directory,
            execution_time=execution_time,
        )


__all__ = ["CommandExecutor", "resolve_executable", "terminate_process_tree"]
