"""
Facade the web layer and CLI talk to. It wires the supervisor client, the log
reader and the deployment runner around one command executor, and routes each
validated ``ActionRequest`` to the component that owns it.
"""

import logging
from typing import List, Optional, Tuple

from anyio import to_thread

from .command.executor import CommandExecutor
from .command.interfaces import ICommandExecutor, ILogReader, IProcessDirectoryClient
from .command.models import (
    ActionOutcome,
    ActionRequest,
    LogFileDescriptor,
    LogKind,
    LogTail,
    ProcessRecord,
)
from .config import DashboardConfig
from .deploy.action_runner import DeploymentActionRunner
from .logs.log_reader import LogReader
from .supervisor.directory_client import ProcessDirectoryClient

logger = logging.getLogger(__name__)


class DashboardService:
    def __init__(
        self,
        directory_client: IProcessDirectoryClient,
        log_reader: ILogReader,
        action_runner: DeploymentActionRunner,
    ):
        self._directory_client = directory_client
        self._log_reader = log_reader
        self._action_runner = action_runner

    @classmethod
    def from_config(
        cls, config: DashboardConfig, executor: Optional[ICommandExecutor] = None
    ) -> "DashboardService":
        executor = executor or CommandExecutor(encoding=config.encoding)
        directory_client = ProcessDirectoryClient(
            executor,
            pm2_command=config.pm2_command,
            list_timeout=config.list_timeout,
            lifecycle_timeout=config.lifecycle_timeout,
        )
        action_runner = DeploymentActionRunner(
            directory_client,
            executor,
            git_command=config.git_command,
            npm_command=config.npm_command,
            manifest_name=config.manifest_name,
            budgets=config.budgets,
        )
        log_reader = LogReader(config.log_dir, encoding=config.encoding)
        return cls(directory_client, log_reader, action_runner)

    async def list_processes(self) -> List[ProcessRecord]:
        return await self._directory_client.list_processes()

    async def get_process_detail(
        self, name: str
    ) -> Tuple[ProcessRecord, List[LogFileDescriptor]]:
        record = await self._directory_client.get_process(name)
        return record, await self.get_log_descriptors(name)

    async def get_log_descriptors(self, name: str) -> List[LogFileDescriptor]:
        return await to_thread.run_sync(self._log_reader.get_log_descriptors, name)

    async def read_log(self, name: str, kind: LogKind, lines: int) -> LogTail:
        """
        Tail one log. A file that is missing, or vanishes between lookup and
        read, yields empty content rather than an error.
        """

        def _read() -> LogTail:
            descriptor = self._log_reader.get_log_descriptor(name, kind)
            content = self._log_reader.tail(descriptor.path, lines) if descriptor else ""
            return LogTail(
                process_name=name,
                kind=kind,
                file_name=f"{name}-{kind.value}.log",
                path=descriptor.path if descriptor else self._log_reader.log_path(name, kind),
                lines=lines,
                exists=descriptor is not None,
                content=content,
            )

        return await to_thread.run_sync(_read)

    async def dispatch(self, request: ActionRequest) -> ActionOutcome:
        action = request.action_kind
        logger.info("Dispatching %s for %s", action.value, request.process_name)
        if action.is_lifecycle:
            return await self._directory_client.apply_lifecycle_action(
                request.process_name, action
            )
        return await self._action_runner.run(request.process_name, action)


__all__ = ["DashboardService"]
