"""
Client for the PM2 process supervisor.

Every call goes through the command executor; nothing is cached between calls,
so each listing is a fresh snapshot of the supervisor's state.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..command.exceptions import DirectoryUnavailableError, ProcessNotFoundError
from ..command.interfaces import ICommandExecutor, IProcessDirectoryClient
from ..command.models import ActionKind, ActionOutcome, ProcessRecord, ProcessStatus
from ..command.result_normalizer import normalize_supervisor_outcome

logger = logging.getLogger(__name__)


def _uptime_since(env: Dict[str, Any]) -> Optional[datetime]:
    started_ms = env.get("pm_uptime")
    if not started_ms or env.get("status") != ProcessStatus.ONLINE.value:
        return None
    return datetime.fromtimestamp(started_ms / 1000, tz=timezone.utc)


def _to_record(item: Dict[str, Any]) -> ProcessRecord:
    env = item.get("pm2_env") or {}
    monit = item.get("monit") or {}
    return ProcessRecord(
        name=item.get("name") or env.get("name"),
        id=item.get("pm_id", env.get("pm_id", -1)),
        status=ProcessStatus.parse(env.get("status")),
        restart_count=env.get("restart_time") or 0,
        cpu_percent=monit.get("cpu") or 0.0,
        memory_bytes=monit.get("memory") or 0,
        working_directory=env.get("pm_cwd") or None,
        pid=item.get("pid") or None,
        uptime_since=_uptime_since(env),
        interpreter=env.get("exec_interpreter"),
    )


def _find_array(text: str) -> Optional[List[Any]]:
    decoder = json.JSONDecoder()
    start = text.find("[")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            logger.debug("Skipping %d bytes of noise before process list", start)
            return data
        start = text.find("[", start + 1)
    return None


def parse_process_list(text: str) -> List[ProcessRecord]:
    """
    Parse the output of ``pm2 jlist`` into process records.

    PM2 sometimes prints banners before the JSON array, e.g. a version
    mismatch warning or ``[PM2] Spawning PM2 daemon`` lines on the first call
    after boot, so each ``[`` is tried in turn until one starts a JSON array.

    Raises:
        DirectoryUnavailableError: If the text holds no JSON array of processes.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        data = _find_array(text)
        if data is None:
            raise DirectoryUnavailableError(
                f"Unable to parse supervisor process list: {e}", details=text[:2000]
            ) from e

    if not isinstance(data, list):
        raise DirectoryUnavailableError(
            f"Supervisor returned {type(data).__name__} instead of a process list",
            details=text[:2000],
        )

    records = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            records.append(_to_record(item))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Skipping malformed process entry %r: %s", item.get("name"), e)
    return records


class ProcessDirectoryClient(IProcessDirectoryClient):
    def __init__(
        self,
        executor: ICommandExecutor,
        pm2_command: str = "pm2",
        list_timeout: float = 30,
        lifecycle_timeout: float = 60,
    ):
        self._executor = executor
        self._pm2_command = pm2_command
        self._list_timeout = list_timeout
        self._lifecycle_timeout = lifecycle_timeout

    async def list_processes(self) -> List[ProcessRecord]:
        outcome = await self._executor.run(
            [self._pm2_command, "jlist"], timeout=self._list_timeout
        )
        if not outcome.succeeded:
            logger.error("Failed to list processes: %s", outcome.error_message)
            raise DirectoryUnavailableError(
                f"Supervisor unavailable: {outcome.error_message}",
                details=outcome.stderr,
            )
        return parse_process_list(outcome.stdout)

    async def get_process(self, name: str) -> ProcessRecord:
        for record in await self.list_processes():
            if record.name == name:
                return record
        raise ProcessNotFoundError(f"Process {name} not found")

    async def apply_lifecycle_action(self, name: str, action: ActionKind) -> ActionOutcome:
        if not action.is_lifecycle:
            raise ValueError(f"{action.value} is not a lifecycle action")

        logger.info("Applying %s to %s", action.value, name)
        outcome = await self._executor.run(
            [self._pm2_command, action.value, name], timeout=self._lifecycle_timeout
        )
        return normalize_supervisor_outcome(outcome, name)


__all__ = ["ProcessDirectoryClient", "parse_process_list"]
