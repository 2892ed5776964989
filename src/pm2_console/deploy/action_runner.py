"""
Deployment actions run against the working directory of a supervised process.

Each invocation is one pass: resolve the process, check preconditions in a
fixed order, then spawn the tool once. Preconditions fail fast without
spawning anything, and nothing is retried.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..command.exceptions import (
    ConsoleException,
    DirectoryMissingError,
    ManifestInvalidError,
    ManifestMissingError,
    NoWorkingDirectoryError,
    ScriptMissingError,
)
from ..command.interfaces import ICommandExecutor, IProcessDirectoryClient
from ..command.models import ActionKind, ActionOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionBudgets:
    """Timeout, in seconds, allotted to each deployment action."""

    pull: float = 120
    install: float = 300
    build: float = 600
    deploy: float = 900

    def for_action(self, action: ActionKind) -> float:
        return {
            ActionKind.PULL_SOURCE: self.pull,
            ActionKind.INSTALL_DEPENDENCIES: self.install,
            ActionKind.BUILD: self.build,
            ActionKind.DEPLOY: self.deploy,
        }[action]


# Script entry each action requires in the manifest, if any.
REQUIRED_SCRIPTS: Dict[ActionKind, str] = {
    ActionKind.BUILD: "build",
    ActionKind.DEPLOY: "deploy",
}


class DeploymentActionRunner:
    def __init__(
        self,
        directory_client: IProcessDirectoryClient,
        executor: ICommandExecutor,
        git_command: str = "git",
        npm_command: str = "npm",
        manifest_name: str = "package.json",
        budgets: Optional[ActionBudgets] = None,
    ):
        self._directory_client = directory_client
        self._executor = executor
        self._git_command = git_command
        self._npm_command = npm_command
        self._manifest_name = manifest_name
        self._budgets = budgets or ActionBudgets()

    def build_command(self, action: ActionKind) -> List[str]:
        """The argument vector run inside the working directory for ``action``."""
        if action == ActionKind.PULL_SOURCE:
            return [self._git_command, "pull"]
        if action == ActionKind.INSTALL_DEPENDENCIES:
            return [self._npm_command, "install"]
        if action in REQUIRED_SCRIPTS:
            return [self._npm_command, "run", REQUIRED_SCRIPTS[action]]
        raise ValueError(f"{action.value} is not a deployment action")

    async def _resolve_working_directory(self, process_name: str) -> Path:
        record = await self._directory_client.get_process(process_name)
        if not record.working_directory:
            raise NoWorkingDirectoryError(
                f"No working directory found for process {process_name}"
            )
        working_dir = Path(record.working_directory)
        if not working_dir.is_dir():
            raise DirectoryMissingError(
                f"Working directory {working_dir} does not exist"
            )
        return working_dir

    def _check_manifest(self, action: ActionKind, working_dir: Path) -> None:
        if action == ActionKind.PULL_SOURCE:
            return

        manifest_path = working_dir / self._manifest_name
        if not manifest_path.is_file():
            raise ManifestMissingError(f"{self._manifest_name} not found in {working_dir}")

        script = REQUIRED_SCRIPTS.get(action)
        if script is None:
            return

        try:
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ManifestInvalidError(
                f"Invalid {self._manifest_name} in {working_dir}", details=str(e)
            ) from e
        if not isinstance(manifest, dict):
            raise ManifestInvalidError(
                f"Invalid {self._manifest_name} in {working_dir}",
                details="top-level value is not an object",
            )

        scripts = manifest.get("scripts")
        if not isinstance(scripts, dict) or script not in scripts:
            raise ScriptMissingError(
                f"No {script} script found in {self._manifest_name} in {working_dir}"
            )

    async def run(self, process_name: str, action: ActionKind) -> ActionOutcome:
        """
        Run one deployment action for ``process_name``.

        Returns:
            ActionOutcome: Precondition failures carry their own error code and
            never spawn anything; otherwise the executor's outcome is returned
            verbatim, stamped with the working directory.
        """
        command = self.build_command(action)
        working_dir: Optional[Path] = None
        try:
            working_dir = await self._resolve_working_directory(process_name)
            self._check_manifest(action, working_dir)
        except ConsoleException as e:
            logger.info("%s for %s rejected: %s", action.value, process_name, e.message)
            return ActionOutcome.failure(
                e.code,
                e.message,
                stderr=e.details,
                working_directory=str(working_dir) if working_dir else None,
            )

        timeout = self._budgets.for_action(action)
        logger.info(
            "Running %s for %s in %s (budget %ss)",
            " ".join(command),
            process_name,
            working_dir,
            timeout,
        )
        outcome = await self._executor.run(command, directory=str(working_dir), timeout=timeout)
        if outcome.working_directory != str(working_dir):
            outcome = outcome.model_copy(update={"working_directory": str(working_dir)})
        return outcome

    async def pull_source(self, process_name: str) -> ActionOutcome:
        return await self.run(process_name, ActionKind.PULL_SOURCE)

    async def install_dependencies(self, process_name: str) -> ActionOutcome:
        return await self.run(process_name, ActionKind.INSTALL_DEPENDENCIES)

    async def build(self, process_name: str) -> ActionOutcome:
        return await self.run(process_name, ActionKind.BUILD)

    async def deploy(self, process_name: str) -> ActionOutcome:
        return await self.run(process_name, ActionKind.DEPLOY)


__all__ = ["ActionBudgets", "DeploymentActionRunner"]
