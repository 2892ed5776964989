"""
Configuration for the PM2 console.

Values are resolved once at startup, lowest precedence first: field defaults,
an optional YAML file, an optional dotenv file, the process environment
(``PM2_CONSOLE_<FIELD>``), then explicit overrides from the command line.
The resulting ``DashboardConfig`` is passed to component constructors.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator

from .deploy.action_runner import ActionBudgets

logger = logging.getLogger(__name__)

ENV_PREFIX = "PM2_CONSOLE_"
CONFIG_FILE_ENV = f"{ENV_PREFIX}CONFIG_FILE"


def default_log_dir() -> Path:
    return Path.home() / ".pm2" / "logs"


class DashboardConfig(BaseModel):
    """
    Read-only configuration shared by every request.
    """

    log_dir: Path = Field(default_factory=default_log_dir, description="Directory holding <name>-<kind>.log files")
    host: str = Field("127.0.0.1", description="Address the web server listens on")
    port: int = Field(3002, ge=0, le=65535, description="Port the web server listens on")
    pm2_command: str = Field("pm2", description="Supervisor executable")
    git_command: str = Field("git", description="Version-control executable")
    npm_command: str = Field("npm", description="Package tool executable")
    manifest_name: str = Field("package.json", description="Project manifest declaring build/deploy scripts")
    encoding: str = Field("utf-8", description="Encoding of command output and log files")
    list_timeout: float = Field(30, gt=0, description="Seconds allowed for listing processes")
    lifecycle_timeout: float = Field(60, gt=0, description="Seconds allowed for start/stop/restart")
    pull_timeout: float = Field(120, gt=0, description="Seconds allowed for a source pull")
    install_timeout: float = Field(300, gt=0, description="Seconds allowed for dependency install")
    build_timeout: float = Field(600, gt=0, description="Seconds allowed for a build")
    deploy_timeout: float = Field(900, gt=0, description="Seconds allowed for a deploy")
    default_log_lines: int = Field(100, gt=0, description="Tail length when none is requested")
    allowed_log_lines: Tuple[int, ...] = Field(
        (50, 100, 200, 500, 1000), description="Tail lengths offered by the web surface"
    )

    @field_validator("log_dir")
    @classmethod
    def _expand_log_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("allowed_log_lines", mode="before")
    @classmethod
    def _split_log_lines(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(int(part) for part in value.split(",") if part.strip())
        return value

    @property
    def budgets(self) -> ActionBudgets:
        return ActionBudgets(
            pull=self.pull_timeout,
            install=self.install_timeout,
            build=self.build_timeout,
            deploy=self.deploy_timeout,
        )


def parse_env_vars(env: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """Collect ``PM2_CONSOLE_*`` variables whose suffix names a config field."""
    values = {}
    for env_key, env_value in env.items():
        if not env_key.startswith(ENV_PREFIX) or env_value is None:
            continue
        field_name = env_key[len(ENV_PREFIX):].lower()
        if field_name in DashboardConfig.model_fields:
            values[field_name] = env_value
    return values


def load_config_file(config_file: Path) -> Dict[str, Any]:
    """Load config values from a YAML mapping."""
    with open(config_file, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_file} must contain a mapping")
    unknown = set(data) - set(DashboardConfig.model_fields)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", config_file, sorted(unknown))
    return {k: v for k, v in data.items() if k in DashboardConfig.model_fields}


def load_config(
    env: Optional[Mapping[str, Optional[str]]] = None,
    config_file: Optional[Path] = None,
    env_file: Optional[Path] = None,
    **overrides: Any,
) -> DashboardConfig:
    """
    Build the configuration from all sources.

    Args:
        env: Environment to read, defaults to ``os.environ``.
        config_file: YAML file; falls back to ``PM2_CONSOLE_CONFIG_FILE``.
        env_file: dotenv file whose values sit below the real environment.
        **overrides: Explicit values, e.g. from CLI options. ``None`` values are ignored.
    """
    env = dict(os.environ if env is None else env)
    values: Dict[str, Any] = {}

    config_file = config_file or (Path(env[CONFIG_FILE_ENV]) if env.get(CONFIG_FILE_ENV) else None)
    if config_file:
        logger.info("Loading config from: %s", config_file)
        values.update(load_config_file(Path(config_file)))

    if env_file:
        logger.info("Loading environment from: %s", env_file)
        values.update(parse_env_vars(dotenv_values(env_file)))

    values.update(parse_env_vars(env))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return DashboardConfig(**values)


__all__ = ["DashboardConfig", "load_config"]
