"""
This module defines the Pydantic data models for the PM2 console.
"""
import enum
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, enum.Enum):
    """
    Failure taxonomy shared by every component and surfaced verbatim to API clients.
    """
    DIRECTORY_UNAVAILABLE = "DirectoryUnavailable"
    PROCESS_NOT_FOUND = "ProcessNotFound"
    UNKNOWN_PROCESS = "UnknownProcess"
    NO_WORKING_DIRECTORY = "NoWorkingDirectory"
    DIRECTORY_MISSING = "DirectoryMissing"
    MANIFEST_MISSING = "ManifestMissing"
    MANIFEST_INVALID = "ManifestInvalid"
    SCRIPT_MISSING = "ScriptMissing"
    COMMAND_FAILED = "CommandFailed"
    COMMAND_NOT_STARTED = "CommandNotStarted"
    COMMAND_TIMED_OUT = "CommandTimedOut"
    INVALID_ACTION = "InvalidAction"


class ProcessStatus(str, enum.Enum):
    """
    Enumeration for the status reported by the supervisor.
    """
    ONLINE = "online"
    STOPPING = "stopping"
    STOPPED = "stopped"
    LAUNCHING = "launching"
    ERRORED = "errored"
    ONE_LAUNCH_STATUS = "one-launch-status"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ProcessStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ActionKind(str, enum.Enum):
    """
    Every action an operator can request against a supervised process.
    """
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    PULL_SOURCE = "pull_source"
    INSTALL_DEPENDENCIES = "install_dependencies"
    BUILD = "build"
    DEPLOY = "deploy"

    @property
    def is_lifecycle(self) -> bool:
        return self in (ActionKind.START, ActionKind.STOP, ActionKind.RESTART)

    @property
    def is_deployment(self) -> bool:
        return not self.is_lifecycle


class LogKind(str, enum.Enum):
    """
    The two conventional log files the supervisor writes per process.
    ``error`` holds stderr, ``out`` holds stdout.
    """
    ERROR = "error"
    OUT = "out"


class ProcessRecord(BaseModel):
    """
    A snapshot of one supervised process, produced fresh on every listing.
    """
    name: str = Field(..., description="Supervisor-assigned process name")
    id: int = Field(..., description="Supervisor-assigned numeric id")
    status: ProcessStatus = Field(ProcessStatus.UNKNOWN, description="Current status")
    restart_count: int = Field(0, ge=0, description="Number of restarts")
    cpu_percent: float = Field(0.0, description="CPU usage in percent")
    memory_bytes: int = Field(0, description="Resident memory in bytes")
    working_directory: Optional[str] = Field(None, description="Working directory of the process")
    pid: Optional[int] = Field(None, description="Operating system pid, if running")
    uptime_since: Optional[datetime] = Field(None, description="Time the process was last started")
    interpreter: Optional[str] = Field(None, description="Interpreter used to run the script")

    @property
    def memory_mb(self) -> int:
        return round(self.memory_bytes / 1024 / 1024)


class LogFileDescriptor(BaseModel):
    """
    A log file confirmed to exist at lookup time.
    """
    process_name: str = Field(..., description="Name of the owning process")
    kind: LogKind = Field(..., description="Which of the two conventional logs this is")
    path: Path = Field(..., description="Absolute path to the log file")

    @property
    def file_name(self) -> str:
        return self.path.name


class LogTail(BaseModel):
    """
    The trailing lines of one conventional log file. ``exists`` is False and
    ``content`` empty when the file is absent.
    """
    process_name: str
    kind: LogKind
    file_name: str
    path: Optional[Path] = None
    lines: int
    exists: bool
    content: str = ""


class ActionOutcome(BaseModel):
    """
    Result of one command invocation or one failed precondition check.
    """
    model_config = ConfigDict(frozen=True)

    succeeded: bool = Field(..., description="Whether the action succeeded")
    stdout: str = Field("", description="Standard output string")
    stderr: str = Field("", description="Standard error string")
    error_message: Optional[str] = Field(None, description="Human-readable failure summary")
    error_code: Optional[ErrorCode] = Field(None, description="Failure category")
    exit_code: Optional[int] = Field(None, description="Process exit code, if it ran to completion")
    working_directory: Optional[str] = Field(None, description="Directory the action ran in")
    execution_time: float = Field(0.0, description="Command execution time in seconds")

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        message: str,
        stderr: str = "",
        working_directory: Optional[str] = None,
    ) -> "ActionOutcome":
        return cls(
            succeeded=False,
            error_code=code,
            error_message=message,
            stderr=stderr,
            working_directory=working_directory,
        )

    @property
    def timed_out(self) -> bool:
        return self.error_code == ErrorCode.COMMAND_TIMED_OUT


class ActionRequest(BaseModel):
    """
    An operator request, validated before dispatch.
    """
    process_name: str = Field(..., min_length=1, description="Target process name")
    action_kind: ActionKind = Field(..., description="Requested action")
