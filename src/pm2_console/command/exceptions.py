"""
This module defines custom exceptions for the PM2 console.
"""
from typing import Optional

from .models import ErrorCode


class ConsoleException(Exception):
    """Base class for all custom console exceptions."""

    code: ErrorCode = ErrorCode.COMMAND_FAILED

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or ""


class DirectoryUnavailableError(ConsoleException):
    """Raised when the supervisor cannot be reached or its process list cannot be parsed."""

    code = ErrorCode.DIRECTORY_UNAVAILABLE


class ProcessNotFoundError(ConsoleException):
    """Raised when a process name is absent from the supervisor listing."""

    code = ErrorCode.PROCESS_NOT_FOUND


class PreconditionError(ConsoleException):
    """Base class for deployment preconditions that fail before anything is spawned."""


class NoWorkingDirectoryError(PreconditionError):
    code = ErrorCode.NO_WORKING_DIRECTORY


class DirectoryMissingError(PreconditionError):
    code = ErrorCode.DIRECTORY_MISSING


class ManifestMissingError(PreconditionError):
    code = ErrorCode.MANIFEST_MISSING


class ManifestInvalidError(PreconditionError):
    code = ErrorCode.MANIFEST_INVALID


class ScriptMissingError(PreconditionError):
    code = ErrorCode.SCRIPT_MISSING


class WebInterfaceError(ConsoleException):
    """Raised for web interface-related errors."""
