"""
Error taxonomy for EnvRun.

Each fatal error class maps to one stable process exit code so calling
scripts can branch on the kind of failure.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    """Exit codes returned by envrun itself (never by the child)."""

    SUCCESS = 0
    GENERAL_ERROR = 2
    PROCESS_START_ERROR = 3
    CONFIGURATION_ERROR = 4
    DATABASE_FORMAT_ERROR = 5
    STORE_IO_ERROR = 6


class EnvRunError(Exception):
    """Base class for fatal EnvRun errors."""

    exit_code: ExitCode = ExitCode.GENERAL_ERROR


class ConfigurationError(EnvRunError):
    """Raised when the database location or other settings are invalid."""

    exit_code = ExitCode.CONFIGURATION_ERROR


class DatabaseFormatError(EnvRunError):
    """Raised when a line of the database file cannot be parsed."""

    exit_code = ExitCode.DATABASE_FORMAT_ERROR

    def __init__(self, path: Path | str, line_number: int, line: str) -> None:
        self.path = Path(path)
        self.line_number = line_number
        self.line = line
        super().__init__(
            f"Format error in database file {self.path}, line {line_number} ({line})"
        )


class StoreIOError(EnvRunError):
    """Raised when the database file cannot be opened, read or written."""

    exit_code = ExitCode.STORE_IO_ERROR


class StoreLockError(StoreIOError):
    """Raised when another invocation holds the database lock."""


class ProcessStartError(EnvRunError):
    """Raised when the child process could not be created."""

    exit_code = ExitCode.PROCESS_START_ERROR
