"""Fatal error types raised by the harness.

Per-record engine failures never raise; they are recorded as status columns in
the output logs. The exceptions below cover everything that must stop the
current process: harness-owned files that cannot be opened, malformed input,
engine contract violations, and stage-level failures (initialization,
finalization, gallery load). ``scripts.validate_1n.main`` is the single place
that turns them into process exit codes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from identharness.types import ReturnStatus

__all__ = [
    "HarnessError",
    "InputFileError",
    "InputFormatError",
    "ProtocolError",
    "StageError",
    "TemplateStoreError",
    "ImplementationLoadError",
]

EXIT_FAILURE = 1


class HarnessError(RuntimeError):
    """Base class for errors that terminate the current harness process."""

    exit_code: int = EXIT_FAILURE


class InputFileError(HarnessError):
    """A harness-owned file (input, shard, log, EDB, manifest, image) could not be opened."""

    def __init__(self, path: Path, reason: str = "") -> None:
        self.path = Path(path)
        self.reason = reason
        message = f"Failed to open {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InputFormatError(HarnessError):
    def __init__(self, path: Path, line_number: int, message: str) -> None:
        self.path = Path(path)
        self.line_number = line_number
        super().__init__(f"{self.path}:{line_number}: {message}")


class ProtocolError(HarnessError):
    """The engine returned output that violates the interface contract."""


class StageError(HarnessError):
    """A whole-run stage (init, finalize, load) reported non-success."""

    def __init__(self, operation: str, status: Optional[ReturnStatus] = None, message: str = "") -> None:
        self.operation = operation
        self.status = status
        detail = message or (str(status) if status is not None else "failed")
        super().__init__(f"{operation}() returned error: {detail}")


class TemplateStoreError(HarnessError):
    """EDB and manifest disagree about offsets or sizes."""


class ImplementationLoadError(HarnessError):
    pass
