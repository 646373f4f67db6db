"""Typed errors raised by the tracker core and storage layers."""

from __future__ import annotations

import json
from typing import Any


class StempelError(Exception):
    """Base error with a structured ``error`` payload."""

    code = "error"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.error: dict[str, Any] = {"code": self.code, "message": message, **details}
        super().__init__(message)

    def to_json(self) -> str:
        return json.dumps(self.error, default=str)


class ParseError(StempelError):
    """Malformed offset, time-of-day, duration or month input."""

    code = "parse_error"

    def __init__(self, message: str, fragment: str) -> None:
        self.fragment = fragment
        super().__init__(f"{message}: '{fragment}'", fragment=fragment)


class StateError(StempelError):
    """Action not allowed in the current work session state."""

    code = "state_error"

    def __init__(self, action: str, state: str, message: str) -> None:
        self.action = action
        self.state = state
        super().__init__(message, action=action, state=state)


class StorageError(StempelError):
    code = "storage_error"


class StorageNotFoundError(StorageError):
    """Storage file does not exist yet; callers treat this as an empty log."""

    code = "storage_not_found"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Storage file does not exist: {path}", path=path)


class StorageCorruptError(StorageError):
    code = "storage_corrupt"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Storage file {path} is corrupt: {reason}", path=path, reason=reason)


class StorageIoError(StorageError):
    code = "storage_io"

    def __init__(self, path: str, cause: OSError, operation: str = "write") -> None:
        self.path = path
        self.cause = cause
        self.operation = operation
        super().__init__(
            f"Failed to {operation} storage file {path}: {cause}",
            path=path,
            cause=str(cause),
            operation=operation,
        )


class MigrationError(StempelError):
    """Input matches neither the legacy nor the current storage layout."""

    code = "migration_error"
