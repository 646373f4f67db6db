"""JSON-file event store with atomic-replace writes."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from stempel.errors import StateError, StorageCorruptError, StorageIoError, StorageNotFoundError
from stempel.session import derive_state

from .models import EventLog, log_from_payload, log_to_payload

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix=f"{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as file_handle:
            json.dump(payload, file_handle, indent=2)
        os.replace(temp_path, path)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)


class EventStore:
    """Reads and rewrites one storage file; no locking, single writer assumed."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read_raw(self) -> Any:
        """Parsed JSON content of the file without any layout checks."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise StorageNotFoundError(str(self.path)) from None
        except UnicodeDecodeError as exc:
            raise StorageCorruptError(str(self.path), f"not valid UTF-8: {exc}") from exc
        except OSError as exc:
            logger.error("storage: read failed path=%s error=%s", self.path, exc)
            raise StorageIoError(str(self.path), exc, operation="read") from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageCorruptError(str(self.path), f"invalid JSON: {exc}") from exc

    def load(self) -> EventLog:
        raw = self.read_raw()
        try:
            log = log_from_payload(raw)
        except ValueError as exc:
            raise StorageCorruptError(str(self.path), str(exc)) from exc
        try:
            derive_state(log)
        except StateError as exc:
            raise StorageCorruptError(str(self.path), f"inconsistent event sequence, {exc.message}") from exc
        logger.debug("storage: loaded %s events from %s", len(log), self.path)
        return log

    def load_or_empty(self) -> EventLog:
        try:
            return self.load()
        except StorageNotFoundError:
            logger.info("storage: no file at %s yet, starting with an empty log", self.path)
            return EventLog()

    def save(self, log: EventLog) -> None:
        try:
            atomic_write_json(self.path, log_to_payload(log))
        except OSError as exc:
            logger.error("storage: write failed path=%s error=%s", self.path, exc)
            raise StorageIoError(str(self.path), exc) from exc
        logger.debug("storage: wrote %s events to %s", len(log), self.path)
