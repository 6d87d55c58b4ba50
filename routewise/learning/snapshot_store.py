"""Durable snapshot storage for learning state.

Persistence model:
    - One JSON document per store (`learning.json` by default).
    - Writes go to `<path>.tmp` and are moved into place with `os.replace`, so
      readers never observe a partially written snapshot.
    - A missing or unreadable snapshot loads as `None`; the learning system
      then starts empty.
"""

import json
import logging
import os
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def load(self) -> dict[str, Any] | None:
        ...

    def save(self, snapshot: dict[str, Any]) -> None:
        ...


def atomic_json_save(path: str, data: dict[str, Any]) -> None:
    """Persist JSON data atomically via temporary file replacement.

    Args:
        path: Destination JSON path.
        data: JSON-serializable payload.

    Side effects:
        Writes `<path>.tmp` and atomically replaces `path`.
    """
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


class JsonFileSnapshotStore:
    """Snapshot store backed by one JSON file under `directory`."""

    def __init__(self, directory: str, filename: str = "learning.json"):
        self.directory = directory
        self.path = os.path.join(directory, filename)

    def load(self) -> dict[str, Any] | None:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to load learning snapshot from %s", self.path)
            return None

        if not isinstance(data, dict):
            logger.warning("Ignoring learning snapshot with unexpected shape at %s", self.path)
            return None
        return data

    def save(self, snapshot: dict[str, Any]) -> None:
        os.makedirs(self.directory, exist_ok=True)
        atomic_json_save(self.path, snapshot)


class MemorySnapshotStore:
    """Process-local store; keeps the last saved snapshot in memory."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self.snapshot = initial
        self.saves = 0

    def load(self) -> dict[str, Any] | None:
        return json.loads(json.dumps(self.snapshot)) if self.snapshot is not None else None

    def save(self, snapshot: dict[str, Any]) -> None:
        self.snapshot = json.loads(json.dumps(snapshot))
        self.saves += 1
