from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any, Protocol

from .schedule_models import Entry, StoreError

logger = logging.getLogger(__name__)


class EntryStore(Protocol):
    """Persistence collaborator; implementations raise StoreError on rejection."""

    def create(self, entry: Entry) -> str: ...

    def update(self, entry_id: str, fields: dict[str, Any]) -> None: ...

    def delete(self, entry_id: str) -> None: ...


class MemoryEntryStore:
    """
    In-process entry store.

    Keeps the last committed state of every entry and a call log, and can be
    switched to reject updates so revert paths can be exercised.
    """

    def __init__(self, entries: list[Entry] | None = None, reject_updates: bool = False):
        self._entries: dict[str, Entry] = {}
        for entry in entries or []:
            if entry.id is None:
                raise StoreError("stored entries must have an id")
            self._entries[entry.id] = replace(entry)
        self.reject_updates = reject_updates
        self.calls: list[tuple[str, Any]] = []

    def create(self, entry: Entry) -> str:
        entry_id = entry.id or uuid.uuid4().hex
        if entry_id in self._entries:
            raise StoreError(f"entry '{entry_id}' already exists")
        self._entries[entry_id] = replace(entry, id=entry_id)
        self.calls.append(("create", entry_id))
        logger.debug("created entry %s", entry_id)
        return entry_id

    def update(self, entry_id: str, fields: dict[str, Any]) -> None:
        self.calls.append(("update", (entry_id, dict(fields))))
        if self.reject_updates:
            raise StoreError(f"update of entry '{entry_id}' rejected")
        current = self._entries.get(entry_id)
        if current is None:
            raise StoreError(f"unknown entry '{entry_id}'")
        self._entries[entry_id] = replace(current, **fields)

    def delete(self, entry_id: str) -> None:
        self.calls.append(("delete", entry_id))
        if self._entries.pop(entry_id, None) is None:
            raise StoreError(f"unknown entry '{entry_id}'")

    def get(self, entry_id: str) -> Entry | None:
        return self._entries.get(entry_id)

    def snapshot(self) -> list[Entry]:
        """Current entry set, as a live query would deliver it."""
        return [replace(entry) for entry in self._entries.values()]
