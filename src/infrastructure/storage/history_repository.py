import logging
from typing import List, Optional

from src.application.ports import HistoryRepositoryPort
from src.domain.models import HistoryEntry
from src.infrastructure.storage.json_store import JsonFileStore


logger = logging.getLogger(__name__)


class JsonHistoryRepository(HistoryRepositoryPort):
    """Symptom history rows keyed by entry id. Every lookup is scoped to the owning user."""

    def __init__(self, storage_path: str):
        self.store = JsonFileStore(storage_path)

    def add(self, entry: HistoryEntry) -> HistoryEntry:
        with self.store.transaction() as rows:
            rows[entry.id] = entry.model_dump(mode="json")
        return entry

    def get(self, user_id: str, entry_id: str) -> Optional[HistoryEntry]:
        row = self.store.read().get(entry_id)
        if row is None or row.get("user_id") != user_id:
            return None
        return HistoryEntry.model_validate(row)

    def save(self, entry: HistoryEntry) -> HistoryEntry:
        with self.store.transaction() as rows:
            current = rows.get(entry.id)
            if current is None or current.get("user_id") != entry.user_id:
                raise KeyError(f"History entry {entry.id} not found")
            rows[entry.id] = entry.model_dump(mode="json")
        return entry

    def delete(self, user_id: str, entry_id: str) -> bool:
        with self.store.transaction() as rows:
            row = rows.get(entry_id)
            if row is None or row.get("user_id") != user_id:
                return False
            del rows[entry_id]
        return True

    def list_recent(self, user_id: str, limit: int) -> List[HistoryEntry]:
        entries = [
            HistoryEntry.model_validate(row)
            for row in self.store.read().values()
            if row.get("user_id") == user_id
        ]
        # Rows are stored in insertion order; reverse first so ties keep the newest on top.
        entries.reverse()
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]
