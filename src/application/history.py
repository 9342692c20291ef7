import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from src.application.errors import PersistenceFailure
from src.application.ports import HistoryRepositoryPort
from src.domain.models import AssessmentResult, HistoryEntry


logger = logging.getLogger(__name__)


CONTEXT_HISTORY_LIMIT = 10
DISPLAY_HISTORY_LIMIT = 20


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HistoryLifecycleManager:
    """Creates history entries from finished assessments and manages their cured status."""

    def __init__(self, repository: HistoryRepositoryPort, clock: Callable[[], datetime] = utc_now):
        self.repository = repository
        self.clock = clock

    def create_entry(self, user_id: str, symptoms_text: str, result: AssessmentResult) -> HistoryEntry:
        try:
            entry = HistoryEntry(
                id=str(uuid.uuid4()),
                user_id=user_id,
                symptoms_text=symptoms_text,
                possible_conditions=list(result.possible_conditions),
                recommendations=list(result.recommendations),
                urgency_level=result.urgency_level,
                created_at=self.clock(),
            )
            return self.repository.add(entry)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Failed to save history entry: {e}") from e

    def toggle_cured(self, user_id: str, entry_id: str, new_status: bool) -> HistoryEntry:
        try:
            entry = self.repository.get(user_id, entry_id)
        except Exception as e:
            raise PersistenceFailure(f"Failed to load history entry {entry_id}: {e}") from e
        if entry is None:
            raise PersistenceFailure(
                f"History entry {entry_id} not found",
                user_message="That history entry no longer exists.",
            )

        if entry.is_cured == new_status:
            # Same status again: keep the original cured_at so repeat calls are no-ops.
            return entry

        updated = entry.model_copy(
            update={"is_cured": new_status, "cured_at": self.clock() if new_status else None}
        )
        try:
            saved = self.repository.save(HistoryEntry.model_validate(updated.model_dump()))
        except Exception as e:
            raise PersistenceFailure(f"Failed to update history entry {entry_id}: {e}") from e
        logger.info("History entry %s marked %s", entry_id, "cured" if new_status else "not cured")
        return saved

    def delete_entry(self, user_id: str, entry_id: str) -> None:
        try:
            deleted = self.repository.delete(user_id, entry_id)
        except Exception as e:
            raise PersistenceFailure(f"Failed to delete history entry {entry_id}: {e}") from e
        if not deleted:
            raise PersistenceFailure(
                f"History entry {entry_id} not found",
                user_message="That history entry no longer exists.",
            )
        logger.info("History entry %s deleted", entry_id)

    def list_recent(self, user_id: str, limit: int = DISPLAY_HISTORY_LIMIT) -> List[HistoryEntry]:
        try:
            return self.repository.list_recent(user_id, limit)
        except Exception as e:
            raise PersistenceFailure(f"Failed to load history for user {user_id}: {e}") from e

    def get_entry(self, user_id: str, entry_id: str) -> Optional[HistoryEntry]:
        try:
            return self.repository.get(user_id, entry_id)
        except Exception as e:
            raise PersistenceFailure(f"Failed to load history entry {entry_id}: {e}") from e
