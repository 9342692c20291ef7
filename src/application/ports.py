from typing import Any, Dict, List, Optional, Protocol

from src.domain.models import HistoryEntry, UserProfile


class LLMPort(Protocol):
    def generate(
        self,
        messages: List[dict],
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
    ) -> str:
        """
        Accepts chat-style messages and returns the assistant's text.

        When a JSON schema is given the engine is asked for structured output
        matching it; the raw reply is returned either way.
        """
        ...

    def analyze_image(
        self, messages: List[dict], json_schema: Optional[Dict[str, Any]] = None, schema_name: str = "response"
    ) -> str:
        """Same as generate, routed to a vision-capable model."""
        ...

    def transcribe(self, messages: List[dict]) -> str:
        """Same as generate, routed to an audio-capable model."""
        ...


class HistoryRepositoryPort(Protocol):
    def add(self, entry: HistoryEntry) -> HistoryEntry:
        ...

    def get(self, user_id: str, entry_id: str) -> Optional[HistoryEntry]:
        ...

    def save(self, entry: HistoryEntry) -> HistoryEntry:
        ...

    def delete(self, user_id: str, entry_id: str) -> bool:
        ...

    def list_recent(self, user_id: str, limit: int) -> List[HistoryEntry]:
        ...


class ProfileRepositoryPort(Protocol):
    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...
