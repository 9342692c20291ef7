import logging
from typing import List, Optional

from pydantic import BaseModel

from src.application.history import CONTEXT_HISTORY_LIMIT, HistoryLifecycleManager
from src.application.ports import ProfileRepositoryPort
from src.domain.models import HistoryEntry, UserProfile
from src.domain.rules import needs_extra_caution


logger = logging.getLogger(__name__)


UNCURED_HEADER = "RECENT UNCURED SYMPTOMS (still relevant, consider these in your assessment):"
CURED_HEADER = "PREVIOUSLY CURED SYMPTOMS (must NOT be reused in the current assessment):"
CAUTION_NOTE = (
    "CAUTION: The patient is {age} years old. Handle with extra caution and weigh "
    "findings more conservatively for this age group."
)


class PatientContext(BaseModel):
    """Profile and history bundle handed to the reasoning engine."""

    profile: Optional[UserProfile] = None
    uncured: List[HistoryEntry] = []
    cured: List[HistoryEntry] = []
    uncured_symptoms: List[str] = []

    @property
    def is_empty(self) -> bool:
        return not (self.profile or self.uncured or self.cured or self.uncured_symptoms)

    @property
    def extra_caution(self) -> bool:
        return self.profile is not None and needs_extra_caution(self.profile.age)

    def render(self) -> str:
        blocks: List[str] = []

        if self.profile:
            lines = [
                "USER PROFILE:",
                f"- Name: {self.profile.full_name}",
                f"- Age: {self.profile.age if self.profile.age is not None else 'Unknown'} years old",
                f"- Known Health Issues: {self.profile.health_issues or 'None reported'}",
            ]
            if self.extra_caution:
                lines.append(CAUTION_NOTE.format(age=self.profile.age))
            blocks.append("\n".join(lines))

        if self.uncured:
            lines = [UNCURED_HEADER]
            for idx, entry in enumerate(self.uncured, 1):
                lines.append(
                    f"{idx}. [{entry.created_at.date().isoformat()}] {entry.symptoms_text}"
                    f" - Urgency: {entry.urgency_level.value}"
                )
            blocks.append("\n".join(lines))

        if self.cured:
            lines = [CURED_HEADER]
            for idx, entry in enumerate(self.cured, 1):
                lines.append(f"{idx}. [{entry.created_at.date().isoformat()}] {entry.symptoms_text} - (CURED)")
            blocks.append("\n".join(lines))

        if self.uncured_symptoms:
            blocks.append(
                "NOTE: User has confirmed these previous symptoms are NOT yet cured and should be considered: "
                + ", ".join(self.uncured_symptoms)
            )

        return "\n\n".join(blocks)


class ContextAssembler:
    def __init__(
        self,
        history: Optional[HistoryLifecycleManager] = None,
        profiles: Optional[ProfileRepositoryPort] = None,
        history_limit: int = CONTEXT_HISTORY_LIMIT,
    ):
        self.history = history
        self.profiles = profiles
        self.history_limit = history_limit

    def assemble(self, user_id: Optional[str] = None, uncured_symptoms: Optional[List[str]] = None) -> PatientContext:
        extra = [s.strip() for s in (uncured_symptoms or []) if s and s.strip()]
        if not user_id:
            return PatientContext(uncured_symptoms=extra)

        profile = None
        if self.profiles is not None:
            try:
                profile = self.profiles.get_profile(user_id)
            except Exception as e:
                logger.warning("Profile lookup failed for user %s; continuing without it: %s", user_id, e)

        entries: List[HistoryEntry] = []
        if self.history is not None:
            try:
                entries = self.history.list_recent(user_id, self.history_limit)
            except Exception as e:
                logger.warning("History lookup failed for user %s; continuing without it: %s", user_id, e)

        return PatientContext(
            profile=profile,
            uncured=[e for e in entries if not e.is_cured],
            cured=[e for e in entries if e.is_cured],
            uncured_symptoms=extra,
        )
