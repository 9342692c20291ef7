from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Likelihood(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class UrgencyLevel(str, Enum):
    EMERGENCY = "Emergency"
    URGENT = "Urgent"
    NON_URGENT = "Non-urgent"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    UrgencyLevel.NON_URGENT: 0,
    UrgencyLevel.URGENT: 1,
    UrgencyLevel.EMERGENCY: 2,
}


class WireModel(BaseModel):
    """Base for contracts exchanged with the reasoning engine and callers (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class UserProfile(BaseModel):
    full_name: str
    age: Optional[int] = Field(None, ge=0, le=150)
    health_issues: Optional[str] = None

    @field_validator("health_issues")
    @classmethod
    def blank_issues_to_none(cls, v: Optional[str]):
        if v is not None:
            v = v.strip()
            if len(v) == 0:
                return None
        return v


class Condition(WireModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    likelihood: Likelihood


class AssessmentResult(WireModel):
    possible_conditions: List[Condition]
    recommendations: List[str]
    urgency_level: UrgencyLevel


class HistoryEntry(BaseModel):
    id: str
    user_id: str
    symptoms_text: str
    possible_conditions: List[Condition] = []
    recommendations: List[str] = []
    urgency_level: UrgencyLevel
    created_at: datetime
    is_cured: bool = False
    cured_at: Optional[datetime] = None

    @model_validator(mode="after")
    def cured_at_matches_status(self):
        if self.is_cured != (self.cured_at is not None):
            raise ValueError("cured_at must be set if and only if is_cured is true")
        return self
