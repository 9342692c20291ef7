import json
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from src.domain.models import WireModel


class ReportUrgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MedicalTerm(WireModel):
    term: str
    explanation: str


class ReportAnalysisResult(WireModel):
    report_type: str
    summary: str
    key_findings: List[str]
    possible_conditions: List[str]
    medical_terms_explained: List[MedicalTerm] = []
    recommendations: List[str]
    urgency_level: ReportUrgency


class DialogueTurn(BaseModel):
    question: str = ""
    is_complete: bool = False
    error: Optional[str] = None


def wire_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    return model.model_json_schema(by_alias=True)


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """
    Return the reply parsed as a JSON object, or the first top-level JSON
    object embedded in it. None when the reply holds no JSON object at all.
    """
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    start = raw.find("{")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(raw, start)
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass
        start = raw.find("{", start + 1)
    return None
