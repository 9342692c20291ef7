import re
from typing import Dict, List, Optional, Tuple

from .models import UrgencyLevel


COMPLETION_MARKER = "[ANALYSIS_READY]"

# Age bounds outside which the assessment must be handled with extra caution.
ELDERLY_AGE = 65
CHILD_AGE = 12


URGENCY_SIGNS: Dict[UrgencyLevel, Dict[str, Tuple[str, ...]]] = {
    UrgencyLevel.EMERGENCY: {
        "chest_pain": ("chest pain", "chest tightness", "pain in my chest", "pressure in my chest"),
        "difficulty_breathing": (
            "difficulty breathing",
            "shortness of breath",
            "short of breath",
            "can't breathe",
            "cannot breathe",
            "trouble breathing",
            "struggling to breathe",
        ),
        "severe_bleeding": ("severe bleeding", "heavy bleeding", "uncontrolled bleeding", "won't stop bleeding"),
        "stroke_signs": ("face drooping", "facial droop", "slurred speech", "arm weakness", "signs of stroke", "having a stroke"),
        "severe_allergic_reaction": (
            "anaphylaxis",
            "severe allergic reaction",
            "throat swelling",
            "swollen throat",
            "tongue swelling",
        ),
    },
    UrgencyLevel.URGENT: {
        "high_fever": ("high fever", "fever of 39", "fever of 40", "fever of 103", "fever of 104"),
        "persistent_vomiting": ("persistent vomiting", "can't stop vomiting", "vomiting for days", "keep vomiting"),
        "severe_pain": ("severe pain", "excruciating", "unbearable pain", "worst pain"),
        "rapidly_worsening": ("rapidly worsening", "getting worse quickly", "worsening rapidly", "getting much worse"),
    },
}


URGENCY_POLICY = (
    "Guidelines for urgency:\n"
    "- Emergency: Chest pain, difficulty breathing, severe bleeding, signs of stroke, severe allergic reactions\n"
    "- Urgent: High fever, persistent vomiting, severe pain, symptoms worsening rapidly\n"
    "- Non-urgent: Mild symptoms, common cold symptoms, minor aches"
)


# Common drug names plus the stems most prescription names end with.
MEDICATION_NAMES = (
    "acetaminophen", "paracetamol", "ibuprofen", "aspirin", "naproxen", "diclofenac",
    "codeine", "tramadol", "morphine", "oxycodone", "cetirizine",
    "loratadine", "diphenhydramine", "pseudoephedrine", "dextromethorphan", "guaifenesin",
    "prednisone", "hydrocortisone", "metformin", "insulin", "warfarin", "heparin",
    "sumatriptan", "loperamide", "ondansetron", "salbutamol", "albuterol", "nitroglycerin",
)
_MEDICATION_PATTERN = re.compile(
    r"\b(?:" + "|".join(MEDICATION_NAMES) + r")\b"
    r"|\b\w{3,}(?:cillin|mycin|cycline|floxacin|prazole|statin|olol|sartan|pril|azepam|oxetine|tidine)\b",
    re.IGNORECASE,
)


_CLAUSE_BREAK = re.compile(r"[.;!?|\n]|\bbut\b")
_NEGATION = re.compile(
    r"\b(?:no|not|none|without|never|denies|deny|denied|don't|do not|doesn't|does not|haven't|have not)\b"
)


def _mentions(lowered: str, phrase: str) -> bool:
    # A negator covers the rest of its clause: "no fever, cough or chest pain".
    for clause in _CLAUSE_BREAK.split(lowered):
        start = clause.find(phrase)
        while start != -1:
            if not _NEGATION.search(clause[:start]):
                return True
            start = clause.find(phrase, start + 1)
    return False


def detect_urgency_signs(text: str) -> Dict[UrgencyLevel, List[str]]:
    """Return the policy signs found in free text, grouped by the urgency they imply."""
    lowered = (text or "").lower().replace("\u2019", "'")
    found: Dict[UrgencyLevel, List[str]] = {}
    for level, signs in URGENCY_SIGNS.items():
        for key, phrases in signs.items():
            if any(_mentions(lowered, p) for p in phrases):
                found.setdefault(level, []).append(key)
    return found


def classify_urgency(text: str) -> UrgencyLevel:
    found = detect_urgency_signs(text)
    if UrgencyLevel.EMERGENCY in found:
        return UrgencyLevel.EMERGENCY
    if UrgencyLevel.URGENT in found:
        return UrgencyLevel.URGENT
    return UrgencyLevel.NON_URGENT


def escalate_urgency(reported: UrgencyLevel, floor: UrgencyLevel) -> UrgencyLevel:
    # Never lower what the engine reported.
    return floor if floor.rank > reported.rank else reported


def find_medication_mentions(recommendations: List[str]) -> List[str]:
    mentions: List[str] = []
    for rec in recommendations:
        for match in _MEDICATION_PATTERN.finditer(rec):
            mentions.append(match.group(0))
    return mentions


def needs_extra_caution(age: Optional[int]) -> bool:
    if age is None:
        return False
    return age > ELDERLY_AGE or age < CHILD_AGE


def parse_completion_marker(reply: str) -> Tuple[str, bool]:
    """
    Split an engine reply into (question, is_complete).

    Every occurrence of the marker is removed so parsing an already-stripped
    reply yields the same question.
    """
    reply = reply or ""
    if COMPLETION_MARKER not in reply:
        return reply.strip(), False
    return reply.replace(COMPLETION_MARKER, "").strip(), True
