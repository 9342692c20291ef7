import logging
from typing import List, Optional, Tuple, Union

from src.application.context import ContextAssembler
from src.application.conversation import DEFAULT_MAX_QUESTIONS, FollowUpDialogueController, continue_dialogue
from src.application.errors import PersistenceFailure
from src.application.history import DISPLAY_HISTORY_LIMIT, HistoryLifecycleManager
from src.application.ports import LLMPort
from src.application.schemas import DialogueTurn, ReportAnalysisResult
from src.application.use_cases import (
    ReportAnalysisUseCase,
    SymptomAssessmentUseCase,
    VoiceTranscriptionUseCase,
    patient_statements,
)
from src.domain.models import AssessmentResult, HistoryEntry, Message


logger = logging.getLogger(__name__)


class SymptomAssessmentService:
    """Entry point for callers: dialogue, assessment, report analysis and symptom history."""

    def __init__(
        self,
        llm: LLMPort,
        history: HistoryLifecycleManager,
        context_assembler: ContextAssembler,
        max_questions: int = DEFAULT_MAX_QUESTIONS,
    ):
        self.llm = llm
        self.history = history
        self.context_assembler = context_assembler
        self.max_questions = max_questions
        self.assessments = SymptomAssessmentUseCase(llm, context_assembler)
        self.reports = ReportAnalysisUseCase(llm)
        self.voice = VoiceTranscriptionUseCase(llm)

    def new_dialogue(
        self, user_id: Optional[str] = None, uncured_symptoms: Optional[List[str]] = None
    ) -> FollowUpDialogueController:
        return FollowUpDialogueController(
            self.llm,
            context_assembler=self.context_assembler,
            user_id=user_id,
            uncured_symptoms=uncured_symptoms,
            max_questions=self.max_questions,
        )

    def start_or_continue_dialogue(
        self,
        transcript: List[Message],
        user_id: Optional[str] = None,
        uncured_symptoms: Optional[List[str]] = None,
    ) -> DialogueTurn:
        return continue_dialogue(
            self.llm,
            transcript,
            context_assembler=self.context_assembler,
            user_id=user_id,
            uncured_symptoms=uncured_symptoms,
            max_questions=self.max_questions,
        )

    def produce_assessment(
        self,
        transcript_or_text: Union[str, List[Message]],
        user_id: Optional[str] = None,
        uncured_symptoms: Optional[List[str]] = None,
    ) -> AssessmentResult:
        if isinstance(transcript_or_text, str):
            return self.assessments.assess_text(transcript_or_text, user_id, uncured_symptoms)
        return self.assessments.assess_transcript(transcript_or_text, user_id, uncured_symptoms)

    def analyze_report_image(self, image: bytes, mime_type: str) -> ReportAnalysisResult:
        return self.reports.analyze(image, mime_type)

    def transcribe_voice(self, audio: bytes, mime_type: str) -> str:
        return self.voice.transcribe(audio, mime_type)

    def save_assessment(self, user_id: str, symptoms_text: str, result: AssessmentResult) -> Optional[HistoryEntry]:
        """Persist a finished assessment. A failed save is logged and yields None; the result stays valid."""
        try:
            return self.history.create_entry(user_id, symptoms_text, result)
        except PersistenceFailure as e:
            logger.error("Failed to save to history for user %s: %s", user_id, e)
            return None

    def complete_assessment(
        self,
        transcript: List[Message],
        user_id: Optional[str] = None,
        uncured_symptoms: Optional[List[str]] = None,
    ) -> Tuple[AssessmentResult, Optional[HistoryEntry]]:
        result = self.assessments.assess_transcript(transcript, user_id, uncured_symptoms)
        entry = None
        if user_id:
            entry = self.save_assessment(user_id, patient_statements(transcript), result)
        return result, entry

    def set_cured_status(self, user_id: str, entry_id: str, is_cured: bool) -> HistoryEntry:
        return self.history.toggle_cured(user_id, entry_id, is_cured)

    def delete_history_entry(self, user_id: str, entry_id: str) -> None:
        self.history.delete_entry(user_id, entry_id)

    def list_history(self, user_id: str, limit: int = DISPLAY_HISTORY_LIMIT) -> List[HistoryEntry]:
        return self.history.list_recent(user_id, limit)
