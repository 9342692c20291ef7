import logging
from typing import Optional

from src.application.context import ContextAssembler
from src.application.history import HistoryLifecycleManager
from src.application.ports import LLMPort
from src.application.service import SymptomAssessmentService
from src.infrastructure.config import Settings, configure_logging
from src.infrastructure.llm.mistral_client import MistralLLMAdapter
from src.infrastructure.storage.history_repository import JsonHistoryRepository
from src.infrastructure.storage.profile_repository import JsonProfileRepository


logger = logging.getLogger(__name__)


def build_service(settings: Optional[Settings] = None, llm: Optional[LLMPort] = None) -> SymptomAssessmentService:
    """Wire settings, storage and the reasoning engine into a ready service. Call once at startup."""
    settings = settings or Settings.from_env()
    configure_logging(settings)

    if llm is None:
        llm = MistralLLMAdapter(settings=settings)
    history = HistoryLifecycleManager(JsonHistoryRepository(settings.history_path))
    profiles = JsonProfileRepository(settings.profiles_path)
    assembler = ContextAssembler(history=history, profiles=profiles)

    logger.info("Symptom assessment service ready (model=%s, data_dir=%s)", settings.mistral_model, settings.data_dir)
    return SymptomAssessmentService(
        llm=llm,
        history=history,
        context_assembler=assembler,
        max_questions=settings.max_followup_questions,
    )
