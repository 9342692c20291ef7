import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from src.application.context import ContextAssembler, PatientContext
from src.application.errors import (
    ConfigurationError,
    InvalidInputError,
    SymptomAssessmentError,
    UpstreamMalformedResponse,
)
from src.application.ports import LLMPort
from src.application.schemas import DialogueTurn
from src.domain.models import Message
from src.domain.rules import COMPLETION_MARKER, parse_completion_marker


logger = logging.getLogger(__name__)


DEFAULT_MAX_QUESTIONS = 8

FOLLOWUP_SYSTEM_PROMPT = f"""You are a medical AI assistant conducting a thorough symptom assessment. Your role is to ask relevant follow-up questions to better understand the patient's condition.
{{context}}
Based on the symptoms described, you should ask about:
- Duration (How long have you had these symptoms?)
- Severity (On a scale of 1-10, how severe is the pain/discomfort?)
- Progression (Are the symptoms getting better, worse, or staying the same?)
- Associated symptoms (Do you have any other symptoms like fever, nausea, fatigue?)
- Triggers (Does anything make it better or worse?)
- Previous treatments tried (Have you taken any medications?)
- Impact on daily life (How are these symptoms affecting your daily activities?)

IMPORTANT RULES:
1. Ask only ONE question at a time
2. Be empathetic, warm, and professional
3. Keep questions short, clear, and easy to understand
4. Don't repeat questions already asked
5. Base your question on the context of the conversation AND the user's health profile
6. If the user has known health issues, ask if current symptoms might be related
7. If the user has previous uncured symptoms, ask if current symptoms are related to or a continuation of those
8. After asking 5-7 meaningful questions that cover duration, severity, progression, and key details, respond with EXACTLY "{COMPLETION_MARKER}" to signal the assessment is complete
9. If the user's initial description is already detailed and comprehensive, you may ask fewer questions before signaling completion
10. Always be compassionate - remember you're talking to someone who isn't feeling well

Respond with just the question (or {COMPLETION_MARKER} when done), no preamble."""

INLINE_ERROR_MESSAGE = "Sorry, I encountered an error. Please try again."


class DialogueState(str, Enum):
    AWAITING_FIRST_INPUT = "awaiting_first_input"
    QUESTIONING = "questioning"
    COMPLETE = "complete"


class DialogueSession(BaseModel):
    transcript: List[Message] = []
    turn_count: int = 0
    questions_asked: int = 0
    state: DialogueState = DialogueState.AWAITING_FIRST_INPUT

    @property
    def is_complete(self) -> bool:
        return self.state == DialogueState.COMPLETE


def build_followup_messages(transcript: List[Message], context: PatientContext) -> List[dict]:
    rendered = context.render()
    system = FOLLOWUP_SYSTEM_PROMPT.format(context=f"\n{rendered}\n" if rendered else "")
    return [{"role": "system", "content": system}] + [m.model_dump() for m in transcript]


class FollowUpDialogueController:
    """Drives the bounded follow-up conversation until the engine signals it has enough information."""

    def __init__(
        self,
        llm: LLMPort,
        context_assembler: Optional[ContextAssembler] = None,
        user_id: Optional[str] = None,
        uncured_symptoms: Optional[List[str]] = None,
        max_questions: int = DEFAULT_MAX_QUESTIONS,
    ):
        self.llm = llm
        self.context_assembler = context_assembler or ContextAssembler()
        self.user_id = user_id
        self.uncured_symptoms = list(uncured_symptoms or [])
        self.max_questions = max_questions
        self.session = DialogueSession()
        self._context: Optional[PatientContext] = None

    def start_new(self):
        self.session = DialogueSession()
        self._context = None

    @property
    def transcript(self) -> List[Message]:
        return list(self.session.transcript)

    @property
    def is_complete(self) -> bool:
        return self.session.is_complete

    def send(self, user_message: str) -> DialogueTurn:
        if self.session.is_complete:
            raise InvalidInputError(
                "Dialogue already complete",
                user_message="This conversation is finished. Please start a new assessment.",
            )
        if not user_message or not user_message.strip():
            raise InvalidInputError("Empty message", user_message="Please describe your symptoms.")

        self._append("user", user_message)
        self.session.turn_count += 1
        if self.session.state == DialogueState.AWAITING_FIRST_INPUT:
            self.session.state = DialogueState.QUESTIONING

        if self.session.questions_asked >= self.max_questions:
            logger.info("Follow-up ceiling of %d questions reached; completing dialogue", self.max_questions)
            self.session.state = DialogueState.COMPLETE
            return DialogueTurn(is_complete=True)

        try:
            reply = self._ask_engine()
        except ConfigurationError:
            raise
        except SymptomAssessmentError as e:
            logger.warning("Follow-up question failed: %s", e)
            self._append("assistant", e.user_message)
            return DialogueTurn(question=e.user_message, error=e.user_message)
        except Exception as e:
            logger.exception("Follow-up question failed: %s", e)
            self._append("assistant", INLINE_ERROR_MESSAGE)
            return DialogueTurn(question=INLINE_ERROR_MESSAGE, error=INLINE_ERROR_MESSAGE)

        question, is_complete = parse_completion_marker(reply)
        if is_complete:
            if question:
                self._append("assistant", question)
            self.session.state = DialogueState.COMPLETE
            return DialogueTurn(question=question, is_complete=True)

        if not question:
            logger.warning("Engine returned an empty follow-up question")
            self._append("assistant", INLINE_ERROR_MESSAGE)
            return DialogueTurn(question=INLINE_ERROR_MESSAGE, error=INLINE_ERROR_MESSAGE)

        self._append("assistant", question)
        self.session.questions_asked += 1
        return DialogueTurn(question=question)

    def _ask_engine(self) -> str:
        if self._context is None:
            self._context = self.context_assembler.assemble(self.user_id, self.uncured_symptoms)
        messages = build_followup_messages(self.session.transcript, self._context)
        return self.llm.generate(messages)

    def _append(self, role: str, content: str) -> None:
        self.session.transcript.append(Message(role=role, content=content))


def continue_dialogue(
    llm: LLMPort,
    transcript: List[Message],
    context_assembler: Optional[ContextAssembler] = None,
    user_id: Optional[str] = None,
    uncured_symptoms: Optional[List[str]] = None,
    max_questions: int = DEFAULT_MAX_QUESTIONS,
) -> DialogueTurn:
    """
    Stateless variant for callers that keep the transcript themselves.

    The transcript must end with the user's latest message. Engine failures
    propagate to the caller, which owns the transcript and decides how to
    show them.
    """
    if not transcript:
        raise InvalidInputError("Messages are required", user_message="Please describe your symptoms.")
    if transcript[-1].role != "user" or not transcript[-1].content.strip():
        raise InvalidInputError(
            "Transcript must end with a non-empty user message",
            user_message="Please describe your symptoms.",
        )

    questions_asked = sum(1 for m in transcript if m.role == "assistant")
    if questions_asked >= max_questions:
        logger.info("Follow-up ceiling of %d questions reached; completing dialogue", max_questions)
        return DialogueTurn(is_complete=True)

    assembler = context_assembler or ContextAssembler()
    context = assembler.assemble(user_id, uncured_symptoms)
    reply = llm.generate(build_followup_messages(transcript, context))
    question, is_complete = parse_completion_marker(reply)
    if not is_complete and not question:
        raise UpstreamMalformedResponse("No question generated")
    return DialogueTurn(question=question, is_complete=is_complete)
