import base64
import logging
from typing import List, Optional

from pydantic import ValidationError

from src.application.context import ContextAssembler, PatientContext
from src.application.errors import InvalidInputError, UpstreamMalformedResponse
from src.application.ports import LLMPort
from src.application.schemas import ReportAnalysisResult, extract_json_object, wire_schema
from src.domain.models import AssessmentResult, Message
from src.domain.rules import URGENCY_POLICY, classify_urgency, escalate_urgency, find_medication_mentions


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a medical AI assistant that helps analyze symptoms. You should:\n"
    "1. Analyze the described symptoms carefully\n"
    "2. Suggest possible conditions (not diagnoses) based on the symptoms, most relevant first\n"
    "3. Provide helpful recommendations\n"
    "4. Assess the urgency level\n\n"
    "IMPORTANT: This is not a medical diagnosis; recommendations should point the user to a healthcare professional "
    "where appropriate. Do NOT suggest specific medications or drug names in the recommendations.\n\n"
    + URGENCY_POLICY
)


def build_schema_instructions() -> str:
    return (
        "You MUST return ONLY a valid JSON object. Do NOT include any markdown, code fences, or explanations. "
        "JSON keys: possibleConditions (array of objects), recommendations (array of strings), "
        "urgencyLevel (one of 'Emergency', 'Urgent', 'Non-urgent').\n"
        "Each possible condition object MUST have: name (string), description (string, how it relates to the "
        "symptoms), likelihood (one of 'High', 'Medium', 'Low').\n"
        "Start your response with { and end with }. Return valid JSON only."
    )


REPAIR_INSTRUCTION = (
    "The JSON was invalid: {problem}. Return ONLY valid JSON wrapped in {{}} matching the required keys, "
    "with no medication names in recommendations. Start with {{ and end with }}. No other text."
)


REPORT_SYSTEM_PROMPT = """You are an expert medical report analyzer. Analyze the uploaded medical report/document and provide a comprehensive analysis.

Your response MUST be a valid JSON object with this exact structure:
{
  "reportType": "Type of report (e.g., Blood Test, X-Ray, MRI, Prescription, etc.)",
  "summary": "Brief 2-3 sentence summary of the report",
  "keyFindings": ["Array of key findings from the report"],
  "possibleConditions": ["Array of possible health conditions or concerns based on the findings"],
  "medicalTermsExplained": [{"term": "medical term", "explanation": "simple explanation"}],
  "recommendations": ["Array of recommendations or next steps"],
  "urgencyLevel": "low | medium | high | critical"
}

Guidelines:
- Use simple, patient-friendly language in explanations
- Be accurate but avoid causing unnecessary alarm
- If values are abnormal, explain what that might mean
- Always recommend consulting with a healthcare provider for proper diagnosis
- If the image is not a medical report, indicate that in the summary"""


TRANSCRIPTION_PROMPT = (
    "You are a medical transcription assistant. Listen to the audio and transcribe exactly what the person is "
    "saying about their symptoms or health concerns. Output ONLY the transcribed text, nothing else. "
    "If you cannot understand the audio, respond with an empty string."
)


REPORT_MIME_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_REPORT_BYTES = 10 * 1024 * 1024

AUDIO_MIME_TYPES = {"audio/webm", "audio/wav", "audio/x-wav", "audio/mpeg", "audio/ogg", "audio/mp4"}
MAX_AUDIO_BYTES = 25 * 1024 * 1024


def render_transcript(messages: List[Message]) -> str:
    return "\n".join(
        f"{'Patient' if m.role == 'user' else 'Assistant'}: {m.content}" for m in messages
    )


def patient_statements(messages: List[Message]) -> str:
    return " | ".join(m.content for m in messages if m.role == "user")


def _validate_assessment(raw: str) -> AssessmentResult:
    data = extract_json_object(raw)
    if data is None:
        raise UpstreamMalformedResponse("No JSON object in assessment reply")
    try:
        assessment = AssessmentResult.model_validate(data)
    except ValidationError as e:
        raise UpstreamMalformedResponse(f"Assessment does not match schema: {e}") from e
    mentions = find_medication_mentions(assessment.recommendations)
    if mentions:
        raise UpstreamMalformedResponse(f"Recommendations name specific medications: {', '.join(mentions)}")
    return assessment


class SymptomAssessmentUseCase:
    def __init__(self, llm: LLMPort, context_assembler: Optional[ContextAssembler] = None):
        self.llm = llm
        self.context_assembler = context_assembler or ContextAssembler()

    def assess_text(
        self, symptoms: str, user_id: Optional[str] = None, uncured_symptoms: Optional[List[str]] = None
    ) -> AssessmentResult:
        if not symptoms or not symptoms.strip():
            raise InvalidInputError("Symptoms are required", user_message="Please describe your symptoms.")
        context = self.context_assembler.assemble(user_id, uncured_symptoms)
        return self._assess(symptoms.strip(), symptoms, context)

    def assess_transcript(
        self, messages: List[Message], user_id: Optional[str] = None, uncured_symptoms: Optional[List[str]] = None
    ) -> AssessmentResult:
        if not messages or not any(m.role == "user" and m.content.strip() for m in messages):
            raise InvalidInputError(
                "Symptoms or conversation history are required", user_message="Please describe your symptoms."
            )
        context = self.context_assembler.assemble(user_id, uncured_symptoms)
        return self._assess(render_transcript(messages), patient_statements(messages), context)

    def _assess(self, symptoms_text: str, patient_text: str, context: PatientContext) -> AssessmentResult:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_schema_instructions()},
        ]
        rendered = context.render()
        if rendered:
            messages.append({"role": "user", "content": "PATIENT CONTEXT:\n" + rendered})
        messages.append(
            {
                "role": "user",
                "content": f"Please analyze this patient consultation and provide your assessment:\n\n{symptoms_text}",
            }
        )

        schema = wire_schema(AssessmentResult)
        raw = self.llm.generate(messages, json_schema=schema, schema_name="analyze_symptoms").strip()
        try:
            assessment = _validate_assessment(raw)
        except UpstreamMalformedResponse as e:
            logger.warning("Assessment JSON invalid: %s. Attempting repair. Raw: %s", e, raw[:200])
            # Single repair attempt with stronger instruction
            repair_messages = messages + [
                {"role": "assistant", "content": raw},
                {"role": "user", "content": REPAIR_INSTRUCTION.format(problem=e)},
            ]
            raw = self.llm.generate(repair_messages, json_schema=schema, schema_name="analyze_symptoms").strip()
            assessment = _validate_assessment(raw)

        # Only the patient's own words set the floor; assistant questions mention red flags too.
        floor = classify_urgency(patient_text)
        urgency = escalate_urgency(assessment.urgency_level, floor)
        if urgency != assessment.urgency_level:
            logger.info("Urgency raised from %s to %s by symptom policy", assessment.urgency_level.value, urgency.value)
            assessment = assessment.model_copy(update={"urgency_level": urgency})
        return assessment


class ReportAnalysisUseCase:
    def __init__(self, llm: LLMPort, max_bytes: int = MAX_REPORT_BYTES):
        self.llm = llm
        self.max_bytes = max_bytes

    def analyze(self, image: bytes, mime_type: str) -> ReportAnalysisResult:
        if not image:
            raise InvalidInputError("No image/report data provided", user_message="Please upload a report image.")
        if mime_type not in REPORT_MIME_TYPES:
            raise InvalidInputError(
                f"Unsupported report type {mime_type}",
                user_message="Please upload an image file (JPG, PNG, WebP, or GIF).",
            )
        if len(image) > self.max_bytes:
            raise InvalidInputError(
                f"Report is {len(image)} bytes",
                user_message=f"File size must be less than {self.max_bytes // (1024 * 1024)}MB.",
            )

        encoded = base64.b64encode(image).decode("ascii")
        messages = [
            {"role": "system", "content": REPORT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Please analyze this medical report and provide a detailed breakdown:"},
                    {"type": "image_url", "image_url": f"data:{mime_type};base64,{encoded}"},
                ],
            },
        ]
        raw = self.llm.analyze_image(
            messages, json_schema=wire_schema(ReportAnalysisResult), schema_name="analyze_medical_report"
        )

        data = extract_json_object(raw)
        if data is None:
            logger.error("Report analysis reply held no JSON object: %s", (raw or "")[:200])
            raise UpstreamMalformedResponse("Failed to parse analysis response")
        try:
            return ReportAnalysisResult.model_validate(data)
        except ValidationError as e:
            raise UpstreamMalformedResponse(f"Report analysis does not match schema: {e}") from e


class VoiceTranscriptionUseCase:
    def __init__(self, llm: LLMPort, max_bytes: int = MAX_AUDIO_BYTES):
        self.llm = llm
        self.max_bytes = max_bytes

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        if not audio:
            raise InvalidInputError("No audio data provided", user_message="No audio was recorded.")
        base_type = (mime_type or "").split(";")[0].strip()
        if base_type not in AUDIO_MIME_TYPES:
            raise InvalidInputError(
                f"Unsupported audio type {mime_type}", user_message="This audio format is not supported."
            )
        if len(audio) > self.max_bytes:
            raise InvalidInputError(f"Audio is {len(audio)} bytes", user_message="The recording is too long.")

        messages = [
            {"role": "system", "content": TRANSCRIPTION_PROMPT},
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": "Please transcribe the following audio recording of someone describing their health symptoms:",
                    },
                    {"type": "input_audio", "input_audio": base64.b64encode(audio).decode("ascii")},
                ],
            },
        ]
        text = (self.llm.transcribe(messages) or "").strip()
        logger.info("Transcription complete (%d characters)", len(text))
        return text
