"""Error taxonomy for the assessment pipeline. Every error carries a plain-language message for the user."""
from typing import Optional


class SymptomAssessmentError(Exception):
    default_message = "Something went wrong. Please try again."

    def __init__(self, detail: Optional[str] = None, user_message: Optional[str] = None):
        super().__init__(detail or user_message or self.default_message)
        self.user_message = user_message or self.default_message


class ConfigurationError(SymptomAssessmentError):
    default_message = "The assessment service is not configured. Please contact support."


class InvalidInputError(SymptomAssessmentError):
    default_message = "The information provided could not be used. Please check it and try again."


class UpstreamError(SymptomAssessmentError):
    default_message = "The assessment service is unavailable right now. Please try again."


class UpstreamRateLimited(UpstreamError):
    default_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamQuotaExceeded(UpstreamError):
    default_message = "Usage limit reached. Please try again later."


class UpstreamMalformedResponse(UpstreamError):
    default_message = "The assessment could not be completed. Please try again."


class PersistenceFailure(SymptomAssessmentError):
    default_message = "Your symptom history could not be updated. Please try again."
