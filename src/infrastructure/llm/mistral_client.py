import logging
from typing import Any, Dict, List, Optional

from mistralai import Mistral, models

from src.application.errors import (
    ConfigurationError,
    UpstreamError,
    UpstreamQuotaExceeded,
    UpstreamRateLimited,
)
from src.application.ports import LLMPort
from src.infrastructure.config import Settings


logger = logging.getLogger(__name__)


def _content_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    # Newer models may answer with a list of content chunks.
    parts = []
    for chunk in content:
        text = getattr(chunk, "text", None)
        if text:
            parts.append(text)
    return "".join(parts)


class MistralLLMAdapter(LLMPort):
    def __init__(self, settings: Settings, client: Optional[Mistral] = None):
        self.settings = settings
        self._client = client
        if self._client is None:
            self._init_client()

    def _init_client(self):
        api_key = self.settings.mistral_api_key
        if not api_key:
            logger.error("Mistral API key is missing.")
            self._client = None
            return
        self._client = Mistral(api_key=api_key)

    def generate(
        self,
        messages: List[dict],
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
    ) -> str:
        return self._chat(self.settings.mistral_model, messages, json_schema, schema_name)

    def analyze_image(
        self,
        messages: List[dict],
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
    ) -> str:
        return self._chat(self.settings.mistral_vision_model, messages, json_schema, schema_name)

    def transcribe(self, messages: List[dict]) -> str:
        return self._chat(self.settings.mistral_audio_model, messages)

    def _chat(
        self,
        model: str,
        messages: List[dict],
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
    ) -> str:
        if not self._client:
            raise ConfigurationError("Mistral client not initialized (missing MISTRAL_API_KEY)")

        kwargs: Dict[str, Any] = {"model": model, "messages": messages}
        if json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": json_schema, "strict": False},
            }

        try:
            response = self._client.chat.complete(**kwargs)
        except models.SDKError as e:
            status = getattr(e, "status_code", None)
            logger.error("Mistral chat call failed with status %s: %s", status, e)
            if status == 429:
                raise UpstreamRateLimited(f"Mistral rate limit: {e}") from e
            if status == 402:
                raise UpstreamQuotaExceeded(f"Mistral quota exhausted: {e}") from e
            if status in (401, 403):
                raise ConfigurationError(f"Mistral rejected the API key: {e}") from e
            raise UpstreamError(f"Mistral chat call failed: {e}") from e
        except Exception as e:
            logger.exception("Mistral chat call failed: %s", e)
            raise UpstreamError(f"Mistral chat call failed: {e}") from e

        if not response or not response.choices:
            raise UpstreamError("Mistral returned no choices")
        # Return the assistant content
        return _content_text(response.choices[0].message.content)
