import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.application.conversation import DEFAULT_MAX_QUESTIONS
from src.application.errors import ConfigurationError


logger = logging.getLogger(__name__)


def get_secret(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = get_secret(env, name, str(default))
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {value}")
    return value


class Settings(BaseModel):
    """Process-wide configuration. Built once at startup and passed to the adapters that need it."""

    model_config = ConfigDict(frozen=True)

    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-large-latest"
    mistral_vision_model: str = "pixtral-large-latest"
    mistral_audio_model: str = "voxtral-small-latest"
    data_dir: str = ".data"
    max_followup_questions: int = Field(DEFAULT_MAX_QUESTIONS, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            mistral_api_key=get_secret(env, "MISTRAL_API_KEY"),
            mistral_model=get_secret(env, "MISTRAL_MODEL", "mistral-large-latest"),
            mistral_vision_model=get_secret(env, "MISTRAL_VISION_MODEL", "pixtral-large-latest"),
            mistral_audio_model=get_secret(env, "MISTRAL_AUDIO_MODEL", "voxtral-small-latest"),
            data_dir=get_secret(env, "SYMPTOM_DATA_DIR", ".data"),
            max_followup_questions=_positive_int(env, "MAX_FOLLOWUP_QUESTIONS", DEFAULT_MAX_QUESTIONS),
            log_level=get_secret(env, "LOG_LEVEL", "INFO").upper(),
        )

    @property
    def history_path(self) -> str:
        return os.path.join(self.data_dir, "symptom_history.json")

    @property
    def profiles_path(self) -> str:
        return os.path.join(self.data_dir, "profiles.json")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
