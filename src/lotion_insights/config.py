"""Runtime settings"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from lotion_insights.exceptions import ConfigurationError

ENV_PREFIX = "LOTION_"
API_KEY_ENV_VAR = "ASSEMBLYAI_API_KEY"
ASSEMBLYAI_BASE_URL = "https://api.assemblyai.com"
DEFAULT_RETRY_AFTER_SECONDS = 30.0


class AnalyzerSettings(BaseModel):
    batch_size: int = 5
    inter_batch_delay_seconds: float = 1.0
    intra_batch_delay_seconds: float = 0.2
    max_attempts: int = 3
    request_timeout_seconds: float = 30.0
    default_retry_after_seconds: float = DEFAULT_RETRY_AFTER_SECONDS
    assemblyai_base_url: str = ASSEMBLYAI_BASE_URL
    final_model: str = "anthropic/claude-3-sonnet"
    max_output_size: int = 800
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    transcript_poll_interval_seconds: float = 1.0
    transcript_poll_max_attempts: int = 600
    review_max_output_size: int = 4000

    @classmethod
    def from_env(cls, **overrides) -> "AnalyzerSettings":
        """
        Build settings from ``LOTION_*`` environment variables and a ``.env`` file.

        Explicit ``overrides`` win over the environment.
        """
        load_dotenv()
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

    def validate_pipeline(self) -> None:
        validate_batch_parameters(
            batch_size=self.batch_size,
            inter_batch_delay=self.inter_batch_delay_seconds,
            intra_batch_delay=self.intra_batch_delay_seconds,
        )
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")


def validate_batch_parameters(
    *, batch_size: int, inter_batch_delay: float, intra_batch_delay: float
) -> None:
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")
    if inter_batch_delay < 0:
        raise ConfigurationError(f"inter_batch_delay must be >= 0, got {inter_batch_delay}")
    if intra_batch_delay < 0:
        raise ConfigurationError(f"intra_batch_delay must be >= 0, got {intra_batch_delay}")


def get_default_api_key() -> str:
    api_key = os.getenv(API_KEY_ENV_VAR)
    if not api_key:
        raise ValueError(
            f"API key not found: set {API_KEY_ENV_VAR} in the environment variables or provide it through the api_key parameter."
        )
    return api_key
