"""Application configuration loaded from environment variables.

Settings for the host API, the LLM-backed collaborators, and the tuning
knobs of the profile completion pipeline. Uses pydantic-settings for
validation and .env file support.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # LLM provider
    llm_provider: str = "openai"
    openai_api_key: str = ""
    default_max_tokens: int = 4096
    default_temperature: float = 0.7

    # Collaborator calls
    collaborator_timeout_seconds: float = 60.0
    collaborator_max_retries: int = 1  # transient transport failures only
    max_source_text_length: int = 50_000

    # Question orchestration
    summary_min_length: int = 40
    followup_question_count: int = 4

    # Improvement loop
    improvement_question_count: int = 2
    improvement_score_threshold: int = 80
    max_improvement_rounds: int = 2

    @model_validator(mode="after")
    def check_pipeline_limits(self) -> "Settings":
        """Validate pipeline tuning values.

        Checks:
        - Question counts must be positive
        - Score threshold must fall inside the 0-100 scoring range
        - Retry and round counts cannot be negative
        - CORS must not use a wildcard origin
        """
        if self.followup_question_count < 1 or self.improvement_question_count < 1:
            msg = (
                "FOLLOWUP_QUESTION_COUNT and IMPROVEMENT_QUESTION_COUNT must be "
                f"positive. Got: {self.followup_question_count}, "
                f"{self.improvement_question_count}"
            )
            raise ValueError(msg)

        if not 0 <= self.improvement_score_threshold <= 100:
            msg = (
                "IMPROVEMENT_SCORE_THRESHOLD must be between 0 and 100. "
                f"Got: {self.improvement_score_threshold}"
            )
            raise ValueError(msg)

        if self.max_improvement_rounds < 0 or self.collaborator_max_retries < 0:
            msg = "MAX_IMPROVEMENT_ROUNDS and COLLABORATOR_MAX_RETRIES cannot be negative."
            raise ValueError(msg)

        if self.collaborator_timeout_seconds <= 0:
            msg = (
                "COLLABORATOR_TIMEOUT_SECONDS must be positive. "
                f"Got: {self.collaborator_timeout_seconds}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = "ALLOWED_ORIGINS must not contain '*' (wildcard)."
            raise ValueError(msg)

        return self


settings = Settings()
