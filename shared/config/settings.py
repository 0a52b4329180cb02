"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    CLAUDE = "claude"


def _default_model_budgets() -> dict[str, int]:
    # Tokens per minute
    return {
        "gpt-4o": 30_000,
        "gpt-4o-mini": 200_000,
        "gpt-4-turbo": 30_000,
        "gpt-5": 30_000,
        "gpt-5-mini": 200_000,
        "text-embedding-3-small": 1_000_000,
    }


class ClaudeSettings(BaseSettings):
    """Anthropic Claude API configuration."""

    model_config = SettingsConfigDict(env_prefix="CLAUDE_")

    api_key: SecretStr = Field(
        default=SecretStr(""),
        alias="ANTHROPIC_API_KEY",
    )
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096


class OpenAISettings(BaseSettings):
    """OpenAI API configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: SecretStr = SecretStr("")
    model: str = "gpt-4o"
    base_url: str = "https://api.openai.com/v1"


class LLMSettings(BaseSettings):
    """Completion provider configuration."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    provider: LLMProvider = LLMProvider.OPENAI
    temperature: float = 0.1
    max_retries: int = 3
    timeout_seconds: int = 120

    claude: ClaudeSettings = Field(default_factory=ClaudeSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)


class EmbeddingSettings(BaseSettings):
    """Embedding model configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    hard_token_limit: int = 8000
    soft_token_limit: int = 7500
    timeout_seconds: int = 60


class RateLimitSettings(BaseSettings):
    """Per-model token budgets for the sliding rate window."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    window_seconds: float = 60.0
    model_budgets: dict[str, int] = Field(default_factory=_default_model_budgets)


class AnalysisSettings(BaseSettings):
    """Thresholds that drive planning, strategy selection and scoring."""

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_")

    # Strategy selection
    short_document_words: int = 1000
    conversation_char_limit: int = 50_000

    # Chunking and retrieval
    chunk_char_limit: int = 2000
    min_chunk_chars: int = 50
    retrieval_top_k: int = 5
    retrieval_context_tokens: int = 6000

    # Answering
    answer_max_tokens: int = 1000
    gap_max_tokens: int = 150
    direct_confidence: int = 80
    cited_confidence: int = 90
    near_perfect_score: float = 1.0

    # Pacing and input limits
    jurisdiction_pause_seconds: float = 1.0
    max_document_chars: int = 5_000_000

    # Source URLs that mean the jurisdiction defers to a state code
    state_code_markers: list[str] = Field(
        default_factory=lambda: ["up.codes/viewer/new_york/ny-property-maintenance-code-2020"]
    )

    # Key under which the reviewer grade is stored in a record's grades
    grade_key: str = "WEN"


class StorageSettings(BaseSettings):
    """Flat-file storage locations."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    data_dir: Path = Path("data")
    index_path: Path | None = None

    # First existing file is the primary document (school realms use policy.txt)
    statute_filenames: list[str] = Field(default_factory=lambda: ["statute.txt", "policy.txt"])


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Environment.DEVELOPMENT
    log_level: LogLevel = LogLevel.INFO
    json_logs: bool = False

    llm: LLMSettings = Field(default_factory=LLMSettings)
    embeddings: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
