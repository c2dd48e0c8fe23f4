from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    host: str = "localhost"
    port: int = 5432
    username: str = "postgres"
    password: SecretStr = Field(default=SecretStr("postgres"))
    database: str = "meeting_summarizer"
    schema_name: Optional[str] = Field(default=None, validation_alias="DB_SCHEMA")
    serverless: bool = Field(
        default=True,
        description="If true, disable connection pooling so serverless DBs can pause.",
    )

    @property
    def url(self) -> str:
        """Get database URL"""
        username = quote_plus(self.username)
        password = quote_plus(self.password.get_secret_value())
        return (
            "postgresql+asyncpg://"
            f"{username}:{password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class BedrockConfig(BaseSettings):
    """Amazon Bedrock transport configuration."""

    region: str = Field(
        default="us-east-1",
        validation_alias="BEDROCK_REGION",
    )
    access_key: Optional[str] = Field(
        default=None,
        validation_alias="BEDROCK_ACCESS_KEY_ID",
    )
    secret_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_SECRET_ACCESS_KEY",
    )
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias="BEDROCK_API_KEY",
    )
    connect_timeout_seconds: float = Field(
        default=5.0,
        validation_alias="BEDROCK_CONNECT_TIMEOUT",
        gt=0,
    )
    read_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="BEDROCK_READ_TIMEOUT",
        gt=0,
    )
    top_p: float = Field(
        default=0.9,
        validation_alias="BEDROCK_TOP_P",
        ge=0.0,
        le=1.0,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class ModelConfig(BaseSettings):
    """One completion backend: identifier, limits and pricing."""

    model_id: str
    max_output_tokens: int = Field(default=8192, ge=1)
    context_window: int = Field(default=128_000, ge=1)
    input_cost_per_1k: float = Field(default=0.0, ge=0.0)
    output_cost_per_1k: float = Field(default=0.0, ge=0.0)

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """Return the USD cost of a call with the given token usage."""

        return (
            (max(input_tokens, 0) / 1000) * self.input_cost_per_1k
            + (max(output_tokens, 0) / 1000) * self.output_cost_per_1k
        )


class PrimaryModelConfig(ModelConfig):
    """Quality-oriented model used by default."""

    model_id: str = "meta.llama3-3-70b-instruct-v1:0"
    input_cost_per_1k: float = 0.00072
    output_cost_per_1k: float = 0.00072

    model_config = SettingsConfigDict(
        env_prefix="PRIMARY_MODEL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class FallbackModelConfig(ModelConfig):
    """Cheaper, faster model used for fallback."""

    model_id: str = "meta.llama3-1-8b-instruct-v1:0"
    input_cost_per_1k: float = 0.00022
    output_cost_per_1k: float = 0.00022

    model_config = SettingsConfigDict(
        env_prefix="FALLBACK_MODEL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class PromptConfig(BaseSettings):
    """Prompt construction limits."""

    max_custom_instructions_chars: int = Field(default=1000, ge=0)
    # Rough heuristic; real tokenizers drift, hence the safety margin below.
    chars_per_token: int = Field(default=4, ge=1)
    context_safety_margin_tokens: int = Field(default=1000, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="PROMPT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class FallbackConfig(BaseSettings):
    """Model selection thresholds and retry policy."""

    strategy: str = "smart"

    max_primary_cost: float = 0.05
    max_fallback_cost: float = 0.02

    max_primary_latency_ms: int = 30_000
    max_fallback_latency_ms: int = 15_000

    large_summary_tokens: int = 20_000
    complex_summary_tokens: int = 10_000

    fallback_preferred_styles: list[str] = ["action-items"]

    max_retries: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=2000, ge=0)
    backoff_multiplier: float = Field(default=1.5, ge=1.0)
    max_retry_delay_ms: int = Field(default=30_000, ge=0)
    retryable_errors: list[str] = [
        "RATE_LIMIT_EXCEEDED",
        "SERVICE_UNAVAILABLE",
        "TIMEOUT",
        "NETWORK_ERROR",
        "TEMPORARY_FAILURE",
    ]

    history_window: int = Field(default=5, ge=1)
    history_min_samples: int = Field(default=3, ge=1)
    history_lookup_limit: int = Field(default=10, ge=1)
    latency_window: int = Field(default=50, ge=1)
    # Overall wall-clock budget for one generation; unset means no deadline.
    generation_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="FALLBACK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class ResponseConfig(BaseSettings):
    """Response processing limits."""

    min_length: int = 50
    max_length: int = 50_000
    min_words: int = 10
    max_words: int = 10_000

    model_config = SettingsConfigDict(
        env_prefix="RESPONSE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Meeting Summarizer Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    pipeline_log_file: str = "logs/summary_pipeline.log"

    # Database
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    # Bedrock
    bedrock: BedrockConfig = Field(default_factory=BedrockConfig)
    primary_model: PrimaryModelConfig = Field(default_factory=PrimaryModelConfig)
    fallback_model: FallbackModelConfig = Field(default_factory=FallbackModelConfig)

    # Pipeline
    prompt: PromptConfig = Field(default_factory=PromptConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    response: ResponseConfig = Field(default_factory=ResponseConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def model_for(self, role: str) -> ModelConfig:
        """Return the model configuration for ``primary`` or ``fallback``."""

        return self.fallback_model if role == "fallback" else self.primary_model


# Global settings instance
settings = Settings()
