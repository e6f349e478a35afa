from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class OllamaSettings(BaseModel):
    host: str = Field("http://localhost", description="Base URL where Ollama is running.")
    port: int = Field(11434, ge=1, le=65535)
    model: str = Field("llama3", description="Default model served via Ollama.")
    temperature: float = Field(0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(4000, ge=64, description="Upper bound on generated tokens for agent calls.")


class PlannerLLMSettings(BaseModel):
    model: str | None = Field(None, description="Model used for intent resolution; defaults to ollama.model.")
    temperature: float = Field(0.2, ge=0.0, le=1.0, description="Sampling temperature for intent calls.")
    max_output_tokens: int = Field(1000, ge=128, description="Maximum tokens expected from intent outputs.")


class SynthesisSettings(BaseModel):
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(300, ge=32)
    fallback_text: str = Field("Thanks for sharing that!", min_length=1)
    advisor_name: str = Field("Abhishek", min_length=1, description="Persona name used in the reply prompt.")
    max_reply_words: int = Field(50, ge=10)


class ExecutionSettings(BaseModel):
    max_concurrency: int = Field(5, ge=1, description="Upper bound on agent tasks in flight at once.")
    call_timeout_seconds: float = Field(60.0, gt=0.0, description="Deadline applied to each completion or skill call.")
    per_task_estimate_seconds: int = Field(10, ge=1, description="Heuristic used for plan duration estimates.")
    retry_attempts: int = Field(3, ge=1)
    retry_backoff_seconds: float = Field(1.0, ge=0.0)
    retry_max_backoff_seconds: float = Field(10.0, ge=0.0)


class TranslationSettings(BaseModel):
    enabled: bool = Field(True)
    api_key: str | None = Field(default=None, description="Google Cloud Translation API key.")
    endpoint: str = Field("https://translation.googleapis.com/language/translate/v2")
    timeout_seconds: float = Field(10.0, ge=0.1)
    default_language: str = Field("en-US", min_length=2)


class CatalogSettings(BaseModel):
    questionnaire_path: Path = Field(DATA_DIR / "questionnaire.json")
    agents_path: Path = Field(DATA_DIR / "agents.yaml")
    skills_path: Path = Field(DATA_DIR / "skills.yaml")


class ObservabilitySettings(BaseModel):
    prometheus_enabled: bool = Field(True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")
    api_v1_prefix: str = Field("/api/v1")

    ollama: OllamaSettings = Field(default_factory=OllamaSettings)  # type: ignore[arg-type]
    planner_llm: PlannerLLMSettings = Field(default_factory=PlannerLLMSettings)  # type: ignore[arg-type]
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)  # type: ignore[arg-type]
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)  # type: ignore[arg-type]
    translation: TranslationSettings = Field(default_factory=TranslationSettings)  # type: ignore[arg-type]
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]

    frontend_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins permitted to access the API via CORS.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )


@lru_cache(maxsize=1)
def _get_cached_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def get_settings(overrides: Mapping[str, Any] | None = None) -> Settings:
    """Return settings, using cached defaults unless overrides are provided."""
    if overrides:
        return Settings(**dict(overrides))
    return _get_cached_settings()
