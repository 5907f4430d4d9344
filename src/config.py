from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings

from src.pipeline_config import (
    RepositoryBackend,
    ScoringProviderName,
    TranscriptionProviderName,
)


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    assemblyai_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Redis / rq
    redis_url: str = "redis://localhost:6379/0"
    job_attempts: int = 3
    job_backoff_seconds: int = 2
    job_timeout: int = 3600
    keep_completed_jobs: int = 10
    keep_failed_jobs: int = 5

    # Collaborators
    repository_backend: RepositoryBackend = RepositoryBackend.SUPABASE
    scoring_provider: ScoringProviderName = ScoringProviderName.ANTHROPIC
    transcription_provider: TranscriptionProviderName = TranscriptionProviderName.ASSEMBLYAI
    llm_model: str = "claude-sonnet-4-20250514"
    openai_model: str = "gpt-4o-mini"
    whisper_model: str = "whisper-1"
    max_tokens_per_request: int = 3000

    # Files
    upload_dir: str = "uploads"
    audio_dir: str = "uploads/audio"
    clips_dir: str = "uploads/clips"
    max_upload_mb: int = 500

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Pipeline defaults (used when an upload carries no configuration)
    default_language_code: str = "en"
    default_segment_duration: int = 60
    default_video_type: str = "educational"
    default_target_audience: str = "general"
    default_min_informativeness_score: float = 5.0
    default_max_combined_duration: float = 180.0
    default_max_clips: int = 10
    default_min_score_threshold: float = 6.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
