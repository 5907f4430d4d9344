"""Pipeline configuration: provider enums and the per-upload configuration snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.config import Settings


class ScoringProviderName(StrEnum):
    """Language-model backends that can score transcript segments."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class TranscriptionProviderName(StrEnum):
    """Speech-to-text backends."""

    ASSEMBLYAI = "assemblyai"
    OPENAI_WHISPER = "openai_whisper"


class RepositoryBackend(StrEnum):
    """Document store used for pipeline records and results."""

    SUPABASE = "supabase"
    MEMORY = "memory"


class VideoType(StrEnum):
    """Kind of content being analysed; passed to the scorer as context."""

    EDUCATIONAL = "educational"
    LECTURE = "lecture"
    TUTORIAL = "tutorial"
    PRESENTATION = "presentation"
    INTERVIEW = "interview"
    PODCAST = "podcast"
    WEBINAR = "webinar"
    OTHER = "other"


@dataclass(frozen=True)
class AnalysisConfig:
    """Scoring context and merge budget for the analysis stage."""

    video_type: VideoType = VideoType.EDUCATIONAL
    focus_areas: tuple[str, ...] = ()
    target_audience: str = "general"
    min_informativeness_score: float = 5.0
    max_combined_duration: float = 180.0


@dataclass(frozen=True)
class ClippingConfig:
    """Limits for the optional clipping stage."""

    auto_clip: bool = True
    max_clips: int = 10
    min_score_threshold: float = 6.0


@dataclass(frozen=True)
class PipelineConfiguration:
    """Immutable configuration snapshot stored on every pipeline record."""

    segment_duration: int = 60
    language_code: str = "en"
    llm_provider: ScoringProviderName = ScoringProviderName.ANTHROPIC
    llm_model: str = "claude-sonnet-4-20250514"
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    clipping: ClippingConfig = field(default_factory=ClippingConfig)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["analysis"]["focus_areas"] = list(self.analysis.focus_areas)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfiguration:
        analysis = dict(data.get("analysis") or {})
        if "video_type" in analysis:
            analysis["video_type"] = VideoType(analysis["video_type"])
        analysis["focus_areas"] = tuple(analysis.get("focus_areas") or ())
        clipping = dict(data.get("clipping") or {})

        values = {k: v for k, v in data.items() if k not in ("analysis", "clipping")}
        if "llm_provider" in values:
            values["llm_provider"] = ScoringProviderName(values["llm_provider"])

        return cls(
            **values,
            analysis=AnalysisConfig(**analysis),
            clipping=ClippingConfig(**clipping),
        )


def default_model(settings: Settings, provider: ScoringProviderName) -> str:
    """The configured model name for *provider*."""
    if ScoringProviderName(provider) is ScoringProviderName.ANTHROPIC:
        return settings.llm_model
    return settings.openai_model


def default_configuration(settings: Settings) -> PipelineConfiguration:
    """Build the configuration used when an upload does not provide one."""
    return PipelineConfiguration(
        segment_duration=settings.default_segment_duration,
        language_code=settings.default_language_code,
        llm_provider=settings.scoring_provider,
        llm_model=default_model(settings, settings.scoring_provider),
        analysis=AnalysisConfig(
            video_type=VideoType(settings.default_video_type),
            target_audience=settings.default_target_audience,
            min_informativeness_score=settings.default_min_informativeness_score,
            max_combined_duration=settings.default_max_combined_duration,
        ),
        clipping=ClippingConfig(
            max_clips=settings.default_max_clips,
            min_score_threshold=settings.default_min_score_threshold,
        ),
    )
