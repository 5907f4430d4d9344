"""Pydantic request/response schemas for the Media Highlight API."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from pydantic import BaseModel, Field

from src.analysis.models import AnalysisRun, OptimizedSegment
from src.config import Settings, get_settings
from src.media.models import Clip, MediaFile
from src.pipeline.queue import JobStatusInfo
from src.pipeline.state import PipelineRecord, ProcessingStatus
from src.pipeline_config import (
    AnalysisConfig,
    ClippingConfig,
    PipelineConfiguration,
    ScoringProviderName,
    VideoType,
    default_model,
)


class AnalysisConfigIn(BaseModel):
    video_type: VideoType | None = None
    focus_areas: list[str] | None = None
    target_audience: str | None = None
    min_informativeness_score: float | None = Field(default=None, ge=1, le=10)
    max_combined_duration: float | None = Field(default=None, gt=0)


class ClippingConfigIn(BaseModel):
    auto_clip: bool | None = None
    max_clips: int | None = Field(default=None, ge=1, le=50)
    min_score_threshold: float | None = Field(default=None, ge=1, le=10)


class PipelineConfigurationIn(BaseModel):
    """Optional per-upload configuration. Omitted fields keep the server defaults."""

    segment_duration: int | None = Field(default=None, ge=10, le=300)
    llm_provider: ScoringProviderName | None = None
    llm_model: str | None = None
    analysis: AnalysisConfigIn | None = None
    clipping: ClippingConfigIn | None = None

    def to_configuration(
        self,
        base: PipelineConfiguration,
        language_code: str,
        settings: Settings | None = None,
    ) -> PipelineConfiguration:
        """Overlay the fields that were sent onto *base*.

        Switching ``llm_provider`` without naming ``llm_model`` selects that
        provider's configured model, so the pair always matches.
        """
        analysis: AnalysisConfig = base.analysis
        if self.analysis is not None:
            overrides = self.analysis.model_dump(exclude_none=True)
            if "focus_areas" in overrides:
                overrides["focus_areas"] = tuple(overrides["focus_areas"])
            analysis = replace(analysis, **overrides)

        clipping: ClippingConfig = base.clipping
        if self.clipping is not None:
            clipping = replace(clipping, **self.clipping.model_dump(exclude_none=True))

        top = self.model_dump(
            exclude_none=True,
            include={"segment_duration", "llm_provider", "llm_model"},
        )
        provider = top.get("llm_provider")
        if provider is not None and provider != base.llm_provider and "llm_model" not in top:
            top["llm_model"] = default_model(settings or get_settings(), provider)
        return replace(
            base,
            **top,
            language_code=language_code,
            analysis=analysis,
            clipping=clipping,
        )


class UploadResponse(BaseModel):
    """Response body for POST /api/media."""

    file_id: str
    pipeline_id: str
    status: ProcessingStatus
    queued: bool
    job_id: str | None = None
    message: str


class MediaFileOut(BaseModel):
    id: str
    original_name: str
    mime_type: str
    size_bytes: int
    uploaded_at: str

    @classmethod
    def from_media(cls, media: MediaFile) -> MediaFileOut:
        return cls(
            id=media.id,
            original_name=media.original_name,
            mime_type=media.mime_type,
            size_bytes=media.size_bytes,
            uploaded_at=media.uploaded_at,
        )


class MediaListResponse(BaseModel):
    files: list[MediaFileOut]
    total: int


class DeleteResponse(BaseModel):
    message: str


class ErrorDetailOut(BaseModel):
    stage: str
    message: str


class PipelineResponse(BaseModel):
    id: str
    file_id: str
    status: ProcessingStatus
    configuration: dict[str, Any]
    stage_timings: dict[str, float] = {}
    stage_messages: dict[str, str] = {}
    error: ErrorDetailOut | None = None
    transcript_id: str | None = None
    analysis_run_id: str | None = None
    started_at: str
    completed_at: str | None = None

    @classmethod
    def from_record(cls, record: PipelineRecord) -> PipelineResponse:
        return cls.model_validate(record.to_dict())


class TranscriptionTriggerRequest(BaseModel):
    file_id: str = Field(min_length=1)
    language_code: str | None = Field(default=None, min_length=1)


class AnalysisTriggerRequest(BaseModel):
    transcript_id: str = Field(min_length=1)


class ClippingTriggerRequest(BaseModel):
    """Clipping re-trigger. Omitted limits use the pipeline's stored configuration."""

    analysis_run_id: str = Field(min_length=1)
    max_clips: int | None = Field(default=None, ge=1, le=50)
    min_score_threshold: float | None = Field(default=None, ge=1, le=10)


class JobAcceptedResponse(BaseModel):
    stage: str
    job_id: str
    pipeline_id: str


class JobStatusResponse(BaseModel):
    job_id: str
    stage: str
    status: str
    result: Any = None
    error: str | None = None
    enqueued_at: str | None = None
    ended_at: str | None = None

    @classmethod
    def from_info(cls, info: JobStatusInfo) -> JobStatusResponse:
        return cls(
            job_id=info.job_id,
            stage=info.stage,
            status=info.status,
            result=info.result,
            error=info.error,
            enqueued_at=info.enqueued_at,
            ended_at=info.ended_at,
        )


class RankedSegmentOut(BaseModel):
    """A ranked highlight segment."""

    id: str
    rank: int
    start_time: str
    end_time: str
    duration_seconds: float
    aggregated_score: float
    extraction_priority: float
    percentile_rank: int
    title: str
    summary: str
    key_topics: list[str]
    combined_segment_ids: list[str]

    @classmethod
    def from_segment(cls, segment: OptimizedSegment) -> RankedSegmentOut:
        return cls(
            id=segment.id,
            rank=segment.rank,
            start_time=segment.start_time,
            end_time=segment.end_time,
            duration_seconds=segment.duration_seconds,
            aggregated_score=segment.aggregated_score,
            extraction_priority=segment.extraction_priority,
            percentile_rank=segment.percentile_rank,
            title=segment.final_title,
            summary=segment.final_summary,
            key_topics=segment.final_key_topics,
            combined_segment_ids=segment.combined_segment_ids,
        )


class AnalysisRunResponse(BaseModel):
    id: str
    pipeline_id: str
    transcript_id: str
    file_id: str
    llm_provider: str
    llm_model: str
    prompt_version: str
    video_type: str
    target_audience: str
    overall_summary: str
    main_topics: list[str]
    ranked_segments: list[RankedSegmentOut]
    metrics: dict[str, Any]
    created_at: str

    @classmethod
    def from_run(cls, run: AnalysisRun) -> AnalysisRunResponse:
        return cls(
            id=run.id,
            pipeline_id=run.pipeline_id,
            transcript_id=run.transcript_id,
            file_id=run.file_id,
            llm_provider=run.llm_provider,
            llm_model=run.llm_model,
            prompt_version=run.prompt_version,
            video_type=run.video_type,
            target_audience=run.target_audience,
            overall_summary=run.overall_summary,
            main_topics=run.main_topics,
            ranked_segments=[RankedSegmentOut.from_segment(s) for s in run.ranked_segments],
            metrics=run.metrics.to_dict(),
            created_at=run.created_at,
        )


class ClipOut(BaseModel):
    id: str
    segment_id: str
    rank: int
    start_time: str
    end_time: str
    duration_seconds: float
    title: str
    summary: str
    score: float
    clip_path: str
    size_bytes: int
    mime_type: str
    created_at: str

    @classmethod
    def from_clip(cls, clip: Clip) -> ClipOut:
        return cls.model_validate(clip.to_dict())


class ClipListResponse(BaseModel):
    analysis_run_id: str
    clips: list[ClipOut]
