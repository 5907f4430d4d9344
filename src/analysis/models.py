"""Data models for segment scoring, merging, ranking and analysis runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class ScoringContext:
    """Context sent to the scoring provider alongside the segments."""

    video_type: str
    focus_areas: tuple[str, ...] = ()
    target_audience: str = "general"
    language: str = "en"


@dataclass(frozen=True)
class SegmentScore:
    """One scoring-provider entry for a single segment."""

    segment_id: str
    informativeness_score: float
    key_topics: list[str] = field(default_factory=list)
    reasoning: str = ""
    should_combine_with_next: bool = False
    combination_reason: str | None = None


@dataclass(frozen=True)
class ScoringResponse:
    """Ordered scores for a batch of segments plus transcript-level context."""

    scores: list[SegmentScore]
    overall_summary: str = ""
    main_topics: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AnalyzedSegment:
    """A raw segment enriched with its score and derived text features."""

    id: str
    start_time: str
    end_time: str
    start_seconds: float
    end_seconds: float
    duration_seconds: float
    text: str
    informativeness_score: float
    key_topics: list[str]
    reasoning: str
    should_combine_with_next: bool
    title: str
    summary: str
    keyword_density: float
    recommended_for_extraction: bool
    combination_reason: str | None = None
    percentile_rank: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalyzedSegment:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class OptimizedSegment:
    """One or more adjacent analyzed segments merged into a highlight candidate."""

    id: str
    start_time: str
    end_time: str
    start_seconds: float
    end_seconds: float
    duration_seconds: float
    combined_segment_ids: list[str]
    aggregated_score: float
    final_title: str
    final_summary: str
    final_key_topics: list[str]
    extraction_priority: float
    rank: int = 0
    percentile_rank: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OptimizedSegment:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class ScoreDistribution:
    """Segment counts per score band."""

    excellent: int = 0  # 9-10
    good: int = 0  # 7-8
    average: int = 0  # 5-6
    poor: int = 0  # 1-4


@dataclass(frozen=True)
class AnalysisMetrics:
    """Top-level counters for one analysis run."""

    total_segments_analyzed: int
    high_value_segments: int
    optimized_segments: int
    ranked_segments: int
    average_score: float
    score_distribution: ScoreDistribution
    merge_efficiency: float
    retention_ratio: float
    processing_time_ms: int = 0
    tokens_estimated: int = 0
    batches: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisMetrics:
        values = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        values["score_distribution"] = ScoreDistribution(**data.get("score_distribution", {}))
        return cls(**values)


@dataclass(frozen=True)
class AnalysisRun:
    """The immutable result of the analysis stage for one transcript."""

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
    analyzed_segments: list[AnalyzedSegment]
    optimized_segments: list[OptimizedSegment]  # every merged group, time order
    ranked_segments: list[OptimizedSegment]  # filtered, ordered by rank
    metrics: AnalysisMetrics
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["analyzed_segments"] = [s.to_dict() for s in self.analyzed_segments]
        data["optimized_segments"] = [s.to_dict() for s in self.optimized_segments]
        data["ranked_segments"] = [s.to_dict() for s in self.ranked_segments]
        data["metrics"] = self.metrics.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisRun:
        values = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        values["analyzed_segments"] = [
            AnalyzedSegment.from_dict(s) for s in data.get("analyzed_segments") or []
        ]
        values["optimized_segments"] = [
            OptimizedSegment.from_dict(s) for s in data.get("optimized_segments") or []
        ]
        values["ranked_segments"] = [
            OptimizedSegment.from_dict(s) for s in data.get("ranked_segments") or []
        ]
        values["metrics"] = AnalysisMetrics.from_dict(data["metrics"])
        return cls(**values)
