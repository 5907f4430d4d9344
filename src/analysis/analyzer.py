"""End-to-end segment analysis: score -> enrich -> merge -> rank -> metrics."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime

from src.analysis.batching import score_segments
from src.analysis.merging import HIGH_VALUE_SCORE, merge_segments
from src.analysis.models import (
    AnalysisMetrics,
    AnalysisRun,
    AnalyzedSegment,
    OptimizedSegment,
    ScoreDistribution,
    ScoringContext,
    SegmentScore,
)
from src.analysis.ranking import assign_percentiles, rank_segments
from src.analysis.scoring import PROMPT_VERSION, ScoringProvider
from src.media.models import RawSegment, Transcript
from src.pipeline_config import PipelineConfiguration

logger = logging.getLogger(__name__)

TITLE_WORDS = 8
SUMMARY_SENTENCES = 2


def segment_title(text: str) -> str:
    """First eight words of the text, with an ellipsis if truncated."""
    words = text.split()
    title = " ".join(words[:TITLE_WORDS])
    return f"{title}..." if len(words) > TITLE_WORDS else title


def segment_summary(text: str) -> str:
    """First two ``.``-separated sentences, with an ellipsis if truncated."""
    sentences = text.split(".")
    summary = ".".join(sentences[:SUMMARY_SENTENCES])
    return f"{summary}..." if len(sentences) > SUMMARY_SENTENCES else summary


def keyword_density(text: str) -> float:
    """Ratio of unique (lower-cased) words to total words."""
    words = text.lower().split()
    if not words:
        return 0.0
    return len(set(words)) / len(words)


def enrich_segment(segment: RawSegment, score: SegmentScore) -> AnalyzedSegment:
    return AnalyzedSegment(
        id=segment.id,
        start_time=segment.start_time,
        end_time=segment.end_time,
        start_seconds=segment.start_seconds,
        end_seconds=segment.end_seconds,
        duration_seconds=segment.duration_seconds,
        text=segment.text,
        informativeness_score=score.informativeness_score,
        key_topics=list(score.key_topics),
        reasoning=score.reasoning,
        should_combine_with_next=score.should_combine_with_next,
        combination_reason=score.combination_reason,
        title=segment_title(segment.text),
        summary=segment_summary(segment.text),
        keyword_density=keyword_density(segment.text),
        recommended_for_extraction=score.informativeness_score >= HIGH_VALUE_SCORE,
    )


def score_distribution(scores: list[float]) -> ScoreDistribution:
    return ScoreDistribution(
        excellent=sum(1 for s in scores if s >= 9),
        good=sum(1 for s in scores if 7 <= s < 9),
        average=sum(1 for s in scores if 5 <= s < 7),
        poor=sum(1 for s in scores if s < 5),
    )


def calculate_metrics(
    analyzed: list[AnalyzedSegment],
    optimized: list[OptimizedSegment],
    ranked: list[OptimizedSegment],
    *,
    processing_time_ms: int = 0,
    tokens_estimated: int = 0,
    batches: int = 1,
) -> AnalysisMetrics:
    """Counts, score distribution and merge-efficiency ratios for one run."""
    scores = [s.informativeness_score for s in analyzed]
    return AnalysisMetrics(
        total_segments_analyzed=len(analyzed),
        high_value_segments=sum(1 for s in scores if s >= HIGH_VALUE_SCORE),
        optimized_segments=len(optimized),
        ranked_segments=len(ranked),
        average_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
        score_distribution=score_distribution(scores),
        merge_efficiency=round(len(optimized) / len(analyzed), 3) if analyzed else 0.0,
        retention_ratio=round(len(ranked) / len(optimized), 3) if optimized else 0.0,
        processing_time_ms=processing_time_ms,
        tokens_estimated=tokens_estimated,
        batches=batches,
    )


def analyze_transcript(
    transcript: Transcript,
    configuration: PipelineConfiguration,
    provider: ScoringProvider,
    *,
    max_tokens: int,
) -> AnalysisRun:
    """Run the full analysis of one transcript.

    Args:
        transcript: The transcript whose segments are analysed.
        configuration: The pipeline's configuration snapshot.
        provider: The scoring collaborator.
        max_tokens: Token budget for a single scoring request.

    Returns:
        A new :class:`AnalysisRun` holding analyzed and ranked optimized segments.
    """
    started = time.perf_counter()
    analysis_config = configuration.analysis
    logger.info("Starting segment analysis for %d segments", len(transcript.segments))

    context = ScoringContext(
        video_type=str(analysis_config.video_type),
        focus_areas=analysis_config.focus_areas,
        target_audience=analysis_config.target_audience,
        language=configuration.language_code,
    )
    batch = score_segments(transcript.segments, context, provider, max_tokens)

    analyzed = assign_percentiles(
        [
            enrich_segment(segment, score)
            for segment, score in zip(transcript.segments, batch.response.scores, strict=True)
        ]
    )
    optimized = merge_segments(analyzed, analysis_config.max_combined_duration)
    ranked = rank_segments(optimized, analysis_config.min_informativeness_score)

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    metrics = calculate_metrics(
        analyzed,
        optimized,
        ranked,
        processing_time_ms=elapsed_ms,
        tokens_estimated=batch.estimated_tokens,
        batches=batch.batches,
    )
    logger.info(
        "Analysis completed: %d segments -> %d merged -> %d ranked in %dms",
        len(analyzed),
        len(optimized),
        len(ranked),
        elapsed_ms,
    )

    return AnalysisRun(
        id=str(uuid.uuid4()),
        pipeline_id=transcript.pipeline_id,
        transcript_id=transcript.id,
        file_id=transcript.file_id,
        llm_provider=provider.name,
        llm_model=provider.model,
        prompt_version=PROMPT_VERSION,
        video_type=str(analysis_config.video_type),
        target_audience=analysis_config.target_audience,
        overall_summary=batch.response.overall_summary,
        main_topics=batch.response.main_topics,
        analyzed_segments=analyzed,
        optimized_segments=optimized,
        ranked_segments=ranked,
        metrics=metrics,
        created_at=datetime.now(UTC).isoformat(),
    )
