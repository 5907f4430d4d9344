"""Percentiles, filtering, dense ranking and extraction priority."""

from __future__ import annotations

import bisect
from dataclasses import replace

from src.analysis.models import AnalyzedSegment, OptimizedSegment

TOP_RANK_CUTOFF = 3
TOP_RANK_BONUS = 1.0
TOP_PERCENTILE = 90
TOP_PERCENTILE_BONUS = 0.5
MAX_PRIORITY = 10.0


def percentile(score: float, all_scores: list[float]) -> int:
    """Position of *score* within *all_scores* as a 0-100 percentile.

    The result is the share of the population strictly below the first
    element that is ``>= score``.  The top score of the population (or any
    score when the population is empty) yields 100.
    """
    ordered = sorted(all_scores)
    if not ordered or score >= ordered[-1]:
        return 100
    index = bisect.bisect_left(ordered, score)
    # Halves round up
    return int(index / len(ordered) * 100 + 0.5)


def assign_percentiles(segments: list[AnalyzedSegment]) -> list[AnalyzedSegment]:
    """Fill ``percentile_rank`` for every segment against the whole run."""
    scores = [s.informativeness_score for s in segments]
    return [replace(s, percentile_rank=percentile(s.informativeness_score, scores)) for s in segments]


def extraction_priority(score: float, rank: int, percentile_rank: int) -> float:
    priority = score
    if rank <= TOP_RANK_CUTOFF:
        priority += TOP_RANK_BONUS
    if percentile_rank >= TOP_PERCENTILE:
        priority += TOP_PERCENTILE_BONUS
    return min(priority, MAX_PRIORITY)


def rank_segments(
    segments: list[OptimizedSegment],
    min_score_threshold: float,
    population: list[float] | None = None,
) -> list[OptimizedSegment]:
    """Filter, order and rank optimized segments.

    Args:
        segments: Merged segments of one analysis run.
        min_score_threshold: Segments below this aggregated score are dropped.
        population: Scores the percentile bonus is measured against. Defaults
            to the aggregated scores of *segments* before filtering.

    Returns:
        New segments ordered by score (desc) then start time (asc) with
        ``rank`` set to 1..N and ``extraction_priority`` recomputed.
    """
    if population is None:
        population = [s.aggregated_score for s in segments]

    kept = [s for s in segments if s.aggregated_score >= min_score_threshold]
    kept.sort(key=lambda s: (-s.aggregated_score, s.start_seconds))

    ranked: list[OptimizedSegment] = []
    for rank, segment in enumerate(kept, start=1):
        pct = percentile(segment.aggregated_score, population)
        ranked.append(
            replace(
                segment,
                rank=rank,
                percentile_rank=pct,
                extraction_priority=extraction_priority(segment.aggregated_score, rank, pct),
            )
        )
    return ranked


def select_for_clipping(
    segments: list[OptimizedSegment],
    max_clips: int,
    min_score_threshold: float,
) -> list[OptimizedSegment]:
    """Pick the segments to cut: highest extraction priority first, rank breaks ties."""
    eligible = [s for s in segments if s.aggregated_score >= min_score_threshold]
    eligible.sort(key=lambda s: (-s.extraction_priority, s.rank))
    return eligible[: max(0, max_clips)]
