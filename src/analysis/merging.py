"""Greedy merging of adjacent analyzed segments under a duration budget.

Segments are visited left to right while a *current group* is maintained.
Each new segment is compared against the group's **last** member only, so a
chain of pairwise-similar segments ends up in one group even when its ends
differ a lot.  The duration budget is a hard cutoff that is checked before
any other criterion, including the scorer's ``should_combine_with_next`` hint.
"""

from __future__ import annotations

from src.analysis.models import AnalyzedSegment, OptimizedSegment

SCORE_SIMILARITY_THRESHOLD = 2
HIGH_VALUE_SCORE = 7
SCORE_WEIGHT_EXPONENT = 1.5

COMBINED_TITLE_SUFFIX = " (Combined)"
COMBINED_SUMMARY_SUFFIX = " (Combined segments)"


def group_span_seconds(segment: AnalyzedSegment, group: list[AnalyzedSegment]) -> float:
    """Span of *group* in seconds if *segment* were appended to it."""
    return segment.start_seconds - group[0].start_seconds + segment.duration_seconds


def topics_overlap(topics_a: list[str], topics_b: list[str]) -> bool:
    """True if any topic contains, or is contained by, any other (case-insensitive)."""
    lowered_b = [t.strip().lower() for t in topics_b if t.strip()]
    for topic in topics_a:
        a = topic.strip().lower()
        if a and any(a in b or b in a for b in lowered_b):
            return True
    return False


def should_combine(
    segment: AnalyzedSegment,
    group: list[AnalyzedSegment],
    max_duration: float,
) -> bool:
    """Decide whether *segment* joins the current *group*.

    Args:
        segment: The next segment in time order.
        group: The open group (may be empty).
        max_duration: Maximum span of a merged group, in seconds.

    Returns:
        True to append the segment, False to close the group.
    """
    if not group:
        return True

    if group_span_seconds(segment, group) > max_duration:
        return False

    last = group[-1]
    if last.should_combine_with_next:
        return True
    if abs(segment.informativeness_score - last.informativeness_score) <= SCORE_SIMILARITY_THRESHOLD:
        return True
    if topics_overlap(segment.key_topics, last.key_topics):
        return True
    return (
        segment.informativeness_score >= HIGH_VALUE_SCORE
        and last.informativeness_score >= HIGH_VALUE_SCORE
    )


def aggregate_score(scores: list[float]) -> float:
    """Power-weighted mean (weight = score ** 1.5), rounded to one decimal.

    Higher scores pull the result up, so ``[7, 8, 9]`` gives 8.1 rather than 8.0.
    """
    if not scores:
        return 0.0
    if len(scores) == 1:
        return round(scores[0], 1)

    weights = [s**SCORE_WEIGHT_EXPONENT for s in scores]
    total_weight = sum(weights)
    if total_weight == 0:
        return 0.0
    weighted = sum(s * w for s, w in zip(scores, weights, strict=True))
    return round(weighted / total_weight, 1)


def combined_title(group: list[AnalyzedSegment]) -> str:
    """Title of the highest-scoring member, marked as combined."""
    if len(group) == 1:
        return group[0].title
    # max() keeps the earliest member on ties
    best = max(group, key=lambda s: s.informativeness_score)
    return f"{best.title}{COMBINED_TITLE_SUFFIX}"


def combined_summary(group: list[AnalyzedSegment]) -> str:
    """Space-joined non-blank member summaries, marked as combined."""
    if len(group) == 1:
        return group[0].summary
    parts = [s.summary.strip() for s in group if s.summary and s.summary.strip()]
    return " ".join(parts) + COMBINED_SUMMARY_SUFFIX


def unique_topics(group: list[AnalyzedSegment]) -> list[str]:
    """Union of member topics, first-seen order."""
    seen: set[str] = set()
    topics: list[str] = []
    for segment in group:
        for topic in segment.key_topics:
            if topic not in seen:
                seen.add(topic)
                topics.append(topic)
    return topics


def combine_group(group: list[AnalyzedSegment]) -> OptimizedSegment:
    """Collapse a non-empty group into a single :class:`OptimizedSegment`.

    ``rank`` is 0 (unranked) and ``extraction_priority`` equals the
    aggregated score until the ranking stage recomputes both.
    """
    if not group:
        raise ValueError("Cannot combine an empty group")

    members = sorted(group, key=lambda s: s.start_seconds)
    first, last = members[0], members[-1]
    score = aggregate_score([s.informativeness_score for s in members])

    return OptimizedSegment(
        id=first.id,
        start_time=first.start_time,
        end_time=last.end_time,
        start_seconds=first.start_seconds,
        end_seconds=last.end_seconds,
        duration_seconds=last.end_seconds - first.start_seconds,
        combined_segment_ids=[s.id for s in members],
        aggregated_score=score,
        final_title=combined_title(members),
        final_summary=combined_summary(members),
        final_key_topics=unique_topics(members),
        extraction_priority=score,
        rank=0,
        percentile_rank=max(s.percentile_rank for s in members),
    )


def merge_segments(
    segments: list[AnalyzedSegment],
    max_duration: float,
) -> list[OptimizedSegment]:
    """Greedily merge adjacent segments into optimized segments.

    Every input segment lands in exactly one output segment.

    Args:
        segments: Analyzed segments in time order.
        max_duration: Maximum span of a merged group, in seconds.

    Returns:
        Optimized segments in time order.
    """
    merged: list[OptimizedSegment] = []
    group: list[AnalyzedSegment] = []

    for segment in segments:
        if should_combine(segment, group, max_duration):
            group.append(segment)
        else:
            merged.append(combine_group(group))
            group = [segment]

    if group:
        merged.append(combine_group(group))

    return merged
