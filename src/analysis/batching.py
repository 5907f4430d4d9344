"""Batch planning for scoring requests.

A transcript is scored in one request when its prompt fits the token budget.
Otherwise it is split into three contiguous chunks that are scored one after
another and merged back in their original order.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace

from src.analysis.models import ScoringContext, ScoringResponse, SegmentScore
from src.analysis.scoring import ScoringProvider, build_context_prompt
from src.media.models import RawSegment

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_CHUNKS = 3
DEFAULT_SCORE = 5.0
DEFAULT_TOPICS = ["general"]
DEFAULT_REASONING = "Default analysis - no specific analysis available"


@dataclass(frozen=True)
class BatchResult:
    """Merged scoring response plus how it was obtained."""

    response: ScoringResponse
    batches: int
    estimated_tokens: int


def estimate_tokens(text: str) -> int:
    """Rough token estimate: 1 token per 4 characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def split_into_chunks(segments: list[RawSegment], parts: int = DEFAULT_CHUNKS) -> list[list[RawSegment]]:
    """Split *segments* into *parts* contiguous chunks whose sizes differ by at most one.

    Order is preserved and no chunk is empty; fewer segments than *parts*
    yields one chunk per segment.
    """
    if not segments:
        return []
    parts = max(1, min(parts, len(segments)))
    base, extra = divmod(len(segments), parts)

    chunks: list[list[RawSegment]] = []
    start = 0
    for i in range(parts):
        size = base + (1 if i < extra else 0)
        chunks.append(segments[start : start + size])
        start += size
    return chunks


def merge_chunk_responses(responses: list[ScoringResponse]) -> ScoringResponse:
    """Concatenate per-chunk responses, given in chunk order."""
    scores: list[SegmentScore] = []
    main_topics: list[str] = []
    seen: set[str] = set()
    summaries: list[str] = []

    for response in responses:
        scores.extend(response.scores)
        for topic in response.main_topics:
            if topic not in seen:
                seen.add(topic)
                main_topics.append(topic)
        if response.overall_summary:
            summaries.append(response.overall_summary)

    return ScoringResponse(
        scores=scores,
        overall_summary=" ".join(summaries),
        main_topics=main_topics,
    )


def default_score(segment_id: str) -> SegmentScore:
    return SegmentScore(
        segment_id=segment_id,
        informativeness_score=DEFAULT_SCORE,
        key_topics=list(DEFAULT_TOPICS),
        reasoning=DEFAULT_REASONING,
        should_combine_with_next=False,
    )


def align_scores(segments: list[RawSegment], scores: list[SegmentScore]) -> list[SegmentScore]:
    """Return exactly one score per segment, in segment order.

    Matching is by segment id first, then by position. Segments the provider
    skipped get a neutral default score; surplus entries are dropped.
    """
    by_id = {s.segment_id: s for s in scores if s.segment_id}
    aligned: list[SegmentScore] = []
    for index, segment in enumerate(segments):
        score = by_id.get(segment.id)
        if score is None and index < len(scores):
            score = scores[index]
        if score is None:
            logger.warning("No score returned for segment %s; using default", segment.id)
            score = default_score(segment.id)
        if score.segment_id != segment.id:
            score = replace(score, segment_id=segment.id)
        aligned.append(score)
    return aligned


def score_segments(
    segments: list[RawSegment],
    context: ScoringContext,
    provider: ScoringProvider,
    max_tokens: int,
) -> BatchResult:
    """Score all segments of a transcript, splitting the request if it is too large.

    Args:
        segments: Transcript segments in time order.
        context: Scoring context (video type, focus areas, audience).
        provider: The scoring collaborator.
        max_tokens: Token budget for a single request.

    Returns:
        A :class:`BatchResult` whose response holds exactly one score per
        input segment, in input order.
    """
    estimated = estimate_tokens(build_context_prompt(segments, context))

    if estimated <= max_tokens:
        chunks = [segments]
    else:
        chunks = split_into_chunks(segments)
        logger.info(
            "Prompt of ~%d tokens exceeds budget %d; scoring in %d batches",
            estimated,
            max_tokens,
            len(chunks),
        )

    responses = [provider.score(chunk, context) for chunk in chunks]
    merged = merge_chunk_responses(responses)

    return BatchResult(
        response=ScoringResponse(
            scores=align_scores(segments, merged.scores),
            overall_summary=merged.overall_summary,
            main_topics=merged.main_topics,
        ),
        batches=len(chunks),
        estimated_tokens=estimated,
    )
