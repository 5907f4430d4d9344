"""LLM-powered informativeness scoring of transcript segments."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from src.analysis.models import ScoringContext, ScoringResponse, SegmentScore
from src.errors import CollaboratorError, ValidationError
from src.media.models import RawSegment
from src.pipeline_config import ScoringProviderName

logger = logging.getLogger(__name__)

PROMPT_VERSION = "1.0"
MIN_SCORE = 1.0
MAX_SCORE = 10.0

SYSTEM_PROMPT = (
    "You are an expert content analyst specializing in video content evaluation. "
    "You analyze transcript segments based on their informational value.\n\n"
    "For each segment provide:\n"
    "1. **Informativeness score**: 1-10, where 10 is the highest.\n"
    "2. **Key topics**: the 2-3 main topics.\n"
    "3. **Reasoning**: a brief justification for the score.\n"
    "4. **Combine with next**: whether the segment should be merged with the "
    "one that follows it, and why.\n\n"
    "Also provide an overall summary of the content and the main topics across "
    "all segments. Return exactly one entry per segment, in the order given, "
    "using the segment IDs provided."
)

# Tool definition for Claude structured output
SCORING_TOOL: dict[str, Any] = {
    "name": "store_segment_scores",
    "description": (
        "Store informativeness scores for transcript segments. "
        "Call this once with one entry per segment, in input order."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "segments": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "segmentId": {"type": "string"},
                        "informativenessScore": {
                            "type": "number",
                            "description": "Score 1-10.",
                        },
                        "keyTopics": {"type": "array", "items": {"type": "string"}},
                        "reasoning": {"type": "string"},
                        "shouldCombineWithNext": {"type": "boolean"},
                        "combinationReason": {"type": "string"},
                    },
                    "required": [
                        "segmentId",
                        "informativenessScore",
                        "keyTopics",
                        "reasoning",
                        "shouldCombineWithNext",
                    ],
                },
            },
            "overallSummary": {"type": "string"},
            "mainTopics": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["segments", "overallSummary", "mainTopics"],
    },
}

JSON_FORMAT_INSTRUCTIONS = """RESPONSE FORMAT: Return a JSON object with this exact structure:
{
  "segments": [
    {
      "segmentId": "segment_id",
      "informativenessScore": 8,
      "keyTopics": ["topic1", "topic2"],
      "reasoning": "Brief explanation of the score",
      "shouldCombineWithNext": false,
      "combinationReason": "Optional reason for combination"
    }
  ],
  "overallSummary": "Overall summary of the content",
  "mainTopics": ["main_topic1", "main_topic2", "main_topic3"]
}"""


class ScoringProvider(Protocol):
    """Scores a batch of segments; one entry per input segment, same order."""

    name: str
    model: str

    def score(self, segments: list[RawSegment], context: ScoringContext) -> ScoringResponse: ...


def build_context_prompt(segments: list[RawSegment], context: ScoringContext) -> str:
    """Render the scoring context and segments as a single prompt."""
    segments_text = "\n\n".join(
        f"Segment {i + 1} ({s.start_time} - {s.end_time}):\n"
        f"ID: {s.id}\n"
        f"Duration: {s.duration_seconds:g}s\n"
        f'Text: "{s.text}"'
        for i, s in enumerate(segments)
    )
    return (
        f"VIDEO CONTEXT: {context.video_type}\n"
        f"ANALYSIS FOCUS: {', '.join(context.focus_areas)}\n"
        f"TARGET AUDIENCE: {context.target_audience}\n"
        f"ANALYSIS LANGUAGE: {context.language}\n\n"
        f"SEGMENTS FOR ANALYSIS:\n{segments_text}"
    )


def _clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 5.0
    return min(MAX_SCORE, max(MIN_SCORE, score))


def _clean_topics(value: Any) -> list[str]:
    """Non-blank topic strings, stripped."""
    if not isinstance(value, list):
        return []
    topics = (str(t).strip() for t in value if t is not None)
    return [t for t in topics if t]


def parse_scoring_payload(data: dict[str, Any]) -> ScoringResponse:
    """Convert the provider's camelCase JSON payload into a :class:`ScoringResponse`.

    ``shouldCombineWithNext`` counts only when it is a JSON ``true``.
    """
    scores: list[SegmentScore] = []
    for entry in data.get("segments", []):
        scores.append(
            SegmentScore(
                segment_id=str(entry.get("segmentId", "")),
                informativeness_score=_clamp_score(entry.get("informativenessScore")),
                key_topics=_clean_topics(entry.get("keyTopics")),
                reasoning=entry.get("reasoning") or "",
                should_combine_with_next=entry.get("shouldCombineWithNext") is True,
                combination_reason=entry.get("combinationReason") or None,
            )
        )
    return ScoringResponse(
        scores=scores,
        overall_summary=data.get("overallSummary") or "",
        main_topics=_clean_topics(data.get("mainTopics")),
    )


def _parse_tool_response(response: Any) -> ScoringResponse:
    """Parse the Claude tool_use response into a ScoringResponse."""
    for block in response.content:
        if block.type != "tool_use":
            continue
        if block.name != SCORING_TOOL["name"]:
            continue

        data = block.input
        if isinstance(data, str):
            data = json.loads(data)
        return parse_scoring_payload(data)

    raise CollaboratorError("anthropic", "response contained no scoring tool call")


class AnthropicScoringProvider:
    """Scores segments with Claude using forced tool use."""

    name = ScoringProviderName.ANTHROPIC.value

    def __init__(self, client: Anthropic, model: str, max_tokens: int = 4096) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    def score(self, segments: list[RawSegment], context: ScoringContext) -> ScoringResponse:
        logger.info("Scoring %d segments with %s", len(segments), self.model)
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                tools=[SCORING_TOOL],
                tool_choice={"type": "tool", "name": SCORING_TOOL["name"]},
                messages=[
                    {
                        "role": "user",
                        "content": build_context_prompt(segments, context),
                    }
                ],
            )
        except anthropic.APIError as exc:
            raise CollaboratorError("anthropic", str(exc)) from exc

        return _parse_tool_response(response)


class OpenAIScoringProvider:
    """Scores segments with an OpenAI chat model in JSON mode."""

    name = ScoringProviderName.OPENAI.value

    def __init__(self, client: OpenAI, model: str, max_tokens: int = 4000) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    def score(self, segments: list[RawSegment], context: ScoringContext) -> ScoringResponse:
        logger.info("Scoring %d segments with %s", len(segments), self.model)
        prompt = f"{build_context_prompt(segments, context)}\n\n{JSON_FORMAT_INSTRUCTIONS}"
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            raise CollaboratorError("openai", str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise CollaboratorError("openai", "no response content")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise CollaboratorError("openai", f"invalid JSON response: {exc}") from exc

        if response.usage is not None:
            logger.info("OpenAI scoring used %d tokens", response.usage.total_tokens)
        return parse_scoring_payload(data)


def build_scoring_provider(
    provider: ScoringProviderName | str,
    *,
    model: str,
    anthropic_api_key: str = "",
    openai_api_key: str = "",
) -> ScoringProvider:
    """Construct the configured scoring backend once, at process start."""
    provider = ScoringProviderName(provider)
    if provider is ScoringProviderName.ANTHROPIC:
        if not anthropic_api_key:
            raise ValidationError("ANTHROPIC_API_KEY is required for the anthropic scorer")
        return AnthropicScoringProvider(Anthropic(api_key=anthropic_api_key), model)
    if not openai_api_key:
        raise ValidationError("OPENAI_API_KEY is required for the openai scorer")
    return OpenAIScoringProvider(OpenAI(api_key=openai_api_key), model)
