"""Tests for the LLM scoring providers (no external APIs required)."""

from __future__ import annotations

import json
import os
from unittest.mock import MagicMock

import anthropic
import httpx
import openai
import pytest

from src.analysis.models import ScoringContext
from src.analysis.scoring import (
    SCORING_TOOL,
    AnthropicScoringProvider,
    OpenAIScoringProvider,
    _parse_tool_response,
    build_context_prompt,
    build_scoring_provider,
    parse_scoring_payload,
)
from src.errors import CollaboratorError, ValidationError
from tests.factories import raw_segment

CONTEXT = ScoringContext(
    video_type="lecture",
    focus_areas=("databases", "indexing"),
    target_audience="students",
    language="en",
)

PAYLOAD = {
    "segments": [
        {
            "segmentId": "s0",
            "informativenessScore": 8,
            "keyTopics": ["indexes", "b-trees"],
            "reasoning": "Dense explanation",
            "shouldCombineWithNext": True,
            "combinationReason": "Continues the example",
        },
        {
            "segmentId": "s1",
            "informativenessScore": 14,
            "keyTopics": [],
            "reasoning": "",
            "shouldCombineWithNext": False,
        },
    ],
    "overallSummary": "A lecture on indexing.",
    "mainTopics": ["indexes"],
}


def _tool_response(payload: dict) -> MagicMock:
    tool_block = MagicMock()
    tool_block.type = "tool_use"
    tool_block.name = SCORING_TOOL["name"]
    tool_block.input = payload
    response = MagicMock()
    response.content = [tool_block]
    return response


class TestBuildContextPrompt:
    def test_contains_context_and_segments(self) -> None:
        segments = [raw_segment("s0", 0, 60, "Hello world"), raw_segment("s1", 60, 60, "Bye")]
        prompt = build_context_prompt(segments, CONTEXT)

        assert "VIDEO CONTEXT: lecture" in prompt
        assert "ANALYSIS FOCUS: databases, indexing" in prompt
        assert "TARGET AUDIENCE: students" in prompt
        assert "Segment 1 (00:00:00 - 00:01:00)" in prompt
        assert "ID: s1" in prompt
        assert 'Text: "Bye"' in prompt


class TestParseScoringPayload:
    def test_parses_camel_case_fields(self) -> None:
        response = parse_scoring_payload(PAYLOAD)

        first = response.scores[0]
        assert first.segment_id == "s0"
        assert first.informativeness_score == 8.0
        assert first.key_topics == ["indexes", "b-trees"]
        assert first.should_combine_with_next is True
        assert first.combination_reason == "Continues the example"
        assert response.overall_summary == "A lecture on indexing."
        assert response.main_topics == ["indexes"]

    def test_scores_are_clamped(self) -> None:
        response = parse_scoring_payload(PAYLOAD)
        assert response.scores[1].informativeness_score == 10.0
        assert response.scores[1].combination_reason is None

    def test_unparseable_score_defaults(self) -> None:
        response = parse_scoring_payload({"segments": [{"segmentId": "x", "informativenessScore": "high"}]})
        assert response.scores[0].informativeness_score == 5.0

    def test_low_score_clamped_to_one(self) -> None:
        response = parse_scoring_payload({"segments": [{"segmentId": "x", "informativenessScore": -3}]})
        assert response.scores[0].informativeness_score == 1.0

    def test_blank_topics_dropped(self) -> None:
        response = parse_scoring_payload(
            {
                "segments": [{"segmentId": "x", "keyTopics": ["", " sql ", None, "  "]}],
                "mainTopics": ["", "databases"],
            }
        )
        assert response.scores[0].key_topics == ["sql"]
        assert response.main_topics == ["databases"]

    def test_combine_flag_requires_true(self) -> None:
        response = parse_scoring_payload(
            {
                "segments": [
                    {"segmentId": "a", "shouldCombineWithNext": "false"},
                    {"segmentId": "b", "shouldCombineWithNext": 1},
                    {"segmentId": "c", "shouldCombineWithNext": True},
                ]
            }
        )
        assert [s.should_combine_with_next for s in response.scores] == [False, False, True]


class TestParseToolResponse:
    def test_valid_tool_block(self) -> None:
        response = _parse_tool_response(_tool_response(PAYLOAD))
        assert [s.segment_id for s in response.scores] == ["s0", "s1"]

    def test_string_input_is_decoded(self) -> None:
        response = _parse_tool_response(_tool_response(json.dumps(PAYLOAD)))  # type: ignore[arg-type]
        assert len(response.scores) == 2

    def test_text_only_response_raises(self) -> None:
        text_block = MagicMock()
        text_block.type = "text"
        response = MagicMock()
        response.content = [text_block]
        with pytest.raises(CollaboratorError, match="no scoring tool call"):
            _parse_tool_response(response)


class TestAnthropicScoringProvider:
    def test_forces_tool_use(self) -> None:
        client = MagicMock()
        client.messages.create.return_value = _tool_response(PAYLOAD)
        provider = AnthropicScoringProvider(client, "claude-test")

        result = provider.score([raw_segment("s0", 0, 60), raw_segment("s1", 60, 60)], CONTEXT)

        assert len(result.scores) == 2
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["tools"] == [SCORING_TOOL]
        assert kwargs["tool_choice"] == {"type": "tool", "name": "store_segment_scores"}

    def test_api_error_is_wrapped(self) -> None:
        client = MagicMock()
        client.messages.create.side_effect = anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        )
        provider = AnthropicScoringProvider(client, "claude-test")

        with pytest.raises(CollaboratorError) as exc_info:
            provider.score([raw_segment("s0", 0, 60)], CONTEXT)
        assert exc_info.value.collaborator == "anthropic"


class TestOpenAIScoringProvider:
    def _client(self, content: str | None) -> MagicMock:
        message = MagicMock()
        message.content = content
        choice = MagicMock()
        choice.message = message
        response = MagicMock()
        response.choices = [choice]
        response.usage = None
        client = MagicMock()
        client.chat.completions.create.return_value = response
        return client

    def test_json_mode_response(self) -> None:
        client = self._client(json.dumps(PAYLOAD))
        provider = OpenAIScoringProvider(client, "gpt-test")

        result = provider.score([raw_segment("s0", 0, 60)], CONTEXT)

        assert result.scores[0].segment_id == "s0"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "RESPONSE FORMAT" in kwargs["messages"][1]["content"]

    def test_invalid_json_raises(self) -> None:
        provider = OpenAIScoringProvider(self._client("not json"), "gpt-test")
        with pytest.raises(CollaboratorError, match="invalid JSON"):
            provider.score([raw_segment("s0", 0, 60)], CONTEXT)

    def test_empty_content_raises(self) -> None:
        provider = OpenAIScoringProvider(self._client(None), "gpt-test")
        with pytest.raises(CollaboratorError, match="no response content"):
            provider.score([raw_segment("s0", 0, 60)], CONTEXT)

    def test_api_error_is_wrapped(self) -> None:
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
        provider = OpenAIScoringProvider(client, "gpt-test")
        with pytest.raises(CollaboratorError):
            provider.score([raw_segment("s0", 0, 60)], CONTEXT)


class TestBuildScoringProvider:
    def test_anthropic(self) -> None:
        provider = build_scoring_provider("anthropic", model="claude-x", anthropic_api_key="key")
        assert isinstance(provider, AnthropicScoringProvider)
        assert provider.model == "claude-x"

    def test_openai(self) -> None:
        provider = build_scoring_provider("openai", model="gpt-x", openai_api_key="key")
        assert isinstance(provider, OpenAIScoringProvider)

    def test_missing_key(self) -> None:
        with pytest.raises(ValidationError):
            build_scoring_provider("anthropic", model="claude-x")

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError):
            build_scoring_provider("gemini", model="x", anthropic_api_key="key")


@pytest.mark.expensive
def test_live_anthropic_scoring() -> None:
    """Scores two short segments against the real Anthropic API.

    Run with: pytest -m expensive tests/test_scoring.py -v
    """
    api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    if not api_key:
        pytest.skip("ANTHROPIC_API_KEY not set")

    provider = build_scoring_provider(
        "anthropic", model="claude-sonnet-4-20250514", anthropic_api_key=api_key
    )
    segments = [
        raw_segment("s0", 0, 60, "A B-tree index keeps keys sorted so range scans touch few pages."),
        raw_segment("s1", 60, 60, "Um, okay, so, let me just find my slides real quick."),
    ]
    result = provider.score(segments, CONTEXT)

    assert len(result.scores) == 2
    assert all(1 <= s.informativeness_score <= 10 for s in result.scores)
