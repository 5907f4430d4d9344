"""Tests for settings, provider enums and the pipeline configuration snapshot."""

from __future__ import annotations

import pytest

from src.api.models import PipelineConfigurationIn
from src.config import Settings
from src.pipeline_config import (
    AnalysisConfig,
    ClippingConfig,
    PipelineConfiguration,
    RepositoryBackend,
    ScoringProviderName,
    TranscriptionProviderName,
    VideoType,
    default_configuration,
)

# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestProviderEnums:
    def test_values(self) -> None:
        assert ScoringProviderName.ANTHROPIC.value == "anthropic"
        assert ScoringProviderName.OPENAI.value == "openai"
        assert TranscriptionProviderName.OPENAI_WHISPER.value == "openai_whisper"
        assert RepositoryBackend.MEMORY.value == "memory"

    def test_from_string(self) -> None:
        assert ScoringProviderName("openai") is ScoringProviderName.OPENAI
        assert VideoType("podcast") is VideoType.PODCAST

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            ScoringProviderName("invalid")
        with pytest.raises(ValueError):
            VideoType("sitcom")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(VideoType.LECTURE, str)


# ---------------------------------------------------------------------------
# PipelineConfiguration tests
# ---------------------------------------------------------------------------


class TestPipelineConfiguration:
    def test_defaults(self) -> None:
        cfg = PipelineConfiguration()
        assert cfg.segment_duration == 60
        assert cfg.llm_provider is ScoringProviderName.ANTHROPIC
        assert cfg.analysis.video_type is VideoType.EDUCATIONAL
        assert cfg.clipping.auto_clip is True

    def test_immutable(self) -> None:
        cfg = PipelineConfiguration()
        with pytest.raises(AttributeError):
            cfg.segment_duration = 30  # type: ignore[misc]

    def test_dict_round_trip(self) -> None:
        cfg = PipelineConfiguration(
            segment_duration=45,
            language_code="fr",
            llm_provider=ScoringProviderName.OPENAI,
            llm_model="gpt-4o-mini",
            analysis=AnalysisConfig(video_type=VideoType.WEBINAR, focus_areas=("ml", "ops")),
            clipping=ClippingConfig(auto_clip=False, max_clips=4, min_score_threshold=7.5),
        )
        data = cfg.to_dict()

        assert data["analysis"]["focus_areas"] == ["ml", "ops"]
        assert data["llm_provider"] == "openai"
        assert PipelineConfiguration.from_dict(data) == cfg

    def test_from_partial_dict(self) -> None:
        cfg = PipelineConfiguration.from_dict({"segment_duration": 90})
        assert cfg.segment_duration == 90
        assert cfg.analysis == AnalysisConfig()
        assert cfg.clipping == ClippingConfig()


class TestDefaultConfiguration:
    def test_uses_settings(self) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None,
            default_segment_duration=30,
            default_video_type="interview",
            default_max_clips=5,
        )
        cfg = default_configuration(settings)

        assert cfg.segment_duration == 30
        assert cfg.analysis.video_type is VideoType.INTERVIEW
        assert cfg.clipping.max_clips == 5
        assert cfg.llm_model == settings.llm_model

    def test_openai_scorer_uses_openai_model(self) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, scoring_provider="openai", openai_model="gpt-test"
        )
        cfg = default_configuration(settings)
        assert cfg.llm_provider is ScoringProviderName.OPENAI
        assert cfg.llm_model == "gpt-test"


class TestConfigurationOverrides:
    def test_only_sent_fields_change(self) -> None:
        base = PipelineConfiguration(clipping=ClippingConfig(max_clips=8))
        overrides = PipelineConfigurationIn.model_validate(
            {"analysis": {"target_audience": "engineers"}, "clipping": {"auto_clip": False}}
        )

        cfg = overrides.to_configuration(base, "es")

        assert cfg.language_code == "es"
        assert cfg.segment_duration == base.segment_duration
        assert cfg.analysis.target_audience == "engineers"
        assert cfg.analysis.video_type is VideoType.EDUCATIONAL
        assert cfg.clipping.auto_clip is False
        assert cfg.clipping.max_clips == 8

    def test_provider_switch_selects_that_providers_model(self) -> None:
        settings = Settings(  # type: ignore[call-arg]
            _env_file=None, llm_model="claude-test", openai_model="gpt-test"
        )
        base = default_configuration(settings)
        overrides = PipelineConfigurationIn.model_validate_json('{"llm_provider": "openai"}')

        cfg = overrides.to_configuration(base, "en", settings)

        assert cfg.llm_provider is ScoringProviderName.OPENAI
        assert cfg.llm_model == "gpt-test"

    def test_explicit_model_kept_on_provider_switch(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        overrides = PipelineConfigurationIn.model_validate(
            {"llm_provider": "openai", "llm_model": "gpt-4o"}
        )

        cfg = overrides.to_configuration(default_configuration(settings), "en", settings)

        assert cfg.llm_model == "gpt-4o"

    def test_same_provider_keeps_base_model(self) -> None:
        settings = Settings(_env_file=None, openai_model="gpt-test")  # type: ignore[call-arg]
        base = PipelineConfiguration(llm_model="claude-custom")
        overrides = PipelineConfigurationIn.model_validate({"llm_provider": "anthropic"})

        assert overrides.to_configuration(base, "en", settings).llm_model == "claude-custom"

    def test_empty_overrides_keep_base(self) -> None:
        base = PipelineConfiguration()
        assert PipelineConfigurationIn().to_configuration(base, "en") == base
