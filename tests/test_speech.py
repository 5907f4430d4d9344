"""Tests for word bucketing and the speech-to-text backends (APIs mocked)."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from src.errors import CollaboratorError, ValidationError
from src.media.speech import (
    NO_SPEECH_TEXT,
    AssemblyAITranscriber,
    SpeechWord,
    WhisperTranscriber,
    bucket_words,
    build_transcriber,
)


def _words(count: int, step: float = 1.0) -> list[SpeechWord]:
    return [SpeechWord(f"w{i}", i * step, i * step + step * 0.8, 0.9) for i in range(count)]


class TestBucketWords:
    def test_closes_segment_at_duration(self) -> None:
        # word i spans [i, i + 0.8]; a segment closes once a word ends >= 10s after its start
        segments = bucket_words(_words(25), segment_duration=10)

        assert [s.word_count for s in segments] == [11, 11, 3]
        assert segments[0].start_seconds == 0
        assert segments[0].end_seconds == pytest.approx(10.8)
        assert segments[1].start_seconds == 11
        assert segments[0].start_time == "00:00:00"
        assert segments[0].end_time == "00:00:10"
        assert segments[0].text.startswith("w0 w1 w2")

    def test_segments_are_ordered_and_disjoint(self) -> None:
        segments = bucket_words(_words(100, step=0.5), segment_duration=7)
        for earlier, later in zip(segments, segments[1:]):
            assert earlier.end_seconds <= later.start_seconds
        assert sum(s.word_count for s in segments) == 100

    def test_average_confidence(self) -> None:
        words = [SpeechWord("a", 0, 1, 0.5), SpeechWord("b", 1, 2, 1.0)]
        (segment,) = bucket_words(words, segment_duration=60)
        assert segment.avg_confidence == 0.75
        assert segment.duration_seconds == 2

    def test_unique_ids(self) -> None:
        segments = bucket_words(_words(50), segment_duration=5)
        assert len({s.id for s in segments}) == len(segments)

    def test_no_words_yields_placeholder(self) -> None:
        segments = bucket_words([], segment_duration=60)
        assert len(segments) == 1
        assert segments[0].text == NO_SPEECH_TEXT
        assert segments[0].duration_seconds == 0
        assert segments[0].word_count == 0


class TestAssemblyAITranscriber:
    def test_converts_milliseconds(self) -> None:
        with patch("src.media.speech.aai") as aai:
            transcript = MagicMock()
            transcript.status = "completed"
            transcript.words = [
                SimpleNamespace(text="Hello", start=0, end=400, confidence=0.9),
                SimpleNamespace(text="world", start=500, end=1200, confidence=None),
            ]
            aai.Transcriber.return_value.transcribe.return_value = transcript
            aai.TranscriptStatus.error = "error"

            segments = AssemblyAITranscriber("key").transcribe("/tmp/a.wav", "en", 60)

            config_kwargs = aai.TranscriptionConfig.call_args.kwargs
            assert config_kwargs["language_code"] == "en"

        assert len(segments) == 1
        assert segments[0].text == "Hello world"
        assert segments[0].end_seconds == pytest.approx(1.2)
        assert segments[0].avg_confidence == 0.45

    def test_error_status_raises(self) -> None:
        with patch("src.media.speech.aai") as aai:
            transcript = MagicMock()
            transcript.status = "error"
            transcript.error = "Audio file is empty"
            aai.Transcriber.return_value.transcribe.return_value = transcript
            aai.TranscriptStatus.error = "error"

            with pytest.raises(CollaboratorError, match="Audio file is empty"):
                AssemblyAITranscriber("key").transcribe("/tmp/a.wav", "en", 60)

    def test_transport_error_is_wrapped(self) -> None:
        with patch("src.media.speech.aai") as aai:
            aai.Transcriber.return_value.transcribe.side_effect = ConnectionError("unreachable")
            with pytest.raises(CollaboratorError) as exc_info:
                AssemblyAITranscriber("key").transcribe("/tmp/a.wav", "en", 60)
        assert exc_info.value.collaborator == "assemblyai"


class TestWhisperTranscriber:
    def test_word_timestamps(self, tmp_path: Path) -> None:
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        client = MagicMock()
        client.audio.transcriptions.create.return_value = SimpleNamespace(
            words=[
                SimpleNamespace(word=" Hi", start=0.0, end=0.4),
                SimpleNamespace(word=" there", start=0.5, end=1.0),
            ]
        )

        segments = WhisperTranscriber(client, "whisper-1").transcribe(str(audio), "en", 60)

        assert segments[0].text == "Hi there"
        assert segments[0].avg_confidence == 1.0
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["timestamp_granularities"] == ["word"]
        assert kwargs["response_format"] == "verbose_json"
        assert kwargs["language"] == "en"

    def test_no_words_placeholder(self, tmp_path: Path) -> None:
        audio = tmp_path / "silence.wav"
        audio.write_bytes(b"RIFF")
        client = MagicMock()
        client.audio.transcriptions.create.return_value = SimpleNamespace(words=None)

        segments = WhisperTranscriber(client).transcribe(str(audio), "en", 60)

        assert [s.text for s in segments] == [NO_SPEECH_TEXT]

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(CollaboratorError):
            WhisperTranscriber(MagicMock()).transcribe(str(tmp_path / "nope.wav"), "en", 60)

    def test_api_error_is_wrapped(self, tmp_path: Path) -> None:
        audio = tmp_path / "a.wav"
        audio.write_bytes(b"RIFF")
        client = MagicMock()
        client.audio.transcriptions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")
        )
        with pytest.raises(CollaboratorError) as exc_info:
            WhisperTranscriber(client).transcribe(str(audio), "en", 60)
        assert exc_info.value.collaborator == "openai_whisper"


class TestBuildTranscriber:
    def test_whisper(self) -> None:
        transcriber = build_transcriber("openai_whisper", openai_api_key="key", whisper_model="w")
        assert isinstance(transcriber, WhisperTranscriber)
        assert transcriber.model == "w"

    def test_assemblyai(self) -> None:
        with patch("src.media.speech.aai"):
            transcriber = build_transcriber("assemblyai", assemblyai_api_key="key")
        assert isinstance(transcriber, AssemblyAITranscriber)

    def test_missing_keys(self) -> None:
        with pytest.raises(ValidationError):
            build_transcriber("assemblyai")
        with pytest.raises(ValidationError):
            build_transcriber("openai_whisper")
