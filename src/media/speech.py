"""Speech-to-text collaborators and word-to-segment bucketing."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import assemblyai as aai  # type: ignore[import-untyped]
import openai
from openai import OpenAI

from src.errors import CollaboratorError, ValidationError
from src.media.models import RawSegment
from src.pipeline_config import TranscriptionProviderName
from src.timecodes import seconds_to_timecode

logger = logging.getLogger(__name__)

NO_SPEECH_TEXT = "[no speech detected]"


@dataclass(frozen=True)
class SpeechWord:
    """One recognised word; times are in seconds."""

    text: str
    start: float
    end: float
    confidence: float = 0.0


class SpeechToTextProvider(Protocol):
    """Transcribes an audio file into time-ordered segments (never empty)."""

    name: str

    def transcribe(
        self, audio_path: str, language_hint: str, segment_duration: int
    ) -> list[RawSegment]: ...


def _make_segment(words: list[SpeechWord]) -> RawSegment:
    start = words[0].start
    end = words[-1].end
    return RawSegment(
        id=str(uuid.uuid4()),
        start_time=seconds_to_timecode(start),
        end_time=seconds_to_timecode(end),
        start_seconds=start,
        end_seconds=end,
        duration_seconds=round(end - start, 3),
        text=" ".join(w.text for w in words),
        word_count=len(words),
        avg_confidence=round(sum(w.confidence for w in words) / len(words), 3),
    )


def no_speech_segment() -> RawSegment:
    return RawSegment(
        id=str(uuid.uuid4()),
        start_time=seconds_to_timecode(0),
        end_time=seconds_to_timecode(0),
        start_seconds=0.0,
        end_seconds=0.0,
        duration_seconds=0.0,
        text=NO_SPEECH_TEXT,
    )


def bucket_words(words: list[SpeechWord], segment_duration: int) -> list[RawSegment]:
    """Group words into segments of roughly *segment_duration* seconds.

    A segment is closed once the word that ends it reaches the duration, so
    segments can run slightly over but never cut a word in half. Audio with
    no words yields a single placeholder segment.
    """
    segments: list[RawSegment] = []
    current: list[SpeechWord] = []

    for word in words:
        current.append(word)
        if word.end - current[0].start >= segment_duration:
            segments.append(_make_segment(current))
            current = []

    if current:
        segments.append(_make_segment(current))

    if not segments:
        logger.warning("No speech detected; emitting placeholder segment")
        segments.append(no_speech_segment())
    return segments


class AssemblyAITranscriber:
    """AssemblyAI backend; word timings come back in milliseconds."""

    name = TranscriptionProviderName.ASSEMBLYAI.value

    def __init__(self, api_key: str) -> None:
        aai.settings.api_key = api_key
        self.transcriber = aai.Transcriber()

    def transcribe(
        self, audio_path: str, language_hint: str, segment_duration: int
    ) -> list[RawSegment]:
        logger.info("Transcribing %s with AssemblyAI (language=%s)", audio_path, language_hint)
        config = aai.TranscriptionConfig(
            speech_models=["universal-3-pro"],
            language_code=language_hint,
        )
        try:
            transcript = self.transcriber.transcribe(audio_path, config=config)
        except Exception as exc:
            # SDK raises plain transport errors (network, auth) without a common base
            raise CollaboratorError("assemblyai", str(exc)) from exc

        if transcript.status == aai.TranscriptStatus.error:
            raise CollaboratorError("assemblyai", f"Transcription failed: {transcript.error}")

        words = [
            SpeechWord(
                text=w.text,
                start=w.start / 1000,
                end=w.end / 1000,
                confidence=w.confidence or 0.0,
            )
            for w in transcript.words or []
        ]
        return bucket_words(words, segment_duration)


class WhisperTranscriber:
    """OpenAI audio transcription backend with word-level timestamps."""

    name = TranscriptionProviderName.OPENAI_WHISPER.value

    def __init__(self, client: OpenAI, model: str = "whisper-1") -> None:
        self.client = client
        self.model = model

    def transcribe(
        self, audio_path: str, language_hint: str, segment_duration: int
    ) -> list[RawSegment]:
        logger.info("Transcribing %s with %s (language=%s)", audio_path, self.model, language_hint)
        try:
            with Path(audio_path).open("rb") as audio:
                response = self.client.audio.transcriptions.create(
                    model=self.model,
                    file=audio,
                    language=language_hint,
                    response_format="verbose_json",
                    timestamp_granularities=["word"],
                )
        except (OSError, openai.OpenAIError) as exc:
            raise CollaboratorError("openai_whisper", str(exc)) from exc

        # Whisper does not report per-word confidence
        words = [
            SpeechWord(text=w.word.strip(), start=w.start, end=w.end, confidence=1.0)
            for w in response.words or []
        ]
        return bucket_words(words, segment_duration)


def build_transcriber(
    provider: TranscriptionProviderName | str,
    *,
    assemblyai_api_key: str = "",
    openai_api_key: str = "",
    whisper_model: str = "whisper-1",
) -> SpeechToTextProvider:
    """Construct the configured speech-to-text backend once, at process start."""
    provider = TranscriptionProviderName(provider)
    if provider is TranscriptionProviderName.ASSEMBLYAI:
        if not assemblyai_api_key:
            raise ValidationError("ASSEMBLYAI_API_KEY is required for the assemblyai transcriber")
        return AssemblyAITranscriber(assemblyai_api_key)
    if not openai_api_key:
        raise ValidationError("OPENAI_API_KEY is required for the openai_whisper transcriber")
    return WhisperTranscriber(OpenAI(api_key=openai_api_key), whisper_model)
