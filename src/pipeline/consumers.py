"""Stage consumers: the rq job functions that drive a pipeline record through its stages.

Each consumer persists its stage output, advances the record and enqueues the
next stage. On failure it records ``FAILED`` with the stage and message and
re-raises so the queue's retry policy applies to that stage only.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any

from src.analysis.analyzer import analyze_transcript
from src.analysis.models import AnalysisRun
from src.analysis.ranking import select_for_clipping
from src.analysis.scoring import ScoringProvider, build_scoring_provider
from src.config import Settings, get_settings
from src.errors import PipelineError
from src.media.models import Clip, TimeRange, Transcript
from src.media.speech import SpeechToTextProvider, build_transcriber
from src.media.transcoder import FfmpegTranscoder, TranscoderProvider
from src.pipeline.queue import AnalysisJob, ClippingJob, JobQueue, TranscriptionJob
from src.pipeline.state import (
    PipelineRecord,
    PipelineStage,
    ProcessingStatus,
    advance,
    begin_stage,
    fail,
    record_timing,
)
from src.pipeline_config import PipelineConfiguration
from src.storage.files import FileStorage, LocalFileStorage
from src.storage.repository import PipelineRepository, build_repository

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _error_message(exc: Exception) -> str:
    return exc.message if isinstance(exc, PipelineError) else f"{type(exc).__name__}: {exc}"


def _files_in(directory: Path) -> set[Path]:
    if not directory.is_dir():
        return set()
    return {p for p in directory.iterdir() if p.is_file()}


@dataclass
class StageContext:
    """Collaborators shared by the consumers of one worker process."""

    repository: PipelineRepository
    queue: JobQueue
    files: FileStorage
    transcoder: TranscoderProvider
    transcriber: SpeechToTextProvider
    settings: Settings
    _scorers: dict[tuple[str, str], ScoringProvider] = field(default_factory=dict)

    def scorer(self, configuration: PipelineConfiguration) -> ScoringProvider:
        """Scoring backend for a pipeline's provider and model, built once per pair."""
        key = (str(configuration.llm_provider), configuration.llm_model)
        if key not in self._scorers:
            self._scorers[key] = build_scoring_provider(
                configuration.llm_provider,
                model=configuration.llm_model,
                anthropic_api_key=self.settings.anthropic_api_key,
                openai_api_key=self.settings.openai_api_key,
            )
        return self._scorers[key]


@lru_cache(maxsize=1)
def build_stage_context() -> StageContext:
    """Construct every collaborator once per worker process."""
    settings = get_settings()
    return StageContext(
        repository=build_repository(settings),
        queue=JobQueue.from_settings(settings),
        files=LocalFileStorage(settings.upload_dir),
        transcoder=FfmpegTranscoder(settings.audio_dir),
        transcriber=build_transcriber(
            settings.transcription_provider,
            assemblyai_api_key=settings.assemblyai_api_key,
            openai_api_key=settings.openai_api_key,
            whisper_model=settings.whisper_model,
        ),
        settings=settings,
    )


class StageConsumer:
    """Shared save/fail handling for the stage consumers."""

    stage: PipelineStage

    def __init__(self, context: StageContext) -> None:
        self.context = context

    @property
    def repository(self) -> PipelineRepository:
        return self.context.repository

    def save(self, record: PipelineRecord) -> PipelineRecord:
        self.repository.save_pipeline(record)
        return record

    def record_failure(self, record: PipelineRecord, exc: Exception) -> None:
        message = _error_message(exc)
        logger.error("%s stage failed for pipeline %s: %s", self.stage.value, record.id, message)
        self.save(fail(record, self.stage.value, message))


class TranscriptionConsumer(StageConsumer):
    """Audio extraction + speech-to-text, then hands off to analysis."""

    stage = PipelineStage.TRANSCRIPTION

    def handle(self, job: TranscriptionJob) -> str:
        record = self.repository.get_pipeline(job.pipeline_id)
        record = self.save(begin_stage(record, self.stage, "Extracting audio"))

        try:
            started = time.perf_counter()
            audio_path = self.context.transcoder.extract_audio(job.file_path)
            record = record_timing(record, "audio_extraction", time.perf_counter() - started)
            record = self.save(advance(record, ProcessingStatus.TRANSCRIPTION, "Transcribing audio"))

            started = time.perf_counter()
            try:
                segments = self.context.transcriber.transcribe(
                    audio_path, job.language_code, record.configuration.segment_duration
                )
            finally:
                self._discard_audio(audio_path)

            transcript = Transcript(
                id=str(uuid.uuid4()),
                pipeline_id=record.id,
                file_id=job.file_id,
                provider=self.context.transcriber.name,
                language=job.language_code,
                segments=segments,
                created_at=_now(),
                total_words=sum(s.word_count for s in segments),
                full_text=" ".join(s.text for s in segments),
            )
            self.repository.save_transcript(transcript)

            record = record_timing(record, "transcription", time.perf_counter() - started)
            record = replace(record, transcript_id=transcript.id)
            record = self.save(
                advance(
                    record,
                    ProcessingStatus.ANALYSIS,
                    f"Transcribed {len(segments)} segments",
                )
            )
        except Exception as exc:
            self.record_failure(record, exc)
            raise

        logger.info("Transcript %s saved for pipeline %s", transcript.id, record.id)
        try:
            self.context.queue.enqueue_analysis(AnalysisJob(transcript_id=transcript.id))
        except PipelineError:
            logger.exception("Failed to enqueue analysis for transcript %s", transcript.id)
        return transcript.id

    def _discard_audio(self, audio_path: str) -> None:
        try:
            self.context.files.delete(audio_path)
        except PipelineError:
            logger.warning("Could not remove extracted audio %s", audio_path, exc_info=True)


class AnalysisConsumer(StageConsumer):
    """Scores, merges and ranks a transcript, then optionally hands off to clipping."""

    stage = PipelineStage.ANALYSIS

    def handle(self, job: AnalysisJob) -> str:
        transcript = self.repository.get_transcript(job.transcript_id)
        record = self.repository.get_pipeline(transcript.pipeline_id)
        record = self.save(begin_stage(record, self.stage, "Scoring segments"))

        try:
            started = time.perf_counter()
            run = analyze_transcript(
                transcript,
                record.configuration,
                self.context.scorer(record.configuration),
                max_tokens=self.context.settings.max_tokens_per_request,
            )
            self.repository.save_analysis_run(run)
            record = record_timing(record, "analysis", time.perf_counter() - started)
            record = replace(record, analysis_run_id=run.id)
        except Exception as exc:
            self.record_failure(record, exc)
            raise

        self._finish(record, run)
        return run.id

    def _finish(self, record: PipelineRecord, run: AnalysisRun) -> None:
        clipping = record.configuration.clipping
        eligible = select_for_clipping(
            run.ranked_segments, clipping.max_clips, clipping.min_score_threshold
        )
        summary = f"Ranked {len(run.ranked_segments)} of {len(run.optimized_segments)} segments"

        if not (clipping.auto_clip and eligible):
            self.save(advance(record, ProcessingStatus.COMPLETED, summary))
            return

        record = self.save(advance(record, ProcessingStatus.CLIPPING, "Queued for clipping"))
        try:
            self.context.queue.enqueue_clipping(
                ClippingJob(
                    analysis_run_id=run.id,
                    max_clips=clipping.max_clips,
                    min_score_threshold=clipping.min_score_threshold,
                )
            )
        except PipelineError:
            logger.exception("Failed to enqueue clipping for analysis run %s", run.id)
            self.save(advance(record, ProcessingStatus.COMPLETED, f"{summary}; clipping not queued"))


class ClippingConsumer(StageConsumer):
    """Cuts the top ranked segments of an analysis run into clips."""

    stage = PipelineStage.CLIPPING

    def handle(self, job: ClippingJob) -> list[str]:
        run = self.repository.get_analysis_run(job.analysis_run_id)
        record = self.repository.get_pipeline(run.pipeline_id)
        media = self.repository.get_file(run.file_id)

        stored = record.configuration.clipping
        max_clips = job.max_clips if job.max_clips is not None else stored.max_clips
        threshold = (
            job.min_score_threshold if job.min_score_threshold is not None else stored.min_score_threshold
        )
        record = self.save(begin_stage(record, self.stage, "Cutting clips"))
        output_dir = Path(self.context.settings.clips_dir) / run.id
        existing = _files_in(output_dir)

        try:
            started = time.perf_counter()
            selected = [
                s
                for s in select_for_clipping(run.ranked_segments, max_clips, threshold)
                if s.end_seconds > s.start_seconds
            ]
            paths = self.context.transcoder.cut_by_time_ranges(
                media.stored_path,
                [TimeRange(start=s.start_seconds, end=s.end_seconds) for s in selected],
                str(output_dir),
            )
            clips = [
                Clip(
                    id=str(uuid.uuid4()),
                    analysis_run_id=run.id,
                    pipeline_id=run.pipeline_id,
                    file_id=run.file_id,
                    segment_id=segment.id,
                    start_time=segment.start_time,
                    end_time=segment.end_time,
                    duration_seconds=segment.duration_seconds,
                    title=segment.final_title,
                    summary=segment.final_summary,
                    score=segment.aggregated_score,
                    rank=segment.rank,
                    clip_path=path,
                    size_bytes=Path(path).stat().st_size,
                    created_at=_now(),
                )
                for segment, path in zip(selected, paths, strict=True)
            ]
            self.repository.save_clips(clips)

            record = record_timing(record, "clipping", time.perf_counter() - started)
            self.save(advance(record, ProcessingStatus.COMPLETED, f"Created {len(clips)} clips"))
        except Exception as exc:
            self._discard_partial_clips(output_dir, existing)
            self.record_failure(record, exc)
            raise

        logger.info("Created %d clips for analysis run %s", len(clips), run.id)
        return [c.id for c in clips]

    def _discard_partial_clips(self, output_dir: Path, existing: set[Path]) -> None:
        """Remove files this attempt wrote; a retry cuts them again."""
        for path in sorted(_files_in(output_dir) - existing):
            try:
                self.context.files.delete(str(path))
            except PipelineError:
                logger.warning("Could not remove partial clip %s", path, exc_info=True)


def run_transcription_job(payload: dict[str, Any]) -> str:
    return TranscriptionConsumer(build_stage_context()).handle(TranscriptionJob.from_dict(payload))


def run_analysis_job(payload: dict[str, Any]) -> str:
    return AnalysisConsumer(build_stage_context()).handle(AnalysisJob.from_dict(payload))


def run_clipping_job(payload: dict[str, Any]) -> list[str]:
    return ClippingConsumer(build_stage_context()).handle(ClippingJob.from_dict(payload))
