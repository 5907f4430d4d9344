"""Manual stage re-triggers and job status lookups."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_job_queue, get_repository
from src.api.models import (
    AnalysisTriggerRequest,
    ClippingTriggerRequest,
    JobAcceptedResponse,
    JobStatusResponse,
    TranscriptionTriggerRequest,
)
from src.pipeline.queue import AnalysisJob, ClippingJob, JobQueue, TranscriptionJob
from src.pipeline.state import (
    STAGE_ENTRY,
    InvalidTransitionError,
    PipelineRecord,
    PipelineStage,
    can_transition,
    restart,
)
from src.storage.repository import PipelineRepository

router = APIRouter()


def _prepare_retrigger(
    repository: PipelineRepository,
    record: PipelineRecord,
    stage: PipelineStage,
) -> PipelineRecord:
    """Restart a finished record, or check that a running one can enter *stage*."""
    if record.is_terminal:
        record = restart(record, stage)
        repository.save_pipeline(record)
    elif not can_transition(record.status, STAGE_ENTRY[stage]):
        raise InvalidTransitionError(record.status, STAGE_ENTRY[stage])
    return record


@router.post("/api/stages/transcription", response_model=JobAcceptedResponse, status_code=202)
async def trigger_transcription(
    request: TranscriptionTriggerRequest,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> JobAcceptedResponse:
    """Re-run transcription for an uploaded file."""
    media = repository.get_file(request.file_id)
    record = repository.find_pipeline_by_file(media.id)
    record = _prepare_retrigger(repository, record, PipelineStage.TRANSCRIPTION)

    job_id = queue.enqueue_transcription(
        TranscriptionJob(
            file_id=media.id,
            file_path=media.stored_path,
            language_code=request.language_code or record.configuration.language_code,
            pipeline_id=record.id,
        )
    )
    return JobAcceptedResponse(
        stage=PipelineStage.TRANSCRIPTION.value, job_id=job_id, pipeline_id=record.id
    )


@router.post("/api/stages/analysis", response_model=JobAcceptedResponse, status_code=202)
async def trigger_analysis(
    request: AnalysisTriggerRequest,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> JobAcceptedResponse:
    """Re-run analysis for an existing transcript."""
    transcript = repository.get_transcript(request.transcript_id)
    record = repository.get_pipeline(transcript.pipeline_id)
    record = _prepare_retrigger(repository, record, PipelineStage.ANALYSIS)

    job_id = queue.enqueue_analysis(AnalysisJob(transcript_id=transcript.id))
    return JobAcceptedResponse(
        stage=PipelineStage.ANALYSIS.value, job_id=job_id, pipeline_id=record.id
    )


@router.post("/api/stages/clipping", response_model=JobAcceptedResponse, status_code=202)
async def trigger_clipping(
    request: ClippingTriggerRequest,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> JobAcceptedResponse:
    """Cut clips for an analysis run, optionally overriding the stored limits."""
    run = repository.get_analysis_run(request.analysis_run_id)
    record = repository.get_pipeline(run.pipeline_id)
    record = _prepare_retrigger(repository, record, PipelineStage.CLIPPING)

    job_id = queue.enqueue_clipping(
        ClippingJob(
            analysis_run_id=run.id,
            max_clips=request.max_clips,
            min_score_threshold=request.min_score_threshold,
        )
    )
    return JobAcceptedResponse(
        stage=PipelineStage.CLIPPING.value, job_id=job_id, pipeline_id=record.id
    )


@router.get("/api/stages/{stage}/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    stage: PipelineStage,
    job_id: str,
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> JobStatusResponse:
    """Status of a queued job: queued, started, finished, failed, etc."""
    return JobStatusResponse.from_info(queue.get_job_status(stage, job_id))
