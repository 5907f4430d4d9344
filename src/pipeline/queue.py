"""rq-backed job queue for the pipeline stages.

Each stage has its own queue (named after the stage). Jobs are retried with
exponential backoff, results are kept for a limited time and the
finished/failed registries are pruned after every enqueue.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from redis import Redis
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job

from src.errors import CollaboratorError, NotFoundError
from src.pipeline.state import PipelineStage

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

RESULT_TTL = 24 * 60 * 60
FAILURE_TTL = 7 * 24 * 60 * 60

JOB_FUNCTIONS: dict[PipelineStage, str] = {
    PipelineStage.TRANSCRIPTION: "src.pipeline.consumers.run_transcription_job",
    PipelineStage.ANALYSIS: "src.pipeline.consumers.run_analysis_job",
    PipelineStage.CLIPPING: "src.pipeline.consumers.run_clipping_job",
}


@dataclass(frozen=True)
class TranscriptionJob:
    file_id: str
    file_path: str
    language_code: str
    pipeline_id: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptionJob:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class AnalysisJob:
    transcript_id: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisJob:
        return cls(transcript_id=data["transcript_id"])


@dataclass(frozen=True)
class ClippingJob:
    """Clipping request; ``None`` limits fall back to the pipeline's stored configuration."""

    analysis_run_id: str
    max_clips: int | None = None
    min_score_threshold: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClippingJob:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class JobStatusInfo:
    job_id: str
    stage: str
    status: str
    result: Any = None
    error: str | None = None
    enqueued_at: str | None = None
    ended_at: str | None = None


def retry_intervals(attempts: int, backoff_seconds: int) -> list[int]:
    """Exponential delays between attempts, e.g. 3 attempts from 2s -> ``[2, 4]``."""
    return [backoff_seconds * 2**i for i in range(max(attempts - 1, 0))]


class JobQueue:
    """Enqueues stage jobs and reports on them."""

    def __init__(
        self,
        connection: Redis,
        *,
        attempts: int = 3,
        backoff_seconds: int = 2,
        job_timeout: int = 3600,
        keep_completed: int = 10,
        keep_failed: int = 5,
    ) -> None:
        self.connection = connection
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.job_timeout = job_timeout
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    @classmethod
    def from_settings(cls, settings: Settings) -> JobQueue:
        return cls(
            Redis.from_url(settings.redis_url),
            attempts=settings.job_attempts,
            backoff_seconds=settings.job_backoff_seconds,
            job_timeout=settings.job_timeout,
            keep_completed=settings.keep_completed_jobs,
            keep_failed=settings.keep_failed_jobs,
        )

    def queue(self, stage: PipelineStage) -> Queue:
        return Queue(stage.value, connection=self.connection)

    def enqueue(self, stage: PipelineStage, payload: dict[str, Any]) -> str:
        """Enqueue one job for *stage* and return its id.

        Raises:
            CollaboratorError: If redis rejects the job.
        """
        queue = self.queue(stage)
        retry = None
        if self.attempts > 1:
            retry = Retry(
                max=self.attempts - 1,
                interval=retry_intervals(self.attempts, self.backoff_seconds),
            )
        try:
            job = queue.enqueue(
                JOB_FUNCTIONS[stage],
                payload,
                retry=retry,
                job_timeout=self.job_timeout,
                result_ttl=RESULT_TTL,
                failure_ttl=FAILURE_TTL,
                description=f"{stage.value} {payload}",
            )
        except Exception as exc:
            raise CollaboratorError("queue", f"could not enqueue {stage.value} job: {exc}") from exc

        logger.info("Enqueued %s job %s", stage.value, job.id)
        self.prune(queue)
        return job.id

    def enqueue_transcription(self, job: TranscriptionJob) -> str:
        return self.enqueue(PipelineStage.TRANSCRIPTION, job.to_dict())

    def enqueue_analysis(self, job: AnalysisJob) -> str:
        return self.enqueue(PipelineStage.ANALYSIS, job.to_dict())

    def enqueue_clipping(self, job: ClippingJob) -> str:
        return self.enqueue(PipelineStage.CLIPPING, job.to_dict())

    def prune(self, queue: Queue) -> None:
        """Keep only the newest finished and failed jobs of *queue*."""
        try:
            _trim_registry(queue.finished_job_registry, self.keep_completed)
            _trim_registry(queue.failed_job_registry, self.keep_failed)
        except Exception:
            logger.exception("Failed to prune job registries for queue %s", queue.name)

    def get_job_status(self, stage: PipelineStage, job_id: str) -> JobStatusInfo:
        """Look up a job of *stage*.

        Raises:
            NotFoundError: If no such job exists on that stage's queue.
        """
        try:
            job = Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError as exc:
            raise NotFoundError("job", job_id) from exc
        if job.origin != stage.value:
            raise NotFoundError("job", job_id)

        status = job.get_status()
        return JobStatusInfo(
            job_id=job.id,
            stage=stage.value,
            status=str(status.value if status is not None else "unknown"),
            result=job.return_value(),
            error=job.exc_info,
            enqueued_at=job.enqueued_at.isoformat() if job.enqueued_at else None,
            ended_at=job.ended_at.isoformat() if job.ended_at else None,
        )


def _trim_registry(registry: Any, keep: int) -> None:
    job_ids = registry.get_job_ids()  # oldest first
    excess = len(job_ids) - keep
    for job_id in job_ids[: max(excess, 0)]:
        registry.remove(job_id, delete_job=True)
