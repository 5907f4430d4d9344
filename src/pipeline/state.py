"""Pipeline record and the table-driven state machine that moves it between stages.

Records are immutable; every helper returns a new :class:`PipelineRecord`.
Only the stage consumers (and the HTTP re-trigger, through :func:`restart`)
change a record's status.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from src.errors import ValidationError
from src.pipeline_config import PipelineConfiguration


class ProcessingStatus(StrEnum):
    PENDING = "pending"
    AUDIO_EXTRACTION = "audio_extraction"
    TRANSCRIPTION = "transcription"
    ANALYSIS = "analysis"
    CLIPPING = "clipping"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStage(StrEnum):
    """Queue-backed stages. Each has its own rq queue of the same name."""

    TRANSCRIPTION = "transcription"
    ANALYSIS = "analysis"
    CLIPPING = "clipping"


TERMINAL_STATES = frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED})

# Re-entering the current active state is a queue retry of the same stage.
# COMPLETED -> CLIPPING lets the optional clipping stage run after completion.
TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset(
        {ProcessingStatus.AUDIO_EXTRACTION, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.AUDIO_EXTRACTION: frozenset(
        {
            ProcessingStatus.AUDIO_EXTRACTION,
            ProcessingStatus.TRANSCRIPTION,
            ProcessingStatus.FAILED,
        }
    ),
    ProcessingStatus.TRANSCRIPTION: frozenset(
        {
            ProcessingStatus.AUDIO_EXTRACTION,
            ProcessingStatus.TRANSCRIPTION,
            ProcessingStatus.ANALYSIS,
            ProcessingStatus.FAILED,
        }
    ),
    ProcessingStatus.ANALYSIS: frozenset(
        {
            ProcessingStatus.ANALYSIS,
            ProcessingStatus.CLIPPING,
            ProcessingStatus.COMPLETED,
            ProcessingStatus.FAILED,
        }
    ),
    ProcessingStatus.CLIPPING: frozenset(
        {ProcessingStatus.CLIPPING, ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.COMPLETED: frozenset({ProcessingStatus.CLIPPING}),
    ProcessingStatus.FAILED: frozenset(),
}

STAGE_ENTRY: dict[PipelineStage, ProcessingStatus] = {
    PipelineStage.TRANSCRIPTION: ProcessingStatus.AUDIO_EXTRACTION,
    PipelineStage.ANALYSIS: ProcessingStatus.ANALYSIS,
    PipelineStage.CLIPPING: ProcessingStatus.CLIPPING,
}


class InvalidTransitionError(ValidationError):
    """A status change that the transition table does not allow."""

    def __init__(self, current: ProcessingStatus, target: ProcessingStatus) -> None:
        super().__init__(f"Invalid pipeline transition: {current} -> {target}")
        self.current = current
        self.target = target


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class ErrorDetails:
    stage: str
    message: str


@dataclass(frozen=True)
class PipelineRecord:
    """Processing state of one uploaded file."""

    id: str
    file_id: str
    status: ProcessingStatus
    configuration: PipelineConfiguration
    started_at: str
    stage_timings: dict[str, float] = field(default_factory=dict)
    stage_messages: dict[str, str] = field(default_factory=dict)
    error: ErrorDetails | None = None
    transcript_id: str | None = None
    analysis_run_id: str | None = None
    completed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["configuration"] = self.configuration.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineRecord:
        values = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        values["status"] = ProcessingStatus(data["status"])
        values["configuration"] = PipelineConfiguration.from_dict(data.get("configuration") or {})
        values["stage_timings"] = dict(data.get("stage_timings") or {})
        values["stage_messages"] = dict(data.get("stage_messages") or {})
        error = data.get("error")
        values["error"] = ErrorDetails(**error) if error else None
        return cls(**values)


def new_pipeline(pipeline_id: str, file_id: str, configuration: PipelineConfiguration) -> PipelineRecord:
    """Create the record for a fresh upload, in ``PENDING``."""
    return PipelineRecord(
        id=pipeline_id,
        file_id=file_id,
        status=ProcessingStatus.PENDING,
        configuration=configuration,
        started_at=_now(),
    )


def can_transition(current: ProcessingStatus, target: ProcessingStatus) -> bool:
    return target in TRANSITIONS[current]


def advance(
    record: PipelineRecord,
    target: ProcessingStatus,
    message: str | None = None,
) -> PipelineRecord:
    """Move *record* to *target*.

    Raises:
        InvalidTransitionError: If the transition table forbids the move.
    """
    if not can_transition(record.status, target):
        raise InvalidTransitionError(record.status, target)

    messages = dict(record.stage_messages)
    if message is not None:
        messages[target.value] = message

    completed_at = _now() if target is ProcessingStatus.COMPLETED else record.completed_at
    return replace(record, status=target, stage_messages=messages, completed_at=completed_at)


def fail(record: PipelineRecord, stage: str, message: str) -> PipelineRecord:
    """Mark *record* as ``FAILED`` with the failing stage and message.

    A record that is already terminal is returned unchanged; a clipping
    failure after completion first re-enters ``CLIPPING`` and fails from there.
    """
    if record.is_terminal:
        return record
    messages = dict(record.stage_messages)
    messages[stage] = message
    return replace(
        record,
        status=ProcessingStatus.FAILED,
        error=ErrorDetails(stage=stage, message=message),
        stage_messages=messages,
    )


def restart(record: PipelineRecord, stage: PipelineStage) -> PipelineRecord:
    """Move a terminal record back into the entry state of *stage* and clear its error.

    Used for manual re-triggers and for queue retries after a failure.

    Raises:
        InvalidTransitionError: If the record is still being processed.
    """
    entry = STAGE_ENTRY[stage]
    if not record.is_terminal:
        raise InvalidTransitionError(record.status, entry)
    return replace(record, status=entry, error=None, completed_at=None)


def begin_stage(
    record: PipelineRecord,
    stage: PipelineStage,
    message: str | None = None,
) -> PipelineRecord:
    """Enter *stage*, restarting the record first when it is terminal."""
    entry = STAGE_ENTRY[stage]
    if can_transition(record.status, entry):
        return advance(record, entry, message)
    if record.is_terminal:
        return advance(restart(record, stage), entry, message)
    raise InvalidTransitionError(record.status, entry)


def record_timing(record: PipelineRecord, stage: str, seconds: float) -> PipelineRecord:
    timings = dict(record.stage_timings)
    timings[stage] = round(seconds, 3)
    return replace(record, stage_timings=timings)
