"""Document store for media files, pipeline records, transcripts, analysis runs and clips."""

from __future__ import annotations

import logging
from copy import deepcopy
from threading import Lock
from typing import TYPE_CHECKING, Any, Protocol

from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.analysis.models import AnalysisRun
from src.errors import CollaboratorError, NotFoundError, ValidationError
from src.media.models import Clip, MediaFile, Transcript
from src.pipeline.state import PipelineRecord
from src.pipeline_config import RepositoryBackend

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

FILES_TABLE = "media_files"
PIPELINES_TABLE = "pipelines"
TRANSCRIPTS_TABLE = "transcripts"
ANALYSIS_RUNS_TABLE = "analysis_runs"
CLIPS_TABLE = "clips"


class PipelineRepository(Protocol):
    def save_file(self, media: MediaFile) -> None: ...

    def get_file(self, file_id: str) -> MediaFile: ...

    def list_files(self) -> list[MediaFile]: ...

    def delete_file(self, file_id: str) -> None: ...

    def save_pipeline(self, record: PipelineRecord) -> None: ...

    def get_pipeline(self, pipeline_id: str) -> PipelineRecord: ...

    def find_pipeline_by_file(self, file_id: str) -> PipelineRecord: ...

    def save_transcript(self, transcript: Transcript) -> None: ...

    def get_transcript(self, transcript_id: str) -> Transcript: ...

    def save_analysis_run(self, run: AnalysisRun) -> None: ...

    def get_analysis_run(self, run_id: str) -> AnalysisRun: ...

    def save_clips(self, clips: list[Clip]) -> None: ...

    def list_clips(self, analysis_run_id: str) -> list[Clip]: ...


def to_row(record: Any) -> dict[str, Any]:
    """Row for a domain record; nested values land in JSON columns."""
    return record.to_dict()


class SupabaseRepository:
    """Supabase (PostgREST) backend. One table per record type, keyed by ``id``."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _upsert(self, table: str, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            self.client.table(table).upsert(rows).execute()
        except APIError as exc:
            raise CollaboratorError("supabase", f"{table} write failed: {exc.message}") from exc

    def _select_one(self, table: str, column: str, value: str, entity: str) -> dict[str, Any]:
        try:
            result = self.client.table(table).select("*").eq(column, value).execute()
        except APIError as exc:
            raise CollaboratorError("supabase", f"{table} read failed: {exc.message}") from exc
        if not result.data:
            raise NotFoundError(entity, value)
        return result.data[0]

    def save_file(self, media: MediaFile) -> None:
        self._upsert(FILES_TABLE, [to_row(media)])

    def get_file(self, file_id: str) -> MediaFile:
        return MediaFile.from_dict(self._select_one(FILES_TABLE, "id", file_id, "file"))

    def list_files(self) -> list[MediaFile]:
        """All uploaded files, newest first."""
        try:
            result = (
                self.client.table(FILES_TABLE).select("*").order("uploaded_at", desc=True).execute()
            )
        except APIError as exc:
            raise CollaboratorError("supabase", f"{FILES_TABLE} read failed: {exc.message}") from exc
        return [MediaFile.from_dict(row) for row in result.data or []]

    def delete_file(self, file_id: str) -> None:
        try:
            result = self.client.table(FILES_TABLE).delete().eq("id", file_id).execute()
        except APIError as exc:
            raise CollaboratorError("supabase", f"{FILES_TABLE} delete failed: {exc.message}") from exc
        if not result.data:
            raise NotFoundError("file", file_id)

    def save_pipeline(self, record: PipelineRecord) -> None:
        self._upsert(PIPELINES_TABLE, [to_row(record)])

    def get_pipeline(self, pipeline_id: str) -> PipelineRecord:
        row = self._select_one(PIPELINES_TABLE, "id", pipeline_id, "pipeline")
        return PipelineRecord.from_dict(row)

    def find_pipeline_by_file(self, file_id: str) -> PipelineRecord:
        try:
            result = (
                self.client.table(PIPELINES_TABLE)
                .select("*")
                .eq("file_id", file_id)
                .order("started_at", desc=True)
                .limit(1)
                .execute()
            )
        except APIError as exc:
            raise CollaboratorError("supabase", f"{PIPELINES_TABLE} read failed: {exc.message}") from exc
        if not result.data:
            raise NotFoundError("pipeline for file", file_id)
        return PipelineRecord.from_dict(result.data[0])

    def save_transcript(self, transcript: Transcript) -> None:
        self._upsert(TRANSCRIPTS_TABLE, [to_row(transcript)])

    def get_transcript(self, transcript_id: str) -> Transcript:
        row = self._select_one(TRANSCRIPTS_TABLE, "id", transcript_id, "transcript")
        return Transcript.from_dict(row)

    def save_analysis_run(self, run: AnalysisRun) -> None:
        self._upsert(ANALYSIS_RUNS_TABLE, [to_row(run)])

    def get_analysis_run(self, run_id: str) -> AnalysisRun:
        row = self._select_one(ANALYSIS_RUNS_TABLE, "id", run_id, "analysis run")
        return AnalysisRun.from_dict(row)

    def save_clips(self, clips: list[Clip]) -> None:
        self._upsert(CLIPS_TABLE, [to_row(c) for c in clips])

    def list_clips(self, analysis_run_id: str) -> list[Clip]:
        try:
            result = (
                self.client.table(CLIPS_TABLE)
                .select("*")
                .eq("analysis_run_id", analysis_run_id)
                .order("rank")
                .execute()
            )
        except APIError as exc:
            raise CollaboratorError("supabase", f"{CLIPS_TABLE} read failed: {exc.message}") from exc
        return [Clip.from_dict(row) for row in result.data or []]


class InMemoryRepository:
    """Process-local backend for local runs and tests.

    Records are stored as dicts so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {
            FILES_TABLE: {},
            PIPELINES_TABLE: {},
            TRANSCRIPTS_TABLE: {},
            ANALYSIS_RUNS_TABLE: {},
            CLIPS_TABLE: {},
        }
        self._lock = Lock()

    def _put(self, table: str, record: Any) -> None:
        with self._lock:
            self._tables[table][record.id] = to_row(record)

    def _get(self, table: str, key: str, entity: str) -> dict[str, Any]:
        with self._lock:
            row = self._tables[table].get(key)
        if row is None:
            raise NotFoundError(entity, key)
        return deepcopy(row)

    def save_file(self, media: MediaFile) -> None:
        self._put(FILES_TABLE, media)

    def get_file(self, file_id: str) -> MediaFile:
        return MediaFile.from_dict(self._get(FILES_TABLE, file_id, "file"))

    def list_files(self) -> list[MediaFile]:
        with self._lock:
            rows = deepcopy(list(self._tables[FILES_TABLE].values()))
        files = [MediaFile.from_dict(r) for r in rows]
        return sorted(files, key=lambda f: f.uploaded_at, reverse=True)

    def delete_file(self, file_id: str) -> None:
        with self._lock:
            removed = self._tables[FILES_TABLE].pop(file_id, None)
        if removed is None:
            raise NotFoundError("file", file_id)

    def save_pipeline(self, record: PipelineRecord) -> None:
        self._put(PIPELINES_TABLE, record)

    def get_pipeline(self, pipeline_id: str) -> PipelineRecord:
        row = self._get(PIPELINES_TABLE, pipeline_id, "pipeline")
        return PipelineRecord.from_dict(row)

    def find_pipeline_by_file(self, file_id: str) -> PipelineRecord:
        with self._lock:
            rows = [r for r in self._tables[PIPELINES_TABLE].values() if r["file_id"] == file_id]
        if not rows:
            raise NotFoundError("pipeline for file", file_id)
        latest = deepcopy(max(rows, key=lambda r: r["started_at"]))
        return PipelineRecord.from_dict(latest)

    def save_transcript(self, transcript: Transcript) -> None:
        self._put(TRANSCRIPTS_TABLE, transcript)

    def get_transcript(self, transcript_id: str) -> Transcript:
        row = self._get(TRANSCRIPTS_TABLE, transcript_id, "transcript")
        return Transcript.from_dict(row)

    def save_analysis_run(self, run: AnalysisRun) -> None:
        self._put(ANALYSIS_RUNS_TABLE, run)

    def get_analysis_run(self, run_id: str) -> AnalysisRun:
        row = self._get(ANALYSIS_RUNS_TABLE, run_id, "analysis run")
        return AnalysisRun.from_dict(row)

    def save_clips(self, clips: list[Clip]) -> None:
        for clip in clips:
            self._put(CLIPS_TABLE, clip)

    def list_clips(self, analysis_run_id: str) -> list[Clip]:
        with self._lock:
            rows = [
                r for r in self._tables[CLIPS_TABLE].values() if r["analysis_run_id"] == analysis_run_id
            ]
        return sorted((Clip.from_dict(deepcopy(r)) for r in rows), key=lambda c: c.rank)


def build_repository(settings: Settings) -> PipelineRepository:
    """Construct the configured document store."""
    backend = RepositoryBackend(settings.repository_backend)
    if backend is RepositoryBackend.MEMORY:
        logger.warning("Using in-memory repository; records are lost on restart")
        return InMemoryRepository()
    if not settings.supabase_url or not settings.supabase_key:
        raise ValidationError("SUPABASE_URL and SUPABASE_KEY are required for the supabase repository")
    return SupabaseRepository(create_client(settings.supabase_url, settings.supabase_key))
