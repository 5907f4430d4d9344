"""Media endpoints: upload a file and start its pipeline, list and delete stored files."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError as PydanticValidationError

from src.api.dependencies import get_file_storage, get_job_queue, get_repository
from src.api.models import (
    DeleteResponse,
    MediaFileOut,
    MediaListResponse,
    PipelineConfigurationIn,
    UploadResponse,
)
from src.config import settings
from src.errors import PipelineError, ValidationError
from src.media.models import MediaFile
from src.pipeline.queue import JobQueue, TranscriptionJob
from src.pipeline.state import new_pipeline
from src.pipeline_config import PipelineConfiguration, default_configuration
from src.storage.files import FileStorage
from src.storage.repository import PipelineRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# Accepted when the client sends no usable audio/* or video/* content type
MEDIA_EXTENSIONS = {
    "mp3", "wav", "m4a", "aac", "ogg", "flac", "opus",
    "mp4", "mov", "mkv", "webm", "avi", "m4v",
}

EXTENSION_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
}


def _media_type(filename: str, content_type: str) -> str:
    """Resolve the MIME type of an upload or reject it."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if content_type.startswith(("audio/", "video/")):
        return content_type
    if ext in MEDIA_EXTENSIONS:
        return EXTENSION_MIME_TYPES.get(ext, "application/octet-stream")
    raise ValidationError(
        f"Unsupported file type '{content_type or ext or 'unknown'}'. Upload an audio or video file."
    )


def _parse_configuration(raw: str | None, language_code: str) -> PipelineConfiguration:
    base = default_configuration(settings)
    if not raw:
        return PipelineConfigurationIn().to_configuration(base, language_code, settings)
    try:
        overrides = PipelineConfigurationIn.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    return overrides.to_configuration(base, language_code, settings)


@router.post("/api/media", response_model=UploadResponse, status_code=202)
async def upload_media(
    file: Annotated[UploadFile, File(...)],
    language_code: Annotated[str, Form(min_length=1)],
    repository: Annotated[PipelineRepository, Depends(get_repository)],
    queue: Annotated[JobQueue, Depends(get_job_queue)],
    storage: Annotated[FileStorage, Depends(get_file_storage)],
    configuration: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    """Upload an audio or video file and start its pipeline.

    ``configuration`` is an optional JSON object; omitted fields use the
    server defaults. The upload succeeds even when the transcription job
    cannot be queued; the response then has ``queued=false`` and the stage
    can be re-triggered later.
    """
    raw = await file.read()
    if not raw:
        raise ValidationError("Uploaded file is empty")
    max_bytes = settings.max_upload_mb * 1024 * 1024
    if len(raw) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_upload_mb} MB.",
        )

    filename = file.filename or "upload"
    mime_type = _media_type(filename, (file.content_type or "").lower())
    pipeline_config = _parse_configuration(configuration, language_code)

    # File writes are blocking; keep them off the event loop
    stored_path = await asyncio.to_thread(storage.put, raw, filename)
    media = MediaFile(
        id=str(uuid.uuid4()),
        original_name=filename,
        stored_path=stored_path,
        mime_type=mime_type,
        size_bytes=len(raw),
        uploaded_at=datetime.now(UTC).isoformat(),
    )
    repository.save_file(media)

    record = new_pipeline(str(uuid.uuid4()), media.id, pipeline_config)
    repository.save_pipeline(record)

    try:
        job_id: str | None = queue.enqueue_transcription(
            TranscriptionJob(
                file_id=media.id,
                file_path=stored_path,
                language_code=language_code,
                pipeline_id=record.id,
            )
        )
        message = "Upload accepted; transcription queued"
    except PipelineError:
        logger.exception("Failed to enqueue transcription for file %s", media.id)
        job_id = None
        message = "Upload accepted; transcription could not be queued"

    return UploadResponse(
        file_id=media.id,
        pipeline_id=record.id,
        status=record.status,
        queued=job_id is not None,
        job_id=job_id,
        message=message,
    )


@router.get("/api/media", response_model=MediaListResponse)
async def list_media(
    repository: Annotated[PipelineRepository, Depends(get_repository)],
) -> MediaListResponse:
    """List uploaded files, newest first."""
    files = [MediaFileOut.from_media(m) for m in repository.list_files()]
    return MediaListResponse(files=files, total=len(files))


@router.get("/api/media/{file_id}", response_model=MediaFileOut)
async def get_media(
    file_id: str,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
) -> MediaFileOut:
    return MediaFileOut.from_media(repository.get_file(file_id))


@router.delete("/api/media/{file_id}", response_model=DeleteResponse)
async def delete_media(
    file_id: str,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
    storage: Annotated[FileStorage, Depends(get_file_storage)],
) -> DeleteResponse:
    """Remove the stored media and its file record.

    Pipeline records, analysis runs and clips made from the file are kept.
    """
    media = repository.get_file(file_id)
    await asyncio.to_thread(storage.delete, media.stored_path)
    repository.delete_file(file_id)
    logger.info("Deleted file %s (%s)", file_id, media.stored_path)
    return DeleteResponse(message="File deleted successfully")
