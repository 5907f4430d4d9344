"""FastAPI dependencies for the collaborators the routes use.

Each is built once per API process. Tests replace them through
``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from src.config import settings
from src.pipeline.queue import JobQueue
from src.storage.files import FileStorage, LocalFileStorage
from src.storage.repository import PipelineRepository, build_repository


@lru_cache(maxsize=1)
def get_repository() -> PipelineRepository:
    return build_repository(settings)


@lru_cache(maxsize=1)
def get_job_queue() -> JobQueue:
    return JobQueue.from_settings(settings)


@lru_cache(maxsize=1)
def get_file_storage() -> FileStorage:
    return LocalFileStorage(settings.upload_dir)
