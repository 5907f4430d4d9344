"""Pipeline status endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_repository
from src.api.models import PipelineResponse
from src.storage.repository import PipelineRepository

router = APIRouter()


@router.get("/api/pipelines/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(
    pipeline_id: str,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
) -> PipelineResponse:
    """Current status, per-stage timings and messages, and the last error if any."""
    return PipelineResponse.from_record(repository.get_pipeline(pipeline_id))
