"""Analysis results and clips."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_repository
from src.api.models import AnalysisRunResponse, ClipListResponse, ClipOut
from src.storage.repository import PipelineRepository

router = APIRouter()


@router.get("/api/analysis/{analysis_run_id}", response_model=AnalysisRunResponse)
async def get_analysis(
    analysis_run_id: str,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
) -> AnalysisRunResponse:
    """Analysis run with its ranked segments and metrics."""
    return AnalysisRunResponse.from_run(repository.get_analysis_run(analysis_run_id))


@router.get("/api/analysis/{analysis_run_id}/clips", response_model=ClipListResponse)
async def list_clips(
    analysis_run_id: str,
    repository: Annotated[PipelineRepository, Depends(get_repository)],
) -> ClipListResponse:
    # 404 for an unknown run rather than an empty list
    run = repository.get_analysis_run(analysis_run_id)
    clips = repository.list_clips(run.id)
    return ClipListResponse(
        analysis_run_id=run.id,
        clips=[ClipOut.from_clip(c) for c in clips],
    )
