from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import StreamingResponse

from hirepipe.api import deps
from hirepipe.core.stage_machine import StageCatalog
from hirepipe.schemas.pipeline import PipelineFilter, PipelineStats, StageBoardColumn
from hirepipe.services.pipeline_stats import candidates_by_stage, pipeline_stats, stage_distribution
from hirepipe.services.stage_events import StageEventBus

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@router.get("/distribution", response_model=dict[str, int])
async def get_stage_distribution(
    filters: PipelineFilter = Depends(deps.get_pipeline_filter),
    session: AsyncSession = Depends(deps.get_db_session),
    catalog: StageCatalog = Depends(deps.get_catalog),
):
    return await stage_distribution(session, filters, catalog=catalog)


@router.get("/stats", response_model=PipelineStats)
async def get_pipeline_stats(
    filters: PipelineFilter = Depends(deps.get_pipeline_filter),
    session: AsyncSession = Depends(deps.get_db_session),
    catalog: StageCatalog = Depends(deps.get_catalog),
):
    return await pipeline_stats(session, filters, catalog=catalog)


@router.get("/board", response_model=list[StageBoardColumn])
async def get_pipeline_board(
    filters: PipelineFilter = Depends(deps.get_pipeline_filter),
    session: AsyncSession = Depends(deps.get_db_session),
    catalog: StageCatalog = Depends(deps.get_catalog),
):
    return await candidates_by_stage(session, filters, catalog=catalog)


@router.get("/events/stream")
async def stream_stage_changes(
    request: Request,
    events: StageEventBus = Depends(deps.get_event_bus),
):
    async def event_generator():
        async with events.subscription() as queue:
            while not await request.is_disconnected():
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=15)
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
                    continue
                yield f"event: stage_changed\ndata: {data}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
