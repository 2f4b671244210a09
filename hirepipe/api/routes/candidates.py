from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.api import deps
from hirepipe.core.stage_machine import StageCatalog
from hirepipe.schemas.stage import (
    BulkFailureOut,
    BulkTransitionOut,
    BulkTransitionRequest,
    CandidateStageOut,
    HistoryEntryOut,
    StageHistoryOut,
    StageTransitionRequest,
)
from hirepipe.services.bulk_transitions import SessionFactory, bulk_transition
from hirepipe.services.stage_events import StageEventBus
from hirepipe.services.history_ledger import get_stage_record
from hirepipe.services.stage_transitions import transition

router = APIRouter(prefix="/candidates", tags=["candidates"])


@router.post("/stage/bulk", response_model=BulkTransitionOut)
async def bulk_transition_stages(
    payload: BulkTransitionRequest,
    session_factory: SessionFactory = Depends(deps.get_session_factory),
    catalog: StageCatalog = Depends(deps.get_catalog),
    actor: Optional[str] = Depends(deps.get_actor),
    events: StageEventBus = Depends(deps.get_event_bus),
):
    result = await bulk_transition(session_factory, payload.updates, actor, catalog=catalog, events=events)
    return BulkTransitionOut(
        successful_count=len(result.successful),
        failed_count=len(result.failed),
        successful=[CandidateStageOut.model_validate(candidate) for candidate in result.successful],
        failed=[
            BulkFailureOut(
                candidate_id=failure.candidate_id,
                to_stage=failure.to_stage,
                error=failure.error,
                message=failure.message,
                retryable=failure.retryable,
            )
            for failure in result.failed
        ],
    )


@router.patch("/{candidate_id}/stage", response_model=CandidateStageOut)
async def transition_stage(
    candidate_id: str,
    payload: StageTransitionRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    catalog: StageCatalog = Depends(deps.get_catalog),
    actor: Optional[str] = Depends(deps.get_actor),
    events: StageEventBus = Depends(deps.get_event_bus),
):
    candidate = await transition(
        session,
        candidate_id,
        payload.to_stage,
        actor,
        payload.notes,
        catalog=catalog,
        expected_stage=payload.expected_stage,
        events=events,
    )
    return CandidateStageOut.model_validate(candidate)


@router.get("/{candidate_id}/stage", response_model=StageHistoryOut)
async def get_stage_history(
    candidate_id: str,
    session: AsyncSession = Depends(deps.get_db_session),
):
    record = await get_stage_record(session, candidate_id)
    return StageHistoryOut(
        candidate_id=candidate_id,
        current_stage=record.current_stage,
        stage_history=[HistoryEntryOut.model_validate(entry) for entry in record.history],
    )
