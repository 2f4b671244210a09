from __future__ import annotations

from fastapi import APIRouter, Depends

from hirepipe.api import deps
from hirepipe.core.stage_machine import StageCatalog
from hirepipe.schemas.stage import StageInfoOut

router = APIRouter(prefix="/stages", tags=["stages"])


def _stage_info(catalog: StageCatalog, stage: str) -> StageInfoOut:
    return StageInfoOut(
        stage=stage,
        terminal=catalog.is_terminal(stage),
        next_stages=list(catalog.valid_transitions_from(stage)),
    )


@router.get("", response_model=list[StageInfoOut])
async def list_stages(catalog: StageCatalog = Depends(deps.get_catalog)):
    return [_stage_info(catalog, stage) for stage in catalog.stages]


@router.get("/{stage}/next", response_model=StageInfoOut)
async def next_stages(stage: str, catalog: StageCatalog = Depends(deps.get_catalog)):
    # Unknown stages have no transitions rather than being an error.
    return _stage_info(catalog, stage)
