from __future__ import annotations

from sqlalchemy import Select, exists, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.errors import create_persistence_error
from hirepipe.core.stage_machine import DEFAULT_CATALOG, HIRED, StageCatalog
from hirepipe.models.candidate import Candidate, CandidateSkill
from hirepipe.schemas.pipeline import PipelineFilter, PipelineStats, StageBoardColumn


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, value: str):
    return func.lower(column).like(f"%{_escape_like(value.lower())}%", escape="\\")


def apply_filter(stmt: Select, filters: PipelineFilter | None) -> Select:
    stmt = stmt.where(Candidate.is_active.is_(True))
    if filters is None:
        return stmt
    if filters.applied_from is not None:
        stmt = stmt.where(Candidate.applied_at >= filters.applied_from)
    if filters.applied_to is not None:
        stmt = stmt.where(Candidate.applied_at <= filters.applied_to)
    if filters.skills:
        wanted = [skill.lower() for skill in filters.skills]
        stmt = stmt.where(
            exists().where(
                CandidateSkill.candidate_id == Candidate.candidate_id,
                func.lower(CandidateSkill.skill).in_(wanted),
            )
        )
    if filters.location:
        stmt = stmt.where(_contains(Candidate.location, filters.location))
    if filters.experience:
        stmt = stmt.where(_contains(Candidate.experience, filters.experience))
    if filters.source:
        stmt = stmt.where(func.lower(Candidate.source) == filters.source.lower())
    return stmt


def _percentage(part: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return part * 100 / total


async def _grouped_counts(session: AsyncSession, filters: PipelineFilter | None) -> dict[str, int]:
    stmt = apply_filter(
        select(Candidate.current_stage, func.count().label("count")).select_from(Candidate),
        filters,
    ).group_by(Candidate.current_stage)
    try:
        rows = (await session.execute(stmt)).all()
    except SQLAlchemyError as exc:
        raise create_persistence_error("aggregate candidates by stage", exc) from exc
    return {row.current_stage: int(row.count or 0) for row in rows}


async def stage_distribution(
    session: AsyncSession,
    filters: PipelineFilter | None = None,
    *,
    catalog: StageCatalog = DEFAULT_CATALOG,
) -> dict[str, int]:
    counts = await _grouped_counts(session, filters)
    return {stage: counts.get(stage, 0) for stage in catalog.stages}


async def pipeline_stats(
    session: AsyncSession,
    filters: PipelineFilter | None = None,
    *,
    catalog: StageCatalog = DEFAULT_CATALOG,
) -> PipelineStats:
    counts = await _grouped_counts(session, filters)
    distribution = {stage: counts.get(stage, 0) for stage in catalog.stages}
    # Totals cover every matching candidate, including rows left on legacy stage values.
    total = sum(counts.values())
    beyond_initial = total - counts.get(catalog.initial_stage, 0)
    hired = counts.get(HIRED, 0)
    return PipelineStats(
        stage_distribution=distribution,
        total_candidates=total,
        conversion_rate=_percentage(beyond_initial, total),
        hire_rate=_percentage(hired, total),
    )


async def candidates_by_stage(
    session: AsyncSession,
    filters: PipelineFilter | None = None,
    *,
    catalog: StageCatalog = DEFAULT_CATALOG,
) -> list[StageBoardColumn]:
    stmt = apply_filter(
        select(Candidate.candidate_id, Candidate.current_stage).select_from(Candidate),
        filters,
    ).order_by(Candidate.applied_at.asc(), Candidate.candidate_id.asc())
    try:
        rows = (await session.execute(stmt)).all()
    except SQLAlchemyError as exc:
        raise create_persistence_error("load pipeline board", exc) from exc

    columns: dict[str, list[str]] = {stage: [] for stage in catalog.stages}
    for row in rows:
        if row.current_stage in columns:
            columns[row.current_stage].append(row.candidate_id)
    return [
        StageBoardColumn(stage=stage, count=len(ids), candidate_ids=ids)
        for stage, ids in columns.items()
    ]
