from datetime import datetime
from typing import Optional

from fastapi import Header, Query, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.errors import ValidationError
from hirepipe.core.stage_machine import DEFAULT_CATALOG, StageCatalog
from hirepipe.db.session import SessionLocal, get_session
from hirepipe.schemas.pipeline import PipelineFilter
from hirepipe.services.bulk_transitions import SessionFactory
from hirepipe.services.stage_events import StageEventBus


async def get_db_session() -> AsyncSession:
    async for session in get_session():
        yield session


def get_session_factory() -> SessionFactory:
    return SessionLocal


def get_catalog() -> StageCatalog:
    return DEFAULT_CATALOG


def get_event_bus(request: Request) -> StageEventBus:
    return request.app.state.event_bus


def get_actor(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    # Supplied by the upstream identity layer; absent means a system change.
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


def get_pipeline_filter(
    applied_from: Optional[datetime] = Query(default=None),
    applied_to: Optional[datetime] = Query(default=None),
    skills: Optional[str] = Query(default=None, description="Comma separated, matches any"),
    location: Optional[str] = Query(default=None),
    source: Optional[str] = Query(default=None),
    experience: Optional[str] = Query(default=None),
) -> PipelineFilter:
    try:
        return PipelineFilter(
            applied_from=applied_from,
            applied_to=applied_to,
            skills=skills,
            location=location,
            source=source,
            experience=experience,
        )
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        raise ValidationError(
            str(first.get("msg") or "Invalid pipeline filter"),
            details={"field": "filter"},
        ) from exc

