from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.config import settings
from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.core.errors import NotFoundError, ValidationError, create_persistence_error
from hirepipe.models.candidate import Candidate
from hirepipe.models.stage_history import StageHistoryEntry

logger = logging.getLogger("hirepipe.history")


def validate_notes(notes: str | None, max_length: int | None = None) -> str | None:
    """Return cleaned notes, or raise ValidationError when they exceed the bound."""
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("Notes must be a string", details={"field": "notes"})
    cleaned = notes.strip()
    if not cleaned:
        return None
    limit = max_length if max_length is not None else settings.notes_max_length
    if len(cleaned) > limit:
        raise ValidationError(
            f"Notes cannot exceed {limit} characters",
            details={"field": "notes", "max_length": limit, "length": len(cleaned)},
        )
    return cleaned


def next_timestamp(previous_at: datetime | None, now: datetime | None = None) -> datetime:
    current = now or utcnow_naive()
    if previous_at is not None and current < previous_at:
        # Clock went backward; keep the ledger monotonic instead of failing.
        logger.warning(
            "history_clock_skew",
            extra={"previous_at": previous_at.isoformat(), "now": current.isoformat()},
        )
        return previous_at
    return current


def append_entry(
    session: AsyncSession,
    *,
    candidate_id: str,
    sequence: int,
    from_stage: str | None,
    to_stage: str,
    actor: str | None,
    notes: str | None,
    previous_at: datetime | None = None,
    now: datetime | None = None,
) -> StageHistoryEntry:
    """Add a history row to the caller's transaction; the caller commits."""
    entry = StageHistoryEntry(
        candidate_id=candidate_id,
        sequence=sequence,
        from_stage=from_stage,
        to_stage=to_stage,
        changed_by=(actor or "").strip() or None,
        notes=notes,
        created_at=next_timestamp(previous_at, now),
    )
    session.add(entry)
    return entry


async def last_entry_timestamp(session: AsyncSession, *, candidate_id: str) -> datetime | None:
    return (
        await session.execute(
            select(StageHistoryEntry.created_at)
            .where(StageHistoryEntry.candidate_id == candidate_id)
            .order_by(StageHistoryEntry.sequence.desc())
            .limit(1)
        )
    ).scalar_one_or_none()


@dataclass(frozen=True)
class StageRecord:
    current_stage: str
    history: list[StageHistoryEntry]


async def get_stage_record(session: AsyncSession, candidate_id: str) -> StageRecord:
    """Current stage plus the full ledger, for an active candidate."""
    try:
        current_stage = (
            await session.execute(
                select(Candidate.current_stage).where(
                    Candidate.candidate_id == candidate_id,
                    Candidate.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if current_stage is None:
            raise NotFoundError("Candidate not found", details={"candidate_id": candidate_id})

        rows = (
            await session.execute(
                select(StageHistoryEntry)
                .where(StageHistoryEntry.candidate_id == candidate_id)
                .order_by(StageHistoryEntry.sequence.asc())
            )
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise create_persistence_error("retrieve stage history", exc) from exc
    return StageRecord(current_stage=current_stage, history=list(rows))


async def get_history(session: AsyncSession, candidate_id: str) -> list[StageHistoryEntry]:
    return (await get_stage_record(session, candidate_id)).history
