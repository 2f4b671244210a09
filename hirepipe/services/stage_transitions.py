from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    PipelineError,
    StaleTransitionError,
    TransitionFailed,
    TransitionResult,
    TransitionSucceeded,
    ValidationError,
    create_persistence_error,
)
from hirepipe.core.stage_machine import DEFAULT_CATALOG, StageCatalog
from hirepipe.models.candidate import Candidate
from hirepipe.services.history_ledger import append_entry, last_entry_timestamp, validate_notes
from hirepipe.services.stage_events import StageChangeEvent, StageEventBus

logger = logging.getLogger("hirepipe.transitions")


@dataclass(frozen=True)
class StageSnapshot:
    candidate_id: str
    current_stage: str
    stage_version: int
    last_changed_at: datetime | None


async def load_snapshot(session: AsyncSession, candidate_id: str) -> StageSnapshot:
    row = (
        await session.execute(
            select(Candidate.current_stage, Candidate.stage_version).where(
                Candidate.candidate_id == candidate_id,
                Candidate.is_active.is_(True),
            )
        )
    ).one_or_none()
    if row is None:
        raise NotFoundError("Candidate not found", details={"candidate_id": candidate_id})
    last_changed_at = await last_entry_timestamp(session, candidate_id=candidate_id)
    return StageSnapshot(
        candidate_id=candidate_id,
        current_stage=row.current_stage,
        stage_version=int(row.stage_version or 0),
        last_changed_at=last_changed_at,
    )


async def load_candidate(session: AsyncSession, candidate_id: str, *, active_only: bool = True) -> Candidate:
    stmt = select(Candidate).where(Candidate.candidate_id == candidate_id)
    if active_only:
        stmt = stmt.where(Candidate.is_active.is_(True))
    candidate = (
        await session.execute(stmt.execution_options(populate_existing=True))
    ).scalars().one_or_none()
    if candidate is None:
        raise NotFoundError("Candidate not found", details={"candidate_id": candidate_id})
    return candidate


def _check_transition(
    snapshot: StageSnapshot,
    to_stage: str,
    catalog: StageCatalog,
    expected_stage: str | None,
) -> None:
    from_stage = snapshot.current_stage
    details = {
        "candidate_id": snapshot.candidate_id,
        "current_stage": from_stage,
        "to_stage": to_stage,
    }
    if expected_stage is not None and expected_stage != from_stage:
        raise StaleTransitionError(
            f"Candidate moved to '{from_stage}' since it was read as '{expected_stage}'.",
            details={**details, "expected_stage": expected_stage},
        )
    if from_stage == to_stage:
        raise InvalidTransitionError(f"Candidate is already in '{to_stage}' stage.", details=details)
    if not catalog.is_valid_transition(from_stage, to_stage):
        allowed = list(catalog.valid_transitions_from(from_stage))
        raise InvalidTransitionError(
            f"Invalid stage transition from '{from_stage}' to '{to_stage}'.",
            details={**details, "allowed_stages": allowed},
        )


async def _notify(events: StageEventBus, event: StageChangeEvent) -> None:
    try:
        await events.publish(event)
    except Exception as exc:
        logger.warning(
            "stage_event_not_published",
            extra={"candidate_id": event.candidate_id, "sequence": event.sequence, "error": type(exc).__name__},
        )


async def transition(
    session: AsyncSession,
    candidate_id: str,
    to_stage: str,
    actor: str | None = None,
    notes: str | None = None,
    *,
    catalog: StageCatalog = DEFAULT_CATALOG,
    expected_stage: str | None = None,
    events: StageEventBus | None = None,
) -> Candidate:
    """Move one candidate to ``to_stage`` and append the matching history entry.

    The stage change and the history row are written in one transaction whose
    UPDATE only matches while the candidate still has the stage and version
    read at validation time. Losing that race raises StaleTransitionError; the
    core never retries on the caller's behalf.

    When ``events`` is given, a StageChangeEvent is published after the
    commit. Publishing is best effort and cannot fail the call.

    Raises:
        ValidationError: blank/non-string stage or notes over the length bound
        NotFoundError: candidate missing or inactive
        InvalidTransitionError: same-stage move or a move the catalog forbids
        StaleTransitionError: a concurrent transition changed the stage first
        PersistenceError: storage failure, nothing written
    """
    if not isinstance(to_stage, str) or not to_stage.strip():
        raise ValidationError("Target stage is required", details={"field": "to_stage"})
    to_stage = to_stage.strip()
    clean_notes = validate_notes(notes)

    try:
        snapshot = await load_snapshot(session, candidate_id)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise create_persistence_error("read candidate stage", exc) from exc

    try:
        _check_transition(snapshot, to_stage, catalog, expected_stage)
    except PipelineError:
        await session.rollback()
        raise

    now = utcnow_naive()
    sequence = snapshot.stage_version + 1
    try:
        result = await session.execute(
            update(Candidate)
            .where(
                Candidate.candidate_id == candidate_id,
                Candidate.is_active.is_(True),
                Candidate.current_stage == snapshot.current_stage,
                Candidate.stage_version == snapshot.stage_version,
            )
            .values(current_stage=to_stage, stage_version=sequence, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await session.rollback()
            logger.warning(
                "stage_transition_stale",
                extra={"candidate_id": candidate_id, "from_stage": snapshot.current_stage, "to_stage": to_stage},
            )
            raise StaleTransitionError(
                "Candidate stage changed concurrently; re-read and retry.",
                details={"candidate_id": candidate_id, "read_stage": snapshot.current_stage, "to_stage": to_stage},
            )

        append_entry(
            session,
            candidate_id=candidate_id,
            sequence=sequence,
            from_stage=snapshot.current_stage,
            to_stage=to_stage,
            actor=actor,
            notes=clean_notes,
            previous_at=snapshot.last_changed_at,
            now=now,
        )
        await session.commit()
    except IntegrityError as exc:
        # Another writer already holds this history sequence.
        await session.rollback()
        raise StaleTransitionError(
            "Candidate stage changed concurrently; re-read and retry.",
            details={"candidate_id": candidate_id, "read_stage": snapshot.current_stage, "to_stage": to_stage},
            original_error=exc,
        ) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning(
            "stage_transition_persist_failed",
            extra={"candidate_id": candidate_id, "to_stage": to_stage, "error": type(exc).__name__},
        )
        raise create_persistence_error("update candidate stage", exc) from exc

    logger.info(
        "stage_transition_applied",
        extra={
            "candidate_id": candidate_id,
            "from_stage": snapshot.current_stage,
            "to_stage": to_stage,
            "changed_by": actor,
            "sequence": sequence,
        },
    )

    if events is not None:
        await _notify(
            events,
            StageChangeEvent(
                candidate_id=candidate_id,
                from_stage=snapshot.current_stage,
                to_stage=to_stage,
                changed_by=actor,
                sequence=sequence,
            ),
        )

    try:
        # The change is committed; a soft delete racing in after it must not hide that.
        return await load_candidate(session, candidate_id, active_only=False)
    except SQLAlchemyError as exc:
        raise create_persistence_error("reload candidate after stage update", exc) from exc


async def try_transition(
    session: AsyncSession,
    candidate_id: str,
    to_stage: str,
    actor: str | None = None,
    notes: str | None = None,
    *,
    catalog: StageCatalog = DEFAULT_CATALOG,
    expected_stage: str | None = None,
    events: StageEventBus | None = None,
) -> TransitionResult:
    try:
        candidate = await transition(
            session,
            candidate_id,
            to_stage,
            actor,
            notes,
            catalog=catalog,
            expected_stage=expected_stage,
            events=events,
        )
    except PipelineError as exc:
        return TransitionFailed(error=exc)
    return TransitionSucceeded(candidate=candidate)
