"""
Bulk stage updates.

Each request goes through the single-candidate coordinator in its own
session, so one item's failure never rolls back or changes the outcome of
another. Items run concurrently under a capacity limiter; results are
reported in input order.

Cancelling a running bulk call cancels the outstanding items only. Items
that already committed stay committed; nothing is compensated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

import anyio
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.config import settings
from hirepipe.core.errors import (
    PipelineError,
    TransitionFailed,
    TransitionResult,
    TransitionSucceeded,
    ValidationError,
)
from hirepipe.core.stage_machine import DEFAULT_CATALOG, StageCatalog
from hirepipe.models.candidate import Candidate
from hirepipe.schemas.stage import BulkTransitionItem
from hirepipe.services.stage_events import StageEventBus
from hirepipe.services.stage_transitions import try_transition

logger = logging.getLogger("hirepipe.bulk")

SessionFactory = Callable[[], AsyncSession]


@dataclass(frozen=True)
class BulkFailure:
    candidate_id: str
    to_stage: str
    error: str
    message: str
    retryable: bool = False

    @classmethod
    def from_error(cls, item: BulkTransitionItem, exc: PipelineError) -> BulkFailure:
        return cls(
            candidate_id=item.candidate_id,
            to_stage=item.to_stage,
            error=exc.code.value,
            message=exc.message,
            retryable=exc.retryable,
        )


@dataclass
class BulkTransitionResult:
    successful: list[Candidate] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


def validate_batch_size(items: Sequence[BulkTransitionItem], max_items: int | None = None) -> None:
    limit = max_items if max_items is not None else settings.bulk_max_items
    if len(items) > limit:
        raise ValidationError(
            f"Batch size {len(items)} exceeds maximum of {limit}",
            details={"field": "updates", "max_items": limit},
        )


def find_duplicate_positions(items: Sequence[BulkTransitionItem]) -> set[int]:
    """Positions of items whose candidate already appeared earlier in the batch."""
    seen: set[str] = set()
    duplicates: set[int] = set()
    for index, item in enumerate(items):
        if item.candidate_id in seen:
            duplicates.add(index)
        seen.add(item.candidate_id)
    return duplicates


async def bulk_transition(
    session_factory: SessionFactory,
    requests: Sequence[BulkTransitionItem],
    actor: str | None = None,
    *,
    catalog: StageCatalog = DEFAULT_CATALOG,
    concurrency: int | None = None,
    max_items: int | None = None,
    events: StageEventBus | None = None,
) -> BulkTransitionResult:
    items = list(requests)
    validate_batch_size(items, max_items)
    if not items:
        return BulkTransitionResult()

    duplicates = find_duplicate_positions(items)
    outcomes: list[TransitionResult | None] = [None] * len(items)
    limiter = anyio.CapacityLimiter(max(1, concurrency or settings.bulk_concurrency))

    async def _run(index: int, item: BulkTransitionItem) -> None:
        if index in duplicates:
            outcomes[index] = TransitionFailed(
                error=ValidationError(
                    "Candidate appears more than once in this batch",
                    details={"candidate_id": item.candidate_id},
                )
            )
            return
        async with limiter:
            async with session_factory() as session:
                outcomes[index] = await try_transition(
                    session,
                    item.candidate_id,
                    item.to_stage,
                    actor,
                    item.notes,
                    catalog=catalog,
                    events=events,
                )

    async with anyio.create_task_group() as tg:
        for index, item in enumerate(items):
            tg.start_soon(_run, index, item)

    result = BulkTransitionResult()
    for item, outcome in zip(items, outcomes):
        if isinstance(outcome, TransitionSucceeded):
            result.successful.append(outcome.candidate)
        elif isinstance(outcome, TransitionFailed):
            result.failed.append(BulkFailure.from_error(item, outcome.error))

    logger.info(
        "bulk_transition_completed",
        extra={"requested": len(items), "succeeded": len(result.successful), "failed": len(result.failed)},
    )
    return result
