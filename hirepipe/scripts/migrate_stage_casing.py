"""One-off data migration: rewrite legacy capitalized stage values to canonical lowercase.

Usage: python -m hirepipe.scripts.migrate_stage_casing [--dry-run]
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.stage_machine import ALL_STAGES
from hirepipe.db.session import SessionLocal
from hirepipe.models.candidate import Candidate
from hirepipe.models.stage_history import StageHistoryEntry

logger = logging.getLogger("hirepipe.migrate")

LEGACY_STAGE_MAP: dict[str, str] = {stage.capitalize(): stage for stage in ALL_STAGES}


async def count_legacy_rows(session: AsyncSession) -> dict[str, int]:
    legacy = list(LEGACY_STAGE_MAP)
    candidates = (
        await session.execute(
            select(func.count()).select_from(Candidate).where(Candidate.current_stage.in_(legacy))
        )
    ).scalar_one()
    history_from = (
        await session.execute(
            select(func.count()).select_from(StageHistoryEntry).where(StageHistoryEntry.from_stage.in_(legacy))
        )
    ).scalar_one()
    history_to = (
        await session.execute(
            select(func.count()).select_from(StageHistoryEntry).where(StageHistoryEntry.to_stage.in_(legacy))
        )
    ).scalar_one()
    return {
        "candidates": int(candidates or 0),
        "history_from_stage": int(history_from or 0),
        "history_to_stage": int(history_to or 0),
    }


async def migrate_stage_casing(session: AsyncSession, *, dry_run: bool = False) -> dict[str, int]:
    """Canonicalize stage values in one transaction and return per-column counts.

    Only the spelling changes; history rows keep their order, actor, notes and
    timestamps.
    """
    summary = await count_legacy_rows(session)
    if dry_run:
        return summary

    for legacy, canonical in LEGACY_STAGE_MAP.items():
        await session.execute(
            update(Candidate).where(Candidate.current_stage == legacy).values(current_stage=canonical)
        )
        await session.execute(
            update(StageHistoryEntry).where(StageHistoryEntry.from_stage == legacy).values(from_stage=canonical)
        )
        await session.execute(
            update(StageHistoryEntry).where(StageHistoryEntry.to_stage == legacy).values(to_stage=canonical)
        )
    await session.commit()
    logger.info("stage_casing_migrated", extra=summary)
    return summary


async def _run(dry_run: bool) -> None:
    async with SessionLocal() as session:
        summary = await migrate_stage_casing(session, dry_run=dry_run)
    prefix = "Would update" if dry_run else "Updated"
    print(
        f"{prefix} {summary['candidates']} candidates, "
        f"{summary['history_from_stage'] + summary['history_to_stage']} history stage values."
    )


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(_run(args.dry_run))


if __name__ == "__main__":
    main()
