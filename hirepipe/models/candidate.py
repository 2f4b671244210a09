from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.core.stage_machine import APPLIED
from hirepipe.db.base import Base

if TYPE_CHECKING:
    from hirepipe.models.stage_history import StageHistoryEntry


def _new_candidate_id() -> str:
    return uuid4().hex


class Candidate(Base):
    """
    Pipeline-facing projection of a candidate. The CRUD layer owns the record;
    the pipeline only moves `current_stage` / `stage_version` and appends history.
    """

    __tablename__ = "pipeline_candidate"

    candidate_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_candidate_id)

    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    location: Mapped[str | None] = mapped_column(String(150), nullable=True)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    experience: Mapped[str | None] = mapped_column(String(100), nullable=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, index=True)

    current_stage: Mapped[str] = mapped_column(String(50), default=APPLIED, nullable=False, index=True)
    # Number of history entries; bumped by every conditional stage update.
    stage_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)

    skills: Mapped[list[CandidateSkill]] = relationship(
        "CandidateSkill",
        back_populates="candidate",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    stage_history: Mapped[list[StageHistoryEntry]] = relationship(
        "StageHistoryEntry",
        order_by="StageHistoryEntry.sequence",
        lazy="selectin",
        viewonly=True,
    )

    @property
    def skill_names(self) -> list[str]:
        return [item.skill for item in self.skills]


class CandidateSkill(Base):
    __tablename__ = "pipeline_candidate_skill"
    __table_args__ = (UniqueConstraint("candidate_id", "skill", name="uq_candidate_skill"),)

    candidate_skill_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_id: Mapped[str] = mapped_column(
        ForeignKey("pipeline_candidate.candidate_id", ondelete="CASCADE"), index=True
    )
    skill: Mapped[str] = mapped_column(String(100), index=True)

    candidate: Mapped[Candidate] = relationship("Candidate", back_populates="skills")
