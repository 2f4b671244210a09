from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from hirepipe.core.datetime_utils import to_utc_naive


class PipelineFilter(BaseModel):
    """Restricts the candidate set for aggregation. Inactive candidates are always excluded."""

    applied_from: Optional[datetime] = None
    applied_to: Optional[datetime] = None
    skills: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    source: Optional[str] = None
    experience: Optional[str] = None

    @field_validator("skills", mode="before")
    @classmethod
    def split_skills(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("applied_from", "applied_to")
    @classmethod
    def normalize_bounds(cls, value: Optional[datetime]) -> Optional[datetime]:
        # applied_at is stored as naive UTC.
        return to_utc_naive(value) if value is not None else None

    @field_validator("location", "source", "experience")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def check_date_range(self) -> PipelineFilter:
        if self.applied_from and self.applied_to and self.applied_from > self.applied_to:
            raise ValueError("applied_from must not be after applied_to")
        return self


class PipelineStats(BaseModel):
    stage_distribution: dict[str, int]
    total_candidates: int
    conversion_rate: float
    hire_rate: float


class StageBoardColumn(BaseModel):
    stage: str
    count: int
    candidate_ids: list[str]
