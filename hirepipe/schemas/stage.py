from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HistoryEntryOut(BaseModel):
    sequence: int
    from_stage: Optional[str] = None
    to_stage: str
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CandidateStageOut(BaseModel):
    candidate_id: str
    full_name: Optional[str] = None
    current_stage: str
    stage_version: int
    is_active: bool
    stage_history: list[HistoryEntryOut]
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StageHistoryOut(BaseModel):
    candidate_id: str
    current_stage: str
    stage_history: list[HistoryEntryOut]


class StageTransitionRequest(BaseModel):
    to_stage: str
    notes: Optional[str] = None
    # Optional optimistic guard: fail as stale if the candidate is no longer here.
    expected_stage: Optional[str] = None


class BulkTransitionItem(BaseModel):
    candidate_id: str
    to_stage: str
    notes: Optional[str] = None


class BulkTransitionRequest(BaseModel):
    updates: list[BulkTransitionItem] = Field(default_factory=list)


class BulkFailureOut(BaseModel):
    candidate_id: str
    to_stage: str
    error: str
    message: str
    retryable: bool = False


class BulkTransitionOut(BaseModel):
    successful_count: int
    failed_count: int
    successful: list[CandidateStageOut]
    failed: list[BulkFailureOut]


class StageInfoOut(BaseModel):
    stage: str
    terminal: bool
    next_stages: list[str]
