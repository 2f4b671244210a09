from hirepipe.db.base import Base
from hirepipe.models.candidate import Candidate, CandidateSkill
from hirepipe.models.stage_history import StageHistoryEntry

__all__ = [
    "Base",
    "Candidate",
    "CandidateSkill",
    "StageHistoryEntry",
]
