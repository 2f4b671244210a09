from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping


# Canonical stage identifiers.
APPLIED = "applied"
SCREENING = "screening"
INTERVIEW = "interview"
OFFER = "offer"
HIRED = "hired"
REJECTED = "rejected"


ALL_STAGES: tuple[str, ...] = (
    APPLIED,
    SCREENING,
    INTERVIEW,
    OFFER,
    HIRED,
    REJECTED,
)


TERMINAL_STAGES: frozenset[str] = frozenset({HIRED, REJECTED})


# Explicit state diagram. Every non-terminal stage may move to REJECTED;
# interview -> screening and offer -> interview are the allowed step-backs.
STAGE_GRAPH: dict[str, frozenset[str]] = {
    APPLIED: frozenset({SCREENING, REJECTED}),
    SCREENING: frozenset({INTERVIEW, REJECTED}),
    INTERVIEW: frozenset({OFFER, SCREENING, REJECTED}),
    OFFER: frozenset({HIRED, INTERVIEW, REJECTED}),
    HIRED: frozenset(),
    REJECTED: frozenset(),
}


@dataclass(frozen=True)
class StageCatalog:
    """Immutable set of pipeline stages and the transitions allowed between them.

    Built once at startup and handed to the coordinators explicitly. All
    lookups are pure; unknown stage values are never an error here, they
    simply have no transitions.
    """

    stages: tuple[str, ...]
    graph: Mapping[str, frozenset[str]]
    initial_stage: str = APPLIED
    terminal: frozenset[str] = field(init=False)

    def __post_init__(self) -> None:
        known = set(self.stages)
        if len(known) != len(self.stages):
            raise ValueError("Stage catalog contains duplicate stages")
        if set(self.graph.keys()) != known:
            raise ValueError("Transition table must cover exactly the catalog stages")
        for source, targets in self.graph.items():
            unknown = set(targets) - known
            if unknown:
                raise ValueError(f"Stage '{source}' points to unknown stages: {sorted(unknown)}")
        if self.initial_stage not in known:
            raise ValueError(f"Initial stage '{self.initial_stage}' is not in the catalog")
        # Freeze a private copy so callers mutating their dict cannot change the catalog.
        object.__setattr__(
            self, "graph", MappingProxyType({stage: frozenset(self.graph[stage]) for stage in self.stages})
        )
        object.__setattr__(self, "terminal", frozenset(s for s in self.stages if not self.graph[s]))

    def is_known(self, stage: str | None) -> bool:
        return isinstance(stage, str) and stage in self.graph

    def is_terminal(self, stage: str | None) -> bool:
        return isinstance(stage, str) and stage in self.terminal

    def valid_transitions_from(self, stage: str | None) -> tuple[str, ...]:
        if not self.is_known(stage):
            return ()
        targets = self.graph[stage]
        return tuple(s for s in self.stages if s in targets)

    def is_valid_transition(self, from_stage: str | None, to_stage: str | None) -> bool:
        if not self.is_known(from_stage) or not self.is_known(to_stage):
            return False
        if from_stage == to_stage:
            return False
        if from_stage in self.terminal:
            return False
        return to_stage in self.graph[from_stage]

    def path_is_valid(self, path: Iterable[str]) -> bool:
        items = list(path)
        if len(items) < 2:
            return False
        for index in range(len(items) - 1):
            if not self.is_valid_transition(items[index], items[index + 1]):
                return False
        return True


def build_default_catalog() -> StageCatalog:
    return StageCatalog(stages=ALL_STAGES, graph=STAGE_GRAPH, initial_stage=APPLIED)


DEFAULT_CATALOG: StageCatalog = build_default_catalog()


def is_valid_transition(
    from_stage: str | None,
    to_stage: str | None,
    catalog: StageCatalog = DEFAULT_CATALOG,
) -> bool:
    return catalog.is_valid_transition(from_stage, to_stage)


def valid_transitions_from(stage: str | None, catalog: StageCatalog = DEFAULT_CATALOG) -> tuple[str, ...]:
    return catalog.valid_transitions_from(stage)
