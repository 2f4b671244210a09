from __future__ import annotations

from collections import deque
import unittest

from hirepipe.core.stage_machine import (
    ALL_STAGES,
    APPLIED,
    DEFAULT_CATALOG,
    HIRED,
    INTERVIEW,
    OFFER,
    REJECTED,
    SCREENING,
    STAGE_GRAPH,
    TERMINAL_STAGES,
    StageCatalog,
    build_default_catalog,
    is_valid_transition,
    valid_transitions_from,
)


class StageCatalogDiagramTests(unittest.TestCase):
    def test_graph_covers_all_known_stages(self) -> None:
        self.assertSetEqual(set(STAGE_GRAPH.keys()), set(ALL_STAGES))
        self.assertTupleEqual(DEFAULT_CATALOG.stages, ALL_STAGES)

    def test_terminal_stages_have_no_outgoing_edges(self) -> None:
        self.assertSetEqual(DEFAULT_CATALOG.terminal, TERMINAL_STAGES)
        for stage in TERMINAL_STAGES:
            self.assertTrue(DEFAULT_CATALOG.is_terminal(stage))
            self.assertEqual(DEFAULT_CATALOG.valid_transitions_from(stage), ())

    def test_every_non_terminal_stage_can_be_rejected(self) -> None:
        for stage in ALL_STAGES:
            if stage in TERMINAL_STAGES:
                continue
            self.assertTrue(is_valid_transition(stage, REJECTED), msg=f"{stage} cannot reject")

    def test_catalog_is_read_only(self) -> None:
        with self.assertRaises(TypeError):
            DEFAULT_CATALOG.graph[APPLIED] = frozenset({HIRED})  # type: ignore[index]
        with self.assertRaises(AttributeError):
            DEFAULT_CATALOG.stages = ()  # type: ignore[misc]

    def test_catalog_copies_source_graph(self) -> None:
        graph = {stage: set(targets) for stage, targets in STAGE_GRAPH.items()}
        catalog = StageCatalog(stages=ALL_STAGES, graph=graph)
        graph[APPLIED].add(HIRED)
        self.assertFalse(catalog.is_valid_transition(APPLIED, HIRED))

    def test_catalog_rejects_edges_to_unknown_stages(self) -> None:
        graph = dict(STAGE_GRAPH)
        graph[APPLIED] = frozenset({"archived"})
        with self.assertRaises(ValueError):
            StageCatalog(stages=ALL_STAGES, graph=graph)

    def test_connectivity_from_applied_to_terminal_states(self) -> None:
        reachable: set[str] = set()
        queue = deque([APPLIED])
        while queue:
            node = queue.popleft()
            if node in reachable:
                continue
            reachable.add(node)
            queue.extend(DEFAULT_CATALOG.valid_transitions_from(node))
        self.assertIn(HIRED, reachable)
        self.assertIn(REJECTED, reachable)


class TransitionValidatorTests(unittest.TestCase):
    def test_exhaustive_pairs_match_graph(self) -> None:
        for source in ALL_STAGES:
            for target in ALL_STAGES:
                expected = target in STAGE_GRAPH[source] and source not in TERMINAL_STAGES and source != target
                self.assertEqual(
                    is_valid_transition(source, target),
                    expected,
                    msg=f"{source} -> {target}",
                )

    def test_same_stage_transition_is_rejected(self) -> None:
        for stage in ALL_STAGES:
            self.assertFalse(is_valid_transition(stage, stage))

    def test_terminal_stage_never_transitions(self) -> None:
        for terminal in TERMINAL_STAGES:
            for target in ALL_STAGES:
                self.assertFalse(is_valid_transition(terminal, target))

    def test_unknown_stages_are_rejected_without_raising(self) -> None:
        self.assertFalse(is_valid_transition("bogus", SCREENING))
        self.assertFalse(is_valid_transition(APPLIED, "bogus"))
        self.assertFalse(is_valid_transition(None, APPLIED))
        self.assertFalse(is_valid_transition("Applied", "Screening"))

    def test_happy_path_to_hired_is_valid(self) -> None:
        self.assertTrue(DEFAULT_CATALOG.path_is_valid([APPLIED, SCREENING, INTERVIEW, OFFER, HIRED]))

    def test_step_back_branches(self) -> None:
        self.assertTrue(DEFAULT_CATALOG.path_is_valid([APPLIED, SCREENING, INTERVIEW, SCREENING, INTERVIEW]))
        self.assertTrue(DEFAULT_CATALOG.path_is_valid([INTERVIEW, OFFER, INTERVIEW, OFFER, HIRED]))

    def test_invalid_jumps_are_rejected(self) -> None:
        self.assertFalse(is_valid_transition(APPLIED, HIRED))
        self.assertFalse(is_valid_transition(SCREENING, HIRED))
        self.assertFalse(is_valid_transition(APPLIED, INTERVIEW))
        self.assertFalse(DEFAULT_CATALOG.path_is_valid([APPLIED]))

    def test_valid_transitions_from(self) -> None:
        self.assertTupleEqual(valid_transitions_from(APPLIED), (SCREENING, REJECTED))
        self.assertTupleEqual(valid_transitions_from(INTERVIEW), (SCREENING, OFFER, REJECTED))
        self.assertTupleEqual(valid_transitions_from(HIRED), ())
        self.assertTupleEqual(valid_transitions_from("INVALID_STAGE"), ())
        self.assertTupleEqual(valid_transitions_from(None), ())
        self.assertTupleEqual(valid_transitions_from(""), ())

    def test_injected_catalog_is_used(self) -> None:
        graph = dict(STAGE_GRAPH)
        graph[APPLIED] = frozenset({SCREENING, INTERVIEW, REJECTED})
        fast_track = StageCatalog(stages=ALL_STAGES, graph=graph)
        self.assertTrue(is_valid_transition(APPLIED, INTERVIEW, fast_track))
        self.assertFalse(is_valid_transition(APPLIED, INTERVIEW, build_default_catalog()))


if __name__ == "__main__":
    unittest.main()
