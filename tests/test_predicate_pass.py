# tests/test_predicate_pass.py
"""
Tests for the generic backward predicate pass on hand-built graphs.

Most tests use a small "must-hold conditions" domain: a fact is the set of
condition texts (prefixed with ``!`` when negated) known to hold, joins
intersect and sequencing unions.  It makes the traversal observable
independently of the platform-check domain.
"""

from typing import FrozenSet

import pytest

from guardflow.config import AnalysisConfig, JoinPolicy
from guardflow.ctrlflow_graph import ConditionKind, connect
from guardflow.platform_check import PlatformCheckPredicatePass, PlatformCheckResult
from guardflow.predicate_pass import PredicatePass, edge_polarity
from tests.conftest import local, make_blocks, make_graph, platform_check, set_branch


class MustHold(PredicatePass[FrozenSet[str]]):

    def __init__(self):
        self.conditions_seen = 0

    def empty_state(self):
        return frozenset()

    def condition_state(self, negated, condition):
        self.conditions_seen += 1
        text = condition.syntax.text
        return frozenset({"!" + text if negated else text})

    def and_states(self, left, right):
        return left | right

    def or_states(self, left, right):
        return left & right


# ── Edge polarity ────────────────────────────────────────────────

class TestEdgePolarity:

    def _fork(self, kind):
        src, then_, else_ = make_blocks(3)
        set_branch(src, local("c"), kind)
        conditional = connect(src, else_, conditional=True)
        fallthrough = connect(src, then_)
        return conditional, fallthrough

    def test_when_false(self):
        conditional, fallthrough = self._fork(ConditionKind.WHEN_FALSE)
        assert edge_polarity(conditional) is True
        assert edge_polarity(fallthrough) is False

    def test_when_true(self):
        conditional, fallthrough = self._fork(ConditionKind.WHEN_TRUE)
        assert edge_polarity(conditional) is False
        assert edge_polarity(fallthrough) is True

    def test_unconditional_edge(self):
        src, dst = make_blocks(2)
        assert edge_polarity(connect(src, dst)) is None


# ── Traversal ────────────────────────────────────────────────────

class TestPredicatePassTraversal:

    def test_rejects_foreign_block(self):
        blocks = make_blocks(2)
        connect(blocks[0], blocks[1])
        graph = make_graph(blocks)
        stranger = make_blocks(1)[0]
        with pytest.raises(ValueError):
            MustHold().analyze(graph, stranger)

    def test_block_without_predecessors_is_empty(self):
        blocks = make_blocks(2)
        graph = make_graph(blocks)
        assert MustHold().analyze(graph, blocks[0]) == frozenset()
        assert MustHold().analyze(graph, blocks[1]) == frozenset()

    def test_straight_line_carries_no_condition(self):
        blocks = make_blocks(4)
        for a, b in zip(blocks, blocks[1:]):
            connect(a, b)
        assert MustHold().analyze(make_graph(blocks), blocks[3]) == frozenset()

    def test_branch_sides(self):
        #   0 -> 1 [c, when-false]; 1 ==c==> 3 (else), 1 --> 2 (then)
        b0, b1, b2, b3, b4 = make_blocks(5)
        connect(b0, b1)
        set_branch(b1, local("c"))
        connect(b1, b3, conditional=True)
        connect(b1, b2)
        connect(b2, b4)
        connect(b3, b4)
        graph = make_graph([b0, b1, b2, b3, b4])
        assert MustHold().analyze(graph, b2) == frozenset({"c"})
        assert MustHold().analyze(graph, b3) == frozenset({"!c"})
        # join of c and !c keeps nothing
        assert MustHold().analyze(graph, b4) == frozenset()

    def test_nested_conditions_accumulate(self):
        b0, b1, b2, b3, exit_ = make_blocks(5)
        connect(b0, b1)
        set_branch(b1, local("a"))
        connect(b1, exit_, conditional=True)
        connect(b1, b2)
        set_branch(b2, local("b"), ConditionKind.WHEN_TRUE)
        connect(b2, b3, conditional=True)
        connect(b2, exit_)
        graph = make_graph([b0, b1, b2, b3, exit_])
        assert MustHold().analyze(graph, b3) == frozenset({"a", "b"})

    def test_join_keeps_common_condition(self):
        # a guards a diamond on b; both arms still have a
        b0, b1, b2, b3, b4, b5, exit_ = make_blocks(7)
        connect(b0, b1)
        set_branch(b1, local("a"))
        connect(b1, exit_, conditional=True)
        connect(b1, b2)
        set_branch(b2, local("b"))
        connect(b2, b4, conditional=True)
        connect(b2, b3)
        connect(b3, b5)
        connect(b4, b5)
        connect(b5, exit_)
        graph = make_graph([b0, b1, b2, b3, b4, b5, exit_])
        assert MustHold().analyze(graph, b5) == frozenset({"a"})

    def test_back_edge_is_skipped(self):
        # 0 -> 1 (header, h) -> 2 (body) -> 1 ; 1 ==h==> 3
        b0, b1, b2, b3 = make_blocks(4)
        connect(b0, b1)
        set_branch(b1, local("h"))
        connect(b1, b3, conditional=True)
        connect(b1, b2)
        connect(b2, b1)
        graph = make_graph([b0, b1, b2, b3])
        assert MustHold().analyze(graph, b2) == frozenset({"h"})
        assert MustHold().analyze(graph, b1) == frozenset()

    def test_self_loop_terminates(self):
        b0, b1, b2 = make_blocks(3)
        connect(b0, b1)
        connect(b1, b1, conditional=True)
        set_branch(b1, local("again"), ConditionKind.WHEN_TRUE)
        connect(b1, b2)
        graph = make_graph([b0, b1, b2])
        assert MustHold().analyze(graph, b2) == frozenset({"!again"})

    def test_cycle_unreachable_from_entry_is_empty(self):
        b0, b1, b2 = make_blocks(3)
        connect(b1, b2)
        connect(b2, b1)
        graph = make_graph([b0, b1, b2])
        assert MustHold().analyze(graph, b1) == frozenset()

    def test_shared_source_is_expanded_once(self):
        # two predecessors of the target share the conditional block 1
        b0, b1, b2, b3, b4 = make_blocks(5)
        connect(b0, b1)
        set_branch(b1, local("c"))
        connect(b1, b3, conditional=True)
        connect(b1, b2)
        connect(b2, b3)
        connect(b3, b4)
        graph = make_graph([b0, b1, b2, b3, b4])
        domain = MustHold()
        assert domain.analyze(graph, b4) == frozenset()
        # one condition per edge out of block 1, nothing re-derived
        assert domain.conditions_seen == 2

    def test_first_predecessor_seeds_accumulator(self):
        calls = []

        class Recording(MustHold):
            def or_states(self, left, right):
                calls.append((left, right))
                return super().or_states(left, right)

        b0, b1, b2, b3 = make_blocks(4)
        connect(b0, b3)
        connect(b1, b3, conditional=True)
        connect(b2, b3)
        set_branch(b1, local("x"))
        graph = make_graph([b0, b1, b2, b3])
        Recording().analyze(graph, b3)
        # three predecessors, two joins
        assert len(calls) == 2
        assert calls[0] == (frozenset(), frozenset({"!x"}))

    def test_deep_chain_does_not_recurse(self):
        depth = 5000
        blocks = make_blocks(depth)
        for a, b in zip(blocks, blocks[1:]):
            connect(a, b)
        graph = make_graph(blocks)
        assert MustHold().analyze(graph, blocks[-1]) == frozenset()

    def test_deep_guarded_chain(self):
        depth = 1500
        blocks = make_blocks(depth + 1)
        exit_ = blocks[-1]
        for i in range(depth - 1):
            set_branch(blocks[i], local(f"c{i}"))
            connect(blocks[i], exit_, conditional=True)
            connect(blocks[i], blocks[i + 1])
        graph = make_graph(blocks)
        fact = MustHold().analyze(graph, blocks[depth - 1])
        assert len(fact) == depth - 1


# ── Platform domain on hand-built graphs ─────────────────────────

class TestPlatformPassOnGraphs:

    def _two_roots(self, first, second):
        """Two independent guarded roots falling through into one target."""
        r1, r2, target, exit_ = make_blocks(4)
        set_branch(r1, platform_check(first))
        connect(r1, exit_, conditional=True)
        connect(r1, target)
        set_branch(r2, platform_check(second))
        connect(r2, exit_, conditional=True)
        connect(r2, target)
        return make_graph([r1, r2, target, exit_]), target

    def test_distinct_paths_are_unknown(self):
        graph, target = self._two_roots("Windows", "Linux")
        fact = PlatformCheckPredicatePass().analyze(graph, target)
        assert fact == PlatformCheckResult.unknown()

    def test_agreeing_paths_stay_unknown_by_default(self):
        graph, target = self._two_roots("Windows", "Windows")
        fact = PlatformCheckPredicatePass().analyze(graph, target)
        assert fact.is_unknown

    def test_agreeing_paths_with_agree_policy(self):
        graph, target = self._two_roots("Windows", "Windows")
        analysis = PlatformCheckPredicatePass(AnalysisConfig(join_policy=JoinPolicy.AGREE))
        assert analysis.analyze(graph, target) == PlatformCheckResult.create("Windows")

    def test_repeated_analysis_is_stable(self):
        graph, target = self._two_roots("Windows", "Linux")
        analysis = PlatformCheckPredicatePass()
        assert analysis.analyze(graph, target) == analysis.analyze(graph, target)
