"""
guardflow.predicate_pass
========================

A generic backward pass that computes the predicate guaranteed to hold when
control reaches a given basic block.

The pass is parameterised over a *predicate domain*: any fact type ``S``
with four operations:

``empty_state()``
    The fact "no constraint" (identity of ``and_states``).
``condition_state(negated, condition)``
    The fact established by taking a branch on ``condition``
    (``negated`` is ``True`` when the branch is taken on *false*).
``and_states(a, b)``
    Both facts hold (sequential composition along one path).
``or_states(a, b)``
    One of the facts holds (two paths join).

Algorithm
---------
Starting at the target block, every incoming branch is followed backwards.
The fact for a block ``B`` is::

    fact(B) = OR over predecessors P → B of
                  AND(fact(source(P)), condition_state(polarity(P), cond))

where the AND is applied only when ``source(P)`` ends in a conditional
branch and ``P`` is one of its two successors.  A predecessor whose source
is *on the current traversal path* closes a cycle (a back edge) and is
skipped entirely.  A block with no remaining predecessor yields
``empty_state()``.  The first surviving branch seeds the accumulator; later
ones are folded in with ``or_states``.

The traversal uses an explicit stack, so its depth is bounded by the heap
rather than the interpreter's recursion limit.  Each block is expanded at
most once per query; a block already finished on another path contributes
its recorded fact.

Discarding back edges means loop-carried guarantees are lost: the result is
an approximation, not a sound dataflow fixpoint.
"""

from __future__ import annotations

import abc
import logging
from typing import Dict, Generic, Iterator, Optional, Set, TypeVar

from guardflow.ctrlflow_graph import (
    BasicBlock,
    ConditionKind,
    ControlFlowBranch,
    ControlFlowGraph,
)
from guardflow.operations import Operation

logger = logging.getLogger(__name__)

S = TypeVar("S")          # Predicate fact type


def edge_polarity(branch: ControlFlowBranch) -> Optional[bool]:
    """Return whether *branch* is taken on the *negated* condition.

    ``None`` when the branch carries no condition: its source has no branch
    value, or the branch is neither of the source's two successors.
    """
    source = branch.source
    if source.branch_value is None:
        return None
    if source.conditional_successor is branch:
        return source.condition_kind is ConditionKind.WHEN_FALSE
    if source.fallthrough_successor is branch:
        return source.condition_kind is ConditionKind.WHEN_TRUE
    return None


class _Frame(Generic[S]):
    """One block being expanded on the explicit traversal stack."""

    __slots__ = ("block", "predecessors", "state", "seeded", "pending")

    def __init__(self, block: BasicBlock) -> None:
        self.block = block
        self.predecessors: Iterator[ControlFlowBranch] = iter(block.predecessors)
        self.state: Optional[S] = None
        self.seeded = False
        self.pending: Optional[ControlFlowBranch] = None


class PredicatePass(abc.ABC, Generic[S]):
    """Abstract base class for backward predicate passes.

    Subclasses supply the domain operations; :meth:`analyze` supplies the
    traversal and performs no domain-specific reasoning.  Instances hold no
    per-query state, so one instance may serve concurrent queries over
    graphs that are not being mutated.
    """

    @abc.abstractmethod
    def empty_state(self) -> S:
        """Return the fact meaning "no constraint"."""
        ...

    @abc.abstractmethod
    def condition_state(self, negated: bool, condition: Operation) -> S:
        """Return the fact established by a branch on *condition*."""
        ...

    @abc.abstractmethod
    def and_states(self, left: S, right: S) -> S:
        """Return the fact that both *left* and *right* hold."""
        ...

    @abc.abstractmethod
    def or_states(self, left: S, right: S) -> S:
        """Return the fact that *left* or *right* holds."""
        ...

    # ----- traversal --------------------------------------------------------

    def _fold(self, frame: _Frame[S], branch: ControlFlowBranch, source_state: S) -> None:
        edge_state = source_state
        negated = edge_polarity(branch)
        if negated is not None:
            condition = branch.source.branch_value
            assert condition is not None
            edge_state = self.and_states(
                edge_state, self.condition_state(negated, condition)
            )
        if frame.seeded:
            frame.state = self.or_states(frame.state, edge_state)
        else:
            frame.state = edge_state
            frame.seeded = True

    def analyze(self, graph: ControlFlowGraph, block: BasicBlock) -> S:
        """Return the fact guaranteed to hold whenever *block* is reached.

        Raises
        ------
        ValueError
            If *block* does not belong to *graph*.
        """
        if block not in graph:
            raise ValueError(f"BB{block.ordinal} does not belong to CFG {graph.name!r}")

        on_path: Set[BasicBlock] = {block}
        finished: Dict[BasicBlock, S] = {}
        back_edges = 0
        stack = [_Frame(block)]

        while True:
            frame = stack[-1]
            branch = next(frame.predecessors, None)

            if branch is None:
                stack.pop()
                on_path.discard(frame.block)
                state = frame.state if frame.seeded else self.empty_state()
                finished[frame.block] = state
                if not stack:
                    logger.debug(
                        "%s: BB%d of %s reached %d block(s), skipped %d back edge(s)",
                        type(self).__name__, block.ordinal, graph.name,
                        len(finished), back_edges,
                    )
                    return state
                parent = stack[-1]
                assert parent.pending is not None
                self._fold(parent, parent.pending, state)
                parent.pending = None
                continue

            source = branch.source
            if source in on_path:
                back_edges += 1
                continue
            if source in finished:
                self._fold(frame, branch, finished[source])
                continue

            frame.pending = branch
            on_path.add(source)
            stack.append(_Frame(source))
