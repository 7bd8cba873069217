"""
guardflow.query
===============

Query driver: find a call site, find the basic block that holds it, and ask
the platform-check pass which guard is guaranteed there.

Public API
----------
    find_function(unit, name)             - FunctionDecl by simple/qualified name
    find_invocations(graph, method_name)  - every call of *method_name* in a CFG
    enclosing_statement(operation)        - nearest statement-level ancestor
    find_block(graph, syntax)             - the unique block holding *syntax*
    analyze_call(graph, method_name)      - guard of the single call site
    analyze_calls(graph, method_name)     - guard of every call site
    CallSiteGuard                         - one call site and its fact

Typical usage::

    from guardflow.frontend import parse_file
    from guardflow.ctrlflow_graph import build_cfg
    from guardflow.query import analyze_call, find_function

    unit = parse_file("Program.cs")
    cfg = build_cfg(find_function(unit, "Main"))
    guard = analyze_call(cfg, "WindowsApi")
    print("All good" if guard.is_guaranteed("Windows") else "Sorry")

Lookups never fall back to an arbitrary candidate: zero matches raise
:class:`~guardflow.errors.NotFoundError`, several raise
:class:`~guardflow.errors.AmbiguousMatchError`.  An *unknown* or *empty*
fact is a regular result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from guardflow.config import AnalysisConfig
from guardflow.ctrlflow_graph import BasicBlock, ControlFlowGraph
from guardflow.errors import AmbiguousMatchError, NotFoundError
from guardflow.frontend import CompilationUnit, FunctionDecl
from guardflow.operations import Invocation, Operation, SyntaxSpan
from guardflow.platform_check import PlatformCheckPredicatePass, PlatformCheckResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CallSiteGuard:
    """The guard established at one call site.

    Attributes
    ----------
    invocation : Invocation
        The call itself.
    statement : Operation
        Statement-level operation enclosing the call (used for block lookup).
    block : BasicBlock
        Block holding ``statement``.
    fact : PlatformCheckResult
        Fact guaranteed on entry to ``block``.
    """

    invocation: Invocation
    statement: Operation
    block: BasicBlock
    fact: PlatformCheckResult

    def is_guaranteed(self, platform: str, negated: bool = False) -> bool:
        """Whether every path to the call proves ``(platform, negated)``.

        *empty* and *unknown* facts are both treated as "no guarantee".
        """
        return self.fact.guarantees(platform, negated)

    @property
    def location(self) -> str:
        span = self.invocation.syntax
        return f"{span.line}:{span.column}"

    def describe(self) -> str:
        return (
            f"{self.location}: {self.invocation.syntax.text.strip()} "
            f"[BB{self.block.ordinal}] guard: {self.fact.describe()}"
        )

    def to_dict(self) -> dict:
        span = self.invocation.syntax
        return {
            "call": span.text.strip(),
            "line": span.line,
            "column": span.column,
            "block": self.block.ordinal,
            "reachable": self.block.is_reachable,
            "guard": self.fact.to_dict(),
        }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def find_function(unit: CompilationUnit, name: str) -> FunctionDecl:
    """Return the function called *name* (simple or qualified)."""
    matches = [
        f for f in unit.functions if name in (f.name, f.qualified_name)
    ]
    if not matches:
        raise NotFoundError(
            f"no function named {name!r}",
            target=name,
            source_name=unit.source_name,
        )
    if len(matches) > 1:
        raise AmbiguousMatchError(
            f"{len(matches)} functions named {name!r}: "
            + ", ".join(f.qualified_name for f in matches),
            target=name,
            matches=matches,
            source_name=unit.source_name,
        )
    return matches[0]


def find_invocations(graph: ControlFlowGraph, method_name: str) -> List[Invocation]:
    """Every invocation of *method_name* in *graph*, in block order.

    Both block operations and branch values are searched.
    """
    found: List[Invocation] = []
    for _, operation in graph.operations():
        for op in operation.descendants_and_self():
            if isinstance(op, Invocation) and op.method_name == method_name:
                found.append(op)
    logger.debug(
        "Found %d invocation(s) of %s in %s", len(found), method_name, graph.name
    )
    return found


def enclosing_statement(operation: Operation) -> Operation:
    """Return the nearest statement-level ancestor of *operation* (or itself).

    A call inside a branch condition has no statement ancestor; the root of
    the condition is returned instead.
    """
    root = operation
    for op in operation.ancestors_and_self():
        if op.is_statement:
            return op
        root = op
    return root


def find_block(graph: ControlFlowGraph, syntax: SyntaxSpan) -> BasicBlock:
    """Return the unique block whose operations or branch value carry *syntax*."""
    matches: List[BasicBlock] = []
    for block, operation in graph.operations():
        if operation.syntax == syntax and block not in matches:
            matches.append(block)
    target = f"{syntax.text.strip()!r} at {syntax.line}:{syntax.column}"
    if not matches:
        raise NotFoundError(
            f"no block of {graph.name} contains {target}",
            target=target,
            line=syntax.line,
            column=syntax.column,
        )
    if len(matches) > 1:
        raise AmbiguousMatchError(
            f"{len(matches)} blocks of {graph.name} contain {target}: "
            + ", ".join(f"BB{b.ordinal}" for b in matches),
            target=target,
            matches=matches,
            line=syntax.line,
            column=syntax.column,
        )
    return matches[0]


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def _guard_at(
    graph: ControlFlowGraph,
    invocation: Invocation,
    analysis: PlatformCheckPredicatePass,
) -> CallSiteGuard:
    statement = enclosing_statement(invocation)
    block = find_block(graph, statement.syntax)
    fact = analysis.analyze(graph, block)
    logger.debug(
        "%s at %d:%d in BB%d: %s",
        invocation.method_name, invocation.syntax.line, invocation.syntax.column,
        block.ordinal, fact.describe(),
    )
    return CallSiteGuard(invocation, statement, block, fact)


def analyze_calls(
    graph: ControlFlowGraph,
    method_name: str,
    config: Optional[AnalysisConfig] = None,
) -> List[CallSiteGuard]:
    """Analyse every call of *method_name* in *graph*."""
    invocations = find_invocations(graph, method_name)
    if not invocations:
        raise NotFoundError(
            f"{graph.name} never calls {method_name!r}", target=method_name
        )
    analysis = PlatformCheckPredicatePass(config)
    return [_guard_at(graph, inv, analysis) for inv in invocations]


def analyze_call(
    graph: ControlFlowGraph,
    method_name: str,
    config: Optional[AnalysisConfig] = None,
) -> CallSiteGuard:
    """Analyse the single call of *method_name* in *graph*."""
    invocations = find_invocations(graph, method_name)
    if not invocations:
        raise NotFoundError(
            f"{graph.name} never calls {method_name!r}", target=method_name
        )
    if len(invocations) > 1:
        raise AmbiguousMatchError(
            f"{graph.name} calls {method_name!r} {len(invocations)} times",
            target=method_name,
            matches=invocations,
        )
    return _guard_at(graph, invocations[0], PlatformCheckPredicatePass(config))
