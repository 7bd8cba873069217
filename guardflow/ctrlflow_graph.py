"""
guardflow.ctrlflow_graph
========================

Builds intraprocedural Control Flow Graphs (CFGs) from parsed functions.

Each function yields one CFG.  A CFG is a directed graph whose nodes are
*basic blocks* (straight-line sequences of statement-level operations) and
whose edges are *branches*.  A block ends in at most two outgoing branches:

* the **conditional successor**, taken when the block's ``branch_value``
  evaluates to the value named by its ``condition_kind``
  (``WHEN_TRUE`` / ``WHEN_FALSE``);
* the **fall-through successor**, taken otherwise (or unconditionally when
  the block has no branch value).

Public API
----------
    ConditionKind     - none / when-true / when-false
    BlockKind         - entry / block / exit
    BasicBlock        - a single basic block
    ControlFlowBranch - a directed edge between two blocks
    ControlFlowGraph  - the CFG for one function
    connect           - wire a branch between two blocks
    build_cfg         - build a CFG from a FunctionDecl
    build_all_cfgs    - build CFGs for every function of a CompilationUnit
    cfg_summary       - plain-text listing of a CFG

Typical usage::

    from guardflow.frontend import parse_file
    from guardflow.ctrlflow_graph import build_all_cfgs

    unit = parse_file("Program.cs")
    for name, cfg in build_all_cfgs(unit).items():
        print(f"Function {name}: {len(cfg.blocks)} blocks")
        for block in cfg.blocks:
            print(f"  BB{block.ordinal}: {block.label()}")

Implementation notes
--------------------
* Lowering keeps a *current block*.  Statements append to it; control
  statements cut it and wire branches.  After ``return``/``break``/
  ``continue`` there is no current block until a later statement needs one,
  so dead code gets a fresh block with no predecessors.
* Short-circuit operators are **not** split into separate blocks: an
  ``if (a && b)`` yields a single branch value ``a && b``.
* Block 0 is always the ENTRY block and the last block the EXIT block.
"""

from __future__ import annotations

import enum
import logging
from collections import OrderedDict
from typing import (
    TYPE_CHECKING,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

from guardflow.frontend import (
    BlockStatement,
    BreakStatement,
    CompilationUnit,
    ContinueStatement,
    DoWhileStatement,
    ForStatement,
    FunctionDecl,
    IfStatement,
    Statement,
    WhileStatement,
)
from guardflow.operations import Literal, Operation, OperationKind, format_operation

if TYPE_CHECKING:
    from guardflow.config import AnalysisConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------


class ConditionKind(enum.Enum):
    """When the conditional successor of a block is taken."""

    NONE = "none"
    WHEN_TRUE = "when-true"
    WHEN_FALSE = "when-false"


class BlockKind(enum.Enum):
    ENTRY = "entry"
    BLOCK = "block"
    EXIT = "exit"


# ---------------------------------------------------------------------------
# BasicBlock
# ---------------------------------------------------------------------------

class BasicBlock:
    """A basic block in the CFG.

    Attributes
    ----------
    ordinal : int
        Dense index of the block in :attr:`ControlFlowGraph.blocks`.
    kind : BlockKind
        ENTRY, EXIT or an ordinary BLOCK.
    operations : list[Operation]
        Statement-level operations, in execution order.
    predecessors : list[ControlFlowBranch]
        Incoming branches.
    conditional_successor : ControlFlowBranch or None
        Outgoing branch taken when ``branch_value`` matches ``condition_kind``.
    fallthrough_successor : ControlFlowBranch or None
        Outgoing branch taken otherwise.
    branch_value : Operation or None
        Condition evaluated at the end of the block.
    condition_kind : ConditionKind
        ``NONE`` iff ``branch_value`` is ``None``.
    is_reachable : bool
        Whether the block is reachable from ENTRY.
    """

    __slots__ = (
        "ordinal",
        "kind",
        "operations",
        "predecessors",
        "conditional_successor",
        "fallthrough_successor",
        "branch_value",
        "condition_kind",
        "is_reachable",
    )

    def __init__(self, ordinal: int = -1, kind: BlockKind = BlockKind.BLOCK) -> None:
        self.ordinal = ordinal
        self.kind = kind
        self.operations: List[Operation] = []
        self.predecessors: List[ControlFlowBranch] = []
        self.conditional_successor: Optional[ControlFlowBranch] = None
        self.fallthrough_successor: Optional[ControlFlowBranch] = None
        self.branch_value: Optional[Operation] = None
        self.condition_kind = ConditionKind.NONE
        self.is_reachable = False

    # ----- helpers ----------------------------------------------------------

    @property
    def successors(self) -> List["ControlFlowBranch"]:
        return [
            b for b in (self.conditional_successor, self.fallthrough_successor)
            if b is not None
        ]

    def label(self) -> str:
        """Return a compact, human-readable label for this block."""
        if self.kind is not BlockKind.BLOCK:
            return f"[{self.kind.value}]"
        parts = [op.syntax.text.strip() for op in self.operations]
        if self.branch_value is not None:
            parts.append(f"branch {self.branch_value.syntax.text.strip()}")
        return "; ".join(parts) if parts else "[empty]"

    def __repr__(self) -> str:
        return (
            f"BasicBlock(ordinal={self.ordinal}, kind={self.kind.value!r}, "
            f"nops={len(self.operations)})"
        )


# ---------------------------------------------------------------------------
# ControlFlowBranch
# ---------------------------------------------------------------------------

class ControlFlowBranch:
    """A directed edge in the CFG.

    Attributes
    ----------
    source : BasicBlock
    destination : BasicBlock
    is_conditional_successor : bool
        ``True`` iff this is ``source.conditional_successor``.
    """

    __slots__ = ("source", "destination", "is_conditional_successor")

    def __init__(
        self,
        source: BasicBlock,
        destination: BasicBlock,
        is_conditional_successor: bool = False,
    ) -> None:
        self.source = source
        self.destination = destination
        self.is_conditional_successor = is_conditional_successor

    def __repr__(self) -> str:
        kind = "conditional" if self.is_conditional_successor else "fall-through"
        return (
            f"ControlFlowBranch(BB{self.source.ordinal} -> "
            f"BB{self.destination.ordinal}, {kind})"
        )


# ---------------------------------------------------------------------------
# ControlFlowGraph
# ---------------------------------------------------------------------------

class ControlFlowGraph:
    """Intraprocedural control flow graph for a single function.

    Attributes
    ----------
    name : str
        Qualified name of the function this CFG represents.
    blocks : list[BasicBlock]
        All basic blocks, ENTRY first and EXIT last.
    """

    def __init__(self, name: str, blocks: List[BasicBlock]) -> None:
        self.name = name
        self.blocks = blocks
        self._members: Set[int] = {id(b) for b in blocks}

    @property
    def entry(self) -> BasicBlock:
        return self.blocks[0]

    @property
    def exit(self) -> BasicBlock:
        return self.blocks[-1]

    # ----- queries ----------------------------------------------------------

    def __contains__(self, block: object) -> bool:
        return id(block) in self._members

    def __iter__(self) -> Iterator[BasicBlock]:
        return iter(self.blocks)

    def branches(self) -> List[ControlFlowBranch]:
        """Every branch in the graph, grouped by source block."""
        return [br for block in self.blocks for br in block.successors]

    def reachable_from(self, start: BasicBlock) -> Set[BasicBlock]:
        """Return the set of blocks reachable from *start* (DFS)."""
        visited: Set[BasicBlock] = set()
        worklist = [start]
        while worklist:
            block = worklist.pop()
            if block in visited:
                continue
            visited.add(block)
            for br in block.successors:
                worklist.append(br.destination)
        return visited

    def operations(self) -> Iterator[Tuple[BasicBlock, Operation]]:
        """Yield ``(block, operation)`` for every statement-level operation
        and branch value, in block order."""
        for block in self.blocks:
            for op in block.operations:
                yield block, op
            if block.branch_value is not None:
                yield block, block.branch_value

    # ----- serialisation helpers --------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this CFG.

        Unreachable blocks are drawn dotted; branches are labelled with the
        polarity under which they are taken and the branch value text.
        """
        def quote(text: str) -> str:
            escaped = (
                text.rstrip()
                .replace("\\", "\\\\")
                .replace('"', '\\"')
                .replace("\n", "\\l")
            )
            return f'"{escaped}\\l"'

        lines = ["digraph CFG {"]
        if title:
            lines.append(f"  label={quote(title)};")
        lines.append("  node [shape=box, fontname=monospace, fontsize=10];")
        for block in self.blocks:
            body = [str(block.ordinal)]
            if block.kind is not BlockKind.BLOCK:
                body.append(block.kind.value)
            body.extend(format_operation(op) for op in block.operations)
            style = "solid" if block.is_reachable else "dotted"
            fill = ""
            if block.kind is BlockKind.ENTRY:
                fill = ', fillcolor="#ccffcc", style="filled,solid"'
            elif block.kind is BlockKind.EXIT:
                fill = ', fillcolor="#ffcccc", style="filled,solid"'
            text = "\n".join(body)
            attrs = f"label = {quote(text)}, style = {style}{fill}"
            lines.append(f"  {block.ordinal} [{attrs}]")
        for br in self.branches():
            source = br.source
            label = ""
            if source.branch_value is not None:
                taken_when = source.condition_kind
                if not br.is_conditional_successor:
                    taken_when = (
                        ConditionKind.WHEN_FALSE
                        if source.condition_kind is ConditionKind.WHEN_TRUE
                        else ConditionKind.WHEN_TRUE
                    )
                label = f"[{taken_when.value}] {source.branch_value.syntax.text.strip()}"
            style = ", style=dashed" if br.is_conditional_successor else ""
            lines.append(
                f"  {source.ordinal} -> {br.destination.ordinal} "
                f"[label = {quote(label)}{style}]"
            )
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ControlFlowGraph(name={self.name!r}, blocks={len(self.blocks)})"


def connect(
    source: BasicBlock,
    destination: BasicBlock,
    conditional: bool = False,
) -> ControlFlowBranch:
    """Create a branch and wire it into both blocks.

    Raises ``ValueError`` if *source* already has a successor of that kind.
    """
    br = ControlFlowBranch(source, destination, conditional)
    if conditional:
        if source.conditional_successor is not None:
            raise ValueError(f"BB{source.ordinal} already has a conditional successor")
        source.conditional_successor = br
    else:
        if source.fallthrough_successor is not None:
            raise ValueError(f"BB{source.ordinal} already has a fall-through successor")
        source.fallthrough_successor = br
    destination.predecessors.append(br)
    return br


# ===========================================================================
# CFG BUILDER
# ===========================================================================

class _LoopTargets:
    __slots__ = ("break_target", "continue_target")

    def __init__(self, break_target: BasicBlock, continue_target: BasicBlock) -> None:
        self.break_target = break_target
        self.continue_target = continue_target


class _CFGBuilder:
    """Internal builder that lowers one function body into a CFG.

    A single recursive pass over the statement tree.  ``self._current`` is
    the block receiving operations, or ``None`` right after an unconditional
    jump.  An explicit loop stack resolves ``break``/``continue``.
    """

    def __init__(self, function: FunctionDecl, fold_constants: bool = True) -> None:
        self.function = function
        self.fold_constants = fold_constants
        self._blocks: List[BasicBlock] = []
        self._loops: List[_LoopTargets] = []
        self._entry = BasicBlock(kind=BlockKind.ENTRY)
        self._exit = BasicBlock(kind=BlockKind.EXIT)
        self._current: Optional[BasicBlock] = None

    # ----- helpers ----------------------------------------------------------

    def _new_block(self) -> BasicBlock:
        block = BasicBlock()
        self._blocks.append(block)
        return block

    def _ensure_current(self) -> BasicBlock:
        if self._current is None:
            self._current = self._new_block()
        return self._current

    @staticmethod
    def _link(
        source: Optional[BasicBlock],
        destination: BasicBlock,
        conditional: bool = False,
    ) -> None:
        if source is not None:
            connect(source, destination, conditional)

    def _constant(self, condition: Optional[Operation]) -> Optional[bool]:
        """``True``/``False`` for a foldable literal condition, else ``None``.

        A missing condition (``for (;;)``) counts as ``True``.
        """
        if condition is None:
            return True
        if self.fold_constants and isinstance(condition, Literal):
            if isinstance(condition.value, bool):
                return condition.value
        return None

    def _branch(
        self,
        block: BasicBlock,
        condition: Optional[Operation],
        kind: ConditionKind,
        conditional_target: BasicBlock,
        fallthrough_target: BasicBlock,
    ) -> None:
        """End *block* with a test of *condition*.

        The conditional successor is taken when the condition is ``True``
        for ``WHEN_TRUE`` and ``False`` for ``WHEN_FALSE``.
        """
        constant = self._constant(condition)
        if constant is None:
            block.branch_value = condition
            block.condition_kind = kind
            self._link(block, conditional_target, conditional=True)
            self._link(block, fallthrough_target)
            return
        takes_conditional = constant == (kind is ConditionKind.WHEN_TRUE)
        self._link(
            block,
            conditional_target if takes_conditional else fallthrough_target,
        )

    # ----- driver -----------------------------------------------------------

    def build(self) -> ControlFlowGraph:
        self._current = self._new_block()
        self._link(self._entry, self._current)
        self._lower(self.function.body)
        self._link(self._current, self._exit)

        blocks = [self._entry] + self._blocks + [self._exit]
        for ordinal, block in enumerate(blocks):
            block.ordinal = ordinal
        cfg = ControlFlowGraph(self.function.qualified_name, blocks)
        for block in cfg.reachable_from(cfg.entry):
            block.is_reachable = True
        logger.debug(
            "Built CFG for %s: %d blocks, %d branches",
            cfg.name, len(cfg.blocks), len(cfg.branches()),
        )
        return cfg

    # ----- statements -------------------------------------------------------

    def _lower(self, statement: Optional[Statement]) -> None:
        if statement is None:
            return
        if isinstance(statement, Operation):
            self._ensure_current().operations.append(statement)
            if statement.kind is OperationKind.RETURN:
                self._link(self._current, self._exit)
                self._current = None
        elif isinstance(statement, BlockStatement):
            for child in statement.statements:
                self._lower(child)
        elif isinstance(statement, IfStatement):
            self._lower_if(statement)
        elif isinstance(statement, WhileStatement):
            self._lower_while(statement)
        elif isinstance(statement, DoWhileStatement):
            self._lower_do_while(statement)
        elif isinstance(statement, ForStatement):
            self._lower_for(statement)
        elif isinstance(statement, BreakStatement):
            self._ensure_current()
            self._link(self._current, self._loops[-1].break_target)
            self._current = None
        elif isinstance(statement, ContinueStatement):
            self._ensure_current()
            self._link(self._current, self._loops[-1].continue_target)
            self._current = None
        else:
            raise TypeError(f"cannot lower {type(statement).__name__}")

    def _lower_if(self, stmt) -> None:
        condition_block = self._ensure_current()
        then_block = self._new_block()
        else_block = self._new_block() if stmt.else_branch is not None else None
        join = self._new_block()

        self._branch(
            condition_block,
            stmt.condition,
            ConditionKind.WHEN_FALSE,
            conditional_target=else_block or join,
            fallthrough_target=then_block,
        )

        self._current = then_block
        self._lower(stmt.then_branch)
        self._link(self._current, join)

        if else_block is not None:
            self._current = else_block
            self._lower(stmt.else_branch)
            self._link(self._current, join)

        self._current = join

    def _lower_loop(
        self,
        condition: Optional[Operation],
        body: Optional[Statement],
        step: Optional[Operation] = None,
    ) -> None:
        """Shared lowering of ``while`` and ``for`` (test at the top)."""
        header = self._new_block()
        self._link(self._ensure_current(), header)
        body_block = self._new_block()
        step_block = self._new_block() if step is not None else None
        after = self._new_block()

        self._branch(
            header,
            condition,
            ConditionKind.WHEN_FALSE,
            conditional_target=after,
            fallthrough_target=body_block,
        )

        self._loops.append(_LoopTargets(after, step_block or header))
        self._current = body_block
        self._lower(body)
        self._loops.pop()

        if step_block is not None:
            self._link(self._current, step_block)
            step_block.operations.append(step)
            self._link(step_block, header)
        else:
            self._link(self._current, header)
        self._current = after

    def _lower_while(self, stmt) -> None:
        self._lower_loop(stmt.condition, stmt.body)

    def _lower_for(self, stmt) -> None:
        if stmt.initializer is not None:
            self._ensure_current().operations.append(stmt.initializer)
        self._lower_loop(stmt.condition, stmt.body, stmt.step)

    def _lower_do_while(self, stmt) -> None:
        body_block = self._new_block()
        self._link(self._ensure_current(), body_block)
        condition_block = self._new_block()
        after = self._new_block()

        self._loops.append(_LoopTargets(after, condition_block))
        self._current = body_block
        self._lower(stmt.body)
        self._loops.pop()
        self._link(self._current, condition_block)

        self._branch(
            condition_block,
            stmt.condition,
            ConditionKind.WHEN_TRUE,
            conditional_target=body_block,
            fallthrough_target=after,
        )
        self._current = after


# ===========================================================================
# PUBLIC API
# ===========================================================================

def build_cfg(
    function: FunctionDecl,
    config: Optional["AnalysisConfig"] = None,
) -> ControlFlowGraph:
    """Build the CFG of a single function."""
    fold = config.fold_constant_conditions if config is not None else True
    return _CFGBuilder(function, fold_constants=fold).build()


def build_all_cfgs(
    unit: CompilationUnit,
    config: Optional["AnalysisConfig"] = None,
) -> "OrderedDict[str, ControlFlowGraph]":
    """Build CFGs for every function in *unit*, keyed by qualified name.

    Functions sharing a qualified name (overloads) keep the first CFG.
    """
    result: "OrderedDict[str, ControlFlowGraph]" = OrderedDict()
    for function in unit.functions:
        if function.qualified_name in result:
            logger.warning(
                "Duplicate function %s in %s; keeping the first definition",
                function.qualified_name, unit.source_name,
            )
            continue
        result[function.qualified_name] = build_cfg(function, config)
    return result


def cfg_summary(cfg: ControlFlowGraph) -> str:
    """Return a multi-line text listing of *cfg*."""
    lines = [f"CFG {cfg.name}: {len(cfg.blocks)} blocks"]
    for block in cfg.blocks:
        marker = "" if block.is_reachable else "  (unreachable)"
        lines.append(f"  BB{block.ordinal}: {block.label()}{marker}")
        preds = ", ".join(f"BB{br.source.ordinal}" for br in block.predecessors)
        if preds:
            lines.append(f"    preds: {preds}")
        if block.branch_value is not None:
            assert block.conditional_successor is not None
            lines.append(
                f"    {block.condition_kind.value} -> "
                f"BB{block.conditional_successor.destination.ordinal}"
            )
        if block.fallthrough_successor is not None:
            lines.append(
                f"    fall-through -> "
                f"BB{block.fallthrough_successor.destination.ordinal}"
            )
    return "\n".join(lines)
