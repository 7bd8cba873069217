"""
guardflow.operations
====================

The operation tree: a small, language-neutral IR for expressions and
statement-level operations that populate basic blocks.

Every operation carries a :class:`SyntaxSpan` which is its *syntactic
identity*: two operations denote the same source construct iff their spans
are equal.  Operations are linked to their parent so that a nested
expression (say, a call) can be walked up to the statement that contains it.

Public API
----------
    SyntaxSpan            - source range + text of a construct
    OperationKind         - discriminator for operation classes
    UnaryOperatorKind     - ``!``, ``~``, ``-``, ``+``
    BinaryOperatorKind    - ``&&``, ``||``, ``&``, ``|``, comparisons, arithmetic
    Operation             - base class
    Literal, LocalReference, MemberReference, Invocation,
    UnaryOperation, BinaryOperation, Assignment,
    ExpressionStatement, VariableDeclaration, Return
    OperationVisitor      - kind-dispatching visitor base
    format_operation      - indented textual dump of an operation tree
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import (
    Any,
    ClassVar,
    Generic,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
)

R = TypeVar("R")


# ---------------------------------------------------------------------------
# Syntax identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SyntaxSpan:
    """A contiguous range of source text.

    Attributes
    ----------
    kind : str
        Grammar-level construct name (``"invocation"``, ``"if-statement"`` …).
    text : str
        The exact source text covered by the span.
    start, end : int
        Character offsets into the source (``end`` exclusive).
    line, column : int
        1-based position of ``start``.
    """

    kind: str
    text: str
    start: int
    end: int
    line: int = 1
    column: int = 1

    def __str__(self) -> str:
        return self.text


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------

class OperationKind(enum.Enum):
    LITERAL = "literal"
    LOCAL_REFERENCE = "local-reference"
    MEMBER_REFERENCE = "member-reference"
    INVOCATION = "invocation"
    UNARY = "unary"
    BINARY = "binary"
    ASSIGNMENT = "assignment"
    EXPRESSION_STATEMENT = "expression-statement"
    VARIABLE_DECLARATION = "variable-declaration"
    RETURN = "return"


class UnaryOperatorKind(enum.Enum):
    NOT = "!"
    BITWISE_NEGATION = "~"
    MINUS = "-"
    PLUS = "+"


class BinaryOperatorKind(enum.Enum):
    CONDITIONAL_AND = "&&"
    CONDITIONAL_OR = "||"
    AND = "&"
    OR = "|"
    EQUALS = "=="
    NOT_EQUALS = "!="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    REMAINDER = "%"


STATEMENT_KINDS = frozenset({
    OperationKind.EXPRESSION_STATEMENT,
    OperationKind.VARIABLE_DECLARATION,
    OperationKind.RETURN,
})


# ---------------------------------------------------------------------------
# Operation base
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Operation:
    """Base class of all operations.

    Equality is identity: the same source text may appear in several places,
    and callers compare :attr:`syntax` when they mean "same construct".
    """

    kind: ClassVar[OperationKind]

    syntax: SyntaxSpan
    parent: Optional["Operation"] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for child in self.children:
            child.parent = self

    @property
    def children(self) -> Tuple["Operation", ...]:
        return ()

    @property
    def is_statement(self) -> bool:
        return self.kind in STATEMENT_KINDS

    def descendants_and_self(self) -> Iterator["Operation"]:
        """Pre-order walk of this operation and everything below it."""
        stack: List[Operation] = [self]
        while stack:
            op = stack.pop()
            yield op
            stack.extend(reversed(op.children))

    def descendants(self) -> Iterator["Operation"]:
        it = self.descendants_and_self()
        next(it)
        return it

    def ancestors_and_self(self) -> Iterator["Operation"]:
        op: Optional[Operation] = self
        while op is not None:
            yield op
            op = op.parent

    def accept(self, visitor: "OperationVisitor[R]", argument: Any = None) -> R:
        method = getattr(visitor, "visit_" + self.kind.name.lower(), None)
        if method is None:
            return visitor.default_visit(self, argument)
        return method(self, argument)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Literal(Operation):
    kind: ClassVar[OperationKind] = OperationKind.LITERAL

    value: Any = None


@dataclass(eq=False)
class LocalReference(Operation):
    """A bare identifier (local, parameter, or unresolved name).

    ``is_declared`` is set by the front-end when the name resolves to a
    parameter or local variable of the enclosing function; an undeclared
    name refers to a named constant or property in scope.
    """

    kind: ClassVar[OperationKind] = OperationKind.LOCAL_REFERENCE

    name: str = ""
    is_declared: bool = False


@dataclass(eq=False)
class MemberReference(Operation):
    """``instance.member`` used as a value (property / field / constant)."""

    kind: ClassVar[OperationKind] = OperationKind.MEMBER_REFERENCE

    instance: Optional[Operation] = None
    member: str = ""

    @property
    def children(self) -> Tuple[Operation, ...]:
        return (self.instance,) if self.instance is not None else ()


@dataclass(eq=False)
class Invocation(Operation):
    kind: ClassVar[OperationKind] = OperationKind.INVOCATION

    target: Optional[Operation] = None
    arguments: List[Operation] = field(default_factory=list)

    @property
    def method_name(self) -> Optional[str]:
        """Simple name of the invoked method, if it is syntactically named."""
        if isinstance(self.target, MemberReference):
            return self.target.member
        if isinstance(self.target, LocalReference):
            return self.target.name
        return None

    @property
    def children(self) -> Tuple[Operation, ...]:
        head = (self.target,) if self.target is not None else ()
        return head + tuple(self.arguments)


@dataclass(eq=False)
class UnaryOperation(Operation):
    kind: ClassVar[OperationKind] = OperationKind.UNARY

    operator: UnaryOperatorKind = UnaryOperatorKind.NOT
    operand: Optional[Operation] = None

    @property
    def children(self) -> Tuple[Operation, ...]:
        return (self.operand,) if self.operand is not None else ()


@dataclass(eq=False)
class BinaryOperation(Operation):
    kind: ClassVar[OperationKind] = OperationKind.BINARY

    operator: BinaryOperatorKind = BinaryOperatorKind.CONDITIONAL_AND
    left: Optional[Operation] = None
    right: Optional[Operation] = None

    @property
    def children(self) -> Tuple[Operation, ...]:
        return tuple(op for op in (self.left, self.right) if op is not None)


@dataclass(eq=False)
class Assignment(Operation):
    kind: ClassVar[OperationKind] = OperationKind.ASSIGNMENT

    target: Optional[Operation] = None
    value: Optional[Operation] = None

    @property
    def children(self) -> Tuple[Operation, ...]:
        return tuple(op for op in (self.target, self.value) if op is not None)


# ---------------------------------------------------------------------------
# Statement-level operations (what basic blocks hold)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class ExpressionStatement(Operation):
    kind: ClassVar[OperationKind] = OperationKind.EXPRESSION_STATEMENT

    expression: Optional[Operation] = None

    @property
    def children(self) -> Tuple[Operation, ...]:
        return (self.expression,) if self.expression is not None else ()


@dataclass(eq=False)
class VariableDeclaration(Operation):
    kind: ClassVar[OperationKind] = OperationKind.VARIABLE_DECLARATION

    type_name: str = ""
    name: str = ""
    initializer: Optional[Operation] = None

    @property
    def children(self) -> Tuple[Operation, ...]:
        return (self.initializer,) if self.initializer is not None else ()


@dataclass(eq=False)
class Return(Operation):
    kind: ClassVar[OperationKind] = OperationKind.RETURN

    value: Optional[Operation] = None

    @property
    def children(self) -> Tuple[Operation, ...]:
        return (self.value,) if self.value is not None else ()


# ---------------------------------------------------------------------------
# Visitor
# ---------------------------------------------------------------------------

class OperationVisitor(abc.ABC, Generic[R]):
    """Abstract base class for operation visitors.

    :meth:`Operation.accept` dispatches on :attr:`Operation.kind` to a
    ``visit_<kind>`` method, so ``OperationKind.MEMBER_REFERENCE`` goes to
    ``visit_member_reference`` and so on.  Kinds without a dedicated method
    fall back to :meth:`default_visit`, which does nothing.
    """

    def visit(self, operation: Optional[Operation], argument: Any = None) -> R:
        """Dispatch to the appropriate visit method."""
        if operation is None:
            return self.default_visit(operation, argument)
        return operation.accept(self, argument)

    def default_visit(self, operation: Optional[Operation], argument: Any) -> Any:
        """Called when no specific visitor method exists.

        Default: return None.  Override for catch-all behavior.
        """
        return None


# ---------------------------------------------------------------------------
# Textual dump
# ---------------------------------------------------------------------------

def _operation_detail(op: Operation) -> str:
    if isinstance(op, LocalReference):
        return op.name
    if isinstance(op, MemberReference):
        return op.member
    if isinstance(op, Invocation):
        return op.method_name or ""
    if isinstance(op, UnaryOperation):
        return op.operator.value
    if isinstance(op, BinaryOperation):
        return op.operator.value
    if isinstance(op, Literal):
        return repr(op.value)
    if isinstance(op, VariableDeclaration):
        return f"{op.type_name} {op.name}"
    return ""


def format_operation(operation: Operation, indent: str = "    ") -> str:
    """Render *operation* as ``// source`` followed by an indented tree.

    Example::

        // IsOSPlatform(OSPlatform.Windows)
        Invocation IsOSPlatform
            LocalReference IsOSPlatform
            MemberReference Windows
                LocalReference OSPlatform
    """
    lines = ["// " + operation.syntax.text.strip()]

    def emit(op: Operation, depth: int) -> None:
        name = type(op).__name__
        detail = _operation_detail(op)
        lines.append(indent * depth + (f"{name} {detail}" if detail else name))
        for child in op.children:
            emit(child, depth + 1)

    emit(operation, 0)
    return "\n".join(lines)
