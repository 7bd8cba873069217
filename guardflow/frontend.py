"""
guardflow.frontend
==================

Parses a small C#-like language into functions whose bodies are trees of
structured statements and :mod:`guardflow.operations` operations, ready to
be lowered into control flow graphs by :mod:`guardflow.ctrlflow_graph`.

The grammar is a Parsimonious PEG.  Whitespace and comments are consumed
*between* tokens, never at the end of a construct, so the span of every
statement and expression covers exactly its own text.

Example::

    class Program
    {
        static void Main()
        {
            if (RuntimeInformation.IsOSPlatform(OSPlatform.Windows))
            {
                WindowsApi();
            }
        }
    }

Public API
----------
    parse_source(text, source_name)  - text → CompilationUnit
    parse_file(path)                 - file → CompilationUnit
    CompilationUnit, FunctionDecl, Parameter,
    BlockStatement, IfStatement, WhileStatement, DoWhileStatement,
    ForStatement, BreakStatement, ContinueStatement
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from guardflow.errors import FrontendError
from guardflow.operations import (
    Assignment,
    BinaryOperation,
    BinaryOperatorKind,
    ExpressionStatement,
    Invocation,
    Literal,
    LocalReference,
    MemberReference,
    Operation,
    Return,
    SyntaxSpan,
    UnaryOperation,
    UnaryOperatorKind,
    VariableDeclaration,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

GUARD_GRAMMAR = Grammar(r'''
    compilation_unit    = _ member*
    member              = class_def / function_def

    class_def           = modifier* "class" !ident_char _ identifier _ "{" _ member* "}" _
    function_def        = modifier* type_name _ identifier _ "(" _ parameter_list? _ ")" _ block _
    modifier            = ("public" / "private" / "protected" / "internal" / "static" / "async") !ident_char _

    type_name           = identifier qualified_part* array_rank*
    qualified_part      = _ "." _ identifier
    array_rank          = _ "[" _ "]"

    parameter_list      = parameter more_parameter*
    more_parameter      = _ "," _ parameter
    parameter           = type_name _ identifier

    # ─────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────

    block               = "{" _ block_item* "}"
    block_item          = statement _

    statement           = block / if_stmt / while_stmt / do_stmt / for_stmt
                        / return_stmt / break_stmt / continue_stmt
                        / local_declaration_stmt / expression_stmt / empty_stmt

    if_stmt             = "if" _ "(" _ expression _ ")" _ statement else_clause?
    else_clause         = _ "else" !ident_char _ statement
    while_stmt          = "while" _ "(" _ expression _ ")" _ statement
    do_stmt             = "do" !ident_char _ statement _ "while" _ "(" _ expression _ ")" _ ";"
    for_stmt            = "for" _ "(" _ for_initializer? _ ";" _ expression? _ ";" _ expression? _ ")" _ statement
    for_initializer     = local_declaration / expression
    return_stmt         = "return" !ident_char return_value? _ ";"
    return_value        = _ expression
    break_stmt          = "break" !ident_char _ ";"
    continue_stmt       = "continue" !ident_char _ ";"

    local_declaration_stmt = local_declaration _ ";"
    local_declaration   = type_name _ identifier initializer?
    initializer         = _ "=" !"=" _ expression

    expression_stmt     = expression _ ";"
    empty_stmt          = ";"

    # ─────────────────────────────────────────────────────────────
    # Expressions (C precedence, lowest first)
    # ─────────────────────────────────────────────────────────────

    expression          = assignment / logical_or
    assignment          = postfix _ "=" !"=" _ expression

    logical_or          = logical_and logical_or_tail*
    logical_or_tail     = _ "||" _ logical_and
    logical_and         = bitwise_or logical_and_tail*
    logical_and_tail    = _ "&&" _ bitwise_or
    bitwise_or          = bitwise_and bitwise_or_tail*
    bitwise_or_tail     = _ "|" !"|" _ bitwise_and
    bitwise_and         = equality bitwise_and_tail*
    bitwise_and_tail    = _ "&" !"&" _ equality
    equality            = relational equality_tail*
    equality_tail       = _ equality_op _ relational
    equality_op         = "==" / "!="
    relational          = additive relational_tail*
    relational_tail     = _ relational_op _ additive
    relational_op       = "<=" / ">=" / "<" / ">"
    additive            = multiplicative additive_tail*
    additive_tail       = _ additive_op _ multiplicative
    additive_op         = "+" / "-"
    multiplicative      = unary multiplicative_tail*
    multiplicative_tail = _ multiplicative_op _ unary
    multiplicative_op   = "*" / "/" / "%"

    unary               = prefix_unary / postfix
    prefix_unary        = unary_op _ unary
    unary_op            = "!" / "~" / "-" / "+"

    postfix             = primary postfix_op*
    postfix_op          = call_suffix / member_suffix
    call_suffix         = _ "(" _ argument_list? _ ")"
    member_suffix       = _ "." _ identifier
    argument_list       = expression more_argument*
    more_argument       = _ "," _ expression

    primary             = parenthesized / literal / identifier
    parenthesized       = "(" _ expression _ ")"

    literal             = boolean_literal / null_literal / number_literal / string_literal
    boolean_literal     = ("true" / "false") !ident_char
    null_literal        = "null" !ident_char
    number_literal      = ~r"[0-9]+(\.[0-9]+)?"
    string_literal      = ~r'"(?:[^"\\\n]|\\.)*"'

    # ─────────────────────────────────────────────────────────────
    # Lexical
    # ─────────────────────────────────────────────────────────────

    identifier          = !keyword ~r"[A-Za-z_][A-Za-z0-9_]*"
    keyword             = ("if" / "else" / "while" / "do" / "for" / "return"
                          / "break" / "continue" / "class" / "true" / "false"
                          / "null") !ident_char
    ident_char          = ~r"[A-Za-z0-9_]"
    _                   = ~r"(?:\s+|//[^\n]*|/\*.*?\*/)*"s
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — STATEMENT / DECLARATION NODES
# ═══════════════════════════════════════════════════════════════════

@dataclass
class BlockStatement:
    syntax: SyntaxSpan
    statements: List["Statement"] = field(default_factory=list)


@dataclass
class IfStatement:
    syntax: SyntaxSpan
    condition: Operation
    then_branch: Optional["Statement"]
    else_branch: Optional["Statement"] = None


@dataclass
class WhileStatement:
    syntax: SyntaxSpan
    condition: Operation
    body: Optional["Statement"]


@dataclass
class DoWhileStatement:
    syntax: SyntaxSpan
    body: Optional["Statement"]
    condition: Operation


@dataclass
class ForStatement:
    syntax: SyntaxSpan
    initializer: Optional[Operation]
    condition: Optional[Operation]
    step: Optional[Operation]
    body: Optional["Statement"]


@dataclass
class BreakStatement:
    syntax: SyntaxSpan


@dataclass
class ContinueStatement:
    syntax: SyntaxSpan


Statement = Union[
    BlockStatement,
    IfStatement,
    WhileStatement,
    DoWhileStatement,
    ForStatement,
    BreakStatement,
    ContinueStatement,
    Operation,
]


@dataclass
class Parameter:
    type_name: str
    name: str


@dataclass
class FunctionDecl:
    """A function definition.

    ``qualified_name`` prefixes the enclosing class names, e.g.
    ``"Program.Main"``; ``name`` is the simple name ``"Main"``.
    """

    name: str
    return_type: str
    parameters: List[Parameter]
    body: BlockStatement
    syntax: SyntaxSpan
    qualified_name: str = ""

    def __post_init__(self) -> None:
        if not self.qualified_name:
            self.qualified_name = self.name


@dataclass
class CompilationUnit:
    source_name: str
    text: str
    functions: List[FunctionDecl] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — VISITOR (Parse Tree → Statements / Operations)
# ═══════════════════════════════════════════════════════════════════

_ESCAPE = re.compile(r"\\(.)")


def _node_text(value: Any) -> str:
    if isinstance(value, Node):
        return value.text
    return str(value)


class GuardASTBuilder(NodeVisitor):
    """Transforms a Parsimonious parse tree into a :class:`CompilationUnit`."""

    unwrapped_exceptions = (FrontendError,)

    def __init__(self, text: str, source_name: str = "<input>") -> None:
        self._text = text
        self._source_name = source_name

    def generic_visit(self, node, visited_children):
        """Default: the node itself for matched literals/regexes, else the
        list of visited children (empty for unmatched ``?``/``*``)."""
        if not node.children and node.text:
            return node
        return visited_children

    # ----- spans ------------------------------------------------------------

    def _span_range(self, kind: str, start: int, end: int) -> SyntaxSpan:
        line = self._text.count("\n", 0, start) + 1
        column = start - (self._text.rfind("\n", 0, start) + 1) + 1
        return SyntaxSpan(
            kind=kind,
            text=self._text[start:end],
            start=start,
            end=end,
            line=line,
            column=column,
        )

    def _span(self, kind: str, node: Node) -> SyntaxSpan:
        return self._span_range(kind, node.start, node.end)

    # ─────────────────────────────────────────────────────────────
    # Declarations
    # ─────────────────────────────────────────────────────────────

    def visit_compilation_unit(self, node, visited_children):
        _, members = visited_children
        unit = CompilationUnit(source_name=self._source_name, text=self._text)
        for member in members:
            unit.functions.extend(member)
        return unit

    def visit_member(self, node, visited_children):
        (member,) = visited_children
        return member if isinstance(member, list) else [member]

    def visit_class_def(self, node, visited_children):
        _, _, _, _, name, _, _, _, members, _, _ = visited_children
        functions: List[FunctionDecl] = []
        for member in members:
            for func in member:
                functions.append(
                    replace(func, qualified_name=f"{name}.{func.qualified_name}")
                )
        return functions

    def visit_function_def(self, node, visited_children):
        (_, return_type, _, name, _, _, _, params, _, _, _, body, _) = visited_children
        return FunctionDecl(
            name=name,
            return_type=return_type,
            parameters=params[0] if params else [],
            body=body,
            syntax=self._span("function", node),
        )

    def visit_type_name(self, node, visited_children):
        return "".join(node.text.split())

    def visit_parameter_list(self, node, visited_children):
        first, rest = visited_children
        return [first] + list(rest)

    def visit_more_parameter(self, node, visited_children):
        return visited_children[-1]

    def visit_parameter(self, node, visited_children):
        type_name, _, name = visited_children
        return Parameter(type_name=type_name, name=name)

    # ─────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────

    def visit_block(self, node, visited_children):
        _, _, items, _ = visited_children
        return BlockStatement(
            syntax=self._span("block", node),
            statements=[item for item in items if item is not None],
        )

    def visit_block_item(self, node, visited_children):
        return visited_children[0]

    def visit_statement(self, node, visited_children):
        return visited_children[0]

    def visit_if_stmt(self, node, visited_children):
        _, _, _, _, condition, _, _, _, then_branch, else_clause = visited_children
        return IfStatement(
            syntax=self._span("if-statement", node),
            condition=condition,
            then_branch=then_branch,
            else_branch=else_clause[0] if else_clause else None,
        )

    def visit_else_clause(self, node, visited_children):
        return visited_children[-1]

    def visit_while_stmt(self, node, visited_children):
        return WhileStatement(
            syntax=self._span("while-statement", node),
            condition=visited_children[4],
            body=visited_children[8],
        )

    def visit_do_stmt(self, node, visited_children):
        return DoWhileStatement(
            syntax=self._span("do-statement", node),
            body=visited_children[3],
            condition=visited_children[9],
        )

    def visit_for_stmt(self, node, visited_children):
        initializer = visited_children[4]
        condition = visited_children[8]
        step = visited_children[12]
        return ForStatement(
            syntax=self._span("for-statement", node),
            initializer=self._as_statement(initializer[0]) if initializer else None,
            condition=condition[0] if condition else None,
            step=self._as_statement(step[0]) if step else None,
            body=visited_children[16],
        )

    def visit_for_initializer(self, node, visited_children):
        return visited_children[0]

    def _as_statement(self, operation: Operation) -> Operation:
        if operation.is_statement:
            return operation
        return ExpressionStatement(
            syntax=replace(operation.syntax, kind="expression-statement"),
            expression=operation,
        )

    def visit_return_stmt(self, node, visited_children):
        _, _, value, _, _ = visited_children
        return Return(
            syntax=self._span("return-statement", node),
            value=value[0] if value else None,
        )

    def visit_return_value(self, node, visited_children):
        return visited_children[-1]

    def visit_break_stmt(self, node, visited_children):
        return BreakStatement(syntax=self._span("break-statement", node))

    def visit_continue_stmt(self, node, visited_children):
        return ContinueStatement(syntax=self._span("continue-statement", node))

    def visit_local_declaration_stmt(self, node, visited_children):
        declaration = visited_children[0]
        return VariableDeclaration(
            syntax=self._span("local-declaration", node),
            type_name=declaration.type_name,
            name=declaration.name,
            initializer=declaration.initializer,
        )

    def visit_local_declaration(self, node, visited_children):
        type_name, _, name, initializer = visited_children
        return VariableDeclaration(
            syntax=self._span("local-declaration", node),
            type_name=type_name,
            name=name,
            initializer=initializer[0] if initializer else None,
        )

    def visit_initializer(self, node, visited_children):
        return visited_children[-1]

    def visit_expression_stmt(self, node, visited_children):
        return ExpressionStatement(
            syntax=self._span("expression-statement", node),
            expression=visited_children[0],
        )

    def visit_empty_stmt(self, node, visited_children):
        return None

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    def visit_expression(self, node, visited_children):
        return visited_children[0]

    def visit_assignment(self, node, visited_children):
        return Assignment(
            syntax=self._span("assignment", node),
            target=visited_children[0],
            value=visited_children[-1],
        )

    def _fold_binary(self, node, visited_children):
        left, tails = visited_children
        for operator, right in tails:
            left = BinaryOperation(
                syntax=self._span_range(
                    "binary", left.syntax.start, right.syntax.end
                ),
                operator=BinaryOperatorKind(operator),
                left=left,
                right=right,
            )
        return left

    def _binary_tail(self, node, visited_children):
        # [_, operator, (lookahead,) _, operand]
        return _node_text(visited_children[1]), visited_children[-1]

    visit_logical_or = _fold_binary
    visit_logical_and = _fold_binary
    visit_bitwise_or = _fold_binary
    visit_bitwise_and = _fold_binary
    visit_equality = _fold_binary
    visit_relational = _fold_binary
    visit_additive = _fold_binary
    visit_multiplicative = _fold_binary

    visit_logical_or_tail = _binary_tail
    visit_logical_and_tail = _binary_tail
    visit_bitwise_or_tail = _binary_tail
    visit_bitwise_and_tail = _binary_tail
    visit_equality_tail = _binary_tail
    visit_relational_tail = _binary_tail
    visit_additive_tail = _binary_tail
    visit_multiplicative_tail = _binary_tail

    def visit_unary(self, node, visited_children):
        return visited_children[0]

    def visit_prefix_unary(self, node, visited_children):
        operator, _, operand = visited_children
        return UnaryOperation(
            syntax=self._span("unary", node),
            operator=UnaryOperatorKind(_node_text(operator)),
            operand=operand,
        )

    def visit_unary_op(self, node, visited_children):
        return node.text

    def visit_equality_op(self, node, visited_children):
        return node.text

    def visit_relational_op(self, node, visited_children):
        return node.text

    def visit_additive_op(self, node, visited_children):
        return node.text

    def visit_multiplicative_op(self, node, visited_children):
        return node.text

    def visit_postfix(self, node, visited_children):
        operation, suffixes = visited_children
        for suffix_kind, payload, end in suffixes:
            start = operation.syntax.start
            if suffix_kind == "call":
                operation = Invocation(
                    syntax=self._span_range("invocation", start, end),
                    target=operation,
                    arguments=payload,
                )
            else:
                operation = MemberReference(
                    syntax=self._span_range("member-reference", start, end),
                    instance=operation,
                    member=payload,
                )
        return operation

    def visit_postfix_op(self, node, visited_children):
        return visited_children[0]

    def visit_call_suffix(self, node, visited_children):
        arguments = visited_children[3]
        return ("call", arguments[0] if arguments else [], node.end)

    def visit_member_suffix(self, node, visited_children):
        return ("member", visited_children[-1], node.end)

    def visit_argument_list(self, node, visited_children):
        first, rest = visited_children
        return [first] + list(rest)

    def visit_more_argument(self, node, visited_children):
        return visited_children[-1]

    def visit_primary(self, node, visited_children):
        (child,) = visited_children
        if isinstance(child, str):
            return LocalReference(
                syntax=self._span("local-reference", node), name=child
            )
        return child

    def visit_parenthesized(self, node, visited_children):
        return visited_children[2]

    def visit_literal(self, node, visited_children):
        return visited_children[0]

    def visit_boolean_literal(self, node, visited_children):
        return Literal(syntax=self._span("literal", node), value=node.text == "true")

    def visit_null_literal(self, node, visited_children):
        return Literal(syntax=self._span("literal", node), value=None)

    def visit_number_literal(self, node, visited_children):
        text = node.text
        value = float(text) if "." in text else int(text)
        return Literal(syntax=self._span("literal", node), value=value)

    def visit_string_literal(self, node, visited_children):
        value = _ESCAPE.sub(r"\1", node.text[1:-1])
        return Literal(syntax=self._span("literal", node), value=value)

    def visit_identifier(self, node, visited_children):
        return node.text

    def visit__(self, node, visited_children):
        return None


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — STRUCTURAL CHECKS
# ═══════════════════════════════════════════════════════════════════

def _check_loop_jumps(
    statement: Optional[Statement],
    in_loop: bool,
    source_name: str,
) -> None:
    """Reject ``break``/``continue`` that have no enclosing loop."""
    if statement is None or isinstance(statement, Operation):
        return
    if isinstance(statement, (BreakStatement, ContinueStatement)):
        if not in_loop:
            keyword = "break" if isinstance(statement, BreakStatement) else "continue"
            raise FrontendError(
                f"'{keyword}' outside of a loop",
                source_name=source_name,
                line=statement.syntax.line,
                column=statement.syntax.column,
            )
        return
    if isinstance(statement, BlockStatement):
        for child in statement.statements:
            _check_loop_jumps(child, in_loop, source_name)
    elif isinstance(statement, IfStatement):
        _check_loop_jumps(statement.then_branch, in_loop, source_name)
        _check_loop_jumps(statement.else_branch, in_loop, source_name)
    elif isinstance(statement, (WhileStatement, DoWhileStatement, ForStatement)):
        _check_loop_jumps(statement.body, True, source_name)


def _statement_operations(statement: Optional[Statement]) -> Iterator[Operation]:
    """Yield the root operations held by *statement* and its sub-statements."""
    if statement is None:
        return
    if isinstance(statement, Operation):
        yield statement
    elif isinstance(statement, BlockStatement):
        for child in statement.statements:
            yield from _statement_operations(child)
    elif isinstance(statement, IfStatement):
        yield statement.condition
        yield from _statement_operations(statement.then_branch)
        yield from _statement_operations(statement.else_branch)
    elif isinstance(statement, (WhileStatement, DoWhileStatement)):
        yield statement.condition
        yield from _statement_operations(statement.body)
    elif isinstance(statement, ForStatement):
        for op in (statement.initializer, statement.condition, statement.step):
            if op is not None:
                yield op
        yield from _statement_operations(statement.body)


def _resolve_locals(function: FunctionDecl) -> None:
    """Mark every reference to a parameter or local of *function*.

    Scoping is function-wide: a local declared anywhere in the body shadows
    a named constant of the same name everywhere in that body.
    """
    roots = list(_statement_operations(function.body))
    declared = {param.name for param in function.parameters}
    for root in roots:
        for op in root.descendants_and_self():
            if isinstance(op, VariableDeclaration):
                declared.add(op.name)
    for root in roots:
        for op in root.descendants_and_self():
            if isinstance(op, LocalReference) and op.name in declared:
                op.is_declared = True


# ═══════════════════════════════════════════════════════════════════
#  PART 5 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse_source(text: str, source_name: str = "<input>") -> CompilationUnit:
    """Parse *text* into a :class:`CompilationUnit`.

    Raises
    ------
    FrontendError
        If the text does not match the grammar, or a ``break``/``continue``
        appears outside any loop.
    """
    try:
        tree = GUARD_GRAMMAR.parse(text)
    except IncompleteParseError as exc:
        raise FrontendError(
            f"unexpected input {text[exc.pos:exc.pos + 20]!r}",
            source_name=source_name,
            line=exc.line(),
            column=exc.column(),
        ) from exc
    except ParseError as exc:
        raise FrontendError(
            f"syntax error near {text[exc.pos:exc.pos + 20]!r}",
            source_name=source_name,
            line=exc.line(),
            column=exc.column(),
        ) from exc

    unit = GuardASTBuilder(text, source_name).visit(tree)
    for function in unit.functions:
        _check_loop_jumps(function.body, False, source_name)
        _resolve_locals(function)
    logger.info(
        "Parsed %s: %d function(s)", source_name, len(unit.functions)
    )
    return unit


def parse_file(path: Union[str, Path]) -> CompilationUnit:
    """Read and parse a source file."""
    p = Path(path)
    return parse_source(p.read_text(encoding="utf-8"), source_name=str(p))
