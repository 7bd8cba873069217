# tests/test_frontend.py
"""
Tests for the source front-end: grammar acceptance, the operation tree it
produces, syntax spans and error reporting.
"""

import pytest

from guardflow.errors import FrontendError
from guardflow.frontend import (
    GUARD_GRAMMAR,
    BlockStatement,
    BreakStatement,
    DoWhileStatement,
    ForStatement,
    IfStatement,
    WhileStatement,
    parse_file,
    parse_source,
)
from guardflow.operations import (
    Assignment,
    BinaryOperation,
    BinaryOperatorKind,
    ExpressionStatement,
    Invocation,
    Literal,
    LocalReference,
    MemberReference,
    OperationKind,
    OperationVisitor,
    Return,
    UnaryOperation,
    UnaryOperatorKind,
    VariableDeclaration,
    format_operation,
)
from tests.conftest import SCENARIO_A, in_main


def body_of(statements: str):
    unit = parse_source(in_main(statements))
    return unit.functions[0].body.statements


def expr(text: str):
    (statement,) = body_of(text + ";")
    assert isinstance(statement, ExpressionStatement)
    return statement.expression


class TestGrammarWellFormed:

    def test_key_rules_exist(self):
        for rule in ("compilation_unit", "function_def", "class_def",
                     "statement", "expression", "identifier"):
            assert rule in GUARD_GRAMMAR, f"Rule {rule!r} missing"

    def test_empty_input(self):
        assert parse_source("").functions == []

    def test_comments_only(self):
        assert parse_source("// nothing\n/* at\n all */").functions == []


class TestParseDeclarations:

    def test_class_members_are_qualified(self):
        unit = parse_source(SCENARIO_A)
        (main,) = unit.functions
        assert main.name == "Main"
        assert main.qualified_name == "Program.Main"
        assert main.return_type == "void"

    def test_nested_classes(self):
        unit = parse_source(
            "class Outer { class Inner { void Run() { } } int Size() { return 1; } }"
        )
        names = [f.qualified_name for f in unit.functions]
        assert names == ["Outer.Inner.Run", "Outer.Size"]

    def test_modifiers_and_parameters(self):
        unit = parse_source(
            "public static async Task Main(string[] args, int count) { }"
        )
        (main,) = unit.functions
        assert main.return_type == "Task"
        assert [(p.type_name, p.name) for p in main.parameters] == [
            ("string[]", "args"), ("int", "count"),
        ]

    def test_qualified_type_names(self):
        (fn,) = parse_source("System.String Name() { return null; }").functions
        assert fn.return_type == "System.String"

    def test_source_name_recorded(self):
        unit = parse_source("void F() { }", "Program.cs")
        assert unit.source_name == "Program.cs"

    def test_parse_file(self, write_source):
        path = write_source(SCENARIO_A)
        unit = parse_file(path)
        assert unit.source_name == str(path)
        assert unit.functions[0].qualified_name == "Program.Main"


class TestParseStatements:

    def test_if_else(self):
        (stmt,) = body_of("if (a) { A(); } else B();")
        assert isinstance(stmt, IfStatement)
        assert isinstance(stmt.condition, LocalReference)
        assert isinstance(stmt.then_branch, BlockStatement)
        assert isinstance(stmt.else_branch, ExpressionStatement)

    def test_if_without_else(self):
        (stmt,) = body_of("if (a) A();")
        assert stmt.else_branch is None

    def test_loops(self):
        stmts = body_of(
            "while (a) { } do { x = x + 1; } while (x < 3); "
            "for (int i = 0; i < n; i = i + 1) { break; }"
        )
        assert [type(s) for s in stmts] == [
            WhileStatement, DoWhileStatement, ForStatement,
        ]
        loop = stmts[2]
        assert isinstance(loop.initializer, VariableDeclaration)
        assert isinstance(loop.condition, BinaryOperation)
        assert isinstance(loop.step, ExpressionStatement)
        assert isinstance(loop.body.statements[0], BreakStatement)

    def test_for_with_empty_header(self):
        (loop,) = body_of("for (;;) { }")
        assert loop.initializer is None
        assert loop.condition is None
        assert loop.step is None

    def test_declarations_and_returns(self):
        decl, bare, ret, empty_ret = body_of(
            "int x = 1; bool ready; return x; return;"
        )
        assert isinstance(decl, VariableDeclaration)
        assert (decl.type_name, decl.name) == ("int", "x")
        assert isinstance(decl.initializer, Literal)
        assert bare.initializer is None
        assert isinstance(ret, Return) and isinstance(ret.value, LocalReference)
        assert empty_ret.value is None

    def test_empty_statements_are_dropped(self):
        assert len(body_of(";;A();;")) == 1

    def test_keyword_prefixed_identifiers(self):
        stmts = body_of("iffy(); returned = 1; doIt();")
        assert all(isinstance(s, ExpressionStatement) for s in stmts)


class TestParseExpressions:

    def test_member_invocation(self):
        call = expr("RuntimeInformation.IsOSPlatform(OSPlatform.Windows)")
        assert isinstance(call, Invocation)
        assert call.method_name == "IsOSPlatform"
        (arg,) = call.arguments
        assert isinstance(arg, MemberReference)
        assert arg.member == "Windows"
        assert isinstance(arg.instance, LocalReference)
        assert arg.instance.name == "OSPlatform"

    def test_unary_operators(self):
        for text, kind in (("!a", UnaryOperatorKind.NOT),
                           ("~a", UnaryOperatorKind.BITWISE_NEGATION),
                           ("-a", UnaryOperatorKind.MINUS)):
            op = expr(text)
            assert isinstance(op, UnaryOperation)
            assert op.operator is kind

    def test_precedence(self):
        op = expr("a || b && c")
        assert op.operator is BinaryOperatorKind.CONDITIONAL_OR
        assert op.right.operator is BinaryOperatorKind.CONDITIONAL_AND

        op = expr("a & b == c")
        assert op.operator is BinaryOperatorKind.AND
        assert op.right.operator is BinaryOperatorKind.EQUALS

        op = expr("a + b * c < d")
        assert op.operator is BinaryOperatorKind.LESS_THAN
        assert op.left.right.operator is BinaryOperatorKind.MULTIPLY

    def test_left_associative(self):
        op = expr("a && b && c")
        assert isinstance(op.left, BinaryOperation)
        assert op.left.syntax.text == "a && b"

    def test_bitwise_vs_logical(self):
        assert expr("a & b").operator is BinaryOperatorKind.AND
        assert expr("a && b").operator is BinaryOperatorKind.CONDITIONAL_AND
        assert expr("a | b").operator is BinaryOperatorKind.OR

    def test_parentheses(self):
        op = expr("!(a && b)")
        assert isinstance(op.operand, BinaryOperation)

    def test_assignment(self):
        op = expr("x = y == z")
        assert isinstance(op, Assignment)
        assert op.value.operator is BinaryOperatorKind.EQUALS

    def test_literals(self):
        assert expr("true").value is True
        assert expr("false").value is False
        assert expr("null").value is None
        assert expr("42").value == 42
        assert expr("1.5").value == 1.5
        assert expr(r'"a\"b"').value == 'a"b'


class TestSyntaxSpans:

    def test_spans_cover_exact_text(self):
        (stmt,) = body_of("  Target( 1 ) ;  ")
        assert stmt.syntax.text == "Target( 1 ) ;"
        assert stmt.expression.syntax.text == "Target( 1 )"
        assert stmt.expression.syntax.kind == "invocation"

    def test_line_and_column(self):
        unit = parse_source("void Main()\n{\n    Target();\n}\n")
        (stmt,) = unit.functions[0].body.statements
        assert (stmt.syntax.line, stmt.syntax.column) == (3, 5)

    def test_parent_links(self):
        call = expr("Outer(Inner(x))")
        inner = call.arguments[0]
        assert inner.parent is call
        assert call.parent.kind is OperationKind.EXPRESSION_STATEMENT
        assert list(inner.ancestors_and_self())[-1] is call.parent

    def test_descendants(self):
        call = expr("F(a.b, c)")
        names = [type(op).__name__ for op in call.descendants()]
        assert names == [
            "LocalReference", "MemberReference", "LocalReference", "LocalReference",
        ]


class TestFormatOperation:

    def test_tree_dump(self):
        (stmt,) = body_of("IsOSPlatform(OSPlatform.Windows);")
        text = format_operation(stmt.expression)
        assert text.splitlines() == [
            "// IsOSPlatform(OSPlatform.Windows)",
            "Invocation IsOSPlatform",
            "    LocalReference IsOSPlatform",
            "    MemberReference Windows",
            "        LocalReference OSPlatform",
        ]


class _InvocationNames(OperationVisitor[list]):
    """Collects invoked method names; every other kind is unhandled."""

    def visit_invocation(self, operation, argument):
        names = [operation.method_name]
        for arg in operation.arguments:
            names.extend(self.visit(arg) or [])
        return names


class TestOperationVisitor:

    def test_dispatch_by_kind(self):
        call = expr("Outer(Inner(x), y)")
        assert _InvocationNames().visit(call) == ["Outer", "Inner"]
        assert call.accept(_InvocationNames()) == ["Outer", "Inner"]

    def test_unhandled_kinds_default_to_none(self):
        visitor = _InvocationNames()
        assert visitor.visit(expr("x + 1")) is None
        assert visitor.visit(None) is None


class TestResolveLocals:

    def test_parameters_and_locals_are_declared(self):
        unit = parse_source(
            "void Run(int n) { int i = n; Use(i, n, Windows); }"
        )
        call = unit.functions[0].body.statements[1].expression
        declared = {arg.name: arg.is_declared for arg in call.arguments}
        assert declared == {"i": True, "n": True, "Windows": False}

    def test_scope_is_per_function(self):
        unit = parse_source(
            "void A() { int Linux = 0; } void B() { Use(Linux); }"
        )
        (arg,) = unit.functions[1].body.statements[0].expression.arguments
        assert not arg.is_declared

    def test_for_initializer_declares(self):
        (loop,) = body_of("for (int i = 0; i < n; i = i + 1) { }")
        assert loop.condition.left.is_declared
        assert not loop.condition.right.is_declared


class TestParseErrors:

    def test_missing_semicolon(self):
        with pytest.raises(FrontendError):
            parse_source(in_main("A()"))

    def test_unbalanced_braces(self):
        with pytest.raises(FrontendError):
            parse_source("void Main() {")

    def test_error_has_location(self):
        with pytest.raises(FrontendError) as info:
            parse_source("void Main()\n{\n    if (;\n}\n", "bad.cs")
        err = info.value
        assert err.source_name == "bad.cs"
        assert err.line >= 1
        assert str(err).startswith("bad.cs:")

    @pytest.mark.parametrize("keyword", ["break", "continue"])
    def test_jump_outside_loop(self, keyword):
        with pytest.raises(FrontendError, match=keyword):
            parse_source(in_main(f"if (a) {{ {keyword}; }}"))

    def test_jump_inside_loop_is_fine(self):
        parse_source(in_main("while (a) { if (b) { break; } continue; }"))
