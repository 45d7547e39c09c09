"""
Tests for the Lua-dialect and native parsers.
"""

import textwrap

import pytest

from zonescript.dsl import parse_source
from zonescript.dsl.tokens import TokenType
from zonescript.dsl.errors import ParserError
from zonescript.dsl.ast import (
    Literal, Identifier, BinaryOp, UnaryOp, FunctionCall, MethodCall,
    MemberAccess, IndexAccess, TableConstructor, FunctionExpr, Paren, Vararg,
    LocalStatement, LocalFunction, FunctionDeclaration, AssignmentStatement,
    ExpressionStatement, IfStatement, WhileStatement, RepeatStatement,
    NumericFor, GenericFor, DoStatement, BreakStatement, ReturnStatement,
)


def statements(source, syntax="lua"):
    return parse_source(textwrap.dedent(source), "test.lua", syntax).body.statements


def expression(source):
    """Parse 'x = <source>' and return the right-hand side."""
    stmt = statements(f"x = {source}")[0]
    return stmt.values[0]


class TestExpressions:
    """Operator precedence and primary expressions."""

    def test_literal(self):
        """Numbers parse to literals."""
        expr = expression("42")
        assert isinstance(expr, Literal)
        assert expr.value == 42

    def test_multiplication_binds_tighter(self):
        """1 + 2 * 3 groups the product."""
        expr = expression("1 + 2 * 3")
        assert expr.operator == TokenType.PLUS
        assert isinstance(expr.right, BinaryOp)
        assert expr.right.operator == TokenType.STAR

    def test_left_associative_subtraction(self):
        """1 - 2 - 3 is (1 - 2) - 3."""
        expr = expression("1 - 2 - 3")
        assert isinstance(expr.left, BinaryOp)
        assert expr.right.value == 3

    def test_concat_is_right_associative(self):
        """a .. b .. c is a .. (b .. c)."""
        expr = expression("a .. b .. c")
        assert expr.operator == TokenType.CONCAT
        assert isinstance(expr.left, Identifier)
        assert isinstance(expr.right, BinaryOp)

    def test_power_binds_tighter_than_unary(self):
        """-2 ^ 2 is -(2 ^ 2)."""
        expr = expression("-2 ^ 2")
        assert isinstance(expr, UnaryOp)
        assert isinstance(expr.operand, BinaryOp)
        assert expr.operand.operator == TokenType.CARET

    def test_comparison_below_concat(self):
        """a .. b == c compares the concatenation."""
        expr = expression("a .. b == c")
        assert expr.operator == TokenType.EQ
        assert expr.left.operator == TokenType.CONCAT

    def test_or_below_and(self):
        """a or b and c is a or (b and c)."""
        expr = expression("a or b and c")
        assert expr.operator == TokenType.OR
        assert expr.right.operator == TokenType.AND

    def test_suffix_chain(self):
        """Member, index and call suffixes chain left to right."""
        expr = expression("t.a[1](2)")
        assert isinstance(expr, FunctionCall)
        assert isinstance(expr.callee, IndexAccess)
        assert isinstance(expr.callee.object, MemberAccess)

    def test_string_and_table_call_sugar(self):
        """f"s" and f{...} are calls with a single argument."""
        call = expression('f"s"')
        assert isinstance(call, FunctionCall)
        assert call.arguments[0].value == "s"
        call = expression("f{1}")
        assert isinstance(call.arguments[0], TableConstructor)

    def test_method_call(self):
        """obj:m(x) parses as a method call."""
        expr = expression("r:TTL(60)")
        assert isinstance(expr, MethodCall)
        assert expr.method == "TTL"

    def test_paren(self):
        """Parentheses are kept to truncate multiple results."""
        assert isinstance(expression("(f())"), Paren)

    def test_function_expression(self):
        """Anonymous functions record parameters and varargs."""
        expr = expression("function(a, ...) return ... end")
        assert isinstance(expr, FunctionExpr)
        assert expr.function.params == ["a"]
        assert expr.function.is_variadic
        ret = expr.function.body.statements[0]
        assert isinstance(ret.values[0], Vararg)


class TestTables:
    """Table constructors."""

    def test_field_kinds(self):
        """Positional, named and bracketed keys."""
        table = expression('{1, name = "x", ["k"] = 2; 3}')
        keys = [f.key for f in table.fields]
        assert keys[0] is None
        assert keys[1].value == "name"
        assert keys[2].value == "k"
        assert keys[3] is None

    def test_trailing_separator(self):
        """A trailing comma is allowed."""
        table = expression("{1, 2,}")
        assert len(table.fields) == 2


class TestStatements:
    """Statement forms."""

    def test_local(self):
        """local with several names and values."""
        stmt = statements("local a, b = 1, 2")[0]
        assert isinstance(stmt, LocalStatement)
        assert stmt.names == ["a", "b"]
        assert len(stmt.values) == 2

    def test_local_function(self):
        """local function binds a name."""
        stmt = statements("local function f() end")[0]
        assert isinstance(stmt, LocalFunction)
        assert stmt.name == "f"

    def test_method_declaration_adds_self(self):
        """function t:m() gets an implicit self parameter."""
        stmt = statements("function t.inner:m(x) end")[0]
        assert isinstance(stmt, FunctionDeclaration)
        assert stmt.path == ["t", "inner"]
        assert stmt.method == "m"
        assert stmt.function.params == ["self", "x"]

    def test_multiple_assignment(self):
        """a, t.x, t[1] = ... assigns to each target."""
        stmt = statements("a, t.x, t[1] = 1, 2, 3")[0]
        assert isinstance(stmt, AssignmentStatement)
        assert len(stmt.targets) == 3

    def test_if_chain(self):
        """if / elseif / else."""
        stmt = statements("""
            if a then f() elseif b then g() else h() end
        """)[0]
        assert isinstance(stmt, IfStatement)
        assert len(stmt.elif_branches) == 1
        assert stmt.else_branch is not None

    def test_loops(self):
        """while, repeat, numeric for and generic for."""
        stmts = statements("""
            while a do break end
            repeat f() until b
            for i = 1, 10, 2 do end
            for k, v in pairs(t) do end
            do end
        """)
        assert [type(s) for s in stmts] == [
            WhileStatement, RepeatStatement, NumericFor, GenericFor, DoStatement,
        ]
        assert isinstance(stmts[0].body.statements[0], BreakStatement)
        assert stmts[2].step.value == 2
        assert stmts[3].names == ["k", "v"]

    def test_return_must_be_last(self):
        """Statements after return are rejected."""
        with pytest.raises(ParserError) as exc:
            statements("return 1\nx = 2")
        assert exc.value.diagnostic.code == "E101"

    def test_top_level_return(self):
        """A chunk may end with return."""
        stmt = statements("return 1, 2")[-1]
        assert isinstance(stmt, ReturnStatement)
        assert len(stmt.values) == 2

    def test_call_statement(self):
        """Calls stand alone as statements."""
        stmt = statements('A("www", "1.2.3.4")')[0]
        assert isinstance(stmt, ExpressionStatement)


class TestParserErrors:
    """Syntax errors and unsupported constructs."""

    def test_expression_is_not_a_statement(self):
        """A bare name raises E103."""
        with pytest.raises(ParserError) as exc:
            statements("x")
        assert exc.value.diagnostic.code == "E103"

    def test_missing_end(self):
        """A missing end reports end of file."""
        with pytest.raises(ParserError) as exc:
            statements("if a then f()")
        assert exc.value.diagnostic.code == "E102"
        assert "'end'" in exc.value.diagnostic.message

    def test_unexpected_token_location(self):
        """The error span points at the offending token."""
        with pytest.raises(ParserError) as exc:
            statements("x = 1\ny = )")
        diag = exc.value.diagnostic
        assert diag.code == "E101"
        assert diag.span.start.line == 2
        assert diag.source_line == "y = )"

    def test_goto_is_unsupported(self):
        """goto raises E104."""
        with pytest.raises(ParserError) as exc:
            statements("goto done")
        assert exc.value.diagnostic.code == "E104"

    def test_break_outside_loop(self):
        """break needs an enclosing loop in the same function."""
        with pytest.raises(ParserError):
            statements("break")
        with pytest.raises(ParserError):
            statements("while true do local f = function() break end end")

    def test_vararg_outside_variadic_function(self):
        """... is only legal in variadic functions."""
        with pytest.raises(ParserError):
            statements("local function f() return ... end")

    def test_assign_to_call(self):
        """A call is not an assignment target."""
        with pytest.raises(ParserError):
            statements("f() = 1")

    def test_unknown_syntax(self):
        """parse_source rejects unknown syntax names."""
        with pytest.raises(ValueError):
            parse_source("", syntax="python")


class TestNativeParser:
    """The dnscontrol JavaScript subset."""

    def test_declarations(self):
        """var a = 1, b; yields one local per declarator."""
        stmts = statements("var a = 1, b;", "native")
        assert [s.names for s in stmts] == [["a"], ["b"]]
        assert stmts[1].values == []

    def test_object_and_array_literals(self):
        """Objects become keyed tables, arrays sequence tables."""
        stmt = statements('var x = {ttl: 60, "k-2": [1, 2]};', "native")[0]
        table = stmt.values[0]
        assert [f.key.value for f in table.fields] == ["ttl", "k-2"]
        inner = table.fields[1].value
        assert all(f.key is None for f in inner.fields)

    def test_keyword_keys(self):
        """Keywords may be used as object keys."""
        stmt = statements("var x = {true: 1, null: 2};", "native")[0]
        assert [f.key.value for f in stmt.values[0].fields] == ["true", "null"]

    def test_negative_number(self):
        """Unary minus is supported."""
        stmt = statements("var x = -5;", "native")[0]
        assert isinstance(stmt.values[0], UnaryOp)

    def test_line_break_ends_statement(self):
        """A newline stands in for a missing semicolon."""
        stmts = statements('A("a", "1.1.1.1")\nA("b", "2.2.2.2")', "native")
        assert len(stmts) == 2

    def test_same_line_needs_semicolon(self):
        """Two statements on one line need a separator."""
        with pytest.raises(ParserError):
            statements('A("a", "1.1.1.1") A("b", "2.2.2.2")', "native")

    def test_trailing_commas(self):
        """Trailing commas in calls, objects and arrays."""
        stmt = statements('D("x", REG, {a: 1,}, [1,],);', "native")[0]
        assert len(stmt.expression.arguments) == 4

    def test_bare_expression_rejected(self):
        """A value alone is not a statement."""
        with pytest.raises(ParserError) as exc:
            statements("a.b;", "native")
        assert exc.value.diagnostic.code == "E103"

    def test_chunk_records_syntax(self):
        """The chunk remembers which front end produced it."""
        chunk = parse_source("var a = 1;", syntax="native")
        assert chunk.syntax == "native"
