"""Tests for the Lox parser."""

import importlib

import pytest

from treelox import parse
from treelox.ast import (
    Assign,
    Binary,
    BlockStmt,
    Call,
    ClassStmt,
    ExprStmt,
    FunctionStmt,
    Get,
    Grouping,
    IfStmt,
    Lambda,
    Literal,
    Logical,
    PrintStmt,
    Set,
    Super,
    This,
    Unary,
    VarStmt,
    Variable,
    WhileStmt,
    nesting_depth,
)
from treelox.parse import ParseError, parse_tokens
from treelox.tokens import tokenize

parse_module = importlib.import_module("treelox.parse")


def _expr(source: str):
    stmts = parse(source + ";")
    assert len(stmts) == 1
    stmt = stmts[0]
    assert isinstance(stmt, ExprStmt)
    return stmt.expr


def _errors(source: str) -> list[ParseError]:
    _, errors = parse_tokens(tokenize(source))
    return errors


# ── Determinism ──


def test_parse_is_deterministic():
    source = """
class A < B {
  init(x) { this.x = x; }
  get() { return super.get() + this.x; }
}
for (var i = 0; i < 3; i = i + 1) print fun (n) { return n * 2; }(i);
"""
    assert parse(source) == parse(source)


def test_node_uids_are_unique():
    first = _expr("a")
    second = _expr("a")
    assert first == second
    assert first.uid != second.uid


# ── Expressions ──


def test_precedence_factor_over_term():
    e = _expr("1 + 2 * 3")
    assert isinstance(e, Binary)
    assert e.op == "+"
    assert isinstance(e.left, Literal)
    assert e.left.value == 1.0
    assert isinstance(e.right, Binary)
    assert e.right.op == "*"


def test_binary_is_left_associative():
    e = _expr("1 - 2 - 3")
    assert isinstance(e, Binary)
    assert isinstance(e.left, Binary)
    assert isinstance(e.right, Literal)
    assert e.right.value == 3.0


def test_assignment_is_right_associative():
    e = _expr("a = b = 1")
    assert isinstance(e, Assign)
    assert e.name == "a"
    assert isinstance(e.value, Assign)
    assert e.value.name == "b"


def test_logical_operators():
    e = _expr("a or b and c")
    assert isinstance(e, Logical)
    assert e.op == "or"
    assert isinstance(e.right, Logical)
    assert e.right.op == "and"


def test_unary_nests():
    e = _expr("!-x")
    assert isinstance(e, Unary)
    assert e.op == "!"
    assert isinstance(e.operand, Unary)
    assert e.operand.op == "-"


def test_grouping_kept():
    e = _expr("(1 + 2) * 3")
    assert isinstance(e, Binary)
    assert isinstance(e.left, Grouping)


def test_literals():
    assert _expr("true").value is True
    assert _expr("false").value is False
    assert _expr("nil").value is None
    assert _expr('"s"').value == "s"


def test_property_set():
    e = _expr("a.b.c = 1")
    assert isinstance(e, Set)
    assert e.name == "c"
    assert isinstance(e.obj, Get)
    assert e.obj.name == "b"


def test_call_chain():
    e = _expr("f(1)(2, 3).g")
    assert isinstance(e, Get)
    assert isinstance(e.obj, Call)
    assert len(e.obj.args) == 2
    assert isinstance(e.obj.callee, Call)


def test_call_position_is_closing_paren():
    e = _expr("f(1,\n  2)")
    assert isinstance(e, Call)
    assert e.pos.line == 2
    assert e.pos.col == 4


def test_this_and_super():
    e = _expr("super.m")
    assert isinstance(e, Super)
    assert e.method == "m"
    assert isinstance(_expr("this"), This)


def test_lambda_expression():
    e = _expr("fun (a, b) { return a; }")
    assert isinstance(e, Lambda)
    assert [p.name for p in e.params] == ["a", "b"]
    assert len(e.body) == 1


def test_invalid_assignment_target_does_not_unwind():
    stmts, errors = parse_tokens(tokenize("1 = 2; print 3;"))
    assert len(errors) == 1
    assert errors[0].msg == "invalid assignment target"
    assert errors[0].token.lexeme == "="
    assert isinstance(stmts[1], PrintStmt)


# ── Statements ──


def test_var_declaration():
    stmts = parse("var a; var b = 2;")
    assert isinstance(stmts[0], VarStmt)
    assert stmts[0].value is None
    assert isinstance(stmts[1].value, Literal)


def test_if_else_binds_to_nearest_if():
    stmt = parse("if (a) if (b) print 1; else print 2;")[0]
    assert isinstance(stmt, IfStmt)
    assert stmt.else_branch is None
    assert isinstance(stmt.then_branch, IfStmt)
    assert stmt.then_branch.else_branch is not None


def test_for_desugars_to_while():
    stmt = parse("for (var i = 0; i < 3; i = i + 1) print i;")[0]
    assert isinstance(stmt, BlockStmt)
    init, loop = stmt.body
    assert isinstance(init, VarStmt)
    assert isinstance(loop, WhileStmt)
    assert isinstance(loop.cond, Binary)
    assert isinstance(loop.body, BlockStmt)
    body, step = loop.body.body
    assert isinstance(body, PrintStmt)
    assert isinstance(step, ExprStmt)
    assert isinstance(step.expr, Assign)


def test_for_without_clauses():
    stmt = parse("for (;;) print 1;")[0]
    assert isinstance(stmt, WhileStmt)
    assert isinstance(stmt.cond, Literal)
    assert stmt.cond.value is True
    assert isinstance(stmt.body, PrintStmt)


def test_function_declaration():
    stmt = parse("fun add(a, b) { return a + b; }")[0]
    assert isinstance(stmt, FunctionStmt)
    assert stmt.name == "add"
    assert [p.name for p in stmt.params] == ["a", "b"]


def test_anonymous_function_statement():
    stmt = parse("fun () {};")[0]
    assert isinstance(stmt, ExprStmt)
    assert isinstance(stmt.expr, Lambda)


@pytest.mark.parametrize("sep", ["<", ":"])
def test_class_superclass_clause(sep):
    stmt = parse("class B " + sep + " A { m() {} init(x) {} }")[0]
    assert isinstance(stmt, ClassStmt)
    assert stmt.superclass is not None
    assert isinstance(stmt.superclass, Variable)
    assert stmt.superclass.name == "A"
    assert [m.name for m in stmt.methods] == ["m", "init"]


# ── Limits and recovery ──


def test_255_arguments_allowed():
    args = ", ".join(["1"] * 255)
    assert _errors("f(" + args + ");") == []


def test_too_many_arguments():
    args = ", ".join(["1"] * 256)
    errors = _errors("f(" + args + ");")
    assert len(errors) == 1
    assert errors[0].msg == "can't have more than 255 arguments"


def test_too_many_parameters():
    params = ", ".join("p" + str(i) for i in range(256))
    errors = _errors("fun f(" + params + ") {}")
    assert len(errors) == 1
    assert errors[0].msg == "can't have more than 255 parameters"


def test_recovery_collects_several_errors():
    stmts, errors = parse_tokens(tokenize("var = 1;\nvar = 2;\nprint 3;"))
    assert len(errors) == 2
    assert errors[0].line == 1
    assert errors[1].line == 2
    assert len(stmts) == 1
    assert isinstance(stmts[0], PrintStmt)


def test_recovery_inside_block():
    stmts, errors = parse_tokens(tokenize("{ print ; print 1; }"))
    assert len(errors) == 1
    assert isinstance(stmts[0], BlockStmt)
    assert len(stmts[0].body) == 1


def test_parse_error_carries_token():
    errors = _errors("print 1 2;")
    assert errors[0].token.lexeme == "2"
    assert errors[0].stage == "parse"
    assert errors[0].msg == "expected ';' after value, got '2'"


def test_parse_raises_first_error():
    with pytest.raises(ParseError) as exc:
        parse("print ;\nprint ;")
    assert exc.value.line == 1


def test_deep_grouping_parses():
    stmts = parse("print " + "(" * 300 + "1" + ")" * 300 + ";")
    assert isinstance(stmts[0], PrintStmt)
    assert nesting_depth(stmts) == 302


def test_nesting_past_recursion_limit_is_reported(monkeypatch):
    monkeypatch.setattr(parse_module, "_FRAMES_PER_TOKEN", 0)
    source = "print " + "(" * 600 + "1" + ")" * 600 + ";\nprint 2;"
    stmts, errors = parse_tokens(tokenize(source))
    assert len(errors) >= 1
    assert errors[0].msg == "expression nested too deeply"
    assert errors[0].stage == "parse"


def test_nesting_depth_counts_longest_chain():
    stmts = parse("print 1; { var a = -(1 + 2); }")
    # Block > VarStmt > Unary > Grouping > Binary > Literal
    assert nesting_depth(stmts) == 6
    assert nesting_depth([]) == 0
