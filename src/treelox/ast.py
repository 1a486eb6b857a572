"""Lox AST: parse-time node definitions."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import itertools


_uids = itertools.count(1)


def _next_uid() -> int:
    return next(_uids)


# ============================================================
# POSITION
# ============================================================


@dataclass
class Pos:
    """Source position, 1-indexed."""

    line: int
    col: int


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass
class Expr:
    """Base for all expressions.

    uid identifies the node itself, not its shape: the resolver keys scope
    distances by it, so it is left out of equality and repr.
    """

    pos: Pos
    uid: int = field(
        default_factory=_next_uid, compare=False, repr=False, kw_only=True
    )


@dataclass
class Literal(Expr):
    """Number, string, true, false, or nil."""

    value: float | str | bool | None


@dataclass
class Variable(Expr):
    """Variable reference."""

    name: str


@dataclass
class Assign(Expr):
    """name = value."""

    name: str
    value: Expr


@dataclass
class Unary(Expr):
    """op operand."""

    op: str
    operand: Expr


@dataclass
class Binary(Expr):
    """left op right."""

    op: str
    left: Expr
    right: Expr


@dataclass
class Logical(Expr):
    """left and/or right: short-circuiting."""

    op: str
    left: Expr
    right: Expr


@dataclass
class Call(Expr):
    """callee(args). pos is the closing paren, where call errors are reported."""

    callee: Expr
    args: list[Expr]


@dataclass
class Get(Expr):
    """obj.name."""

    obj: Expr
    name: str


@dataclass
class Set(Expr):
    """obj.name = value."""

    obj: Expr
    name: str
    value: Expr


@dataclass
class This(Expr):
    """this."""


@dataclass
class Super(Expr):
    """super.method."""

    method: str


@dataclass
class Grouping(Expr):
    """( expr )."""

    expr: Expr


@dataclass
class Param:
    """Function parameter."""

    pos: Pos
    name: str


@dataclass
class Lambda(Expr):
    """fun (params) { body }: anonymous function."""

    params: list[Param]
    body: list[Stmt]


# ============================================================
# STATEMENTS
# ============================================================


@dataclass
class Stmt:
    """Base for all statements."""

    pos: Pos


@dataclass
class ExprStmt(Stmt):
    """Bare expression as statement."""

    expr: Expr


@dataclass
class PrintStmt(Stmt):
    """print expr;"""

    expr: Expr


@dataclass
class VarStmt(Stmt):
    """var name = value?;"""

    name: str
    value: Expr | None


@dataclass
class BlockStmt(Stmt):
    """{ ... }: introduces a scope."""

    body: list[Stmt]


@dataclass
class IfStmt(Stmt):
    """if (cond) then_branch else else_branch."""

    cond: Expr
    then_branch: Stmt
    else_branch: Stmt | None


@dataclass
class WhileStmt(Stmt):
    """while (cond) body. for loops desugar into this."""

    cond: Expr
    body: Stmt


@dataclass
class FunctionStmt(Stmt):
    """fun name(params) { body }, or a method inside a class."""

    name: str
    params: list[Param]
    body: list[Stmt]


@dataclass
class ReturnStmt(Stmt):
    """return value?;"""

    value: Expr | None


@dataclass
class ClassStmt(Stmt):
    """class Name < Super { methods }."""

    name: str
    superclass: Variable | None
    methods: list[FunctionStmt]


# ============================================================
# TREE SHAPE
# ============================================================


def nesting_depth(stmts: list[Stmt]) -> int:
    """Length of the longest chain of nested nodes under stmts.

    Walks with an explicit stack, so it is safe on trees too deep for the
    recursive stages.
    """
    deepest = 0
    stack: list[tuple[Expr | Stmt, int]] = [(s, 1) for s in stmts]
    while len(stack) > 0:
        node, depth = stack.pop()
        if depth > deepest:
            deepest = depth
        for f in fields(node):
            child = getattr(node, f.name)
            if isinstance(child, (Expr, Stmt)):
                stack.append((child, depth + 1))
            elif isinstance(child, list):
                for item in child:
                    if isinstance(item, (Expr, Stmt)):
                        stack.append((item, depth + 1))
    return deepest
