"""Lox emitter: converts the AST back into canonical Lox source.

Total over the node types in `treelox/ast.py`: a new node type needs a case
here too. Re-parsing the output and emitting again yields the same text.
"""

from __future__ import annotations

from decimal import Decimal

from .ast import (
    Assign,
    Binary,
    BlockStmt,
    Call,
    ClassStmt,
    Expr,
    ExprStmt,
    FunctionStmt,
    Get,
    Grouping,
    IfStmt,
    Lambda,
    Literal,
    Logical,
    Param,
    PrintStmt,
    ReturnStmt,
    Set,
    Stmt,
    Super,
    This,
    Unary,
    VarStmt,
    Variable,
    WhileStmt,
    nesting_depth,
)
from .errors import deep_recursion

# Python frames per level of tree nesting
_FRAMES_PER_LEVEL = 4


def to_source(stmts: list[Stmt]) -> str:
    """Render a parsed program back into Lox source text."""
    with deep_recursion(nesting_depth(stmts) * _FRAMES_PER_LEVEL):
        return _Emitter().emit_program(stmts)


def _number_literal(x: float) -> str:
    if x == int(x):
        return str(int(x))
    text = repr(x)
    if "e" in text:
        # Lox has no exponent syntax
        return format(Decimal(text), "f")
    return text


def _open_if(stmt: Stmt) -> bool:
    """True if an 'else' written after stmt would bind to an if inside it."""
    if isinstance(stmt, IfStmt):
        if stmt.else_branch is None:
            return True
        return _open_if(stmt.else_branch)
    if isinstance(stmt, WhileStmt):
        return _open_if(stmt.body)
    return False


class _Emitter:
    _INDENT: str = "    "

    # Expression precedence (higher binds tighter)
    _PREC_ASSIGN: int = 1
    _PREC_OR: int = 2
    _PREC_AND: int = 3
    _PREC_EQUALITY: int = 4
    _PREC_COMPARE: int = 5
    _PREC_TERM: int = 6
    _PREC_FACTOR: int = 7
    _PREC_UNARY: int = 8
    _PREC_CALL: int = 9
    _PREC_PRIMARY: int = 10

    _BIN_PREC: dict[str, int] = {
        "or": _PREC_OR,
        "and": _PREC_AND,
        "==": _PREC_EQUALITY,
        "!=": _PREC_EQUALITY,
        "<": _PREC_COMPARE,
        "<=": _PREC_COMPARE,
        ">": _PREC_COMPARE,
        ">=": _PREC_COMPARE,
        "+": _PREC_TERM,
        "-": _PREC_TERM,
        "*": _PREC_FACTOR,
        "/": _PREC_FACTOR,
    }

    def __init__(self, indent_level: int = 0) -> None:
        self._lines: list[str] = []
        self._indent_level: int = indent_level

    # ── Public ──────────────────────────────────────────────

    def emit_program(self, stmts: list[Stmt]) -> str:
        self._lines = []
        self._indent_level = 0
        prev: Stmt | None = None
        for stmt in stmts:
            if prev is not None and (_is_decl(prev) or _is_decl(stmt)):
                self._lines.append("")
            self._emit_stmt(stmt)
            prev = stmt
        text = "\n".join(self._lines)
        if text == "":
            return ""
        return text + "\n"

    # ── Lines / Blocks ──────────────────────────────────────

    def _emit_line(self, line: str) -> None:
        self._lines.append(self._INDENT * self._indent_level + line)

    def _emit_stmt_block(self, stmts: list[Stmt]) -> None:
        self._indent_level += 1
        for stmt in stmts:
            self._emit_stmt(stmt)
        self._indent_level -= 1

    def _emit_body(self, header: str, body: Stmt, force_braces: bool) -> bool:
        """Emit a header and its controlled statement. Returns True if the
        last emitted line is a closing brace."""
        if isinstance(body, BlockStmt):
            self._emit_line(header + " {")
            self._emit_stmt_block(body.body)
            self._emit_line("}")
            return True
        if force_braces:
            self._emit_line(header + " {")
            self._emit_stmt_block([body])
            self._emit_line("}")
            return True
        self._emit_line(header)
        self._emit_stmt_block([body])
        return False

    # ── Stmts ───────────────────────────────────────────────

    def _emit_stmt(self, stmt: Stmt) -> None:
        if isinstance(stmt, ExprStmt):
            self._emit_line(self._render_expr(stmt.expr, self._PREC_ASSIGN) + ";")
            return
        if isinstance(stmt, PrintStmt):
            self._emit_line(
                "print " + self._render_expr(stmt.expr, self._PREC_ASSIGN) + ";"
            )
            return
        if isinstance(stmt, VarStmt):
            if stmt.value is None:
                self._emit_line("var " + stmt.name + ";")
            else:
                value = self._render_expr(stmt.value, self._PREC_ASSIGN)
                self._emit_line("var " + stmt.name + " = " + value + ";")
            return
        if isinstance(stmt, ReturnStmt):
            if stmt.value is None:
                self._emit_line("return;")
            else:
                value = self._render_expr(stmt.value, self._PREC_ASSIGN)
                self._emit_line("return " + value + ";")
            return
        if isinstance(stmt, BlockStmt):
            self._emit_line("{")
            self._emit_stmt_block(stmt.body)
            self._emit_line("}")
            return
        if isinstance(stmt, IfStmt):
            self._emit_if(stmt, "")
            return
        if isinstance(stmt, WhileStmt):
            cond = self._render_expr(stmt.cond, self._PREC_ASSIGN)
            self._emit_body("while (" + cond + ")", stmt.body, False)
            return
        if isinstance(stmt, FunctionStmt):
            self._emit_function("fun " + stmt.name, stmt.params, stmt.body)
            return
        if isinstance(stmt, ClassStmt):
            self._emit_class(stmt)
            return
        raise TypeError("unhandled stmt type")

    def _emit_if(self, stmt: IfStmt, prefix: str) -> None:
        cond = self._render_expr(stmt.cond, self._PREC_ASSIGN)
        force = stmt.else_branch is not None and _open_if(stmt.then_branch)
        closed = self._emit_body(prefix + "if (" + cond + ")", stmt.then_branch, force)
        if stmt.else_branch is None:
            return

        else_prefix = "else "
        if closed:
            self._lines.pop()
            else_prefix = "} else "
        if isinstance(stmt.else_branch, IfStmt):
            self._emit_if(stmt.else_branch, else_prefix)
        else:
            self._emit_body(else_prefix.rstrip(), stmt.else_branch, False)

    def _emit_function(self, header: str, params: list[Param], body: list[Stmt]) -> None:
        self._emit_line(header + "(" + self._render_param_list(params) + ") {")
        self._emit_stmt_block(body)
        self._emit_line("}")

    def _emit_class(self, stmt: ClassStmt) -> None:
        if stmt.superclass is None:
            header = "class " + stmt.name + " {"
        else:
            header = "class " + stmt.name + " < " + stmt.superclass.name + " {"
        self._emit_line(header)
        self._indent_level += 1
        first = True
        for method in stmt.methods:
            if not first:
                self._lines.append("")
            first = False
            self._emit_function(method.name, method.params, method.body)
        self._indent_level -= 1
        self._emit_line("}")

    # ── Params ──────────────────────────────────────────────

    def _render_param_list(self, params: list[Param]) -> str:
        return ", ".join(p.name for p in params)

    # ── Exprs ───────────────────────────────────────────────

    def _expr_prec(self, expr: Expr) -> int:
        if isinstance(expr, (Assign, Set)):
            return self._PREC_ASSIGN
        if isinstance(expr, (Binary, Logical)):
            if expr.op not in self._BIN_PREC:
                raise ValueError(f"unknown binary operator: {expr.op}")
            return self._BIN_PREC[expr.op]
        if isinstance(expr, Unary):
            return self._PREC_UNARY
        if isinstance(expr, (Call, Get)):
            return self._PREC_CALL
        return self._PREC_PRIMARY

    def _render_expr(self, expr: Expr, parent_prec: int, side: str = "") -> str:
        prec = self._expr_prec(expr)
        text = self._render_expr_inner(expr)
        # Binary levels are all left-associative
        if prec < parent_prec or (prec == parent_prec and side == "right"):
            return f"({text})"
        return text

    def _render_expr_inner(self, expr: Expr) -> str:
        if isinstance(expr, Literal):
            v = expr.value
            if v is None:
                return "nil"
            if isinstance(v, bool):
                return "true" if v else "false"
            if isinstance(v, float):
                return _number_literal(v)
            return '"' + v + '"'
        if isinstance(expr, Variable):
            return expr.name
        if isinstance(expr, This):
            return "this"
        if isinstance(expr, Super):
            return "super." + expr.method
        if isinstance(expr, Grouping):
            return "(" + self._render_expr(expr.expr, self._PREC_ASSIGN) + ")"
        if isinstance(expr, Assign):
            value = self._render_expr(expr.value, self._PREC_ASSIGN)
            return f"{expr.name} = {value}"
        if isinstance(expr, Set):
            obj = self._render_expr(expr.obj, self._PREC_CALL, "left")
            value = self._render_expr(expr.value, self._PREC_ASSIGN)
            return f"{obj}.{expr.name} = {value}"
        if isinstance(expr, Unary):
            operand = self._render_expr(expr.operand, self._PREC_UNARY)
            return f"{expr.op}{operand}"
        if isinstance(expr, (Binary, Logical)):
            op_prec = self._BIN_PREC[expr.op]
            left = self._render_expr(expr.left, op_prec, "left")
            right = self._render_expr(expr.right, op_prec, "right")
            return f"{left} {expr.op} {right}"
        if isinstance(expr, Get):
            obj = self._render_expr(expr.obj, self._PREC_CALL, "left")
            return f"{obj}.{expr.name}"
        if isinstance(expr, Call):
            callee = self._render_expr(expr.callee, self._PREC_CALL, "left")
            args: list[str] = []
            for a in expr.args:
                args.append(self._render_expr(a, self._PREC_ASSIGN))
            return f"{callee}({', '.join(args)})"
        if isinstance(expr, Lambda):
            return self._render_lambda(expr)

        raise TypeError("unhandled expr type")

    def _render_lambda(self, expr: Lambda) -> str:
        header = "fun (" + self._render_param_list(expr.params) + ") {"
        if len(expr.body) == 0:
            return header + "}"
        # Body lines carry absolute indentation; the caller prefixes only
        # the first line of the returned text.
        sub = _Emitter(self._indent_level + 1)
        for stmt in expr.body:
            sub._emit_stmt(stmt)
        closing = self._INDENT * self._indent_level + "}"
        return header + "\n" + "\n".join(sub._lines) + "\n" + closing


def _is_decl(stmt: Stmt) -> bool:
    return isinstance(stmt, (FunctionStmt, ClassStmt))
