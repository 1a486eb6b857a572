"""Lox resolver: static pass binding each local reference to a scope distance."""

from __future__ import annotations

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
    Pos,
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
from .errors import STAGE_RESOLVE, LoxError, deep_recursion


# Kind of the innermost enclosing function
FN_NONE = "none"
FN_FUNCTION = "function"
FN_METHOD = "method"
FN_INITIALIZER = "initializer"

# Kind of the innermost enclosing class
CLASS_NONE = "none"
CLASS_PLAIN = "class"
CLASS_SUBCLASS = "subclass"

# Python frames per level of tree nesting; a method body costs
# resolve_class, resolve_function and resolve_stmts on top of resolve_stmt
_FRAMES_PER_LEVEL = 4


class ResolveError(LoxError):
    """Static scoping violation."""

    stage = STAGE_RESOLVE

    def __init__(self, msg: str, pos: Pos):
        super().__init__(msg, pos.line, pos.col)


class Resolver:
    """Walks the AST once, recording hop counts for local variable references.

    Each scope maps a name to whether its initializer has finished. Globals
    are never pushed, so an unresolved reference is looked up by name at
    runtime.
    """

    def __init__(self) -> None:
        self.scopes: list[dict[str, bool]] = []
        self.locals: dict[int, int] = {}
        self.errors: list[ResolveError] = []
        self.current_fn: str = FN_NONE
        self.current_class: str = CLASS_NONE

    def error(self, msg: str, pos: Pos) -> None:
        self.errors.append(ResolveError(msg, pos))

    # ── Scope management ──────────────────────────────────────

    def enter_scope(self) -> None:
        self.scopes.append({})

    def exit_scope(self) -> None:
        self.scopes.pop()

    def declare(self, name: str, pos: Pos) -> None:
        if len(self.scopes) == 0:
            return
        scope = self.scopes[-1]
        if name in scope:
            self.error("already a variable with this name in this scope", pos)
        scope[name] = False

    def define(self, name: str) -> None:
        if len(self.scopes) == 0:
            return
        self.scopes[-1][name] = True

    def resolve_local(self, expr: Expr, name: str) -> None:
        # Search scopes innermost-out
        i = len(self.scopes) - 1
        while i >= 0:
            if name in self.scopes[i]:
                self.locals[expr.uid] = len(self.scopes) - 1 - i
                return
            i -= 1

    # ── Statements ───────────────────────────────────────────

    def resolve_stmts(self, stmts: list[Stmt]) -> None:
        for stmt in stmts:
            self.resolve_stmt(stmt)

    def resolve_stmt(self, stmt: Stmt) -> None:
        if isinstance(stmt, BlockStmt):
            self.enter_scope()
            self.resolve_stmts(stmt.body)
            self.exit_scope()
        elif isinstance(stmt, VarStmt):
            self.declare(stmt.name, stmt.pos)
            if stmt.value is not None:
                self.resolve_expr(stmt.value)
            self.define(stmt.name)
        elif isinstance(stmt, FunctionStmt):
            self.declare(stmt.name, stmt.pos)
            self.define(stmt.name)
            self.resolve_function(stmt.params, stmt.body, FN_FUNCTION)
        elif isinstance(stmt, ClassStmt):
            self.resolve_class(stmt)
        elif isinstance(stmt, ExprStmt):
            self.resolve_expr(stmt.expr)
        elif isinstance(stmt, PrintStmt):
            self.resolve_expr(stmt.expr)
        elif isinstance(stmt, IfStmt):
            self.resolve_expr(stmt.cond)
            self.resolve_stmt(stmt.then_branch)
            if stmt.else_branch is not None:
                self.resolve_stmt(stmt.else_branch)
        elif isinstance(stmt, WhileStmt):
            self.resolve_expr(stmt.cond)
            self.resolve_stmt(stmt.body)
        elif isinstance(stmt, ReturnStmt):
            if self.current_fn == FN_NONE:
                self.error("can't return from top-level code", stmt.pos)
            if stmt.value is not None:
                if self.current_fn == FN_INITIALIZER:
                    self.error("can't return a value from an initializer", stmt.pos)
                self.resolve_expr(stmt.value)
        else:
            raise NotImplementedError("unknown statement: " + type(stmt).__name__)

    def resolve_function(
        self, params: list[Param], body: list[Stmt], kind: str
    ) -> None:
        enclosing = self.current_fn
        self.current_fn = kind
        self.enter_scope()
        for p in params:
            self.declare(p.name, p.pos)
            self.define(p.name)
        self.resolve_stmts(body)
        self.exit_scope()
        self.current_fn = enclosing

    def resolve_class(self, stmt: ClassStmt) -> None:
        enclosing = self.current_class
        self.current_class = CLASS_PLAIN
        self.declare(stmt.name, stmt.pos)
        self.define(stmt.name)

        if stmt.superclass is not None:
            if stmt.superclass.name == stmt.name:
                self.error("a class can't inherit from itself", stmt.superclass.pos)
            self.current_class = CLASS_SUBCLASS
            self.resolve_expr(stmt.superclass)
            # Scope holding 'super', matching the runtime environment
            self.enter_scope()
            self.scopes[-1]["super"] = True

        self.enter_scope()
        self.scopes[-1]["this"] = True
        for method in stmt.methods:
            kind = FN_METHOD
            if method.name == "init":
                kind = FN_INITIALIZER
            self.resolve_function(method.params, method.body, kind)
        self.exit_scope()

        if stmt.superclass is not None:
            self.exit_scope()
        self.current_class = enclosing

    # ── Expressions ──────────────────────────────────────────

    def resolve_expr(self, expr: Expr) -> None:
        if isinstance(expr, Variable):
            if len(self.scopes) > 0 and self.scopes[-1].get(expr.name) is False:
                self.error(
                    "can't read local variable in its own initializer", expr.pos
                )
            self.resolve_local(expr, expr.name)
        elif isinstance(expr, Assign):
            self.resolve_expr(expr.value)
            self.resolve_local(expr, expr.name)
        elif isinstance(expr, Literal):
            pass
        elif isinstance(expr, (Binary, Logical)):
            self.resolve_expr(expr.left)
            self.resolve_expr(expr.right)
        elif isinstance(expr, Unary):
            self.resolve_expr(expr.operand)
        elif isinstance(expr, Grouping):
            self.resolve_expr(expr.expr)
        elif isinstance(expr, Call):
            self.resolve_expr(expr.callee)
            for arg in expr.args:
                self.resolve_expr(arg)
        elif isinstance(expr, Get):
            self.resolve_expr(expr.obj)
        elif isinstance(expr, Set):
            self.resolve_expr(expr.value)
            self.resolve_expr(expr.obj)
        elif isinstance(expr, This):
            if self.current_class == CLASS_NONE:
                self.error("can't use 'this' outside of a class", expr.pos)
                return
            self.resolve_local(expr, "this")
        elif isinstance(expr, Super):
            if self.current_class == CLASS_NONE:
                self.error("can't use 'super' outside of a class", expr.pos)
                return
            if self.current_class != CLASS_SUBCLASS:
                self.error(
                    "can't use 'super' in a class with no superclass", expr.pos
                )
                return
            self.resolve_local(expr, "super")
        elif isinstance(expr, Lambda):
            self.resolve_function(expr.params, expr.body, FN_FUNCTION)
        else:
            raise NotImplementedError("unknown expression: " + type(expr).__name__)


# ============================================================
# PUBLIC API
# ============================================================


def resolve(stmts: list[Stmt]) -> tuple[dict[int, int], list[ResolveError]]:
    """Resolve a parsed program. Returns the distance table and errors.

    The table maps node uid to the number of scopes between the reference
    and its binding. Discard it when errors are returned.
    """
    resolver = Resolver()
    with deep_recursion(nesting_depth(stmts) * _FRAMES_PER_LEVEL):
        for stmt in stmts:
            try:
                resolver.resolve_stmt(stmt)
            except RecursionError:
                resolver.error("expression nested too deeply", stmt.pos)
                resolver.scopes = []
                resolver.current_fn = FN_NONE
                resolver.current_class = CLASS_NONE
    return resolver.locals, resolver.errors
