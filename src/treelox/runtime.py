"""Lox runtime: values, environments, and the tree-walking interpreter."""

from __future__ import annotations

from dataclasses import dataclass
import sys
import time
from typing import Callable, cast

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
from .errors import STAGE_RUNTIME, LoxError, deep_recursion


DEFAULT_MAX_CALL_DEPTH = 512

# Python frames for one Lox call: _eval_call, the callee, and its body block
_CALL_FRAMES = 8
# Python frames per level of nesting inside a body
_FRAMES_PER_LEVEL = 3


def _isnan(x: float) -> bool:
    return x != x


def _isinf(x: float) -> bool:
    return x == float("inf") or x == float("-inf")


def format_number(x: float) -> str:
    """Render a number the way print shows it: integral values drop '.0'."""
    if _isnan(x):
        return "NaN"
    if _isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    if x == int(x) and abs(x) < 1e16:
        if x == 0 and str(x).startswith("-"):
            return "-0"
        return str(int(x))
    return repr(x)


# ============================================================
# Diagnostics
# ============================================================


class LoxRuntimeError(LoxError):
    """Failure while evaluating a program. Stops the run."""

    stage = STAGE_RUNTIME

    def __init__(self, msg: str, pos: Pos | None = None):
        if pos is None:
            super().__init__(msg, 0)
        else:
            super().__init__(msg, pos.line, pos.col)
        self.pos = pos


# ============================================================
# Values
# ============================================================


class Value:
    """A runtime value."""

    def type_name(self) -> str:
        raise NotImplementedError

    def to_string(self) -> str:
        raise NotImplementedError


@dataclass
class VNil(Value):
    def type_name(self) -> str:
        return "nil"

    def to_string(self) -> str:
        return "nil"


@dataclass
class VBool(Value):
    value: bool

    def type_name(self) -> str:
        return "bool"

    def to_string(self) -> str:
        return "true" if self.value else "false"


@dataclass
class VNumber(Value):
    value: float

    def type_name(self) -> str:
        return "number"

    def to_string(self) -> str:
        return format_number(self.value)


@dataclass
class VString(Value):
    value: str

    def type_name(self) -> str:
        return "string"

    def to_string(self) -> str:
        return self.value


class LoxCallable(Value):
    """Anything that can appear before an argument list."""

    def arity(self) -> int:
        raise NotImplementedError

    def call(self, interp: Interpreter, args: list[Value]) -> Value:
        raise NotImplementedError


class NativeFunction(LoxCallable):
    """A function implemented in Python."""

    def __init__(self, name: str, n_params: int, fn: Callable[[list[Value]], Value]):
        self.name = name
        self.n_params = n_params
        self.fn = fn

    def arity(self) -> int:
        return self.n_params

    def call(self, interp: Interpreter, args: list[Value]) -> Value:
        return self.fn(args)

    def type_name(self) -> str:
        return "function"

    def to_string(self) -> str:
        return "<native fn " + self.name + ">"


class LoxFunction(LoxCallable):
    """A user function or method closed over its defining environment."""

    def __init__(
        self,
        declaration: FunctionStmt | Lambda,
        closure: Environment,
        is_initializer: bool = False,
    ):
        self.declaration = declaration
        self.closure = closure
        self.is_initializer = is_initializer

    @property
    def name(self) -> str | None:
        if isinstance(self.declaration, FunctionStmt):
            return self.declaration.name
        return None

    def bind(self, instance: LoxInstance) -> LoxFunction:
        env = Environment(self.closure)
        env.define("this", instance)
        return LoxFunction(self.declaration, env, self.is_initializer)

    def arity(self) -> int:
        return len(self.declaration.params)

    def call(self, interp: Interpreter, args: list[Value]) -> Value:
        env = Environment(self.closure)
        for param, arg in zip(self.declaration.params, args):
            env.define(param.name, arg)
        signal = interp.exec_block(self.declaration.body, env)
        if self.is_initializer:
            return self.closure.get_at(0, "this")
        if signal is not None:
            return signal.value
        return VNil()

    def type_name(self) -> str:
        return "function"

    def to_string(self) -> str:
        if self.name is None:
            return "<fn>"
        return "<fn " + self.name + ">"


class LoxClass(LoxCallable):
    """A class; calling it constructs an instance."""

    def __init__(
        self,
        name: str,
        superclass: LoxClass | None,
        methods: dict[str, LoxFunction],
    ):
        self.name = name
        self.superclass = superclass
        self.methods = methods

    def find_method(self, name: str) -> LoxFunction | None:
        klass: LoxClass | None = self
        while klass is not None:
            if name in klass.methods:
                return klass.methods[name]
            klass = klass.superclass
        return None

    def arity(self) -> int:
        init = self.find_method("init")
        if init is None:
            return 0
        return init.arity()

    def call(self, interp: Interpreter, args: list[Value]) -> Value:
        instance = LoxInstance(self)
        init = self.find_method("init")
        if init is not None:
            init.bind(instance).call(interp, args)
        return instance

    def type_name(self) -> str:
        return "class"

    def to_string(self) -> str:
        return "<class " + self.name + ">"


class LoxInstance(Value):
    """An object: a class reference plus its own field table."""

    def __init__(self, klass: LoxClass):
        self.klass = klass
        self.fields: dict[str, Value] = {}

    def get(self, name: str, pos: Pos) -> Value:
        if name in self.fields:
            return self.fields[name]
        method = self.klass.find_method(name)
        if method is not None:
            return method.bind(self)
        raise LoxRuntimeError("undefined property '" + name + "'", pos)

    def set(self, name: str, value: Value) -> None:
        self.fields[name] = value

    def type_name(self) -> str:
        return "instance"

    def to_string(self) -> str:
        return "<" + self.klass.name + " instance>"


def _same_value_class(a: Value, b: Value) -> bool:
    if isinstance(a, VNil):
        return isinstance(b, VNil)
    if isinstance(a, VBool):
        return isinstance(b, VBool)
    if isinstance(a, VNumber):
        return isinstance(b, VNumber)
    if isinstance(a, VString):
        return isinstance(b, VString)
    return True


def value_eq(a: Value, b: Value) -> bool:
    if not _same_value_class(a, b):
        return False
    if isinstance(a, VNil):
        return True
    if isinstance(a, VBool):
        return a.value == cast(VBool, b).value
    if isinstance(a, VNumber):
        return a.value == cast(VNumber, b).value
    if isinstance(a, VString):
        return a.value == cast(VString, b).value
    return a is b


def is_truthy(v: Value) -> bool:
    if isinstance(v, VNil):
        return False
    if isinstance(v, VBool):
        return v.value
    return True


def _native_clock(args: list[Value]) -> Value:
    return VNumber(time.time())


# ============================================================
# Environments
# ============================================================


class Environment:
    """One scope frame, chained to its enclosing frame."""

    def __init__(self, enclosing: Environment | None = None):
        self.values: dict[str, Value] = {}
        self.enclosing = enclosing

    def define(self, name: str, value: Value) -> None:
        self.values[name] = value

    def ancestor(self, distance: int) -> Environment:
        env = self
        for _ in range(distance):
            assert env.enclosing is not None
            env = env.enclosing
        return env

    def get_at(self, distance: int, name: str) -> Value:
        return self.ancestor(distance).values[name]

    def assign_at(self, distance: int, name: str, value: Value) -> None:
        self.ancestor(distance).values[name] = value

    def get(self, name: str, pos: Pos) -> Value:
        env: Environment | None = self
        while env is not None:
            if name in env.values:
                return env.values[name]
            env = env.enclosing
        raise LoxRuntimeError("undefined variable '" + name + "'", pos)

    def assign(self, name: str, value: Value, pos: Pos) -> None:
        env: Environment | None = self
        while env is not None:
            if name in env.values:
                env.values[name] = value
                return
            env = env.enclosing
        raise LoxRuntimeError("undefined variable '" + name + "'", pos)


# ============================================================
# Control flow signals (internal)
# ============================================================


@dataclass
class _Return:
    """Result of a statement that executed 'return'. None means fall through."""

    value: Value


# ============================================================
# Interpreter
# ============================================================


@dataclass
class RunResult:
    errors: list[LoxError]
    stdout: str

    @property
    def ok(self) -> bool:
        return len(self.errors) == 0

    @property
    def exit_code(self) -> int:
        """0 on success, 65 for static errors, 70 for a runtime error."""
        if len(self.errors) == 0:
            return 0
        if self.errors[0].stage == STAGE_RUNTIME:
            return 70
        return 65


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)


class Interpreter:
    """Executes resolved statements. Globals persist across interpret calls."""

    def __init__(
        self,
        out: Callable[[str], None] | None = None,
        *,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
    ):
        self.out: Callable[[str], None] = out if out is not None else _write_stdout
        self.max_call_depth = max_call_depth
        self.globals = Environment()
        self.globals.define("clock", NativeFunction("clock", 0, _native_clock))
        self.locals: dict[int, int] = {}
        self.depth = 0
        self.nesting = 0

    def interpret(self, stmts: list[Stmt], locals: dict[int, int]) -> None:
        """Run top-level statements. Raises LoxRuntimeError on the first failure."""
        self.locals.update(locals)
        # Functions from earlier runs stay callable; the deepest tree seen so
        # far bounds the cost of any call
        self.nesting = max(self.nesting, nesting_depth(stmts))
        per_call = _CALL_FRAMES + self.nesting * _FRAMES_PER_LEVEL
        try:
            with deep_recursion((self.max_call_depth + 1) * per_call):
                for stmt in stmts:
                    self.exec_stmt(stmt, self.globals)
        except RecursionError:
            raise LoxRuntimeError("stack overflow") from None
        finally:
            self.depth = 0

    # ---- Statements --------------------------------------------------------

    def exec_block(self, stmts: list[Stmt], env: Environment) -> _Return | None:
        for stmt in stmts:
            signal = self.exec_stmt(stmt, env)
            if signal is not None:
                return signal
        return None

    def exec_stmt(self, stmt: Stmt, env: Environment) -> _Return | None:
        if isinstance(stmt, ExprStmt):
            self.eval_expr(stmt.expr, env)
            return None

        if isinstance(stmt, PrintStmt):
            value = self.eval_expr(stmt.expr, env)
            self.out(value.to_string() + "\n")
            return None

        if isinstance(stmt, VarStmt):
            value: Value = VNil()
            if stmt.value is not None:
                value = self.eval_expr(stmt.value, env)
            env.define(stmt.name, value)
            return None

        if isinstance(stmt, BlockStmt):
            return self.exec_block(stmt.body, Environment(env))

        if isinstance(stmt, IfStmt):
            if is_truthy(self.eval_expr(stmt.cond, env)):
                return self.exec_stmt(stmt.then_branch, env)
            if stmt.else_branch is not None:
                return self.exec_stmt(stmt.else_branch, env)
            return None

        if isinstance(stmt, WhileStmt):
            while is_truthy(self.eval_expr(stmt.cond, env)):
                signal = self.exec_stmt(stmt.body, env)
                if signal is not None:
                    return signal
            return None

        if isinstance(stmt, FunctionStmt):
            env.define(stmt.name, LoxFunction(stmt, env))
            return None

        if isinstance(stmt, ReturnStmt):
            result: Value = VNil()
            if stmt.value is not None:
                result = self.eval_expr(stmt.value, env)
            return _Return(result)

        if isinstance(stmt, ClassStmt):
            self._exec_class(stmt, env)
            return None

        raise LoxRuntimeError("unknown statement: " + type(stmt).__name__, stmt.pos)

    def _exec_class(self, stmt: ClassStmt, env: Environment) -> None:
        superclass: LoxClass | None = None
        if stmt.superclass is not None:
            sc = self.eval_expr(stmt.superclass, env)
            if not isinstance(sc, LoxClass):
                raise LoxRuntimeError(
                    "superclass must be a class", stmt.superclass.pos
                )
            superclass = sc

        env.define(stmt.name, VNil())
        method_env = env
        if superclass is not None:
            method_env = Environment(env)
            method_env.define("super", superclass)

        methods: dict[str, LoxFunction] = {}
        for method in stmt.methods:
            methods[method.name] = LoxFunction(
                method, method_env, method.name == "init"
            )
        env.define(stmt.name, LoxClass(stmt.name, superclass, methods))

    # ---- Expressions -------------------------------------------------------

    def _lookup(self, expr: Expr, name: str, env: Environment) -> Value:
        distance = self.locals.get(expr.uid)
        if distance is None:
            return self.globals.get(name, expr.pos)
        return env.get_at(distance, name)

    def eval_expr(self, expr: Expr, env: Environment) -> Value:
        if isinstance(expr, Literal):
            v = expr.value
            if v is None:
                return VNil()
            if isinstance(v, bool):
                return VBool(v)
            if isinstance(v, float):
                return VNumber(v)
            return VString(v)

        if isinstance(expr, Grouping):
            return self.eval_expr(expr.expr, env)

        if isinstance(expr, Variable):
            return self._lookup(expr, expr.name, env)

        if isinstance(expr, Assign):
            value = self.eval_expr(expr.value, env)
            distance = self.locals.get(expr.uid)
            if distance is None:
                self.globals.assign(expr.name, value, expr.pos)
            else:
                env.assign_at(distance, expr.name, value)
            return value

        if isinstance(expr, Unary):
            operand = self.eval_expr(expr.operand, env)
            if expr.op == "!":
                return VBool(not is_truthy(operand))
            if expr.op == "-":
                if not isinstance(operand, VNumber):
                    raise LoxRuntimeError(
                        "operand of '-' must be a number, got " + operand.type_name(),
                        expr.pos,
                    )
                return VNumber(-operand.value)
            raise LoxRuntimeError("unknown unary op '" + expr.op + "'", expr.pos)

        if isinstance(expr, Logical):
            left = self.eval_expr(expr.left, env)
            if expr.op == "or":
                if is_truthy(left):
                    return left
            elif not is_truthy(left):
                return left
            return self.eval_expr(expr.right, env)

        if isinstance(expr, Binary):
            left = self.eval_expr(expr.left, env)
            right = self.eval_expr(expr.right, env)
            return self._eval_binary(expr, left, right)

        if isinstance(expr, Call):
            return self._eval_call(expr, env)

        if isinstance(expr, Get):
            obj = self.eval_expr(expr.obj, env)
            if not isinstance(obj, LoxInstance):
                raise LoxRuntimeError(
                    "only instances have properties, got " + obj.type_name(),
                    expr.pos,
                )
            return obj.get(expr.name, expr.pos)

        if isinstance(expr, Set):
            obj = self.eval_expr(expr.obj, env)
            if not isinstance(obj, LoxInstance):
                raise LoxRuntimeError(
                    "only instances have fields, got " + obj.type_name(), expr.pos
                )
            value = self.eval_expr(expr.value, env)
            obj.set(expr.name, value)
            return value

        if isinstance(expr, This):
            return self._lookup(expr, "this", env)

        if isinstance(expr, Super):
            return self._eval_super(expr, env)

        if isinstance(expr, Lambda):
            return LoxFunction(expr, env)

        raise LoxRuntimeError("unknown expression: " + type(expr).__name__, expr.pos)

    def _eval_binary(self, expr: Binary, left: Value, right: Value) -> Value:
        op = expr.op
        if op == "==":
            return VBool(value_eq(left, right))
        if op == "!=":
            return VBool(not value_eq(left, right))

        if op == "+":
            if isinstance(left, VNumber) and isinstance(right, VNumber):
                return VNumber(left.value + right.value)
            if isinstance(left, VString) and isinstance(right, VString):
                return VString(left.value + right.value)
            raise LoxRuntimeError(
                "operands of '+' must be two numbers or two strings, got "
                + left.type_name()
                + " and "
                + right.type_name(),
                expr.pos,
            )

        if not isinstance(left, VNumber) or not isinstance(right, VNumber):
            raise LoxRuntimeError(
                "operands of '"
                + op
                + "' must be numbers, got "
                + left.type_name()
                + " and "
                + right.type_name(),
                expr.pos,
            )
        a = left.value
        b = right.value
        if op == "-":
            return VNumber(a - b)
        if op == "*":
            return VNumber(a * b)
        if op == "/":
            return VNumber(_divide(a, b))
        if op == "<":
            return VBool(a < b)
        if op == "<=":
            return VBool(a <= b)
        if op == ">":
            return VBool(a > b)
        if op == ">=":
            return VBool(a >= b)
        raise LoxRuntimeError("unknown binary op '" + op + "'", expr.pos)

    def _eval_call(self, expr: Call, env: Environment) -> Value:
        callee = self.eval_expr(expr.callee, env)
        args = [self.eval_expr(a, env) for a in expr.args]
        if not isinstance(callee, LoxCallable):
            raise LoxRuntimeError(
                "can only call functions and classes, got " + callee.type_name(),
                expr.pos,
            )
        if len(args) != callee.arity():
            raise LoxRuntimeError(
                "expected "
                + str(callee.arity())
                + " arguments but got "
                + str(len(args)),
                expr.pos,
            )
        if self.depth >= self.max_call_depth:
            raise LoxRuntimeError("stack overflow", expr.pos)
        self.depth += 1
        try:
            return callee.call(self, args)
        except RecursionError:
            raise LoxRuntimeError("stack overflow", expr.pos) from None
        finally:
            self.depth -= 1

    def _eval_super(self, expr: Super, env: Environment) -> Value:
        distance = self.locals[expr.uid]
        superclass = cast(LoxClass, env.get_at(distance, "super"))
        # 'this' lives in the scope just inside the one holding 'super'
        instance = cast(LoxInstance, env.get_at(distance - 1, "this"))
        method = superclass.find_method(expr.method)
        if method is None:
            raise LoxRuntimeError(
                "undefined property '" + expr.method + "'", expr.pos
            )
        return method.bind(instance)


def _divide(a: float, b: float) -> float:
    """IEEE division: a zero divisor yields an infinity or NaN."""
    if b == 0:
        if a == 0 or _isnan(a):
            return float("nan")
        negative = (a < 0) != str(b).startswith("-")
        return float("-inf") if negative else float("inf")
    return a / b
