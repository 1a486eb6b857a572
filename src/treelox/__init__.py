"""Lox scanner, parser, resolver and interpreter: public API."""

from __future__ import annotations

from typing import Callable

from .ast import Stmt
from .emit import to_source
from .errors import LoxError as LoxError
from .parse import ParseError as ParseError, parse_tokens
from .resolve import ResolveError as ResolveError, resolve as resolve
from .runtime import (
    DEFAULT_MAX_CALL_DEPTH,
    Interpreter as Interpreter,
    LoxRuntimeError as LoxRuntimeError,
    RunResult as RunResult,
)
from .tokens import ScanError as ScanError, scan as scan, tokenize


def parse(source: str) -> list[Stmt]:
    """Parse Lox source into statements. Raises the first scan or parse error."""
    tokens = tokenize(source)
    stmts, errors = parse_tokens(tokens)
    if len(errors) > 0:
        raise errors[0]
    return stmts


def compile_source(source: str) -> tuple[list[Stmt], dict[int, int], list[LoxError]]:
    """Scan, parse and resolve. Returns statements, distances, and errors.

    Stops after the first stage that reports errors; the statements and
    distances are empty in that case.
    """
    tokens, scan_errors = scan(source)
    if len(scan_errors) > 0:
        return [], {}, list(scan_errors)
    stmts, parse_errors = parse_tokens(tokens)
    if len(parse_errors) > 0:
        return [], {}, list(parse_errors)
    locals, resolve_errors = resolve(stmts)
    if len(resolve_errors) > 0:
        return [], {}, list(resolve_errors)
    return stmts, locals, []


def check(source: str) -> list[LoxError]:
    """Run every static stage over source. Returns errors (empty = ok)."""
    _, _, errors = compile_source(source)
    return errors


def run(
    source: str,
    *,
    out: Callable[[str], None] | None = None,
    interpreter: Interpreter | None = None,
    max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
) -> RunResult:
    """Compile and execute source.

    Printed lines go to out; with neither out nor interpreter given they are
    captured into RunResult.stdout. Passing an interpreter keeps its globals;
    an out given alongside it applies to this run only.
    """
    captured: list[str] = []
    if interpreter is None:
        sink = out if out is not None else captured.append
        interpreter = Interpreter(sink, max_call_depth=max_call_depth)

    stmts, locals, errors = compile_source(source)
    if len(errors) > 0:
        return RunResult(errors, "")
    previous_out = interpreter.out
    if out is not None:
        interpreter.out = out
    try:
        interpreter.interpret(stmts, locals)
    except LoxRuntimeError as e:
        return RunResult([e], "".join(captured))
    finally:
        interpreter.out = previous_out
    return RunResult([], "".join(captured))


def emit(stmts: list[Stmt]) -> str:
    """Emit parsed statements as canonical Lox source."""
    return to_source(stmts)
