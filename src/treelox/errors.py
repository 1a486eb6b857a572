"""Diagnostics shared by every pipeline stage."""

from __future__ import annotations

from contextlib import contextmanager
import sys
from typing import Iterator


STAGE_SCAN = "scan"
STAGE_PARSE = "parse"
STAGE_RESOLVE = "resolve"
STAGE_RUNTIME = "runtime"

# setrecursionlimit takes a C int
_MAX_RECURSION_LIMIT = 2**31 - 1


class LoxError(Exception):
    """Base error carrying the stage that produced it and a source location."""

    stage: str = ""

    def __init__(self, msg: str, line: int, col: int = 0):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        if col > 0:
            super().__init__(msg + " at line " + str(line) + " col " + str(col))
        else:
            super().__init__(msg + " at line " + str(line))


@contextmanager
def deep_recursion(frames: int) -> Iterator[None]:
    """Raise the interpreter recursion limit by frames for the enclosed block."""
    old_limit = sys.getrecursionlimit()
    sys.setrecursionlimit(min(old_limit + frames, _MAX_RECURSION_LIMIT))
    try:
        yield
    finally:
        sys.setrecursionlimit(old_limit)
