"""Data-driven test runner for the Lox pipeline stages"""

import signal
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from treelox import check as lox_check, run as lox_run
from treelox.parse import parse_tokens
from treelox.tokens import scan

PHASE_TIMEOUT = 5
TESTS_DIR = Path(__file__).parent

TESTS = {
    "lox_scan": {"dir": "scanner", "run": "phase"},
    "lox_parse": {"dir": "parser", "run": "phase"},
    "lox_resolve": {"dir": "resolver", "run": "phase"},
    "lox_run": {"dir": "interpreter", "run": "phase"},
    "lox_app": {"dir": "apps", "run": "lox_app"},
}


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------


def _timeout_handler(signum, frame):
    raise TimeoutError("phase timed out")


signal.signal(signal.SIGALRM, _timeout_handler)


# ---------------------------------------------------------------------------
# Test file parsing
# ---------------------------------------------------------------------------


def parse_tests_file(path: Path) -> list[tuple[str, str, str]]:
    """Parse a .tests file into (name, input, expected) tuples."""
    lines = path.read_text().split("\n")
    result: list[tuple[str, str, str]] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("=== "):
            test_name = line[4:].strip()
            i += 1
            input_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                input_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            expected_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                expected_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            test_input = "\n".join(input_lines)
            expected = "\n".join(expected_lines).strip()
            result.append((test_name, test_input, expected))
        else:
            i += 1
    return result


def discover_cases(test_dir: Path) -> list[tuple[str, str, str]]:
    """Glob *.tests in test_dir, return (test_id, input, expected) tuples."""
    results = []
    for test_file in sorted(test_dir.glob("*.tests")):
        for name, input_code, expected in parse_tests_file(test_file):
            results.append((f"{test_file.stem}/{name}", input_code, expected))
    return results


def discover_lox_apps(test_dir: Path) -> list[Path]:
    """Find all .lox files in a directory."""
    return sorted(test_dir.glob("*.lox"))


# ---------------------------------------------------------------------------
# Phase result + assertion checker
# ---------------------------------------------------------------------------


@dataclass
class PhaseResult:
    errors: list[str] = field(default_factory=list)
    stdout: str = ""


def check_expected(expected: str, result: PhaseResult) -> None:
    if expected == "ok":
        if result.errors:
            pytest.fail(f"Expected ok, got error: {result.errors[0]}")
        return
    if expected.startswith("error:"):
        expected_msg = expected[6:].strip()
        if not result.errors:
            pytest.fail(f"Expected error containing '{expected_msg}', got ok")
        found = any(expected_msg.lower() in e.lower() for e in result.errors)
        if not found:
            pytest.fail(
                f"Expected error containing '{expected_msg}', got: {result.errors}"
            )
        return
    check_output(expected, result)


def check_output(expected: str, result: PhaseResult) -> None:
    """Expected is the program's stdout, optionally ending in an error line."""
    lines = expected.split("\n")
    expected_err = ""
    if lines[-1].startswith("error:"):
        expected_err = lines[-1][6:].strip()
        lines = lines[:-1]
    expected_out = "\n".join(lines)
    actual_out = result.stdout.rstrip("\n")
    if actual_out != expected_out:
        pytest.fail(
            "Output mismatch\n"
            f"  expected: {expected_out!r}\n"
            f"  actual:   {actual_out!r}\n"
            f"  errors:   {result.errors}"
        )
    if expected_err == "":
        if result.errors:
            pytest.fail(f"Expected clean run, got error: {result.errors[0]}")
        return
    if not result.errors:
        pytest.fail(f"Expected error containing '{expected_err}', got ok")
    if expected_err.lower() not in result.errors[0].lower():
        pytest.fail(
            f"Expected error containing '{expected_err}', got: {result.errors[0]}"
        )


# ---------------------------------------------------------------------------
# Phase runners
# ---------------------------------------------------------------------------


def run_lox_scan(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        _, errors = scan(source)
        return PhaseResult(errors=[str(e) for e in errors])
    finally:
        signal.alarm(0)


def run_lox_parse(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        tokens, scan_errors = scan(source)
        if scan_errors:
            return PhaseResult(errors=[str(e) for e in scan_errors])
        _, errors = parse_tokens(tokens)
        return PhaseResult(errors=[str(e) for e in errors])
    finally:
        signal.alarm(0)


def run_lox_resolve(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        errors = lox_check(source)
        return PhaseResult(errors=[str(e) for e in errors])
    finally:
        signal.alarm(0)


def run_lox_program(source: str) -> PhaseResult:
    try:
        signal.alarm(PHASE_TIMEOUT)
        result = lox_run(source)
        return PhaseResult(errors=[str(e) for e in result.errors], stdout=result.stdout)
    finally:
        signal.alarm(0)


RUNNERS = {
    "lox_scan": run_lox_scan,
    "lox_parse": run_lox_parse,
    "lox_resolve": run_lox_resolve,
    "lox_run": run_lox_program,
}


# ---------------------------------------------------------------------------
# Parametrization
# ---------------------------------------------------------------------------


def pytest_generate_tests(metafunc):
    for name, cfg in TESTS.items():
        test_dir = TESTS_DIR / cfg["dir"]
        run = cfg["run"]
        if run == "phase":
            fixture = f"{name}_input"
            if fixture in metafunc.fixturenames:
                cases = discover_cases(test_dir)
                params = [pytest.param(inp, exp, id=tid) for tid, inp, exp in cases]
                metafunc.parametrize(f"{fixture},{name}_expected", params)
        elif run == "lox_app" and "lox_app" in metafunc.fixturenames:
            apps = discover_lox_apps(test_dir)
            params = [pytest.param(p, id=p.stem) for p in apps]
            metafunc.parametrize("lox_app", params)


# ---------------------------------------------------------------------------
# Test functions
# ---------------------------------------------------------------------------


def test_lox_scan(lox_scan_input, lox_scan_expected):
    check_expected(lox_scan_expected, RUNNERS["lox_scan"](lox_scan_input))


def test_lox_parse(lox_parse_input, lox_parse_expected):
    check_expected(lox_parse_expected, RUNNERS["lox_parse"](lox_parse_input))


def test_lox_resolve(lox_resolve_input, lox_resolve_expected):
    check_expected(lox_resolve_expected, RUNNERS["lox_resolve"](lox_resolve_input))


def test_lox_run(lox_run_input, lox_run_expected):
    check_expected(lox_run_expected, RUNNERS["lox_run"](lox_run_input))


def test_lox_app(lox_app: Path):
    """Run a .lox program and compare stdout with its .expected file."""
    source = lox_app.read_text()
    expected = lox_app.with_suffix(".expected").read_text()
    result = lox_run(source)
    if result.exit_code != 0:
        pytest.fail(f"Exit code {result.exit_code}:\n{result.errors[0]}")
    assert result.stdout == expected
