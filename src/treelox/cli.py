"""treelox CLI: run Lox files, one-liners, or an interactive prompt."""

from __future__ import annotations

import sys

from . import compile_source, run
from .emit import to_source
from .errors import LoxError
from .runtime import DEFAULT_MAX_CALL_DEPTH, Interpreter


USAGE: str = """\
treelox [OPTIONS] [FILE]

Run a Lox program. With no FILE and no -c, start an interactive prompt.

Options:
  -c SOURCE          Run SOURCE instead of a file
  --emit             Print the parsed program as canonical source and exit
  --max-depth N      Maximum call depth (default 512)
  --help             Show this help message
"""

EXIT_USAGE = 2
EXIT_NOINPUT = 1


def _report(errors: list[LoxError]) -> None:
    for e in errors:
        print("treelox: " + e.stage + " error: " + str(e), file=sys.stderr)


def _read_file(filepath: str) -> str | None:
    try:
        with open(filepath, "rb") as f:
            raw = f.read()
    except FileNotFoundError:
        print("treelox: " + filepath + ": No such file or directory", file=sys.stderr)
        return None
    except OSError as e:
        print("treelox: " + filepath + ": " + str(e), file=sys.stderr)
        return None
    try:
        return raw.decode("utf-8")
    except ValueError:
        print("treelox: " + filepath + ": invalid utf-8", file=sys.stderr)
        return None


def _emit(source: str) -> int:
    stmts, _, errors = compile_source(source)
    if len(errors) > 0:
        _report(errors)
        return 65
    sys.stdout.write(to_source(stmts))
    return 0


def repl(max_depth: int) -> int:
    """Read-eval-print loop sharing one interpreter across lines."""
    interp = Interpreter(max_call_depth=max_depth)
    while True:
        try:
            line = input("> ")
        except EOFError:
            print()
            return 0
        result = run(line, interpreter=interp)
        _report(result.errors)


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    filepath: str = ""
    source: str | None = None
    emit = False
    max_depth = DEFAULT_MAX_CALL_DEPTH
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return 0
        elif arg == "--emit":
            emit = True
            i += 1
        elif arg == "-c" or arg == "--max-depth":
            if i + 1 >= len(args):
                print("treelox: " + arg + " requires an argument", file=sys.stderr)
                return EXIT_USAGE
            value = args[i + 1]
            if arg == "-c":
                source = value
            else:
                try:
                    max_depth = int(value)
                except ValueError:
                    print(
                        "treelox: --max-depth expects an integer, got '" + value + "'",
                        file=sys.stderr,
                    )
                    return EXIT_USAGE
                if max_depth < 1:
                    print("treelox: --max-depth must be positive", file=sys.stderr)
                    return EXIT_USAGE
            i += 2
        elif arg.startswith("-"):
            print("treelox: unknown flag '" + arg + "'", file=sys.stderr)
            return EXIT_USAGE
        elif filepath == "":
            filepath = arg
            i += 1
        else:
            print("treelox: unexpected argument '" + arg + "'", file=sys.stderr)
            return EXIT_USAGE

    if source is not None and filepath != "":
        print("treelox: -c and FILE are mutually exclusive", file=sys.stderr)
        return EXIT_USAGE

    if source is None:
        if filepath == "":
            if emit:
                print("treelox: --emit needs FILE or -c", file=sys.stderr)
                return EXIT_USAGE
            return repl(max_depth)
        source = _read_file(filepath)
        if source is None:
            return EXIT_NOINPUT

    if emit:
        return _emit(source)

    result = run(source, out=sys.stdout.write, max_call_depth=max_depth)
    _report(result.errors)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
