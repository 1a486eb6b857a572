"""Lox scanner: lexes source into a flat token list."""

from __future__ import annotations

from .errors import STAGE_SCAN, LoxError


# Token type constants
TK_NUMBER = "NUMBER"
TK_STRING = "STRING"
TK_IDENT = "IDENT"
TK_OP = "OP"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "and",
    "class",
    "else",
    "false",
    "for",
    "fun",
    "if",
    "nil",
    "or",
    "print",
    "return",
    "super",
    "this",
    "true",
    "var",
    "while",
}

# Two-character operators, tried before single characters
MULTI_OPS: list[str] = [
    "!=",
    "==",
    "<=",
    ">=",
]

SINGLE_OPS: set[str] = {
    "(",
    ")",
    "{",
    "}",
    ",",
    ".",
    "-",
    "+",
    ";",
    "*",
    "/",
    ":",
    "!",
    "=",
    "<",
    ">",
}


class ScanError(LoxError):
    """Malformed lexeme."""

    stage = STAGE_SCAN


class Token:
    """A token with type, raw lexeme, literal value, and position."""

    def __init__(
        self, type_: str, lexeme: str, literal: object, line: int, col: int
    ):
        self.type: str = type_
        self.lexeme: str = lexeme
        self.literal: object = literal
        self.line: int = line
        self.col: int = col

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.lexeme)
            + ", "
            + str(self.line)
            + ", "
            + str(self.col)
            + ")"
        )


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def scan(source: str) -> tuple[list[Token], list[ScanError]]:
    """Scan Lox source into a token list ending with TK_EOF.

    Scanning does not stop at the first bad lexeme: every error is collected
    and returned alongside the tokens that could be produced.
    """
    tokens: list[Token] = []
    errors: list[ScanError] = []
    pos = 0
    line = 1
    col = 1
    length = len(source)

    while pos < length:
        c = source[pos]

        # Newlines
        if c == "\n":
            pos += 1
            line += 1
            col = 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            col += 1
            continue

        # Line comment: //
        if c == "/" and pos + 1 < length and source[pos + 1] == "/":
            while pos < length and source[pos] != "\n":
                pos += 1
            continue

        start_pos = pos
        start_line = line
        start_col = col

        # String literal: "..." (may span lines, no escapes)
        if c == '"':
            pos += 1
            col += 1
            while pos < length and source[pos] != '"':
                if source[pos] == "\n":
                    line += 1
                    col = 1
                else:
                    col += 1
                pos += 1
            if pos >= length:
                errors.append(
                    ScanError("unterminated string", start_line, start_col)
                )
                continue
            pos += 1  # skip closing "
            col += 1
            raw = source[start_pos:pos]
            tokens.append(Token(TK_STRING, raw, raw[1:-1], start_line, start_col))
            continue

        # Number: digits with an optional fraction
        if _is_digit(c):
            while pos < length and _is_digit(source[pos]):
                pos += 1
                col += 1
            if (
                pos + 1 < length
                and source[pos] == "."
                and _is_digit(source[pos + 1])
            ):
                pos += 1
                col += 1
                while pos < length and _is_digit(source[pos]):
                    pos += 1
                    col += 1
            raw = source[start_pos:pos]
            tokens.append(Token(TK_NUMBER, raw, float(raw), start_line, start_col))
            continue

        # Identifier or keyword
        if _is_alpha(c):
            while pos < length and _is_alnum(source[pos]):
                pos += 1
                col += 1
            word = source[start_pos:pos]
            if word in KEYWORDS:
                tokens.append(Token(word, word, None, start_line, start_col))
            else:
                tokens.append(Token(TK_IDENT, word, None, start_line, start_col))
            continue

        # Two-character operators
        matched = False
        for op in MULTI_OPS:
            if source[pos : pos + 2] == op:
                tokens.append(Token(TK_OP, op, None, start_line, start_col))
                pos += 2
                col += 2
                matched = True
                break
        if matched:
            continue

        # Single-character operators
        if c in SINGLE_OPS:
            tokens.append(Token(TK_OP, c, None, start_line, start_col))
            pos += 1
            col += 1
            continue

        errors.append(ScanError("unexpected character: " + repr(c), line, col))
        pos += 1
        col += 1

    tokens.append(Token(TK_EOF, "", None, line, col))
    return tokens, errors


def tokenize(source: str) -> list[Token]:
    """Scan Lox source, raising the first ScanError if any occurred."""
    tokens, errors = scan(source)
    if errors:
        raise errors[0]
    return tokens
