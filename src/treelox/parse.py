"""Lox parser: recursive descent, one method per grammar production."""

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
)
from .errors import STAGE_PARSE, LoxError, deep_recursion
from .tokens import TK_EOF, TK_IDENT, TK_NUMBER, TK_STRING, Token

MAX_ARGS = 255

# Python frames per token: one parenthesized level descends every
# precedence method before reaching primary again
_FRAMES_PER_TOKEN = 12

# Keywords that begin a statement; recovery stops in front of them
SYNC_KEYWORDS: set[str] = {
    "class",
    "fun",
    "var",
    "for",
    "if",
    "while",
    "print",
    "return",
}

EQUALITY_OPS: set[str] = {"==", "!="}
COMPARE_OPS: set[str] = {"<", "<=", ">", ">="}


class ParseError(LoxError):
    """Grammar violation at a token."""

    stage = STAGE_PARSE

    def __init__(self, msg: str, tok: Token):
        super().__init__(msg, tok.line, tok.col)
        self.token: Token = tok


def _describe(tok: Token) -> str:
    if tok.type == TK_EOF:
        return "end of input"
    return "'" + tok.lexeme + "'"


class Parser:
    """Recursive descent parser for Lox."""

    def __init__(self, tokens: list[Token]):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.errors: list[ParseError] = []

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[len(self.tokens) - 1]
        return self.tokens[idx]

    def previous(self) -> Token:
        return self.tokens[self.pos - 1]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != TK_EOF:
            self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        return tok.lexeme == value and tok.type != TK_STRING

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def at_end(self) -> bool:
        return self.current().type == TK_EOF

    def expect(self, value: str, where: str) -> Token:
        tok = self.current()
        if not self.at(value):
            raise self.error(
                "expected '" + value + "' " + where + ", got " + _describe(tok)
            )
        return self.advance()

    def expect_ident(self, what: str) -> Token:
        tok = self.current()
        if tok.type != TK_IDENT:
            raise self.error("expected " + what + ", got " + _describe(tok))
        return self.advance()

    def error(self, msg: str) -> ParseError:
        return ParseError(msg, self.current())

    def report(self, msg: str, tok: Token) -> None:
        """Record an error without unwinding; the parse can carry on."""
        self.errors.append(ParseError(msg, tok))

    def synchronize(self) -> None:
        """Discard tokens up to the next statement boundary."""
        self.advance()
        while not self.at_end():
            if self.previous().lexeme == ";" and self.previous().type != TK_STRING:
                return
            if self.current().type in SYNC_KEYWORDS:
                return
            self.advance()

    def _pos(self) -> Pos:
        tok = self.current()
        return Pos(tok.line, tok.col)

    def _tok_pos(self, tok: Token) -> Pos:
        return Pos(tok.line, tok.col)

    # ── Top Level ────────────────────────────────────────────

    def parse(self) -> tuple[list[Stmt], list[ParseError]]:
        stmts: list[Stmt] = []
        while not self.at_end():
            try:
                stmt = self.parse_declaration()
            except RecursionError:
                self.report("expression nested too deeply", self.current())
                self.synchronize()
                continue
            if stmt is not None:
                stmts.append(stmt)
        return stmts, self.errors

    def parse_declaration(self) -> Stmt | None:
        try:
            if self.at("class"):
                return self.parse_class_decl()
            if self.at("fun") and self.peek(1).type == TK_IDENT:
                self.advance()
                return self.parse_function("function")
            if self.at("var"):
                return self.parse_var_decl()
            return self.parse_stmt()
        except ParseError as e:
            self.errors.append(e)
            self.synchronize()
            return None

    def parse_class_decl(self) -> ClassStmt:
        pos = self._pos()
        self.expect("class", "")
        name_tok = self.expect_ident("class name")
        superclass: Variable | None = None
        if self.at("<") or self.at(":"):
            self.advance()
            super_tok = self.expect_ident("superclass name")
            superclass = Variable(self._tok_pos(super_tok), super_tok.lexeme)
        self.expect("{", "before class body")
        methods: list[FunctionStmt] = []
        while not self.at("}") and not self.at_end():
            methods.append(self.parse_function("method"))
        self.expect("}", "after class body")
        return ClassStmt(pos, name_tok.lexeme, superclass, methods)

    def parse_function(self, kind: str) -> FunctionStmt:
        name_tok = self.expect_ident(kind + " name")
        self.expect("(", "after " + kind + " name")
        params = self.parse_param_list()
        self.expect(")", "after parameters")
        body = self.parse_block("before " + kind + " body")
        return FunctionStmt(self._tok_pos(name_tok), name_tok.lexeme, params, body)

    def parse_param_list(self) -> list[Param]:
        params: list[Param] = []
        if self.at(")"):
            return params
        while True:
            if len(params) >= MAX_ARGS:
                self.report(
                    "can't have more than " + str(MAX_ARGS) + " parameters",
                    self.current(),
                )
            tok = self.expect_ident("parameter name")
            params.append(Param(self._tok_pos(tok), tok.lexeme))
            if not self.at(","):
                return params
            self.advance()

    def parse_var_decl(self) -> VarStmt:
        pos = self._pos()
        self.expect("var", "")
        name_tok = self.expect_ident("variable name")
        value: Expr | None = None
        if self.at("="):
            self.advance()
            value = self.parse_expr()
        self.expect(";", "after variable declaration")
        return VarStmt(pos, name_tok.lexeme, value)

    def parse_block(self, where: str) -> list[Stmt]:
        self.expect("{", where)
        stmts: list[Stmt] = []
        while not self.at("}") and not self.at_end():
            stmt = self.parse_declaration()
            if stmt is not None:
                stmts.append(stmt)
        self.expect("}", "after block")
        return stmts

    # ── Statements ───────────────────────────────────────────

    def parse_stmt(self) -> Stmt:
        if self.at("print"):
            return self.parse_print_stmt()
        if self.at("{"):
            pos = self._pos()
            return BlockStmt(pos, self.parse_block(""))
        if self.at("if"):
            return self.parse_if_stmt()
        if self.at("while"):
            return self.parse_while_stmt()
        if self.at("for"):
            return self.parse_for_stmt()
        if self.at("return"):
            return self.parse_return_stmt()
        return self.parse_expr_stmt()

    def parse_print_stmt(self) -> PrintStmt:
        pos = self._pos()
        self.advance()
        value = self.parse_expr()
        self.expect(";", "after value")
        return PrintStmt(pos, value)

    def parse_if_stmt(self) -> IfStmt:
        pos = self._pos()
        self.advance()
        self.expect("(", "after 'if'")
        cond = self.parse_expr()
        self.expect(")", "after if condition")
        then_branch = self.parse_stmt()
        else_branch: Stmt | None = None
        if self.at("else"):
            self.advance()
            else_branch = self.parse_stmt()
        return IfStmt(pos, cond, then_branch, else_branch)

    def parse_while_stmt(self) -> WhileStmt:
        pos = self._pos()
        self.advance()
        self.expect("(", "after 'while'")
        cond = self.parse_expr()
        self.expect(")", "after condition")
        body = self.parse_stmt()
        return WhileStmt(pos, cond, body)

    def parse_for_stmt(self) -> Stmt:
        """for (init; cond; step) body: desugared into a while loop."""
        pos = self._pos()
        self.advance()
        self.expect("(", "after 'for'")

        init: Stmt | None
        if self.at(";"):
            self.advance()
            init = None
        elif self.at("var"):
            init = self.parse_var_decl()
        else:
            init = self.parse_expr_stmt()

        cond: Expr | None = None
        if not self.at(";"):
            cond = self.parse_expr()
        self.expect(";", "after loop condition")

        step: Expr | None = None
        if not self.at(")"):
            step = self.parse_expr()
        self.expect(")", "after for clauses")

        body = self.parse_stmt()
        if step is not None:
            body = BlockStmt(body.pos, [body, ExprStmt(step.pos, step)])
        if cond is None:
            cond = Literal(pos, True)
        loop: Stmt = WhileStmt(pos, cond, body)
        if init is not None:
            loop = BlockStmt(pos, [init, loop])
        return loop

    def parse_return_stmt(self) -> ReturnStmt:
        pos = self._pos()
        self.advance()
        value: Expr | None = None
        if not self.at(";"):
            value = self.parse_expr()
        self.expect(";", "after return value")
        return ReturnStmt(pos, value)

    def parse_expr_stmt(self) -> ExprStmt:
        pos = self._pos()
        expr = self.parse_expr()
        self.expect(";", "after expression")
        return ExprStmt(pos, expr)

    # ── Expressions ──────────────────────────────────────────

    def parse_expr(self) -> Expr:
        return self.parse_assignment()

    def parse_assignment(self) -> Expr:
        """Assignment = ( Call '.' )? IDENT '=' Assignment | Or"""
        expr = self.parse_or()
        if self.at("="):
            equals = self.advance()
            value = self.parse_assignment()
            if isinstance(expr, Variable):
                return Assign(expr.pos, expr.name, value)
            if isinstance(expr, Get):
                return Set(expr.pos, expr.obj, expr.name, value)
            self.report("invalid assignment target", equals)
        return expr

    def parse_or(self) -> Expr:
        """Or = And ( 'or' And )*"""
        left = self.parse_and()
        while self.at("or"):
            self.advance()
            right = self.parse_and()
            left = Logical(left.pos, "or", left, right)
        return left

    def parse_and(self) -> Expr:
        """And = Equality ( 'and' Equality )*"""
        left = self.parse_equality()
        while self.at("and"):
            self.advance()
            right = self.parse_equality()
            left = Logical(left.pos, "and", left, right)
        return left

    def parse_equality(self) -> Expr:
        """Equality = Comparison ( ( '==' | '!=' ) Comparison )*"""
        left = self.parse_comparison()
        while self.current().lexeme in EQUALITY_OPS:
            op_tok = self.advance()
            right = self.parse_comparison()
            left = Binary(self._tok_pos(op_tok), op_tok.lexeme, left, right)
        return left

    def parse_comparison(self) -> Expr:
        """Comparison = Term ( CompOp Term )*"""
        left = self.parse_term()
        while self.current().lexeme in COMPARE_OPS:
            op_tok = self.advance()
            right = self.parse_term()
            left = Binary(self._tok_pos(op_tok), op_tok.lexeme, left, right)
        return left

    def parse_term(self) -> Expr:
        """Term = Factor ( ( '+' | '-' ) Factor )*"""
        left = self.parse_factor()
        while self.at("+") or self.at("-"):
            op_tok = self.advance()
            right = self.parse_factor()
            left = Binary(self._tok_pos(op_tok), op_tok.lexeme, left, right)
        return left

    def parse_factor(self) -> Expr:
        """Factor = Unary ( ( '*' | '/' ) Unary )*"""
        left = self.parse_unary()
        while self.at("*") or self.at("/"):
            op_tok = self.advance()
            right = self.parse_unary()
            left = Binary(self._tok_pos(op_tok), op_tok.lexeme, left, right)
        return left

    def parse_unary(self) -> Expr:
        """Unary = ( '!' | '-' ) Unary | Call"""
        if self.at("!") or self.at("-"):
            pos = self._pos()
            op = self.advance().lexeme
            operand = self.parse_unary()
            return Unary(pos, op, operand)
        return self.parse_call()

    def parse_call(self) -> Expr:
        """Call = Primary ( '(' Args? ')' | '.' IDENT )*"""
        expr = self.parse_primary()
        while True:
            if self.at("("):
                self.advance()
                args = self.parse_arg_list()
                paren = self.expect(")", "after arguments")
                expr = Call(self._tok_pos(paren), expr, args)
            elif self.at("."):
                self.advance()
                name_tok = self.expect_ident("property name after '.'")
                expr = Get(self._tok_pos(name_tok), expr, name_tok.lexeme)
            else:
                break
        return expr

    def parse_arg_list(self) -> list[Expr]:
        """Args = Expr ( ',' Expr )*"""
        args: list[Expr] = []
        if self.at(")"):
            return args
        while True:
            if len(args) >= MAX_ARGS:
                self.report(
                    "can't have more than " + str(MAX_ARGS) + " arguments",
                    self.current(),
                )
            args.append(self.parse_expr())
            if not self.at(","):
                return args
            self.advance()

    def parse_primary(self) -> Expr:
        """Parse a primary expression."""
        tok = self.current()
        pos = self._pos()

        if tok.type == TK_NUMBER or tok.type == TK_STRING:
            self.advance()
            return Literal(pos, tok.literal)
        if tok.type == "true":
            self.advance()
            return Literal(pos, True)
        if tok.type == "false":
            self.advance()
            return Literal(pos, False)
        if tok.type == "nil":
            self.advance()
            return Literal(pos, None)
        if tok.type == "this":
            self.advance()
            return This(pos)
        if tok.type == "super":
            self.advance()
            self.expect(".", "after 'super'")
            method_tok = self.expect_ident("superclass method name")
            return Super(pos, method_tok.lexeme)
        if tok.type == TK_IDENT:
            self.advance()
            return Variable(pos, tok.lexeme)
        if tok.type == "fun":
            return self.parse_lambda()
        if self.at("("):
            self.advance()
            inner = self.parse_expr()
            self.expect(")", "after expression")
            return Grouping(pos, inner)

        raise self.error("expected expression, got " + _describe(tok))

    def parse_lambda(self) -> Lambda:
        """Lambda = 'fun' '(' Params? ')' Block"""
        pos = self._pos()
        self.expect("fun", "")
        self.expect("(", "after 'fun'")
        params = self.parse_param_list()
        self.expect(")", "after parameters")
        body = self.parse_block("before function body")
        return Lambda(pos, params, body)


def parse_tokens(tokens: list[Token]) -> tuple[list[Stmt], list[ParseError]]:
    """Parse a scanned token list. Returns statements and collected errors."""
    with deep_recursion(len(tokens) * _FRAMES_PER_TOKEN):
        return Parser(tokens).parse()
