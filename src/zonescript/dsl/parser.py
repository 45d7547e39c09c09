"""
Recursive descent parser for the zonescript Lua dialect.

Converts a token stream into an Abstract Syntax Tree (AST).
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan
from .ast import (
    # Expressions
    Expression, Literal, Identifier, Vararg, BinaryOp, UnaryOp,
    FunctionCall, MethodCall, MemberAccess, IndexAccess,
    TableField, TableConstructor, FunctionBody, FunctionExpr, Paren,
    # Statements
    Statement, LocalStatement, LocalFunction, FunctionDeclaration,
    AssignmentStatement, ExpressionStatement, ElifBranch, IfStatement,
    WhileStatement, RepeatStatement, NumericFor, GenericFor, DoStatement,
    BreakStatement, ReturnStatement, Block, Chunk,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_statement,
    error_unsupported_construct,
)


BLOCK_END = (TokenType.END, TokenType.ELSE, TokenType.ELSEIF, TokenType.UNTIL, TokenType.EOF)

LITERAL_TOKENS = (
    TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL, TokenType.STRING_LITERAL,
    TokenType.BOOL_LITERAL, TokenType.NIL_LITERAL,
)


class Parser:
    """
    Recursive descent parser for the Lua dialect.

    Usage:
        parser = Parser(tokens, "dnscontrol.lua", source)
        chunk = parser.parse_chunk()

    The parser implements standard precedence climbing for expressions:
        Lowest:  or
                 and
                 < > <= >= ~= ==
                 .. (right-associative)
                 + -
                 * / // %
                 unary (not # -)
        Highest: ^ (power, right-associative)
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 3,
        TokenType.GT: 3,
        TokenType.LE: 3,
        TokenType.GE: 3,
        TokenType.CONCAT: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.DOUBLE_SLASH: 6,
        TokenType.PERCENT: 6,
        TokenType.CARET: 8,
    }

    UNARY_PRECEDENCE = 7

    # Right-associative operators
    RIGHT_ASSOCIATIVE = {TokenType.CARET, TokenType.CONCAT}

    def __init__(self, tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None):
        self.tokens = tokens
        self.filename = filename
        self.source = source
        self.pos = 0
        self._lines = source.splitlines() if source is not None else []
        # Whether '...' is legal in the function currently being parsed
        self._vararg_stack = [True]
        # Enclosing loop count per function; break needs at least one
        self._loop_stack = [0]

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        """Peek at token at current position + offset."""
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, token: Token) -> Optional[str]:
        line = token.span.start.line
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(expected, token.describe(), token.span, self._source_line(token))

    def _unsupported(self, what: str, token: Token) -> None:
        raise error_unsupported_construct(what, token.span, self._source_line(token))

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to current position."""
        prev_pos = max(0, self.pos - 1)
        end_token = self.tokens[prev_pos]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_binary_expr(1)

    def _parse_expression_list(self) -> List[Expression]:
        exprs = [self._parse_expression()]
        while self._match(TokenType.COMMA):
            exprs.append(self._parse_expression())
        return exprs

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator

            next_precedence = precedence if op_token.type in self.RIGHT_ASSOCIATIVE else precedence + 1
            right = self._parse_binary_expr(next_precedence)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.type,
                right=right
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (not, -, #); '^' binds tighter than these."""
        if self._check_any(TokenType.NOT, TokenType.MINUS, TokenType.HASH):
            op = self._advance()
            operand = self._parse_binary_expr(self.UNARY_PRECEDENCE)
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.type,
                operand=operand
            )
        return self._parse_simple_expr()

    def _parse_simple_expr(self) -> Expression:
        """Parse literals, '...', function expressions, tables or suffixed expressions."""
        token = self._current()

        if token.type in LITERAL_TOKENS:
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type == TokenType.ELLIPSIS:
            if not self._vararg_stack[-1]:
                raise error_unexpected_token(
                    "expression ('...' outside a variadic function)", "'...'",
                    token.span, self._source_line(token)
                )
            self._advance()
            return Vararg(span=token.span)

        if token.type == TokenType.FUNCTION:
            self._advance()
            body = self._parse_function_body(token)
            return FunctionExpr(span=self._span_from(token), function=body)

        if token.type == TokenType.LBRACE:
            return self._parse_table_constructor()

        return self._parse_suffixed_expr()

    def _parse_primary_expr(self) -> Expression:
        """Parse a name or a parenthesized expression."""
        token = self._current()

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            inner = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return Paren(span=self._span_from(token), inner=inner)

        self._error("expression")

    def _parse_suffixed_expr(self) -> Expression:
        """Parse postfix chains (field access, indexing, calls, method calls)."""
        start = self._current()
        expr = self._parse_primary_expr()

        while True:
            if self._check(TokenType.DOT):
                self._advance()
                member = self._consume(TokenType.IDENTIFIER, "field name").value
                expr = MemberAccess(span=self._span_from(start), object=expr, member=member)
            elif self._check(TokenType.LBRACKET):
                self._advance()
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = IndexAccess(span=self._span_from(start), object=expr, index=index)
            elif self._check(TokenType.COLON):
                self._advance()
                method = self._consume(TokenType.IDENTIFIER, "method name").value
                args = self._parse_call_arguments()
                expr = MethodCall(span=self._span_from(start), object=expr, method=method, arguments=args)
            elif self._check_any(TokenType.LPAREN, TokenType.STRING_LITERAL, TokenType.LBRACE):
                args = self._parse_call_arguments()
                expr = FunctionCall(span=self._span_from(start), callee=expr, arguments=args)
            else:
                break

        return expr

    def _parse_call_arguments(self) -> List[Expression]:
        """Parse f(args), f"str" or f{table}."""
        token = self._current()

        if token.type == TokenType.STRING_LITERAL:
            self._advance()
            return [Literal(span=token.span, value=token.value, literal_type=token.type)]

        if token.type == TokenType.LBRACE:
            return [self._parse_table_constructor()]

        self._consume(TokenType.LPAREN, "function arguments")
        args = []
        if not self._check(TokenType.RPAREN):
            args = self._parse_expression_list()
        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_table_constructor(self) -> TableConstructor:
        """Parse {f1, name = f2, [k] = f3; ...}."""
        start = self._consume(TokenType.LBRACE, "'{'")
        fields = []

        while not self._check(TokenType.RBRACE):
            field_start = self._current()
            if self._check(TokenType.LBRACKET):
                self._advance()
                key = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                self._consume(TokenType.ASSIGN, "'='")
                value = self._parse_expression()
                fields.append(TableField(span=self._span_from(field_start), key=key, value=value))
            elif self._check(TokenType.IDENTIFIER) and self._peek(1).type == TokenType.ASSIGN:
                name_tok = self._advance()
                self._advance()  # '='
                key = Literal(span=name_tok.span, value=name_tok.value, literal_type=TokenType.STRING_LITERAL)
                value = self._parse_expression()
                fields.append(TableField(span=self._span_from(field_start), key=key, value=value))
            else:
                value = self._parse_expression()
                fields.append(TableField(span=self._span_from(field_start), key=None, value=value))

            if not self._match(TokenType.COMMA, TokenType.SEMICOLON):
                break

        self._consume(TokenType.RBRACE, "'}'")
        return TableConstructor(span=self._span_from(start), fields=fields)

    def _parse_function_body(self, start: Token) -> FunctionBody:
        """Parse (params) block end."""
        self._consume(TokenType.LPAREN, "'('")
        params = []
        is_variadic = False

        if not self._check(TokenType.RPAREN):
            while True:
                if self._match(TokenType.ELLIPSIS):
                    is_variadic = True
                    break
                params.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RPAREN, "')'")

        self._vararg_stack.append(is_variadic)
        self._loop_stack.append(0)
        try:
            body = self._parse_block()
        finally:
            self._vararg_stack.pop()
            self._loop_stack.pop()
        self._consume(TokenType.END, "'end'")

        return FunctionBody(span=self._span_from(start), params=params, is_variadic=is_variadic, body=body)

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_block(self) -> Block:
        """Parse statements until a block terminator; 'return' must come last."""
        start = self._current()
        statements = []

        while not self._check_any(*BLOCK_END):
            if self._match(TokenType.SEMICOLON):
                continue
            if self._check(TokenType.RETURN):
                statements.append(self._parse_return_statement())
                break
            statements.append(self._parse_statement())

        if statements:
            span = SourceSpan(statements[0].span.start, statements[-1].span.end)
        else:
            span = SourceSpan(start.span.start, start.span.start)
        return Block(span=span, statements=statements)

    def _parse_statement(self) -> Statement:
        token = self._current()

        if token.type == TokenType.IF:
            return self._parse_if_statement()
        if token.type == TokenType.WHILE:
            return self._parse_while_statement()
        if token.type == TokenType.DO:
            self._advance()
            body = self._parse_block()
            self._consume(TokenType.END, "'end'")
            return DoStatement(span=self._span_from(token), body=body)
        if token.type == TokenType.FOR:
            return self._parse_for_statement()
        if token.type == TokenType.REPEAT:
            return self._parse_repeat_statement()
        if token.type == TokenType.FUNCTION:
            return self._parse_function_declaration()
        if token.type == TokenType.LOCAL:
            return self._parse_local_statement()
        if token.type == TokenType.BREAK:
            if not self._loop_stack[-1]:
                raise error_unexpected_token("statement", "'break' outside a loop", token.span, self._source_line(token))
            self._advance()
            return BreakStatement(span=token.span)
        if token.type == TokenType.GOTO:
            self._unsupported("'goto'", token)
        if token.type == TokenType.COLON and self._peek(1).type == TokenType.COLON:
            self._unsupported("labels", token)

        return self._parse_expression_statement()

    def _parse_expression_statement(self) -> Statement:
        start = self._current()
        expr = self._parse_suffixed_expr()

        if self._check_any(TokenType.ASSIGN, TokenType.COMMA):
            targets = [expr]
            while self._match(TokenType.COMMA):
                targets.append(self._parse_suffixed_expr())
            for target in targets:
                if not isinstance(target, (Identifier, MemberAccess, IndexAccess)):
                    raise error_unexpected_token(
                        "assignable target", "expression", target.span, self._source_line(start)
                    )
            self._consume(TokenType.ASSIGN, "'='")
            values = self._parse_expression_list()
            return AssignmentStatement(span=self._span_from(start), targets=targets, values=values)

        if not isinstance(expr, (FunctionCall, MethodCall)):
            raise error_invalid_statement(expr.span, self._source_line(start))
        return ExpressionStatement(span=expr.span, expression=expr)

    def _parse_local_statement(self) -> Statement:
        start = self._advance()  # 'local'

        if self._match(TokenType.FUNCTION):
            name = self._consume(TokenType.IDENTIFIER, "function name").value
            body = self._parse_function_body(start)
            return LocalFunction(span=self._span_from(start), name=name, function=body)

        names = [self._consume(TokenType.IDENTIFIER, "variable name").value]
        while self._match(TokenType.COMMA):
            names.append(self._consume(TokenType.IDENTIFIER, "variable name").value)
        if self._check(TokenType.LT):
            self._unsupported("variable attributes", self._current())

        values = []
        if self._match(TokenType.ASSIGN):
            values = self._parse_expression_list()
        return LocalStatement(span=self._span_from(start), names=names, values=values)

    def _parse_function_declaration(self) -> FunctionDeclaration:
        start = self._advance()  # 'function'
        path = [self._consume(TokenType.IDENTIFIER, "function name").value]
        while self._match(TokenType.DOT):
            path.append(self._consume(TokenType.IDENTIFIER, "field name").value)
        method = None
        if self._match(TokenType.COLON):
            method = self._consume(TokenType.IDENTIFIER, "method name").value

        body = self._parse_function_body(start)
        if method is not None:
            body.params.insert(0, "self")
        return FunctionDeclaration(span=self._span_from(start), path=path, method=method, function=body)

    def _parse_if_statement(self) -> IfStatement:
        start = self._advance()  # 'if'
        condition = self._parse_expression()
        self._consume(TokenType.THEN, "'then'")
        then_branch = self._parse_block()

        elif_branches = []
        while self._check(TokenType.ELSEIF):
            elif_start = self._advance()
            elif_cond = self._parse_expression()
            self._consume(TokenType.THEN, "'then'")
            elif_body = self._parse_block()
            elif_branches.append(ElifBranch(span=self._span_from(elif_start), condition=elif_cond, body=elif_body))

        else_branch = None
        if self._match(TokenType.ELSE):
            else_branch = self._parse_block()

        self._consume(TokenType.END, "'end'")
        return IfStatement(
            span=self._span_from(start),
            condition=condition,
            then_branch=then_branch,
            elif_branches=elif_branches,
            else_branch=else_branch
        )

    def _parse_loop_body(self) -> Block:
        self._loop_stack[-1] += 1
        try:
            return self._parse_block()
        finally:
            self._loop_stack[-1] -= 1

    def _parse_while_statement(self) -> WhileStatement:
        start = self._advance()  # 'while'
        condition = self._parse_expression()
        self._consume(TokenType.DO, "'do'")
        body = self._parse_loop_body()
        self._consume(TokenType.END, "'end'")
        return WhileStatement(span=self._span_from(start), condition=condition, body=body)

    def _parse_repeat_statement(self) -> RepeatStatement:
        start = self._advance()  # 'repeat'
        body = self._parse_loop_body()
        self._consume(TokenType.UNTIL, "'until'")
        condition = self._parse_expression()
        return RepeatStatement(span=self._span_from(start), body=body, condition=condition)

    def _parse_for_statement(self) -> Statement:
        start = self._advance()  # 'for'
        first = self._consume(TokenType.IDENTIFIER, "loop variable").value

        if self._match(TokenType.ASSIGN):
            loop_start = self._parse_expression()
            self._consume(TokenType.COMMA, "','")
            loop_stop = self._parse_expression()
            step = None
            if self._match(TokenType.COMMA):
                step = self._parse_expression()
            self._consume(TokenType.DO, "'do'")
            body = self._parse_loop_body()
            self._consume(TokenType.END, "'end'")
            return NumericFor(
                span=self._span_from(start), variable=first,
                start=loop_start, stop=loop_stop, step=step, body=body
            )

        names = [first]
        while self._match(TokenType.COMMA):
            names.append(self._consume(TokenType.IDENTIFIER, "loop variable").value)
        self._consume(TokenType.IN, "'=' or 'in'")
        iterators = self._parse_expression_list()
        self._consume(TokenType.DO, "'do'")
        body = self._parse_loop_body()
        self._consume(TokenType.END, "'end'")
        return GenericFor(span=self._span_from(start), names=names, iterators=iterators, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        start = self._advance()  # 'return'
        values = []
        if not self._check_any(*BLOCK_END) and not self._check(TokenType.SEMICOLON):
            values = self._parse_expression_list()
        self._match(TokenType.SEMICOLON)
        if not self._check_any(*BLOCK_END):
            self._error("end of block after 'return'")
        return ReturnStatement(span=self._span_from(start), values=values)

    def parse_chunk(self) -> Chunk:
        """Parse a complete source unit."""
        start = self._current()
        body = self._parse_block()
        if not self._is_at_end():
            self._error("statement")
        return Chunk(span=SourceSpan(start.span.start, self._current().span.end),
                     body=body, filename=self.filename, syntax="lua")


def parse(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None) -> Chunk:
    """
    Convenience function to parse Lua tokens into a chunk.

    Raises:
        ParserError: If parsing fails
    """
    parser = Parser(tokens, filename, source)
    return parser.parse_chunk()
