"""
Parser for the native dnscontrol JavaScript subset.

Accepts the statement forms dnscontrol configurations are written in:
variable declarations (var/let/const), assignments and call statements,
with object literals, array literals, strings, numbers, booleans and
null/undefined as values. The result is the same AST the Lua parser
builds, so one interpreter evaluates both syntaxes.
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan
from .ast import (
    Expression, Literal, Identifier, UnaryOp, FunctionCall, MemberAccess,
    IndexAccess, TableField, TableConstructor, Statement, LocalStatement,
    AssignmentStatement, ExpressionStatement, Block, Chunk,
)
from .parser import Parser, LITERAL_TOKENS
from .errors import error_unexpected_token, error_invalid_statement


# Tokens that may spell an object key besides identifiers and strings
KEYWORD_KEYS = (TokenType.BOOL_LITERAL, TokenType.NIL_LITERAL, TokenType.VAR)


class NativeParser(Parser):
    """
    Recursive descent parser for dnscontrol JavaScript.

    Reuses the token navigation of the Lua parser; only the grammar differs.
    """

    def _parse_expression(self) -> Expression:
        token = self._current()
        if token.type in (TokenType.MINUS, TokenType.PLUS):
            self._advance()
            operand = self._parse_expression()
            if token.type == TokenType.PLUS:
                return operand
            return UnaryOp(
                span=SourceSpan(token.span.start, operand.span.end),
                operator=TokenType.MINUS,
                operand=operand
            )
        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        start = self._current()
        expr = self._parse_primary_expr()

        while True:
            if self._check(TokenType.DOT):
                self._advance()
                member = self._consume(TokenType.IDENTIFIER, "property name").value
                expr = MemberAccess(span=self._span_from(start), object=expr, member=member)
            elif self._check(TokenType.LBRACKET):
                self._advance()
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = IndexAccess(span=self._span_from(start), object=expr, index=index)
            elif self._check(TokenType.LPAREN):
                args = self._parse_arguments()
                expr = FunctionCall(span=self._span_from(start), callee=expr, arguments=args)
            else:
                break

        return expr

    def _parse_arguments(self) -> List[Expression]:
        self._consume(TokenType.LPAREN, "'('")
        args = []
        while not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            if not self._match(TokenType.COMMA):
                break
        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        token = self._current()

        if token.type in LITERAL_TOKENS:
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            inner = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return inner

        if token.type == TokenType.LBRACE:
            return self._parse_object_literal()

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        self._error("expression")

    def _parse_object_literal(self) -> TableConstructor:
        """Parse { key: value, "quoted key": value, ... }."""
        start = self._consume(TokenType.LBRACE, "'{'")
        fields = []

        while not self._check(TokenType.RBRACE):
            key_tok = self._current()
            if key_tok.type in (TokenType.IDENTIFIER, TokenType.STRING_LITERAL) or key_tok.type in KEYWORD_KEYS:
                key_text = key_tok.lexeme if key_tok.type != TokenType.STRING_LITERAL else key_tok.value
            elif key_tok.type in (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL):
                key_text = str(key_tok.value)
            else:
                self._error("property name")
            self._advance()
            key = Literal(span=key_tok.span, value=key_text, literal_type=TokenType.STRING_LITERAL)
            self._consume(TokenType.COLON, "':'")
            value = self._parse_expression()
            fields.append(TableField(span=self._span_from(key_tok), key=key, value=value))
            if not self._match(TokenType.COMMA):
                break

        self._consume(TokenType.RBRACE, "'}'")
        return TableConstructor(span=self._span_from(start), fields=fields)

    def _parse_array_literal(self) -> TableConstructor:
        """Parse [a, b, c] into a sequence table."""
        start = self._consume(TokenType.LBRACKET, "'['")
        fields = []

        while not self._check(TokenType.RBRACKET):
            elem_start = self._current()
            value = self._parse_expression()
            fields.append(TableField(span=self._span_from(elem_start), key=None, value=value))
            if not self._match(TokenType.COMMA):
                break

        self._consume(TokenType.RBRACKET, "']'")
        return TableConstructor(span=self._span_from(start), fields=fields)

    def _parse_declaration(self) -> List[Statement]:
        """var a = 1, b; one local declaration per declarator."""
        self._advance()  # var / let / const
        statements = []
        while True:
            name_tok = self._consume(TokenType.IDENTIFIER, "variable name")
            values = []
            if self._match(TokenType.ASSIGN):
                values = [self._parse_expression()]
            statements.append(LocalStatement(span=self._span_from(name_tok), names=[name_tok.value], values=values))
            if not self._match(TokenType.COMMA):
                break
        return statements

    def _parse_native_statement(self) -> List[Statement]:
        start = self._current()

        if start.type == TokenType.VAR:
            statements = self._parse_declaration()
        else:
            expr = self._parse_expression()
            if self._match(TokenType.ASSIGN):
                if not isinstance(expr, (Identifier, MemberAccess, IndexAccess)):
                    raise error_unexpected_token(
                        "assignable target", "expression", expr.span, self._source_line(start)
                    )
                value = self._parse_expression()
                statements = [AssignmentStatement(span=self._span_from(start), targets=[expr], values=[value])]
            elif isinstance(expr, FunctionCall):
                statements = [ExpressionStatement(span=expr.span, expression=expr)]
            else:
                raise error_invalid_statement(expr.span, self._source_line(start))

        # Statements end at ';' or, by automatic semicolon insertion, a line break
        if not self._match(TokenType.SEMICOLON):
            if not self._is_at_end() and self._current().span.start.line == self.tokens[self.pos - 1].span.end.line:
                self._error("';'")
        return statements

    def parse_chunk(self) -> Chunk:
        start = self._current()
        statements = []
        while not self._is_at_end():
            if self._match(TokenType.SEMICOLON):
                continue
            statements.extend(self._parse_native_statement())

        if statements:
            body_span = SourceSpan(statements[0].span.start, statements[-1].span.end)
        else:
            body_span = SourceSpan(start.span.start, start.span.start)
        return Chunk(
            span=SourceSpan(start.span.start, self._current().span.end),
            body=Block(span=body_span, statements=statements),
            filename=self.filename,
            syntax="native",
        )


def parse_native(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None) -> Chunk:
    """
    Parse native-syntax tokens into a chunk.

    Raises:
        ParserError: If parsing fails
    """
    return NativeParser(tokens, filename, source).parse_chunk()
