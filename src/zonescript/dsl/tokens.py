"""
Token types for the zonescript lexers.

Both front ends share one token vocabulary:
- the Lua dialect operators author zones in
- the dnscontrol JavaScript subset the serializer emits

Token type categories follow error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the lexers."""

    # --- Literals ---
    INT_LITERAL = auto()        # 42, 0xff
    FLOAT_LITERAL = auto()      # 3.14, 1e-9, .5
    STRING_LITERAL = auto()     # "hello", 'hello', [[long]]
    BOOL_LITERAL = auto()       # true, false
    NIL_LITERAL = auto()        # nil / null / undefined

    # --- Identifiers ---
    IDENTIFIER = auto()

    # --- Lua keywords ---
    AND = auto()
    BREAK = auto()
    DO = auto()
    ELSE = auto()
    ELSEIF = auto()
    END = auto()
    FOR = auto()
    FUNCTION = auto()
    GOTO = auto()               # reserved, rejected by the parser
    IF = auto()
    IN = auto()
    LOCAL = auto()
    NOT = auto()
    OR = auto()
    REPEAT = auto()
    RETURN = auto()
    THEN = auto()
    UNTIL = auto()
    WHILE = auto()

    # --- Native keywords ---
    VAR = auto()                # var / let / const

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    DOUBLE_SLASH = auto()       # // (floor division)
    PERCENT = auto()            # %
    CARET = auto()              # ^ (power)
    HASH = auto()               # # (length)
    CONCAT = auto()             # ..
    ELLIPSIS = auto()           # ...

    # --- Comparison operators ---
    EQ = auto()                 # ==
    NE = auto()                 # ~=
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    SEMICOLON = auto()          # ;
    COLON = auto()              # :
    COMMA = auto()              # ,
    DOT = auto()                # .

    # --- Special ---
    EOF = auto()


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


def point_span(line: int = 1, column: int = 1, filename: Optional[str] = None) -> SourceSpan:
    """Build a zero-width span, used where no source text exists."""
    loc = SourceLocation(line, column, 0, filename)
    return SourceSpan(loc, loc)


@dataclass(frozen=True)
class Token:
    """A single token from a lexer."""
    type: TokenType
    value: Any              # The actual value (int, float, str, etc.)
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
                         TokenType.STRING_LITERAL, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name

    def describe(self) -> str:
        """Short human form used in parser messages."""
        if self.type == TokenType.EOF:
            return "end of file"
        if self.type == TokenType.STRING_LITERAL:
            return "string literal"
        return f"'{self.lexeme}'"


LUA_KEYWORDS: dict[str, TokenType] = {
    "and": TokenType.AND,
    "break": TokenType.BREAK,
    "do": TokenType.DO,
    "else": TokenType.ELSE,
    "elseif": TokenType.ELSEIF,
    "end": TokenType.END,
    "false": TokenType.BOOL_LITERAL,
    "for": TokenType.FOR,
    "function": TokenType.FUNCTION,
    "goto": TokenType.GOTO,
    "if": TokenType.IF,
    "in": TokenType.IN,
    "local": TokenType.LOCAL,
    "nil": TokenType.NIL_LITERAL,
    "not": TokenType.NOT,
    "or": TokenType.OR,
    "repeat": TokenType.REPEAT,
    "return": TokenType.RETURN,
    "then": TokenType.THEN,
    "true": TokenType.BOOL_LITERAL,
    "until": TokenType.UNTIL,
    "while": TokenType.WHILE,
}


NATIVE_KEYWORDS: dict[str, TokenType] = {
    "var": TokenType.VAR,
    "let": TokenType.VAR,
    "const": TokenType.VAR,
    "true": TokenType.BOOL_LITERAL,
    "false": TokenType.BOOL_LITERAL,
    "null": TokenType.NIL_LITERAL,
    "undefined": TokenType.NIL_LITERAL,
}


def keyword_value(token_type: TokenType, lexeme: str) -> Any:
    """Literal value carried by a keyword token."""
    if token_type == TokenType.BOOL_LITERAL:
        return lexeme == "true"
    if token_type == TokenType.NIL_LITERAL:
        return None
    return lexeme
