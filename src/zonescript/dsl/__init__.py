"""
zonescript source front ends.

This module provides:
- Lexers: Tokenize the Lua dialect and the dnscontrol JavaScript subset
- Parsers: Build one shared AST from either syntax
- Errors: Diagnostics with source excerpts

The interpreter lives in zonescript.dsl.runtime.

Usage:
    from zonescript.dsl import parse_source

    chunk = parse_source('D("example.com", REG, A("@", "1.2.3.4"))', "dnscontrol.lua")
"""

from typing import Optional

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    LUA_KEYWORDS,
    NATIVE_KEYWORDS,
)

from .lexer import (
    LuaLexer,
    NativeLexer,
    tokenize,
    tokenize_native,
)

from .parser import (
    Parser,
    parse,
)

from .native import (
    NativeParser,
    parse_native,
)

from .ast import (
    AstNode,
    Expression,
    Statement,
    Block,
    Chunk,
)

from .errors import (
    Diagnostic,
    ErrorSeverity,
    DslError,
    DslSyntaxError,
    LexerError,
    ParserError,
    DirectiveError,
    UnknownDirective,
    ArgumentTypeError,
    ImmutableTarget,
    DuplicateDomain,
    UnresolvedReference,
    DuplicateProvider,
    IncludeError,
    SerializationError,
    ScriptError,
    ZoneIOError,
    format_error,
)

SYNTAXES = ("lua", "native")


def parse_source(source: str, filename: Optional[str] = None, syntax: str = "lua") -> Chunk:
    """
    Tokenize and parse source in the given syntax.

    Raises:
        ValueError: If syntax is not "lua" or "native"
        DslSyntaxError: If the source does not lex or parse
    """
    if syntax == "lua":
        return parse(tokenize(source, filename), filename, source)
    if syntax == "native":
        return parse_native(tokenize_native(source, filename), filename, source)
    raise ValueError(f"unknown syntax {syntax!r}; expected one of {', '.join(SYNTAXES)}")


__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'LUA_KEYWORDS',
    'NATIVE_KEYWORDS',

    # Lexers
    'LuaLexer',
    'NativeLexer',
    'tokenize',
    'tokenize_native',

    # Parsers
    'Parser',
    'NativeParser',
    'parse',
    'parse_native',
    'parse_source',
    'SYNTAXES',

    # AST
    'AstNode',
    'Expression',
    'Statement',
    'Block',
    'Chunk',

    # Errors
    'Diagnostic',
    'ErrorSeverity',
    'DslError',
    'DslSyntaxError',
    'LexerError',
    'ParserError',
    'DirectiveError',
    'UnknownDirective',
    'ArgumentTypeError',
    'ImmutableTarget',
    'DuplicateDomain',
    'UnresolvedReference',
    'DuplicateProvider',
    'IncludeError',
    'SerializationError',
    'ScriptError',
    'ZoneIOError',
    'format_error',
]
