"""
DSL-specific exceptions and error handling.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E2xx: Directive and document errors
- E3xx: Serialization errors
- E4xx: Script runtime errors
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, List, Union
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E201, etc.
    kind: str                       # SyntaxError, UnknownDirective, ...
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: SourceSpan
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)
    related: List["Diagnostic"] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code] Kind: message
        loc = f"{self.span.start}"
        parts.append(f"{loc}: {self.severity.value}[{self.code}] {self.kind}: {self.message}")

        # Source line with caret
        if show_source and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        for related in self.related:
            parts.append(f"    --> {related.span.start}: {related.message}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "severity": self.severity.value,
            "file": self.span.start.filename,
            "range": {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            },
            "hints": self.hints,
            "related": [r.to_json() for r in self.related],
        }


class DslError(Exception):
    """Base exception for DSL errors."""

    kind = "DSLError"

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def span(self) -> SourceSpan:
        return self.diagnostic.span

    def attach_source(self, lines: List[str], filename: Optional[str] = None) -> None:
        """Fill in the offending source line if it is not known yet."""
        if filename is not None and self.diagnostic.span.start.filename not in (None, filename):
            return
        if self.diagnostic.source_line is None:
            line = self.diagnostic.span.start.line
            if 1 <= line <= len(lines):
                self.diagnostic.source_line = lines[line - 1]

    def __str__(self) -> str:
        return self.diagnostic.format()


class DslSyntaxError(DslError):
    """Source text failed to tokenize or parse."""
    kind = "SyntaxError"


class LexerError(DslSyntaxError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(DslSyntaxError):
    """Error during parsing (E1xx)."""
    pass


class DirectiveError(DslError):
    """Error raised by directive dispatch or document validation (E2xx)."""
    pass


class UnknownDirective(DirectiveError):
    kind = "UnknownDirective"

    def __init__(self, diagnostic: Diagnostic, name: str):
        super().__init__(diagnostic)
        self.name = name


class ArgumentTypeError(DirectiveError):
    kind = "ArgumentType"

    def __init__(self, diagnostic: Diagnostic, directive: str, index: int,
                 expected: str, received: str):
        super().__init__(diagnostic)
        self.directive = directive
        self.index = index
        self.expected = expected
        self.received = received


class ImmutableTarget(DirectiveError):
    kind = "ImmutableTarget"


class DuplicateDomain(DirectiveError):
    kind = "DuplicateDomain"

    def __init__(self, diagnostic: Diagnostic, name: str,
                 first: SourceSpan, second: SourceSpan):
        super().__init__(diagnostic)
        self.name = name
        self.first = first
        self.second = second


class UnresolvedReference(DirectiveError):
    kind = "UnresolvedReference"

    def __init__(self, diagnostic: Diagnostic, name: str):
        super().__init__(diagnostic)
        self.name = name


class DuplicateProvider(DirectiveError):
    kind = "DuplicateProvider"


class IncludeError(DirectiveError):
    kind = "IncludeError"


class SerializationError(DslError):
    """A resolved value has no representation in the native syntax (E3xx)."""
    kind = "SerializationError"


class ScriptError(DslError):
    """Runtime fault raised while executing a script (E4xx)."""
    kind = "ScriptError"


class ZoneIOError(Exception):
    """Reading the source or committing the output failed."""

    kind = "IOError"

    def __init__(self, path: Union[str, Path], cause: OSError, action: str = "access"):
        self.path = Path(path)
        self.cause = cause
        self.action = action
        super().__init__(f"cannot {action} {self.path}: {cause.strerror or cause}")


def _diag(code: str, kind: str, message: str, span: SourceSpan,
          source_line: Optional[str] = None, hints: Optional[List[str]] = None) -> Diagnostic:
    return Diagnostic(
        code=code,
        kind=kind,
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=hints or [],
    )


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    return LexerError(_diag("E001", "SyntaxError", f"unexpected character '{char}'", span, source_line))


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    return LexerError(_diag(
        "E002", "SyntaxError", "unterminated string literal", span, source_line,
        hints=["string literals must be closed with matching quotes"],
    ))


def error_unterminated_long_bracket(what: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Unterminated long string or long comment."""
    return LexerError(_diag("E003", "SyntaxError", f"unterminated long {what}", span, source_line))


def error_unterminated_comment(span: SourceSpan, source_line: str = None) -> LexerError:
    """E004: Unterminated block comment."""
    return LexerError(_diag(
        "E004", "SyntaxError", "unterminated comment (expected closing */)", span, source_line,
    ))


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E005: Invalid escape sequence in string."""
    return LexerError(_diag("E005", "SyntaxError", f"invalid escape sequence '\\{seq}'", span, source_line))


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E006: Invalid number literal."""
    return LexerError(_diag("E006", "SyntaxError", f"invalid number literal '{text}'", span, source_line))


def error_invalid_utf8(span: SourceSpan, source_line: str = None) -> LexerError:
    """E007: String escapes do not form valid UTF-8."""
    return LexerError(_diag(
        "E007", "SyntaxError", "string literal is not valid UTF-8", span, source_line,
        hints=["byte escapes such as \\xC3\\xA9 must spell a complete UTF-8 sequence"],
    ))


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    return ParserError(_diag("E101", "SyntaxError", f"expected {expected}, found {found}", span, source_line))


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    """E102: Unexpected end of file."""
    return ParserError(_diag("E102", "SyntaxError", f"unexpected end of file, expected {expected}", span))


def error_invalid_statement(span: SourceSpan, source_line: str = None) -> ParserError:
    """E103: Expression used where a statement is required."""
    return ParserError(_diag(
        "E103", "SyntaxError", "syntax error: expression is not a statement", span, source_line,
        hints=["only calls and assignments can stand alone as statements"],
    ))


def error_unsupported_construct(what: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: Construct outside the supported language subset."""
    return ParserError(_diag("E104", "SyntaxError", f"{what} is not supported", span, source_line))


# --- Directive and document error codes ---

def error_unknown_directive(name: str, span: SourceSpan) -> UnknownDirective:
    """E201: Call to a name that is neither a directive nor a bound function."""
    diag = _diag(
        "E201", "UnknownDirective",
        f"unknown directive '{name}' at line {span.start.line}", span,
    )
    return UnknownDirective(diag, name)


def error_argument_type(directive: str, index: int, expected: str, received: str,
                        span: SourceSpan) -> ArgumentTypeError:
    """E202: Directive argument has the wrong kind (or arity)."""
    diag = _diag(
        "E202", "ArgumentType",
        f"{directive}: argument {index} expected {expected}, received {received}", span,
    )
    return ArgumentTypeError(diag, directive, index, expected, received)


def error_immutable_target(what: str, reason: str, span: SourceSpan) -> ImmutableTarget:
    """E203: Mutation of a closed record or domain."""
    return ImmutableTarget(_diag("E203", "ImmutableTarget", f"cannot modify {what}: {reason}", span))


def error_duplicate_domain(name: str, first: SourceSpan, second: SourceSpan) -> DuplicateDomain:
    """E204: Two domain declarations share a name."""
    diag = _diag(
        "E204", "DuplicateDomain",
        f"domain '{name}' declared twice: first at {first.start}, again at {second.start}",
        second,
    )
    diag.related.append(_diag("E204", "DuplicateDomain", "first declared here", first))
    return DuplicateDomain(diag, name, first, second)


def error_unresolved_reference(name: str, span: SourceSpan) -> UnresolvedReference:
    """E205: A late-bound name was never assigned."""
    diag = _diag(
        "E205", "UnresolvedReference",
        f"'{name}' is never bound (first used at {span.start})", span,
        hints=[f"assign a value to the global '{name}' anywhere in the configuration"],
    )
    return UnresolvedReference(diag, name)


def error_duplicate_provider(kind: str, name: str, first: SourceSpan, span: SourceSpan) -> DuplicateProvider:
    """E206: A provider name is registered twice."""
    return DuplicateProvider(_diag(
        "E206", "DuplicateProvider",
        f"{kind} '{name}' already registered at {first.start}", span,
    ))


def error_include(name: str, reason: str, span: SourceSpan) -> IncludeError:
    """E207: An included unit could not be loaded."""
    return IncludeError(_diag("E207", "IncludeError", f"cannot include '{name}': {reason}", span))


# --- Serialization error codes ---

def error_unserializable(what: str, span: SourceSpan) -> SerializationError:
    """E301: Value has no native-syntax form."""
    return SerializationError(_diag("E301", "SerializationError", what, span))


# --- Runtime error codes ---

def error_script(message: str, span: SourceSpan) -> ScriptError:
    """E400: Lua runtime error."""
    return ScriptError(_diag("E400", "ScriptError", message, span))


def format_error(error: Exception) -> str:
    """Render any pipeline error the way the CLI reports it."""
    if isinstance(error, DslError):
        return error.diagnostic.format()
    if isinstance(error, ZoneIOError):
        return f"{error.path}: error {error.kind}: {error}"
    return f"error: {error}"
