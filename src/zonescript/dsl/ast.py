"""
Abstract Syntax Tree (AST) node definitions shared by both zonescript front ends.

The Lua parser and the native (JavaScript subset) parser both produce a
Chunk built from these nodes, so a single interpreter executes either.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Union
from abc import ABC
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal value (int, float, string, bool, nil)."""
    value: Union[int, float, str, bool, None]
    literal_type: TokenType  # INT_LITERAL, FLOAT_LITERAL, STRING_LITERAL, BOOL_LITERAL, NIL_LITERAL


@dataclass
class Identifier(Expression):
    """A variable, global or directive name reference."""
    name: str


@dataclass
class Vararg(Expression):
    """The '...' expression inside a variadic function."""
    pass


@dataclass
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, x and y, s .. t)."""
    left: Expression
    operator: TokenType  # Includes AND, OR, CONCAT
    right: Expression


@dataclass
class UnaryOp(Expression):
    """A unary operation (not x, -n, #t)."""
    operator: TokenType
    operand: Expression


@dataclass
class FunctionCall(Expression):
    """A function or directive call (e.g., A("www", "1.2.3.4"))."""
    callee: Expression
    arguments: List[Expression]


@dataclass
class MethodCall(Expression):
    """A colon call (e.g., rec:TTL(60))."""
    object: Expression
    method: str
    arguments: List[Expression]


@dataclass
class MemberAccess(Expression):
    """Field access (e.g., string.format)."""
    object: Expression
    member: str


@dataclass
class IndexAccess(Expression):
    """Index access (e.g., hosts[1])."""
    object: Expression
    index: Expression


@dataclass
class TableField(AstNode):
    """One field of a table constructor.

    key is None for positional fields, a Literal for name = value and
    "key": value fields, or any expression for [expr] = value fields.
    """
    key: Optional[Expression]
    value: Expression


@dataclass
class TableConstructor(Expression):
    """A table constructor ({...}), also used for native object and array literals."""
    fields: List[TableField] = field(default_factory=list)


@dataclass
class FunctionBody(AstNode):
    """Parameters and body shared by function expressions and declarations."""
    params: List[str]
    is_variadic: bool
    body: "Block"


@dataclass
class FunctionExpr(Expression):
    """An anonymous function (function (a, b) ... end)."""
    function: FunctionBody
    name: Optional[str] = None  # For tracebacks


@dataclass
class Paren(Expression):
    """A parenthesized expression; truncates multiple results to one."""
    inner: Expression


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class LocalStatement(Statement):
    """local a, b = 1, 2 (also native var/let/const)."""
    names: List[str]
    values: List[Expression] = field(default_factory=list)


@dataclass
class LocalFunction(Statement):
    """local function f(...) ... end"""
    name: str
    function: FunctionBody


@dataclass
class FunctionDeclaration(Statement):
    """function a.b.c(...) ... end / function a:m(...) ... end"""
    path: List[str]             # a, b, c
    method: Optional[str]       # m when declared with ':'
    function: FunctionBody


@dataclass
class AssignmentStatement(Statement):
    """a, t.x, t[i] = e1, e2, e3"""
    targets: List[Expression]   # Identifier, MemberAccess or IndexAccess
    values: List[Expression]


@dataclass
class ExpressionStatement(Statement):
    """A call used as a statement."""
    expression: Expression


@dataclass
class ElifBranch(AstNode):
    """An elseif branch of an if statement."""
    condition: Expression
    body: "Block"


@dataclass
class IfStatement(Statement):
    condition: Expression
    then_branch: "Block"
    elif_branches: List[ElifBranch] = field(default_factory=list)
    else_branch: Optional["Block"] = None


@dataclass
class WhileStatement(Statement):
    condition: Expression
    body: "Block"


@dataclass
class RepeatStatement(Statement):
    """repeat ... until cond; cond sees the body's locals."""
    body: "Block"
    condition: Expression


@dataclass
class NumericFor(Statement):
    """for i = start, stop [, step] do ... end"""
    variable: str
    start: Expression
    stop: Expression
    step: Optional[Expression]
    body: "Block"


@dataclass
class GenericFor(Statement):
    """for k, v in explist do ... end"""
    names: List[str]
    iterators: List[Expression]
    body: "Block"


@dataclass
class DoStatement(Statement):
    body: "Block"


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ReturnStatement(Statement):
    values: List[Expression] = field(default_factory=list)


@dataclass
class Block(AstNode):
    """A sequence of statements with its own local scope."""
    statements: List[Statement] = field(default_factory=list)


@dataclass
class Chunk(AstNode):
    """A complete source unit."""
    body: Block
    filename: Optional[str] = None
    syntax: str = "lua"
