"""
Tree-walking interpreter for zonescript.

Executes a Chunk from either front end. Directive calls are dispatched
through the directive registry, which accumulates the ZoneDocument; all
other calls run Lua functions or builtins.
"""

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .values import (
    CallArgs, ClosedTableError, LuaFunction, LuaRuntimeError, LuaTable,
    is_number, is_truthy, lua_eq, lua_type, tostring, tonumber,
)
from .context import ExecutionContext, Scope, _MISSING
from .builtins import BuiltinFunction, BuiltinRegistry, get_builtin_registry
from .provenance import compute_source_signature

from .. import parse_source
from ..ast import (
    Chunk, Block, Statement, LocalStatement, LocalFunction, FunctionDeclaration,
    AssignmentStatement, ExpressionStatement, IfStatement, WhileStatement,
    RepeatStatement, NumericFor, GenericFor, DoStatement, BreakStatement,
    ReturnStatement, Expression, Literal, Identifier, Vararg, BinaryOp,
    UnaryOp, FunctionCall, MethodCall, MemberAccess, IndexAccess,
    TableConstructor, FunctionExpr, FunctionBody, Paren,
)
from ..errors import (
    DslError,
    ZoneIOError,
    error_immutable_target,
    error_include,
    error_script,
    error_unknown_directive,
    error_unresolved_reference,
)
from ..tokens import SourceSpan, TokenType
from ...model import Effect, Reference, ZoneDocument
from ...registry import Directive, DirectiveRegistry, get_directive_registry

log = structlog.get_logger(__name__)


@dataclass
class Evaluation:
    """Result of evaluating one entrypoint source."""
    document: ZoneDocument
    globals: Dict[str, Any]
    filename: Optional[str] = None
    syntax: str = "lua"
    source_signature: str = ""
    return_values: List[Any] = field(default_factory=list)

    @property
    def effects(self) -> Tuple[Effect, ...]:
        """Ordered top-level side effects, included units spliced in place."""
        return tuple(self.document.effects)


ARITHMETIC = {
    TokenType.PLUS, TokenType.MINUS, TokenType.STAR, TokenType.SLASH,
    TokenType.DOUBLE_SLASH, TokenType.PERCENT, TokenType.CARET,
}

COMPARISON = {TokenType.LT, TokenType.LE, TokenType.GT, TokenType.GE}


def _syntax_for(name: str, default: str) -> str:
    suffix = Path(name).suffix.lower()
    if suffix == ".js":
        return "native"
    if suffix == ".lua":
        return "lua"
    return default


def _runtime_error(exc: LuaRuntimeError, span: SourceSpan) -> DslError:
    """Attach a location to an error raised by a value helper or builtin."""
    if isinstance(exc, ClosedTableError):
        return error_immutable_target(exc.what, exc.reason, span)
    return error_script(exc.message, span)


class Interpreter:
    """
    Tree-walking interpreter for zonescript chunks.

    Evaluates AST nodes by dispatching to type-specific methods.
    """

    MAX_CALL_DEPTH = 100

    def __init__(self, registry: Optional[DirectiveRegistry] = None,
                 builtins: Optional[BuiltinRegistry] = None,
                 loader: Any = None):
        """
        Initialize the interpreter.

        Args:
            registry: Directive table; defaults to the global registry
            builtins: Standard library; defaults to the global registry
            loader: Resolves include() names to (source, canonical name)
        """
        self.registry = registry or get_directive_registry()
        self.builtin_registry = builtins or get_builtin_registry()
        self.loader = loader
        self._ctx: Optional[ExecutionContext] = None

    # =========================================================================
    # Entry points
    # =========================================================================

    def evaluate_chunk(self, chunk: Chunk, source: str) -> Evaluation:
        """Run a parsed entrypoint chunk against a fresh document."""
        ctx = ExecutionContext(
            filename=chunk.filename,
            syntax=chunk.syntax,
            source_lines=source.splitlines(),
            builtins=self.builtin_registry.install(),
        )
        if chunk.filename:
            ctx.include_stack.append(self._canonical(chunk.filename))

        self._ctx = ctx
        try:
            try:
                self._run_statements(chunk.body.statements, ctx)
            except RecursionError:
                raise error_script("stack overflow (recursion too deep)", chunk.span) from None
        except DslError as exc:
            exc.attach_source(ctx.source_lines, chunk.filename)
            raise
        finally:
            self._ctx = None

        values = ctx.return_values
        ctx.clear_return()
        return Evaluation(
            document=ctx.document,
            globals=ctx.globals,
            filename=chunk.filename,
            syntax=chunk.syntax,
            source_signature=compute_source_signature(source),
            return_values=values,
        )

    def _canonical(self, name: str) -> str:
        if self.loader is not None and hasattr(self.loader, "canonical"):
            return self.loader.canonical(name)
        return name

    def include(self, name: str, span: SourceSpan) -> Any:
        """Evaluate another unit in the shared global environment."""
        ctx = self._ctx
        if self.loader is None:
            raise error_include(name, "no include loader is configured", span)

        try:
            source, resolved = self.loader.load(name, span.start.filename or ctx.filename)
        except ZoneIOError as exc:
            raise error_include(name, exc.cause.strerror or str(exc.cause), span) from exc
        except OSError as exc:
            raise error_include(name, exc.strerror or str(exc), span) from exc

        if resolved in ctx.include_stack:
            cycle = " -> ".join(ctx.include_stack + [resolved])
            raise error_include(name, f"include cycle: {cycle}", span)

        chunk = parse_source(source, resolved, _syntax_for(resolved, ctx.syntax))
        lines = source.splitlines()

        ctx.document.record_effect("include", resolved, span)
        log.debug("include.enter", file=resolved, parent=ctx.include_stack[-1] if ctx.include_stack else None)

        saved = (ctx.current_scope, ctx.filename, ctx.source_lines)
        ctx.current_scope = Scope(name=resolved)
        ctx.filename = resolved
        ctx.source_lines = lines
        ctx.include_stack.append(resolved)
        try:
            self._run_statements(chunk.body.statements, ctx)
            values = ctx.return_values
            ctx.clear_return()
        except DslError as exc:
            exc.attach_source(lines, resolved)
            raise
        finally:
            ctx.include_stack.pop()
            ctx.current_scope, ctx.filename, ctx.source_lines = saved

        return values[0] if values else None

    # =========================================================================
    # Statements
    # =========================================================================

    def _run_statements(self, statements: List[Statement], ctx: ExecutionContext) -> None:
        for stmt in statements:
            self._execute_statement(stmt, ctx)
            if ctx.interrupted:
                break

    def _execute_block(self, block: Block, ctx: ExecutionContext, name: str = "block") -> None:
        with ctx.new_scope(name):
            self._run_statements(block.statements, ctx)

    def _execute_statement(self, stmt: Statement, ctx: ExecutionContext) -> None:
        """Execute a statement."""
        if isinstance(stmt, ExpressionStatement):
            self._eval_multi(stmt.expression, ctx)
        elif isinstance(stmt, LocalStatement):
            self._execute_local(stmt, ctx)
        elif isinstance(stmt, AssignmentStatement):
            self._execute_assignment(stmt, ctx)
        elif isinstance(stmt, LocalFunction):
            ctx.declare_local(stmt.name, None)
            ctx.current_scope.set(stmt.name, self._make_function(stmt.function, ctx, stmt.name))
        elif isinstance(stmt, FunctionDeclaration):
            self._execute_function_declaration(stmt, ctx)
        elif isinstance(stmt, IfStatement):
            self._execute_if_statement(stmt, ctx)
        elif isinstance(stmt, WhileStatement):
            self._execute_while(stmt, ctx)
        elif isinstance(stmt, RepeatStatement):
            self._execute_repeat(stmt, ctx)
        elif isinstance(stmt, NumericFor):
            self._execute_numeric_for(stmt, ctx)
        elif isinstance(stmt, GenericFor):
            self._execute_generic_for(stmt, ctx)
        elif isinstance(stmt, DoStatement):
            self._execute_block(stmt.body, ctx, "do")
        elif isinstance(stmt, BreakStatement):
            ctx.signal_break()
        elif isinstance(stmt, ReturnStatement):
            ctx.signal_return(self._eval_explist(stmt.values, ctx))
        else:
            raise RuntimeError(f"Unknown statement type: {type(stmt).__name__}")

    def _execute_local(self, stmt: LocalStatement, ctx: ExecutionContext) -> None:
        values = self._adjust(self._eval_explist(stmt.values, ctx), len(stmt.names))
        for name, value in zip(stmt.names, values):
            ctx.declare_local(name, value)

    def _execute_assignment(self, stmt: AssignmentStatement, ctx: ExecutionContext) -> None:
        # Resolve target containers and keys before evaluating the right side
        targets = []
        for target in stmt.targets:
            if isinstance(target, Identifier):
                targets.append((None, target.name, target))
            elif isinstance(target, MemberAccess):
                targets.append((self._evaluate(target.object, ctx), target.member, target))
            else:
                targets.append((self._evaluate(target.object, ctx), self._evaluate(target.index, ctx), target))

        values = self._adjust(self._eval_explist(stmt.values, ctx), len(targets))
        for (container, key, node), value in zip(targets, values):
            if container is None and isinstance(node, Identifier):
                ctx.assign(key, value)
            else:
                self._set_index(container, key, value, node.span)

    def _execute_function_declaration(self, stmt: FunctionDeclaration, ctx: ExecutionContext) -> None:
        qualified = ".".join(stmt.path) + (f":{stmt.method}" if stmt.method else "")
        function = self._make_function(stmt.function, ctx, qualified)

        if len(stmt.path) == 1 and stmt.method is None:
            ctx.assign(stmt.path[0], function)
            return

        container = self._lookup(stmt.path[0], stmt.span, ctx)
        keys = stmt.path[1:] + ([stmt.method] if stmt.method else [])
        for key in keys[:-1]:
            container = self._index(container, key, stmt.span)
        self._set_index(container, keys[-1], function, stmt.span)

    def _execute_if_statement(self, stmt: IfStatement, ctx: ExecutionContext) -> None:
        if is_truthy(self._evaluate(stmt.condition, ctx)):
            self._execute_block(stmt.then_branch, ctx, "if")
            return
        for branch in stmt.elif_branches:
            if is_truthy(self._evaluate(branch.condition, ctx)):
                self._execute_block(branch.body, ctx, "elseif")
                return
        if stmt.else_branch is not None:
            self._execute_block(stmt.else_branch, ctx, "else")

    def _execute_while(self, stmt: WhileStatement, ctx: ExecutionContext) -> None:
        while is_truthy(self._evaluate(stmt.condition, ctx)):
            self._execute_block(stmt.body, ctx, "while")
            if self._loop_should_stop(ctx):
                break

    def _execute_repeat(self, stmt: RepeatStatement, ctx: ExecutionContext) -> None:
        while True:
            with ctx.new_scope("repeat"):
                self._run_statements(stmt.body.statements, ctx)
                if self._loop_should_stop(ctx):
                    break
                # The condition sees the body's locals
                if is_truthy(self._evaluate(stmt.condition, ctx)):
                    break

    def _execute_numeric_for(self, stmt: NumericFor, ctx: ExecutionContext) -> None:
        start = self._for_number(self._evaluate(stmt.start, ctx), "initial", stmt.start.span)
        stop = self._for_number(self._evaluate(stmt.stop, ctx), "limit", stmt.stop.span)
        step = 1
        if stmt.step is not None:
            step = self._for_number(self._evaluate(stmt.step, ctx), "step", stmt.step.span)
        if step == 0:
            raise error_script("'for' step is zero", stmt.span)
        if not (isinstance(start, int) and isinstance(step, int)):
            start, step = float(start), float(step)

        i = start
        while (step > 0 and i <= stop) or (step < 0 and i >= stop):
            with ctx.new_scope("for"):
                ctx.declare_local(stmt.variable, i)
                self._run_statements(stmt.body.statements, ctx)
            if self._loop_should_stop(ctx):
                break
            i += step

    def _execute_generic_for(self, stmt: GenericFor, ctx: ExecutionContext) -> None:
        function, state, control = self._adjust(self._eval_explist(stmt.iterators, ctx), 3)
        while True:
            results = self._adjust(self.call_value(function, [state, control], stmt.span, ctx), len(stmt.names))
            if results[0] is None:
                break
            control = results[0]
            with ctx.new_scope("for"):
                for name, value in zip(stmt.names, results):
                    ctx.declare_local(name, value)
                self._run_statements(stmt.body.statements, ctx)
            if self._loop_should_stop(ctx):
                break

    def _loop_should_stop(self, ctx: ExecutionContext) -> bool:
        if ctx.should_break:
            ctx.clear_break()
            return True
        return ctx.should_return

    def _for_number(self, value: Any, what: str, span: SourceSpan) -> Any:
        if isinstance(value, Reference):
            raise error_unresolved_reference(value.name, value.span)
        if not is_number(value):
            raise error_script(f"'for' {what} value must be a number", span)
        return value

    @staticmethod
    def _adjust(values: List[Any], count: int) -> List[Any]:
        """Truncate or pad with nil to exactly count values."""
        if len(values) >= count:
            return values[:count]
        return values + [None] * (count - len(values))

    # =========================================================================
    # Expressions
    # =========================================================================

    def _evaluate(self, expr: Expression, ctx: ExecutionContext) -> Any:
        """Evaluate an expression to a single value."""
        if isinstance(expr, Literal):
            return expr.value
        elif isinstance(expr, Identifier):
            return self._lookup(expr.name, expr.span, ctx)
        elif isinstance(expr, BinaryOp):
            return self._eval_binary_op(expr, ctx)
        elif isinstance(expr, UnaryOp):
            return self._eval_unary_op(expr, ctx)
        elif isinstance(expr, (FunctionCall, MethodCall, Vararg)):
            values = self._eval_multi(expr, ctx)
            return values[0] if values else None
        elif isinstance(expr, MemberAccess):
            return self._index(self._evaluate(expr.object, ctx), expr.member, expr.span)
        elif isinstance(expr, IndexAccess):
            obj = self._evaluate(expr.object, ctx)
            return self._index(obj, self._evaluate(expr.index, ctx), expr.span)
        elif isinstance(expr, TableConstructor):
            return self._eval_table(expr, ctx)
        elif isinstance(expr, FunctionExpr):
            return self._make_function(expr.function, ctx, expr.name or "anonymous")
        elif isinstance(expr, Paren):
            return self._evaluate(expr.inner, ctx)
        else:
            raise RuntimeError(f"Unknown expression type: {type(expr).__name__}")

    def _eval_multi(self, expr: Expression, ctx: ExecutionContext) -> List[Any]:
        """Evaluate an expression that may produce several values."""
        if isinstance(expr, FunctionCall):
            return self._eval_function_call(expr, ctx)
        if isinstance(expr, MethodCall):
            return self._eval_method_call(expr, ctx)
        if isinstance(expr, Vararg):
            varargs = ctx.lookup_local("...")
            return list(varargs) if varargs is not _MISSING else []
        return [self._evaluate(expr, ctx)]

    def _eval_explist(self, exprs: List[Expression], ctx: ExecutionContext) -> List[Any]:
        """Only the last expression of a list expands to multiple values."""
        values = []
        for i, expr in enumerate(exprs):
            if i == len(exprs) - 1:
                values.extend(self._eval_multi(expr, ctx))
            else:
                values.append(self._evaluate(expr, ctx))
        return values

    def _lookup(self, name: str, span: SourceSpan, ctx: ExecutionContext) -> Any:
        """Locals, then globals, then directives, then the standard library."""
        value = ctx.lookup_local(name)
        if value is not _MISSING:
            return value
        if name in ctx.globals:
            return ctx.globals[name]
        directive = self.registry.lookup(name)
        if directive is not None:
            return directive
        if name in ctx.builtins:
            return ctx.builtins[name]
        return Reference(name, span)

    def _eval_binary_op(self, op: BinaryOp, ctx: ExecutionContext) -> Any:
        """Evaluate a binary operation."""
        # Short-circuit operators return an operand, not a boolean
        if op.operator == TokenType.AND:
            left = self._evaluate(op.left, ctx)
            return self._evaluate(op.right, ctx) if is_truthy(left) else left
        if op.operator == TokenType.OR:
            left = self._evaluate(op.left, ctx)
            return left if is_truthy(left) else self._evaluate(op.right, ctx)

        left = self._evaluate(op.left, ctx)
        right = self._evaluate(op.right, ctx)

        if op.operator == TokenType.EQ:
            return lua_eq(left, right)
        if op.operator == TokenType.NE:
            return not lua_eq(left, right)

        self._require_bound(left)
        self._require_bound(right)

        if op.operator in ARITHMETIC:
            return self._arith(op.operator, left, right, op.span)
        if op.operator == TokenType.CONCAT:
            for value in (left, right):
                if not (isinstance(value, str) or is_number(value)):
                    raise error_script(f"attempt to concatenate a {lua_type(value)} value", op.span)
            return tostring(left) + tostring(right)
        if op.operator in COMPARISON:
            return self._compare(op.operator, left, right, op.span)

        raise RuntimeError(f"Unknown binary operator: {op.operator}")

    @staticmethod
    def _require_bound(value: Any) -> None:
        if isinstance(value, Reference):
            raise error_unresolved_reference(value.name, value.span)

    def _arith(self, operator: TokenType, left: Any, right: Any, span: SourceSpan) -> Any:
        a, b = tonumber(left), tonumber(right)
        for original, number in ((left, a), (right, b)):
            if number is None or isinstance(original, bool):
                raise error_script(f"attempt to perform arithmetic on a {lua_type(original)} value", span)

        both_int = isinstance(a, int) and isinstance(b, int)

        if operator == TokenType.PLUS:
            return a + b
        if operator == TokenType.MINUS:
            return a - b
        if operator == TokenType.STAR:
            return a * b
        if operator == TokenType.SLASH:
            return self._float_divide(float(a), float(b))
        if operator == TokenType.DOUBLE_SLASH:
            if both_int:
                if b == 0:
                    raise error_script("attempt to perform 'n//0'", span)
                return a // b
            quotient = self._float_divide(float(a), float(b))
            return float(math.floor(quotient)) if math.isfinite(quotient) else quotient
        if operator == TokenType.PERCENT:
            if both_int:
                if b == 0:
                    raise error_script("attempt to perform 'n%%0'", span)
                return a % b
            if b == 0:
                return math.nan
            return float(a) % float(b)
        if operator == TokenType.CARET:
            try:
                return math.pow(float(a), float(b))
            except OverflowError:
                return math.inf
            except ValueError:
                return math.nan
        raise RuntimeError(f"Unknown arithmetic operator: {operator}")

    @staticmethod
    def _float_divide(a: float, b: float) -> float:
        if b == 0:
            if a == 0 or math.isnan(a):
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1.0, b)
        return a / b

    def _compare(self, operator: TokenType, left: Any, right: Any, span: SourceSpan) -> bool:
        comparable = (is_number(left) and is_number(right)) or (
            isinstance(left, str) and isinstance(right, str)
        )
        if not comparable:
            lt, rt = lua_type(left), lua_type(right)
            if lt == rt:
                raise error_script(f"attempt to compare two {lt} values", span)
            raise error_script(f"attempt to compare {lt} with {rt}", span)
        if operator == TokenType.LT:
            return left < right
        if operator == TokenType.LE:
            return left <= right
        if operator == TokenType.GT:
            return left > right
        return left >= right

    def _eval_unary_op(self, op: UnaryOp, ctx: ExecutionContext) -> Any:
        operand = self._evaluate(op.operand, ctx)

        if op.operator == TokenType.NOT:
            return not is_truthy(operand)

        self._require_bound(operand)

        if op.operator == TokenType.MINUS:
            number = tonumber(operand)
            if number is None or isinstance(operand, bool):
                raise error_script(f"attempt to perform arithmetic on a {lua_type(operand)} value", op.span)
            return -number
        if op.operator == TokenType.HASH:
            if isinstance(operand, str):
                return len(operand.encode("utf-8"))
            if isinstance(operand, LuaTable):
                return operand.length()
            raise error_script(f"attempt to get length of a {lua_type(operand)} value", op.span)

        raise RuntimeError(f"Unknown unary operator: {op.operator}")

    def _eval_table(self, expr: TableConstructor, ctx: ExecutionContext) -> LuaTable:
        table = LuaTable()
        position = 1
        for i, fld in enumerate(expr.fields):
            if fld.key is None:
                if i == len(expr.fields) - 1:
                    values = self._eval_multi(fld.value, ctx)
                else:
                    values = [self._evaluate(fld.value, ctx)]
                for value in values:
                    table.set(position, value)
                    position += 1
            else:
                key = self._evaluate(fld.key, ctx)
                value = self._evaluate(fld.value, ctx)
                try:
                    table.set(key, value)
                except LuaRuntimeError as exc:
                    raise _runtime_error(exc, fld.span) from None
        return table

    def _make_function(self, body: FunctionBody, ctx: ExecutionContext, name: str) -> LuaFunction:
        return LuaFunction(
            params=list(body.params),
            is_variadic=body.is_variadic,
            body=body.body,
            closure=ctx.current_scope,
            name=name,
            span=body.span,
        )

    # =========================================================================
    # Indexing
    # =========================================================================

    def _index(self, obj: Any, key: Any, span: SourceSpan) -> Any:
        if isinstance(obj, LuaTable):
            return obj.get(key)
        if isinstance(obj, str):
            library = self._ctx.builtins.get("string") if self._ctx else None
            return library.get(key) if isinstance(library, LuaTable) else None
        if isinstance(obj, Reference):
            raise error_unresolved_reference(obj.name, obj.span)
        raise error_script(f"attempt to index a {lua_type(obj)} value", span)

    def _set_index(self, obj: Any, key: Any, value: Any, span: SourceSpan) -> None:
        if isinstance(obj, Reference):
            raise error_unresolved_reference(obj.name, obj.span)
        if not isinstance(obj, LuaTable):
            raise error_script(f"attempt to index a {lua_type(obj)} value", span)
        try:
            obj.set(key, value)
        except LuaRuntimeError as exc:
            raise _runtime_error(exc, span) from None

    # =========================================================================
    # Calls
    # =========================================================================

    def _eval_function_call(self, call: FunctionCall, ctx: ExecutionContext) -> List[Any]:
        function = self._evaluate(call.callee, ctx)
        args = self._eval_explist(call.arguments, ctx)
        return self.call_value(function, args, call.span, ctx, self._describe_callee(call.callee, ctx))

    def _eval_method_call(self, call: MethodCall, ctx: ExecutionContext) -> List[Any]:
        receiver = self._evaluate(call.object, ctx)
        self._require_bound(receiver)
        args = self._eval_explist(call.arguments, ctx)

        function = None
        if isinstance(receiver, (LuaTable, str)):
            function = self._index(receiver, call.method, call.span)
        if function is None:
            # obj:NAME(...) on anything else means NAME(obj, ...)
            function = self._lookup(call.method, call.span, ctx)
        return self.call_value(function, [receiver] + args, call.span, ctx, f"method '{call.method}'")

    def _describe_callee(self, callee: Expression, ctx: ExecutionContext) -> str:
        if isinstance(callee, Identifier):
            scope = "local" if ctx.lookup_local(callee.name) is not _MISSING else "global"
            return f"{scope} '{callee.name}'"
        if isinstance(callee, MemberAccess):
            return f"field '{callee.member}'"
        return ""

    def call_value(self, function: Any, args: List[Any], span: SourceSpan,
                   ctx: ExecutionContext, description: str = "") -> List[Any]:
        """Call any callable value and return its results."""
        if isinstance(function, LuaFunction):
            return self._call_function(function, args, span, ctx)
        if isinstance(function, Directive):
            return [self.registry.invoke(function, args, span, ctx.document, self)]
        if isinstance(function, BuiltinFunction):
            try:
                return function.implementation(CallArgs(function.name, args, span, self))
            except LuaRuntimeError as exc:
                raise _runtime_error(exc, span) from None
        if isinstance(function, Reference):
            raise error_unknown_directive(function.name, function.span)
        suffix = f" ({description})" if description else ""
        raise error_script(f"attempt to call a {lua_type(function)} value{suffix}", span)

    def _call_function(self, function: LuaFunction, args: List[Any],
                       span: SourceSpan, ctx: ExecutionContext) -> List[Any]:
        if ctx.call_depth >= self.MAX_CALL_DEPTH:
            raise error_script("stack overflow (recursion too deep)", span)

        scope = Scope(parent=function.closure, name=function.name)
        for i, param in enumerate(function.params):
            scope.set(param, args[i] if i < len(args) else None)
        if function.is_variadic:
            scope.set("...", tuple(args[len(function.params):]))

        saved = ctx.current_scope
        ctx.current_scope = scope
        ctx.call_depth += 1
        try:
            self._run_statements(function.body.statements, ctx)
            values = ctx.return_values if ctx.should_return else []
            ctx.clear_return()
            return values
        finally:
            ctx.current_scope = saved
            ctx.call_depth -= 1


def evaluate(source: str, filename: Optional[str] = None, syntax: str = "lua",
             loader: Any = None) -> Evaluation:
    """
    Parse and run a source unit, returning its effects and document.

    Args:
        source: Script text
        filename: Name used in diagnostics and include resolution
        syntax: "lua" for the alternate syntax, "native" for dnscontrol JavaScript
        loader: Include resolver (see zonescript.fileio.FileLoader)

    Raises:
        DslError: On any syntax, directive or script error
    """
    chunk = parse_source(source, filename, syntax)
    try:
        return Interpreter(loader=loader).evaluate_chunk(chunk, source)
    except DslError as exc:
        exc.attach_source(source.splitlines(), filename)
        raise
