"""
Execution context for the zonescript interpreter.

Manages local scopes, the shared global environment, control-flow signals
and the document being accumulated.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from contextlib import contextmanager

from ...model import ZoneDocument


_MISSING = object()


@dataclass
class Scope:
    """
    A single scope containing local variable bindings.

    Scopes form a chain via the `parent` field for lexical scoping; closures
    keep a reference to the scope they were created in.
    """
    variables: Dict[str, Any] = field(default_factory=dict)
    parent: Optional["Scope"] = None
    name: str = "anonymous"  # For debugging

    def lookup(self, name: str) -> Any:
        """Return the binding for name, or _MISSING. nil is a valid binding."""
        scope = self
        while scope is not None:
            if name in scope.variables:
                return scope.variables[name]
            scope = scope.parent
        return _MISSING

    def set(self, name: str, value: Any) -> None:
        """Declare a variable in this scope (shadowing parent if exists)."""
        self.variables[name] = value

    def update(self, name: str, value: Any) -> bool:
        """
        Update an existing local.

        Searches up the scope chain to find where the variable is defined.
        Returns True if found and updated, False if not found.
        """
        scope = self
        while scope is not None:
            if name in scope.variables:
                scope.variables[name] = value
                return True
            scope = scope.parent
        return False


@dataclass
class ExecutionContext:
    """
    The full execution context for one evaluation pass.

    Tracks:
    - Local scope chain and the global environment
    - Per-evaluation copies of the standard library tables
    - The document accumulator and the include stack
    - Return/break signals
    """
    current_scope: Scope = field(default_factory=lambda: Scope(name="chunk"))
    globals: Dict[str, Any] = field(default_factory=dict)
    builtins: Dict[str, Any] = field(default_factory=dict)
    document: ZoneDocument = field(default_factory=ZoneDocument)

    filename: Optional[str] = None
    syntax: str = "lua"
    source_lines: List[str] = field(default_factory=list)
    include_stack: List[str] = field(default_factory=list)
    call_depth: int = 0

    # Control flow flags
    _should_return: bool = False
    _return_values: List[Any] = field(default_factory=list)
    _should_break: bool = False

    def lookup_local(self, name: str) -> Any:
        return self.current_scope.lookup(name)

    def declare_local(self, name: str, value: Any) -> None:
        """Bind a local; redeclaring in the same scope opens a fresh one."""
        if name in self.current_scope.variables:
            self.current_scope = Scope(parent=self.current_scope, name="local")
        self.current_scope.set(name, value)

    def assign(self, name: str, value: Any) -> None:
        """Assign to the innermost local of that name, else to the global."""
        if not self.current_scope.update(name, value):
            if value is None:
                self.globals.pop(name, None)
            else:
                self.globals[name] = value

    @contextmanager
    def new_scope(self, name: str = "block", parent: Optional[Scope] = None):
        """
        Context manager to create a new nested scope.

        Usage:
            with ctx.new_scope("for-loop"):
                # variables defined here are local to this scope
                ctx.declare_local("i", 1)
        """
        old_scope = self.current_scope
        self.current_scope = Scope(parent=parent if parent is not None else old_scope, name=name)
        try:
            yield self.current_scope
        finally:
            self.current_scope = old_scope

    def get_source_line(self, line_num: int) -> Optional[str]:
        if 1 <= line_num <= len(self.source_lines):
            return self.source_lines[line_num - 1]
        return None

    def signal_return(self, values: List[Any]) -> None:
        """Signal a return from the running function or chunk."""
        self._should_return = True
        self._return_values = values

    @property
    def should_return(self) -> bool:
        return self._should_return

    @property
    def return_values(self) -> List[Any]:
        return self._return_values

    def clear_return(self) -> None:
        self._should_return = False
        self._return_values = []

    def signal_break(self) -> None:
        self._should_break = True

    @property
    def should_break(self) -> bool:
        return self._should_break

    def clear_break(self) -> None:
        self._should_break = False

    @property
    def interrupted(self) -> bool:
        """True while a return or break is unwinding."""
        return self._should_return or self._should_break
