"""
Runtime values for the zonescript interpreter.

Scripts run on plain Python values where one fits:

    nil      -> None
    boolean  -> bool
    number   -> int (integer subtype) or float
    string   -> str

Tables are LuaTable instances, functions are LuaCallable subclasses, and
document-model handles (records, domains, providers, modifiers) pass
through unchanged so variable bindings alias the nodes they name.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ...model import (
    Domain, Modifier, Provider, ProviderUse, Record, Reference,
)


class LuaRuntimeError(Exception):
    """Raised by builtins and value helpers; the interpreter adds the location."""

    def __init__(self, message: str, value: Any = None):
        super().__init__(message)
        self.message = message
        self.value = value


class ClosedTableError(LuaRuntimeError):
    """Assignment into a table that a declared domain has sealed."""

    def __init__(self, what: str, reason: str):
        super().__init__(f"cannot modify {what}: {reason}")
        self.what = what
        self.reason = reason


class LuaCallable:
    """Base for everything a script can call."""
    name: str


def _normalize_key(key: Any) -> Any:
    # bool hashes like 1/0 and 2.0 must index the same slot as 2
    if isinstance(key, bool):
        return (bool, key)
    if isinstance(key, float) and key.is_integer():
        return int(key)
    return key


class LuaTable:
    """
    Insertion-ordered associative table.

    pairs() walks keys in the order they were first assigned, which keeps
    anything generated from a table deterministic.
    """

    def __init__(self):
        self._entries: Dict[Any, List[Any]] = {}   # normalized key -> [key, value]
        self.closed_by: Optional[Tuple[str, str]] = None   # (what, reason) once sealed

    def close(self, what: str, reason: str) -> None:
        """Seal this table and every table nested in it against assignment."""
        if self.closed_by is not None:
            return
        self.closed_by = (what, reason)
        for _, value in self.items():
            if isinstance(value, LuaTable):
                value.close(what, reason)

    @classmethod
    def from_dict(cls, values: Dict[Any, Any]) -> "LuaTable":
        table = cls()
        for key, value in values.items():
            table.set(key, value)
        return table

    def get(self, key: Any) -> Any:
        entry = self._entries.get(_normalize_key(key))
        return entry[1] if entry is not None else None

    def set(self, key: Any, value: Any) -> None:
        if self.closed_by is not None:
            raise ClosedTableError(*self.closed_by)
        if key is None or isinstance(key, Reference):
            raise LuaRuntimeError("table index is nil")
        if isinstance(key, float) and math.isnan(key):
            raise LuaRuntimeError("table index is NaN")
        norm = _normalize_key(key)
        if value is None:
            self._entries.pop(norm, None)
        elif norm in self._entries:
            self._entries[norm][1] = value
        else:
            if isinstance(key, float) and key.is_integer():
                key = int(key)
            self._entries[norm] = [key, value]

    def length(self) -> int:
        """The border used by '#': largest n with t[1..n] all non-nil."""
        n = 0
        while (n + 1) in self._entries:
            n += 1
        return n

    def items(self) -> Iterator[Tuple[Any, Any]]:
        for key, value in list(self._entries.values()):
            yield key, value

    def keys(self) -> List[Any]:
        return [entry[0] for entry in self._entries.values()]

    def sequence(self) -> List[Any]:
        """Values t[1..#t]."""
        return [self._entries[i][1] for i in range(1, self.length() + 1)]

    def is_sequence(self) -> bool:
        """True for a non-empty table whose keys are exactly 1..n."""
        n = len(self._entries)
        return n > 0 and self.length() == n

    def insert(self, pos: int, value: Any) -> None:
        n = self.length()
        for i in range(n, pos - 1, -1):
            self.set(i + 1, self.get(i))
        self.set(pos, value)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"LuaTable({dict(self.items())!r})"


@dataclass(eq=False)
class LuaFunction(LuaCallable):
    """A closure: function body plus the scope it was created in."""
    params: List[str]
    is_variadic: bool
    body: Any                   # ast.Block
    closure: Any                # context.Scope
    name: str = "anonymous"
    span: Any = None

    def __repr__(self) -> str:
        return f"LuaFunction({self.name})"


@dataclass
class CallArgs:
    """Argument list handed to a builtin, with Lua-style checking helpers."""
    function: str
    values: List[Any]
    span: Any = None
    interpreter: Any = None

    def __len__(self) -> int:
        return len(self.values)

    def get(self, index: int, default: Any = None) -> Any:
        """1-based access; missing arguments are nil."""
        if 1 <= index <= len(self.values):
            value = self.values[index - 1]
            return default if value is None else value
        return default

    def rest(self, index: int) -> List[Any]:
        return self.values[index - 1:]

    def _bad(self, index: int, expected: str) -> LuaRuntimeError:
        got = lua_type(self.get(index))
        return LuaRuntimeError(
            f"bad argument #{index} to '{self.function}' ({expected} expected, got {got})"
        )

    def check_any(self, index: int) -> Any:
        if index > len(self.values):
            raise LuaRuntimeError(f"bad argument #{index} to '{self.function}' (value expected)")
        return self.values[index - 1]

    def check_number(self, index: int) -> Any:
        value = tonumber(self.get(index))
        if value is None:
            raise self._bad(index, "number")
        return value

    def check_integer(self, index: int) -> int:
        value = self.check_number(index)
        if isinstance(value, float):
            if not value.is_integer():
                raise LuaRuntimeError(
                    f"bad argument #{index} to '{self.function}' (number has no integer representation)"
                )
            value = int(value)
        return value

    def opt_integer(self, index: int, default: int) -> int:
        if self.get(index) is None:
            return default
        return self.check_integer(index)

    def check_string(self, index: int) -> str:
        value = self.get(index)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return tostring(value)
        raise self._bad(index, "string")

    def check_table(self, index: int) -> LuaTable:
        value = self.get(index)
        if not isinstance(value, LuaTable):
            raise self._bad(index, "table")
        return value


# =============================================================================
# Value helpers
# =============================================================================

def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    """Only nil and false are false; an unbound reference reads as nil."""
    return not (value is None or value is False or isinstance(value, Reference))


def lua_type(value: Any) -> str:
    """Result of the type() builtin."""
    if value is None or isinstance(value, Reference):
        return "nil"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, LuaTable):
        return "table"
    if isinstance(value, LuaCallable):
        return "function"
    return "userdata"


def kind_of(value: Any) -> str:
    """Argument kind as directive shapes name it."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, LuaTable):
        return "list" if value.is_sequence() else "table"
    if isinstance(value, Record):
        return "record"
    if isinstance(value, Domain):
        return "domain"
    if isinstance(value, Provider):
        return "provider"
    if isinstance(value, ProviderUse):
        return "provider-binding"
    if isinstance(value, Modifier):
        return "modifier"
    if isinstance(value, LuaCallable):
        return "function"
    if isinstance(value, Reference):
        return "reference"
    return type(value).__name__


def lua_eq(a: Any, b: Any) -> bool:
    """Raw equality: numbers by value, everything else by type and identity."""
    if isinstance(a, Reference):
        a = None
    if isinstance(b, Reference):
        b = None
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if a is None or b is None:
        return a is b
    return a is b


def format_float(value: float) -> str:
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if math.isnan(value):
        return "nan"
    text = "%.14g" % value
    if re.fullmatch(r"-?\d+", text):
        text += ".0"
    return text


def tostring(value: Any) -> str:
    """Result of the tostring() builtin."""
    if value is None or isinstance(value, Reference):
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, LuaTable):
        return f"table: 0x{id(value):08x}"
    if isinstance(value, LuaCallable):
        return f"function: {value.name}"
    if isinstance(value, Record):
        return f"record: {value.rtype} {tostring(value.fields[0]) if value.fields else ''}".rstrip()
    if isinstance(value, Domain):
        return f"domain: {tostring(value.name)}"
    if isinstance(value, Provider):
        return f"provider: {value.kind} {value.name}"
    if isinstance(value, ProviderUse):
        return "provider-binding"
    if isinstance(value, Modifier):
        return f"modifier: {value.directive}"
    return repr(value)


_DEC_INT = re.compile(r"[+-]?\d+")
_HEX_INT = re.compile(r"([+-]?)0[xX]([0-9a-fA-F]+)")
_DEC_FLOAT = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def tonumber(value: Any, base: Optional[int] = None) -> Any:
    """Convert numbers and numeric strings; anything else yields nil."""
    if base is None:
        if is_number(value):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        if _DEC_INT.fullmatch(text):
            return int(text)
        match = _HEX_INT.fullmatch(text)
        if match:
            number = int(match.group(2), 16)
            return -number if match.group(1) == "-" else number
        if _DEC_FLOAT.fullmatch(text):
            return float(text)
        return None

    if not isinstance(value, str):
        value = tostring(value)
    try:
        return int(value.strip().lower(), base)
    except ValueError:
        return None
