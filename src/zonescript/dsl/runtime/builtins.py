"""
Standard library subset available to zonescript scripts.

Covers the base functions configuration scripts lean on (print, type,
tostring, tonumber, ipairs, pairs, select, error, assert, unpack) and the
string, table and math libraries in part. print is routed to the logger
instead of stdout so it never mixes with generated output.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import structlog

from .values import (
    CallArgs, LuaCallable, LuaRuntimeError, LuaTable,
    is_number, is_truthy, lua_type, tostring, tonumber,
)

log = structlog.get_logger(__name__)


@dataclass(eq=False)
class BuiltinFunction(LuaCallable):
    """
    A built-in function with its implementation.

    The implementation receives a CallArgs and returns the list of results.
    """
    name: str
    implementation: Callable[[CallArgs], List[Any]]
    doc: str = ""

    def __repr__(self) -> str:
        return f"BuiltinFunction({self.name})"


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Library tables (string, table, math) are rebuilt for every evaluation
    by install(), so a script that extends them cannot leak into the next.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._libraries: Dict[str, Dict[str, Any]] = {}
        self._register_all()

    def register(self, func: BuiltinFunction) -> None:
        self._functions[func.name] = func

    def register_library_member(self, library: str, name: str, value: Any) -> None:
        self._libraries.setdefault(library, {})[name] = value

    def names(self) -> List[str]:
        return sorted(list(self._functions) + list(self._libraries))

    def install(self) -> Dict[str, Any]:
        """Fresh builtin namespace for one evaluation."""
        namespace: Dict[str, Any] = dict(self._functions)
        for library, members in self._libraries.items():
            namespace[library] = LuaTable.from_dict(members)
        return namespace

    def _register_all(self) -> None:
        self._register_base_functions()
        self._register_string_functions()
        self._register_table_functions()
        self._register_math_functions()

    # --- Base Functions ---

    def _register_base_functions(self) -> None:

        def _print(args: CallArgs) -> List[Any]:
            message = "\t".join(tostring(v) for v in args.values)
            location = args.span.start if args.span is not None else None
            log.info(
                "script.print",
                message=message,
                file=location.filename if location else None,
                line=location.line if location else None,
            )
            return []

        def _type(args: CallArgs) -> List[Any]:
            return [lua_type(args.check_any(1))]

        def _tostring(args: CallArgs) -> List[Any]:
            return [tostring(args.check_any(1))]

        def _tonumber(args: CallArgs) -> List[Any]:
            base = args.get(2)
            if base is None:
                return [tonumber(args.check_any(1))]
            base = args.check_integer(2)
            if not 2 <= base <= 36:
                raise LuaRuntimeError("bad argument #2 to 'tonumber' (base out of range)")
            return [tonumber(args.check_string(1), base)]

        def _ipairs_step(args: CallArgs) -> List[Any]:
            table = args.check_table(1)
            index = args.check_integer(2) + 1
            value = table.get(index)
            if value is None:
                return [None]
            return [index, value]

        ipairs_step = BuiltinFunction("ipairs_iterator", _ipairs_step)

        def _ipairs(args: CallArgs) -> List[Any]:
            return [ipairs_step, args.check_table(1), 0]

        def _pairs(args: CallArgs) -> List[Any]:
            table = args.check_table(1)
            keys = table.keys()
            position = [0]

            def _next(_: CallArgs) -> List[Any]:
                while position[0] < len(keys):
                    key = keys[position[0]]
                    position[0] += 1
                    value = table.get(key)
                    if value is not None:
                        return [key, value]
                return [None]

            return [BuiltinFunction("pairs_iterator", _next), table, None]

        def _select(args: CallArgs) -> List[Any]:
            selector = args.get(1)
            rest = args.rest(2)
            if selector == "#":
                return [len(rest)]
            n = args.check_integer(1)
            if n < 0:
                n = len(rest) + n
                if n < 0:
                    raise LuaRuntimeError("bad argument #1 to 'select' (index out of range)")
                return rest[n:]
            if n == 0:
                raise LuaRuntimeError("bad argument #1 to 'select' (index out of range)")
            return rest[n - 1:]

        def _error(args: CallArgs) -> List[Any]:
            value = args.get(1)
            raise LuaRuntimeError(tostring(value), value=value)

        def _assert(args: CallArgs) -> List[Any]:
            value = args.check_any(1)
            if is_truthy(value):
                return list(args.values)
            message = args.get(2)
            if message is None:
                raise LuaRuntimeError("assertion failed!")
            raise LuaRuntimeError(tostring(message), value=message)

        def _unpack(args: CallArgs) -> List[Any]:
            table = args.check_table(1)
            first = args.opt_integer(2, 1)
            last = args.opt_integer(3, table.length())
            return [table.get(i) for i in range(first, last + 1)]

        base_funcs = [
            ("print", _print, "Log values at info level as a script.print event."),
            ("type", _type, "Name of the value's type."),
            ("tostring", _tostring, "Convert a value to a string."),
            ("tonumber", _tonumber, "Convert a string to a number, or nil."),
            ("ipairs", _ipairs, "Iterate t[1], t[2], ... up to the first nil."),
            ("pairs", _pairs, "Iterate all key/value pairs in insertion order."),
            ("select", _select, "select(n, ...) or select('#', ...)."),
            ("error", _error, "Abort the script with a message."),
            ("assert", _assert, "Abort the script unless the value is true."),
            ("unpack", _unpack, "Return t[i], ..., t[j]."),
        ]

        for name, impl, doc in base_funcs:
            self.register(BuiltinFunction(name, impl, doc))

        # Lua 5.1 scripts call unpack; 5.4 scripts call table.unpack
        self.register_library_member("table", "unpack", BuiltinFunction("unpack", _unpack, "Return t[i], ..., t[j]."))

    # --- String Functions ---

    def _register_string_functions(self) -> None:

        def _upper(args: CallArgs) -> List[Any]:
            return [args.check_string(1).upper()]

        def _lower(args: CallArgs) -> List[Any]:
            return [args.check_string(1).lower()]

        def _len(args: CallArgs) -> List[Any]:
            return [len(args.check_string(1).encode("utf-8"))]

        def _rep(args: CallArgs) -> List[Any]:
            text = args.check_string(1)
            count = args.check_integer(2)
            sep = args.check_string(3) if args.get(3) is not None else ""
            if count <= 0:
                return [""]
            return [sep.join([text] * count)]

        def _sub(args: CallArgs) -> List[Any]:
            text = args.check_string(1)
            length = len(text)
            i = args.opt_integer(2, 1)
            j = args.opt_integer(3, -1)
            if i < 0:
                i = max(length + i + 1, 1)
            elif i == 0:
                i = 1
            if j < 0:
                j = length + j + 1
            elif j > length:
                j = length
            if i > j:
                return [""]
            return [text[i - 1:j]]

        def _format(args: CallArgs) -> List[Any]:
            return [format_string(args)]

        string_funcs = [
            ("upper", _upper),
            ("lower", _lower),
            ("len", _len),
            ("rep", _rep),
            ("sub", _sub),
            ("format", _format),
        ]

        for name, impl in string_funcs:
            self.register_library_member("string", name, BuiltinFunction(name, impl))

    # --- Table Functions ---

    def _register_table_functions(self) -> None:

        def _insert(args: CallArgs) -> List[Any]:
            table = args.check_table(1)
            size = table.length()
            if len(args) == 2:
                table.set(size + 1, args.get(2))
            elif len(args) == 3:
                pos = args.check_integer(2)
                if not 1 <= pos <= size + 1:
                    raise LuaRuntimeError("bad argument #2 to 'insert' (position out of bounds)")
                table.insert(pos, args.get(3))
            else:
                raise LuaRuntimeError("wrong number of arguments to 'insert'")
            return []

        def _concat(args: CallArgs) -> List[Any]:
            table = args.check_table(1)
            sep = args.check_string(2) if args.get(2) is not None else ""
            first = args.opt_integer(3, 1)
            last = args.opt_integer(4, table.length())
            parts = []
            for i in range(first, last + 1):
                value = table.get(i)
                if isinstance(value, str) or is_number(value):
                    parts.append(tostring(value))
                else:
                    raise LuaRuntimeError(
                        f"invalid value (at index {i}) in table for 'concat'"
                    )
            return [sep.join(parts)]

        self.register_library_member("table", "insert", BuiltinFunction("insert", _insert))
        self.register_library_member("table", "concat", BuiltinFunction("concat", _concat))

    # --- Math Functions ---

    def _register_math_functions(self) -> None:

        def _rounding(fn: Callable[[float], float]) -> Callable[[CallArgs], List[Any]]:
            def _round(args: CallArgs) -> List[Any]:
                value = args.check_number(1)
                if isinstance(value, int) or not math.isfinite(value):
                    return [value]
                return [int(fn(value))]
            return _round

        def _extreme(name: str, better: Callable[[Any, Any], bool]) -> Callable[[CallArgs], List[Any]]:
            def _pick(args: CallArgs) -> List[Any]:
                if len(args) == 0:
                    raise LuaRuntimeError(f"bad argument #1 to '{name}' (number expected, got no value)")
                best = args.check_number(1)
                for i in range(2, len(args) + 1):
                    value = args.check_number(i)
                    if better(value, best):
                        best = value
                return [best]
            return _pick

        def _abs(args: CallArgs) -> List[Any]:
            return [abs(args.check_number(1))]

        math_funcs = [
            ("floor", _rounding(math.floor)),
            ("ceil", _rounding(math.ceil)),
            ("max", _extreme("max", lambda a, b: a > b)),
            ("min", _extreme("min", lambda a, b: a < b)),
            ("abs", _abs),
        ]

        for name, impl in math_funcs:
            self.register_library_member("math", name, BuiltinFunction(name, impl))

        self.register_library_member("math", "huge", math.inf)
        self.register_library_member("math", "pi", math.pi)
        self.register_library_member("math", "maxinteger", 2 ** 63 - 1)
        self.register_library_member("math", "mininteger", -2 ** 63)


_FORMAT_SPEC = re.compile(r"%([-+ #0]*)(\d{0,2})(?:\.(\d{0,2}))?([diouxXeEfgGqsc%aA])")


def _quote(value: Any) -> str:
    """%q: a Lua literal that reads back as the same value."""
    if isinstance(value, str):
        out = ['"']
        for ch in value:
            if ch in '"\\':
                out.append("\\" + ch)
            elif ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                out.append("\\r")
            elif ch == "\0":
                out.append("\\0")
            elif ord(ch) < 0x20 or ord(ch) == 0x7F:
                out.append("\\%d" % ord(ch))
            else:
                out.append(ch)
        out.append('"')
        return "".join(out)
    if isinstance(value, float) and value.is_integer():
        return "%d.0" % value if abs(value) < 1e16 else float.hex(value)
    return tostring(value)


def format_string(args: CallArgs) -> str:
    """string.format, mapped onto Python's printf-style formatting."""
    template = args.check_string(1)
    out = []
    arg_index = 1
    pos = 0

    while pos < len(template):
        percent = template.find("%", pos)
        if percent < 0:
            out.append(template[pos:])
            break
        out.append(template[pos:percent])
        match = _FORMAT_SPEC.match(template, percent)
        if match is None:
            bad = template[percent:percent + 2]
            raise LuaRuntimeError(f"invalid conversion '{bad}' to 'format'")
        flags, width, precision, conv = match.groups()
        pos = match.end()

        if conv == "%":
            out.append("%")
            continue

        arg_index += 1
        if arg_index > len(args):
            raise LuaRuntimeError(f"bad argument #{arg_index} to 'format' (no value)")

        spec = "%" + flags + width + ("." + precision if precision is not None else "")
        if conv in "di":
            out.append((spec + "d") % args.check_integer(arg_index))
        elif conv == "u":
            out.append((spec + "d") % args.check_integer(arg_index))
        elif conv in "oxX":
            out.append((spec + conv) % args.check_integer(arg_index))
        elif conv == "c":
            out.append(chr(args.check_integer(arg_index)))
        elif conv in "eEfgG":
            out.append((spec + conv) % float(args.check_number(arg_index)))
        elif conv in "aA":
            text = float.hex(float(args.check_number(arg_index)))
            out.append(text.upper() if conv == "A" else text)
        elif conv == "q":
            out.append(_quote(args.get(arg_index)))
        else:  # 's'
            out.append((spec + "s") % tostring(args.get(arg_index)))

    return "".join(out)


# Global singleton registry
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry
