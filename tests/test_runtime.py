"""
Tests for the zonescript interpreter and its standard library.
"""

import math

import pytest
from structlog.testing import capture_logs

from zonescript.dsl.errors import (
    IncludeError, ScriptError, UnknownDirective, UnresolvedReference,
)
from zonescript.dsl.runtime import LuaTable, evaluate
from zonescript.model import Record, Reference


class TestArithmetic:
    """Number semantics."""

    def test_integer_and_float_operators(self, run_lua):
        """Integer ops stay integers; / always yields a float."""
        ev = run_lua("""
            a = 7 // 2
            b = 7 / 2
            c = 7 % 3
            d = 2 ^ 10
            e = -7 // 2
            f = 7.5 // 2
            g = -7 % 3
        """)
        g = ev.globals
        assert g["a"] == 3 and isinstance(g["a"], int)
        assert g["b"] == 3.5
        assert g["c"] == 1
        assert g["d"] == 1024.0 and isinstance(g["d"], float)
        assert g["e"] == -4
        assert g["f"] == 3.0 and isinstance(g["f"], float)
        assert g["g"] == 2

    def test_float_division_by_zero(self, run_lua):
        """1/0 is inf, 0/0 is nan."""
        ev = run_lua("a = 1 / 0\nb = -1 / 0\nc = 0 / 0")
        assert ev.globals["a"] == math.inf
        assert ev.globals["b"] == -math.inf
        assert math.isnan(ev.globals["c"])

    def test_integer_division_by_zero(self, run_lua):
        """Integer // and % by zero are errors."""
        with pytest.raises(ScriptError) as exc:
            run_lua("x = 1 // 0")
        assert exc.value.diagnostic.code == "E400"
        assert "n//0" in exc.value.diagnostic.message
        with pytest.raises(ScriptError):
            run_lua("x = 1 % 0")

    def test_numeric_strings_coerce(self, run_lua):
        """Strings that spell numbers take part in arithmetic."""
        ev = run_lua('x = "10" + 5\ny = "0x10" * 2')
        assert ev.globals["x"] == 15
        assert ev.globals["y"] == 32

    def test_arithmetic_on_boolean(self, run_lua):
        """Booleans are not numbers."""
        with pytest.raises(ScriptError) as exc:
            run_lua("x = true + 1")
        assert exc.value.diagnostic.message == "attempt to perform arithmetic on a boolean value"

    def test_unary_minus(self, run_lua):
        """Negation of numbers and numeric strings."""
        ev = run_lua('x = -"3"\ny = - -2')
        assert ev.globals["x"] == -3
        assert ev.globals["y"] == 2


class TestOperators:
    """Concatenation, comparison, logic and length."""

    def test_concat_numbers(self, run_lua):
        """Numbers concatenate in their tostring form."""
        ev = run_lua('a = 1 .. 2\nb = 1.5 .. ""\nc = 2.0 .. "x"')
        assert ev.globals["a"] == "12"
        assert ev.globals["b"] == "1.5"
        assert ev.globals["c"] == "2.0x"

    def test_concat_nil(self, run_lua):
        """Concatenating nil names the offending type."""
        with pytest.raises(ScriptError) as exc:
            run_lua('local n = nil\nx = "a" .. n')
        assert exc.value.diagnostic.message == "attempt to concatenate a nil value"

    def test_compare_mixed_types(self, run_lua):
        """Ordering a number against a string is an error."""
        with pytest.raises(ScriptError) as exc:
            run_lua('x = 1 < "2"')
        assert exc.value.diagnostic.message == "attempt to compare number with string"
        with pytest.raises(ScriptError) as exc:
            run_lua("x = {} < {}")
        assert exc.value.diagnostic.message == "attempt to compare two table values"

    def test_string_ordering(self, run_lua):
        """Strings compare lexicographically."""
        ev = run_lua('x = "a" < "b"\ny = "b" <= "a"')
        assert ev.globals["x"] is True
        assert ev.globals["y"] is False

    def test_and_or_return_operands(self, run_lua):
        """and/or short-circuit and yield an operand."""
        ev = run_lua('a = nil or "d"\nb = false and 1\nc = 0 and "zero"\nd = 1 or error("no")')
        assert ev.globals["a"] == "d"
        assert ev.globals["b"] is False
        assert ev.globals["c"] == "zero"
        assert ev.globals["d"] == 1

    def test_equality(self, run_lua):
        """Numbers by value, tables by identity, no string coercion."""
        ev = run_lua("""
            t = {}
            a = 1 == 1.0
            b = "1" == 1
            c = t == t
            d = {} == {}
            e = 1 ~= 2
        """)
        g = ev.globals
        assert (g["a"], g["b"], g["c"], g["d"], g["e"]) == (True, False, True, False, True)

    def test_length(self, run_lua):
        """# counts UTF-8 bytes of strings and the border of tables."""
        ev = run_lua('a = #"h\\u{E9}llo"\nb = #{1, 2, 3}\nc = #{}')
        assert ev.globals["a"] == 6
        assert ev.globals["b"] == 3
        assert ev.globals["c"] == 0

    def test_not(self, run_lua):
        """Only nil and false are falsy."""
        ev = run_lua("a = not nil\nb = not 0\nc = not unbound_name")
        assert ev.globals["a"] is True
        assert ev.globals["b"] is False
        assert ev.globals["c"] is True


class TestTablesAndFunctions:
    """Tables, closures, varargs and multiple results."""

    def test_multiple_results_expand_last(self, run_lua):
        """Only the final expression expands."""
        ev = run_lua("""
            function f() return 1, 2, 3 end
            t = {f()}
            u = {f(), 10}
            a, b, c, d = f()
            p = (f())
        """)
        g = ev.globals
        assert g["t"].sequence() == [1, 2, 3]
        assert g["u"].sequence() == [1, 10]
        assert (g["a"], g["b"], g["c"]) == (1, 2, 3)
        assert "d" not in g
        assert g["p"] == 1

    def test_varargs(self, run_lua):
        """... forwards every extra argument, nils included."""
        ev = run_lua("""
            function count(...) return select("#", ...) end
            function second(...) local _, b = ... return b end
            n = count(1, nil, 3)
            s = second("a", "b")
        """)
        assert ev.globals["n"] == 3
        assert ev.globals["s"] == "b"

    def test_closures_capture_scope(self, run_lua):
        """Each closure keeps its own upvalue."""
        ev = run_lua("""
            local function counter()
                local n = 0
                return function() n = n + 1 return n end
            end
            local c1, c2 = counter(), counter()
            c1() c1()
            a = c1()
            b = c2()
        """)
        assert ev.globals["a"] == 3
        assert ev.globals["b"] == 1

    def test_block_scoping(self, run_lua):
        """Locals inside do-blocks do not leak."""
        ev = run_lua("""
            local x = 1
            do local x = 2 end
            y = x
        """)
        assert ev.globals["y"] == 1
        assert "x" not in ev.globals

    def test_method_declaration_and_call(self, run_lua):
        """obj:m() passes obj as self."""
        ev = run_lua("""
            obj = {n = 1}
            function obj:inc(k) self.n = self.n + k end
            obj:inc(5)
        """)
        assert ev.globals["obj"].get("n") == 6

    def test_string_methods(self, run_lua):
        """Strings index the string library."""
        ev = run_lua('a = ("abc"):upper()\nb = ("x"):rep(3, ",")\nc = ("hello"):sub(2, -2)')
        assert ev.globals["a"] == "ABC"
        assert ev.globals["b"] == "x,x,x"
        assert ev.globals["c"] == "ell"

    def test_recursion(self, run_lua):
        """Global functions may call themselves."""
        ev = run_lua("""
            function fact(n) if n <= 1 then return 1 end return n * fact(n - 1) end
            x = fact(10)
        """)
        assert ev.globals["x"] == 3628800

    def test_runaway_recursion(self, run_lua):
        """Unbounded recursion is reported as a script error."""
        with pytest.raises(ScriptError) as exc:
            run_lua("function f() return f() end\nf()")
        assert "stack overflow" in exc.value.diagnostic.message

    def test_nil_keys_rejected(self, run_lua):
        """Assigning to t[nil] is an error."""
        with pytest.raises(ScriptError) as exc:
            run_lua("t = {}\nt[nil] = 1")
        assert exc.value.diagnostic.message == "table index is nil"

    def test_float_keys_normalize(self, run_lua):
        """t[1.0] and t[1] are the same slot."""
        ev = run_lua("t = {}\nt[1.0] = 'a'\nx = t[1]")
        assert ev.globals["x"] == "a"


class TestControlFlow:
    """Loops and conditionals."""

    def test_numeric_for(self, run_lua):
        """Inclusive bounds, negative and float steps."""
        ev = run_lua("""
            up, down, half = {}, {}, 0
            for i = 1, 3 do up[#up + 1] = i end
            for i = 10, 1, -3 do down[#down + 1] = i end
            for i = 1, 2, 0.5 do half = half + 1 end
        """)
        assert ev.globals["up"].sequence() == [1, 2, 3]
        assert ev.globals["down"].sequence() == [10, 7, 4, 1]
        assert ev.globals["half"] == 3

    def test_for_step_zero(self, run_lua):
        """A zero step is rejected."""
        with pytest.raises(ScriptError) as exc:
            run_lua("for i = 1, 2, 0 do end")
        assert exc.value.diagnostic.message == "'for' step is zero"

    def test_for_requires_numbers(self, run_lua):
        """Loop bounds must be numbers."""
        with pytest.raises(ScriptError) as exc:
            run_lua('for i = 1, "x" do end')
        assert exc.value.diagnostic.message == "'for' limit value must be a number"

    def test_pairs_follows_insertion_order(self, run_lua):
        """pairs walks keys in first-assignment order."""
        ev = run_lua("""
            t = {zeta = 1, alpha = 2}
            t.mid = 3
            keys = {}
            for k in pairs(t) do keys[#keys + 1] = k end
        """)
        assert ev.globals["keys"].sequence() == ["zeta", "alpha", "mid"]

    def test_ipairs_stops_at_nil(self, run_lua):
        """ipairs ends at the first hole."""
        ev = run_lua("""
            total = 0
            for i, v in ipairs({1, 2, nil, 4}) do total = total + v end
        """)
        assert ev.globals["total"] == 3

    def test_while_and_break(self, run_lua):
        """break leaves the innermost loop only."""
        ev = run_lua("""
            n, outer = 0, 0
            while true do
                outer = outer + 1
                for i = 1, 10 do
                    if i > 2 then break end
                    n = n + 1
                end
                if outer == 3 then break end
            end
        """)
        assert ev.globals["n"] == 6
        assert ev.globals["outer"] == 3

    def test_repeat_sees_body_locals(self, run_lua):
        """The until condition can read locals from the body."""
        ev = run_lua("""
            i = 0
            repeat
                local done = i >= 3
                i = i + 1
            until done
        """)
        assert ev.globals["i"] == 4

    def test_if_chain(self, run_lua):
        """elseif and else pick the first true branch."""
        ev = run_lua("""
            local function classify(n)
                if n < 0 then return "neg" elseif n == 0 then return "zero" else return "pos" end
            end
            a, b, c = classify(-1), classify(0), classify(5)
        """)
        assert (ev.globals["a"], ev.globals["b"], ev.globals["c"]) == ("neg", "zero", "pos")

    def test_chunk_return(self, run_lua):
        """A top-level return ends the chunk."""
        ev = run_lua("x = 1\nif x then return 5 end\nx = 2")
        assert ev.return_values == [5]
        assert ev.globals["x"] == 1


class TestErrors:
    """Runtime failures and their locations."""

    def test_unknown_directive(self):
        """Calling an unbound name reports it with its line."""
        source = 'x = 1\nbogus("a")\n'
        with pytest.raises(UnknownDirective) as exc:
            evaluate(source)
        assert exc.value.diagnostic.code == "E201"
        assert exc.value.name == "bogus"
        assert exc.value.diagnostic.message == "unknown directive 'bogus' at line 2"
        assert exc.value.diagnostic.source_line == 'bogus("a")'

    def test_call_nil_field(self, run_lua):
        """Calling a missing field names the field."""
        with pytest.raises(ScriptError) as exc:
            run_lua("t = {}\nt.foo()")
        assert exc.value.diagnostic.message == "attempt to call a nil value (field 'foo')"

    def test_index_nil(self, run_lua):
        """Indexing nil is an error."""
        with pytest.raises(ScriptError) as exc:
            run_lua("local t = nil\nx = t.a")
        assert exc.value.diagnostic.message == "attempt to index a nil value"

    def test_unresolved_in_arithmetic(self, run_lua):
        """Using an unbound global as a number is an unresolved reference."""
        with pytest.raises(UnresolvedReference) as exc:
            run_lua("x = never_set + 1")
        assert exc.value.diagnostic.code == "E205"
        assert exc.value.name == "never_set"

    def test_error_builtin(self):
        """error() aborts with its message at the call."""
        with pytest.raises(ScriptError) as exc:
            evaluate('\n\nerror("boom")', "zones.lua")
        assert exc.value.diagnostic.message == "boom"
        assert str(exc.value.span.start) == "zones.lua:3:1"

    def test_assert_builtin(self, run_lua):
        """assert() passes values through or fails."""
        ev = run_lua('x = assert(5, "unused")')
        assert ev.globals["x"] == 5
        with pytest.raises(ScriptError) as exc:
            run_lua('assert(false, "bad config")')
        assert exc.value.diagnostic.message == "bad config"
        with pytest.raises(ScriptError) as exc:
            run_lua("assert(nil)")
        assert exc.value.diagnostic.message == "assertion failed!"

    def test_formatted_error_shows_source(self):
        """str() of an error renders location, code and caret."""
        with pytest.raises(ScriptError) as exc:
            evaluate('x = 1\ny = x .. {}\n', "main.lua")
        text = str(exc.value)
        assert text.startswith("main.lua:2:")
        assert "error[E400] ScriptError" in text
        assert "y = x .. {}" in text
        assert "^" in text


class TestBuiltins:
    """Standard library subset."""

    def test_print_logs(self, run_lua):
        """print emits a script.print event instead of writing to stdout."""
        with capture_logs() as logs:
            run_lua('print("hello", 42, nil, 1.0)')
        events = [entry for entry in logs if entry["event"] == "script.print"]
        assert len(events) == 1
        assert events[0]["message"] == "hello\t42\tnil\t1.0"
        assert events[0]["line"] == 1
        assert events[0]["log_level"] == "info"

    def test_type(self, run_lua):
        """type() names Lua types; directives are functions."""
        ev = run_lua("""
            a = type(nil)
            b = type(never_set)
            c = type(A)
            d = type({})
            e = type("s")
            f = type(1.5)
        """)
        g = ev.globals
        assert [g[k] for k in "abcdef"] == ["nil", "nil", "function", "table", "string", "number"]

    def test_tostring(self, run_lua):
        """tostring of numbers, booleans and records."""
        ev = run_lua('a = tostring(3.0)\nb = tostring(true)\nc = tostring(A("www", "1.2.3.4"))\nd = tostring(1e100)')
        assert ev.globals["a"] == "3.0"
        assert ev.globals["b"] == "true"
        assert ev.globals["c"] == "record: A www"
        assert ev.globals["d"] == "1e+100"

    def test_tonumber(self, run_lua):
        """tonumber parses decimal, hex and based strings."""
        ev = run_lua("""
            a = tonumber("0x10")
            b = tonumber("  12  ")
            c = tonumber("z", 36)
            d = tonumber("abc")
            e = tonumber("1.5e2")
        """)
        assert ev.globals["a"] == 16
        assert ev.globals["b"] == 12
        assert ev.globals["c"] == 35
        assert "d" not in ev.globals
        assert ev.globals["e"] == 150.0

    def test_string_format(self, run_lua):
        """string.format maps onto printf conversions."""
        ev = run_lua("""s = string.format("%s=%d %5.2f %q %x %%", "a", 42, 3.14159, 'x"y', 255)""")
        assert ev.globals["s"] == 'a=42  3.14 "x\\"y" ff %'

    def test_string_format_integer_check(self, run_lua):
        """%d rejects non-integral floats."""
        with pytest.raises(ScriptError) as exc:
            run_lua('s = string.format("%d", 3.5)')
        assert "no integer representation" in exc.value.diagnostic.message

    def test_table_library(self, run_lua):
        """insert, concat and unpack."""
        ev = run_lua("""
            t = {}
            table.insert(t, "a")
            table.insert(t, 1, "b")
            s = table.concat(t, ",")
            x, y = table.unpack({1, 2})
            z = unpack({3})
        """)
        assert ev.globals["s"] == "b,a"
        assert (ev.globals["x"], ev.globals["y"], ev.globals["z"]) == (1, 2, 3)

    def test_math_library(self, run_lua):
        """floor, max, min and constants."""
        ev = run_lua("a = math.floor(3.7)\nb = math.max(1, 5, 3)\nc = math.min(2, -1)\nd = math.huge")
        assert ev.globals["a"] == 3 and isinstance(ev.globals["a"], int)
        assert ev.globals["b"] == 5
        assert ev.globals["c"] == -1
        assert ev.globals["d"] == math.inf

    def test_select_negative(self, run_lua):
        """select(-1, ...) returns the last argument."""
        ev = run_lua('x = select(-1, "a", "b")')
        assert ev.globals["x"] == "b"

    def test_bad_argument(self, run_lua):
        """Builtin argument errors use the standard wording."""
        with pytest.raises(ScriptError) as exc:
            run_lua("x = string.upper({})")
        assert exc.value.diagnostic.message == "bad argument #1 to 'upper' (string expected, got table)"

    def test_libraries_are_per_evaluation(self, run_lua):
        """Extending a library table does not leak into the next run."""
        run_lua("string.custom = 1")
        ev = run_lua("x = string.custom")
        assert "x" not in ev.globals


class TestLookup:
    """Name resolution order."""

    def test_globals_shadow_directives(self, run_lua):
        """A script may rebind a directive name."""
        ev = run_lua('function A(x) return "mine" end\nr = A("www", "1.2.3.4")')
        assert ev.globals["r"] == "mine"
        assert ev.document.domains == []

    def test_locals_shadow_builtins(self, run_lua):
        """Locals win over the standard library."""
        ev = run_lua("local print = 5\nx = print")
        assert ev.globals["x"] == 5

    def test_unbound_reads_as_reference(self, run_lua):
        """An unbound name evaluates to a falsy reference."""
        ev = run_lua("x = later\nlater = 1")
        assert isinstance(ev.globals["x"], Reference)
        assert ev.globals["x"].name == "later"
        assert not ev.globals["x"]

    def test_assigning_nil_unbinds(self, run_lua):
        """Setting a global to nil removes it."""
        ev = run_lua("x = 1\nx = nil")
        assert "x" not in ev.globals


class TestInclude:
    """include() evaluates other units in the shared environment."""

    def test_shared_globals(self, run_lua, memory_loader):
        """Globals set in an included unit are visible afterwards."""
        loader = memory_loader({"common.lua": 'REG = NewRegistrar("none")\nIP = "1.2.3.4"'})
        ev = run_lua('include("common.lua")\nD("example.com", REG, A("@", IP))', "main.lua", loader)
        assert ev.globals["IP"] == "1.2.3.4"
        assert ev.document.domains[0].records[0].fields == ["@", "1.2.3.4"]

    def test_locals_do_not_leak(self, run_lua, memory_loader):
        """An included unit's locals stay private."""
        loader = memory_loader({"lib.lua": "local secret = 1\nvisible = secret"})
        ev = run_lua('include("lib.lua")\nx = type(secret)', "main.lua", loader)
        assert ev.globals["x"] == "nil"
        assert ev.globals["visible"] == 1

    def test_return_value(self, run_lua, memory_loader):
        """include() returns the unit's first return value."""
        loader = memory_loader({"values.lua": "return {ttl = 60}"})
        ev = run_lua('cfg = include("values.lua")', "main.lua", loader)
        assert isinstance(ev.globals["cfg"], LuaTable)
        assert ev.globals["cfg"].get("ttl") == 60

    def test_require_alias(self, run_lua, memory_loader):
        """require is an alias of include."""
        loader = memory_loader({"m.lua": "flag = true"})
        ev = run_lua('require("m.lua")', "main.lua", loader)
        assert ev.globals["flag"] is True

    def test_effects_in_order(self, run_lua, memory_loader):
        """The include effect precedes the included unit's effects."""
        loader = memory_loader({"records.lua": 'R = A("www", "1.2.3.4")'})
        ev = run_lua('NewRegistrar("r")\ninclude("records.lua")\nD("x.com", R)', "main.lua", loader)
        assert [(e.action, e.subject) for e in ev.effects] == [
            ("NewRegistrar", "r"), ("include", "records.lua"), ("A", "www"), ("D", "x.com"),
        ]

    def test_native_include(self, run_lua, memory_loader):
        """A .js unit is parsed as native syntax."""
        loader = memory_loader({"providers.js": 'var ignored = 1;\nREG = NewRegistrar("none");'})
        ev = run_lua('include("providers.js")', "main.lua", loader)
        assert ev.document.providers[0].name == "none"

    def test_cycle(self, run_lua, memory_loader):
        """A unit including itself, directly or not, is an error."""
        loader = memory_loader({"b.lua": 'include("a.lua")', "a.lua": 'include("b.lua")'})
        with pytest.raises(IncludeError) as exc:
            run_lua('include("b.lua")', "a.lua", loader)
        assert exc.value.diagnostic.code == "E207"
        assert "include cycle: a.lua -> b.lua -> a.lua" in exc.value.diagnostic.message

    def test_missing_unit(self, run_lua, memory_loader):
        """An unknown name reports the cause."""
        with pytest.raises(IncludeError) as exc:
            run_lua('include("nope.lua")', "main.lua", memory_loader({}))
        assert exc.value.diagnostic.message == "cannot include 'nope.lua': No such file or directory"

    def test_no_loader(self, run_lua):
        """include() needs a loader."""
        with pytest.raises(IncludeError) as exc:
            run_lua('include("x.lua")')
        assert "no include loader" in exc.value.diagnostic.message

    def test_errors_point_into_included_unit(self, run_lua, memory_loader):
        """Diagnostics carry the included file name and line."""
        loader = memory_loader({"bad.lua": "x = 1\nbogus()"})
        with pytest.raises(UnknownDirective) as exc:
            run_lua('include("bad.lua")', "main.lua", loader)
        start = exc.value.span.start
        assert (start.filename, start.line) == ("bad.lua", 2)
        assert exc.value.diagnostic.source_line == "bogus()"

    def test_relative_to_including_file(self, run_lua, memory_loader):
        """The loader is told which file asked."""
        loader = memory_loader({"lib.lua": "x = 1"})
        run_lua('include("lib.lua")', "zones/main.lua", loader)
        assert loader.requests == [("lib.lua", "zones/main.lua")]


class TestEvaluationResult:
    """What an evaluation hands to the finalizer."""

    def test_records_are_document_nodes(self, run_lua):
        """Directive results alias document nodes."""
        ev = run_lua('r = A("www", "1.2.3.4")\nD("example.com", r)')
        assert isinstance(ev.globals["r"], Record)
        assert ev.document.domains[0].records[0] is ev.globals["r"]

    def test_signature_and_syntax(self, run_lua):
        """The evaluation records the syntax and a source signature."""
        ev = run_lua("x = 1", "main.lua")
        assert ev.syntax == "lua"
        assert ev.filename == "main.lua"
        assert ev.source_signature.startswith("sha256:")
