"""
Import smoke tests for the zonescript package.
"""

import importlib

import pytest


MODULES = [
    "zonescript",
    "zonescript.__main__",
    "zonescript.config",
    "zonescript.compiler",
    "zonescript.finalize",
    "zonescript.model",
    "zonescript.registry",
    "zonescript.serializer",
    "zonescript.dsl.runtime.builtins",
    "zonescript.dsl.runtime.interpreter",
    "zonescript.dsl.runtime.values",
]


class TestImports:
    """Every module imports cleanly."""

    @pytest.mark.parametrize("name", MODULES)
    def test_import(self, name):
        """The module imports without error."""
        assert importlib.import_module(name) is not None

    def test_public_names(self):
        """The package exports what its __all__ lists."""
        import zonescript
        for name in zonescript.__all__:
            assert hasattr(zonescript, name)


class TestCallables:
    """Dataclass callables construct with the fields they declare."""

    def test_builtin_function(self):
        """A builtin needs only a name and an implementation."""
        from zonescript.dsl.runtime.builtins import BuiltinFunction
        function = BuiltinFunction("noop", lambda args: [])
        assert function.name == "noop"
        assert function.doc == ""

    def test_directive(self):
        """A directive needs a name, a shape and a builder."""
        from zonescript.registry import Directive
        directive = Directive("X", (), lambda call: None)
        assert directive.name == "X"
        assert directive.rest is None
        assert directive.signature() == "X()"

    def test_lua_function_default_name(self):
        """Closures without a name are anonymous."""
        from zonescript.dsl.runtime.values import LuaFunction
        function = LuaFunction(params=[], is_variadic=False, body=None, closure=None)
        assert function.name == "anonymous"

    def test_registry_builds(self):
        """The shared registry constructs every directive."""
        from zonescript.registry import get_directive_registry
        assert "D" in get_directive_registry()
