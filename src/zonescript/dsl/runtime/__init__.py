"""
DSL Runtime - Tree-walking interpreter for zonescript.

This module provides:
- Interpreter: Executes chunks, dispatching directive calls to the registry
- LuaTable and friends: Runtime value representation
- ExecutionContext: Variable scope management
- Provenance: Source signatures for generated output
- BuiltinRegistry: Standard library subset
"""

from .values import (
    LuaRuntimeError,
    LuaCallable,
    LuaTable,
    LuaFunction,
    CallArgs,
    is_truthy,
    lua_type,
    kind_of,
    tostring,
    tonumber,
)

from .context import (
    Scope,
    ExecutionContext,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
)

from .provenance import (
    Provenance,
    create_provenance,
    compute_source_signature,
    read_header_signature,
    verify_source_signature,
)

from .interpreter import (
    Interpreter,
    Evaluation,
    evaluate,
)

__all__ = [
    # Values
    'LuaRuntimeError',
    'LuaCallable',
    'LuaTable',
    'LuaFunction',
    'CallArgs',
    'is_truthy',
    'lua_type',
    'kind_of',
    'tostring',
    'tonumber',

    # Context
    'Scope',
    'ExecutionContext',

    # Builtins
    'BuiltinFunction',
    'BuiltinRegistry',
    'get_builtin_registry',

    # Provenance
    'Provenance',
    'create_provenance',
    'compute_source_signature',
    'read_header_signature',
    'verify_source_signature',

    # Interpreter
    'Interpreter',
    'Evaluation',
    'evaluate',
]
