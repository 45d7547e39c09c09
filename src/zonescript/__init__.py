"""
zonescript: write dnscontrol configuration in Lua, generate the JavaScript.

Usage:
    from zonescript import compile_source

    result = compile_source('D("example.com", A("www", "1.2.3.4", {ttl = 3600}))')
    print(result.output)
"""

from .dsl.runtime import Evaluation, Interpreter, evaluate
from .compiler import CompileResult, compile_file, compile_source
from .finalize import Finalizer, finalize
from .serializer import Serializer, serialize
from .model import ZoneSnapshot
from .registry import get_directive_registry

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("zonescript")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"

__all__ = [
    'Evaluation',
    'Interpreter',
    'evaluate',
    'CompileResult',
    'compile_file',
    'compile_source',
    'Finalizer',
    'finalize',
    'Serializer',
    'serialize',
    'ZoneSnapshot',
    'get_directive_registry',
    '__version__',
]
