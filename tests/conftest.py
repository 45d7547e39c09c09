"""
Shared fixtures for the zonescript test suite.
"""

import logging
import os
import textwrap

import pytest
import structlog

from zonescript.dsl.errors import ZoneIOError
from zonescript.dsl.runtime import evaluate
from zonescript.finalize import finalize


@pytest.fixture(autouse=True)
def _reset_logging():
    """CLI tests configure logging; undo it so capture_logs works everywhere."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("zonescript").setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def _clear_settings_env(monkeypatch):
    """Settings read ZONESCRIPT_* variables; start every test without them."""
    for key in list(os.environ):
        if key.upper().startswith("ZONESCRIPT_"):
            monkeypatch.delenv(key)


class MemoryLoader:
    """Include loader backed by a dict of name -> source."""

    def __init__(self, sources):
        self.sources = dict(sources)
        self.requests = []

    def load(self, name, relative_to=None):
        self.requests.append((name, relative_to))
        if name not in self.sources:
            raise ZoneIOError(name, FileNotFoundError(2, "No such file or directory", name), "include")
        return textwrap.dedent(self.sources[name]), name


@pytest.fixture
def memory_loader():
    return MemoryLoader


@pytest.fixture
def run_lua():
    """Evaluate a dedented Lua snippet and return the Evaluation."""
    def _run(source, filename=None, loader=None, syntax="lua"):
        return evaluate(textwrap.dedent(source), filename, syntax=syntax, loader=loader)
    return _run


@pytest.fixture
def snapshot_of():
    """Evaluate and finalize a dedented snippet."""
    def _snapshot(source, syntax="lua", filename=None, loader=None):
        evaluation = evaluate(textwrap.dedent(source), filename, syntax=syntax, loader=loader)
        return finalize(evaluation)
    return _snapshot
