"""
The zonescript pipeline: evaluate, finalize, serialize, commit.

Nothing is written unless every stage succeeds.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple

import structlog

from .config import Settings
from .dsl.errors import DslError, ZoneIOError
from .dsl.runtime import Evaluation, evaluate
from .fileio import FileLoader, read_source, write_atomic
from .finalize import finalize
from .model import Effect, ZoneSnapshot
from .serializer import serialize

log = structlog.get_logger(__name__)


@dataclass
class CompileResult:
    """Result of compiling one entrypoint."""
    output: str
    snapshot: ZoneSnapshot
    evaluation: Evaluation
    output_path: Optional[Path] = None

    @property
    def effects(self) -> Tuple[Effect, ...]:
        return self.evaluation.effects

    @property
    def record_count(self) -> int:
        return sum(len(domain.records) for domain in self.snapshot.domains)


def compile_source(source: str, filename: Optional[str] = None, syntax: str = "lua",
                   loader: Any = None, indent: int = 4, header: bool = True) -> CompileResult:
    """
    Compile source text to dnscontrol JavaScript.

    Args:
        source: Script text
        filename: Name used in diagnostics, include resolution and the header
        syntax: "lua" or "native"
        loader: Include resolver; include() fails without one
        indent: Spaces before each record line
        header: Emit the provenance comment header

    Raises:
        DslError: On any evaluation, finalization or serialization error
    """
    log.debug("compile.start", file=filename, syntax=syntax)
    evaluation = evaluate(source, filename, syntax=syntax, loader=loader)
    try:
        snapshot = finalize(evaluation)
        output = serialize(snapshot, indent=indent, header=header)
    except DslError as exc:
        exc.attach_source(source.splitlines(), filename)
        raise
    return CompileResult(output=output, snapshot=snapshot, evaluation=evaluation)


def compile_file(input_path: str, output_path: Optional[str] = None,
                 settings: Optional[Settings] = None, syntax: Optional[str] = None) -> CompileResult:
    """
    Compile a file, committing the result to output_path when given.

    Raises:
        DslError: On any script error; the output file is left untouched
        ZoneIOError: If the input cannot be read or the output written
    """
    settings = settings or Settings()
    syntax = syntax or settings.syntax_for(input_path)
    try:
        source = read_source(input_path)
        result = compile_source(
            source,
            filename=input_path,
            syntax=syntax,
            loader=FileLoader(settings.include_paths),
            indent=settings.indent,
            header=settings.header,
        )
        if output_path is not None:
            write_atomic(output_path, result.output)
            result.output_path = Path(output_path)
            log.info(
                "output.committed",
                path=output_path,
                domains=len(result.snapshot.domains),
                records=result.record_count,
            )
        return result
    except DslError as exc:
        span = exc.span
        log.error(
            "compile.failed",
            file=input_path,
            code=exc.diagnostic.code,
            kind=exc.diagnostic.kind,
            line=span.start.line if span is not None else None,
        )
        raise
    except ZoneIOError as exc:
        log.error("compile.failed", file=input_path, path=str(exc.path), action=exc.action)
        raise
