"""
File access for zonescript: reading sources, resolving includes and
committing generated output atomically.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import structlog

from .dsl.errors import ZoneIOError

log = structlog.get_logger(__name__)

PathLike = Union[str, Path]


def read_source(path: PathLike) -> str:
    """Read a UTF-8 source file in one scoped read."""
    try:
        with open(path, "r", encoding="utf-8") as fp:
            return fp.read()
    except OSError as exc:
        raise ZoneIOError(path, exc, "read") from exc


def write_atomic(path: PathLike, text: str) -> None:
    """
    Replace path with text, or leave it untouched.

    The text goes to a temporary file in the destination directory, which
    is flushed, fsynced and then renamed over the target. The temporary
    file is removed on every failure path.
    """
    target = Path(path)
    directory = target.parent if str(target.parent) else Path(".")
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fp:
            fp.write(text)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        raise ZoneIOError(target, exc, "write") from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
    log.debug("output.written", path=str(target), bytes=len(text.encode("utf-8")))


class FileLoader:
    """
    Resolve include() names to files.

    A relative name is looked up next to the including file first, then
    in each search path in order. Names are canonicalized to resolved
    absolute paths so include cycles are detected however they are spelled.
    """

    def __init__(self, search_paths: Iterable[PathLike] = ()):
        self.search_paths: List[Path] = [Path(p) for p in search_paths]

    def canonical(self, name: str) -> str:
        return str(Path(name).resolve())

    def candidates(self, name: str, relative_to: Optional[str] = None) -> List[Path]:
        path = Path(name)
        if path.is_absolute():
            return [path]
        found = []
        if relative_to:
            found.append(Path(relative_to).parent / path)
        else:
            found.append(Path.cwd() / path)
        found.extend(directory / path for directory in self.search_paths)
        return found

    def load(self, name: str, relative_to: Optional[str] = None) -> Tuple[str, str]:
        """
        Return (source, canonical path) for an include name.

        Raises:
            ZoneIOError: If no candidate exists or the file cannot be read
        """
        candidates = self.candidates(name, relative_to)
        for candidate in candidates:
            if candidate.is_file():
                return read_source(candidate), self.canonical(str(candidate))
        missing = FileNotFoundError(2, "No such file or directory", name)
        raise ZoneIOError(candidates[0], missing, "include")
