"""Internal data types for the source transformer.

A ``SourceUnit`` is one parsed file: its original text, the ``ast`` tree,
the module-level import list and the edits queued against it. Edits are
derived from the tree and spliced into the original lines on render, so
comments and formatting outside the edited ranges are kept as written.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


class HookMatch(StrEnum):
    UNRECOGNIZED = "unrecognized"
    GENERATED_HOOK = "generated_hook"


class FileStatus(StrEnum):
    INSTRUMENTED = "instrumented"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Edit:
    """Replace ``lines[start:end]`` (0-based, end exclusive) with ``lines``.

    ``start == end`` is a pure insertion before line ``start``.
    """

    start: int
    end: int
    lines: tuple[str, ...]


@dataclass(slots=True)
class SourceUnit:
    """One parsed source file, mutated in place by the transformer."""

    path: Path
    text: str
    tree: ast.Module
    module: str  # "pkg.sub.foo"
    lines: list[str]  # original lines, line endings kept
    newline: str = "\n"
    string_rows: frozenset[int] = frozenset()  # 1-based rows starting inside a string
    imports: list[str] = field(default_factory=list)  # insertion order
    edits: list[Edit] = field(default_factory=list)
    pending_imports: list[str] = field(default_factory=list)  # rendered import lines
    import_anchor: int | None = None  # 0-based line the pending imports go before
    new_import_group: bool = False  # no module-level imports existed

    @property
    def modified(self) -> bool:
        return bool(self.edits or self.pending_imports)


@dataclass(frozen=True, slots=True)
class FileResult:
    """Outcome of processing one source file."""

    path: str
    status: FileStatus
    instrumented: int = 0
    error: str | None = None


@dataclass(slots=True)
class BatchReport:
    """Per-file outcomes for one transformation run."""

    results: list[FileResult] = field(default_factory=list)

    @property
    def instrumented_files(self) -> int:
        return sum(1 for r in self.results if r.status == FileStatus.INSTRUMENTED)

    @property
    def instrumented_functions(self) -> int:
        return sum(r.instrumented for r in self.results)

    @property
    def failed(self) -> list[FileResult]:
        return [r for r in self.results if r.status == FileStatus.FAILED]
