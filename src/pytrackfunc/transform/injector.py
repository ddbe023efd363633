"""Transformer: wrap eligible function bodies in the timing hook and fix imports."""

from __future__ import annotations

import ast
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from pytrackfunc.config import Config
from pytrackfunc.exceptions import ReadError, TransformError, WriteError
from pytrackfunc.transform.policy import (
    already_instrumented,
    body_statements,
    is_stub,
    should_skip,
)
from pytrackfunc.transform.source import (
    leading_whitespace,
    module_name_for,
    parse_unit,
    render,
    split_at_offset,
    validate,
)
from pytrackfunc.transform.types import (
    BatchReport,
    Edit,
    FileResult,
    FileStatus,
    FunctionNode,
    SourceUnit,
)

logger = logging.getLogger(__name__)

_CODING_RE = re.compile(r"^[ \t\f]*#.*?coding[:=]")


def iter_functions(node: ast.AST) -> Iterator[FunctionNode]:
    """Yield function declarations in source order, without entering function bodies.

    Methods and functions defined under module/class-level ``if``/``try``
    blocks are included. Closures are not.
    """
    for child in ast.iter_child_nodes(node):
        if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)):
            yield child
        elif isinstance(child, (ast.stmt, ast.excepthandler, ast.match_case)):
            yield from iter_functions(child)


def _statement_start(stmt: ast.stmt) -> int:
    """1-based first row of a statement, decorators included."""
    decorators = getattr(stmt, "decorator_list", [])
    return min([stmt.lineno, *(d.lineno for d in decorators)])


def _existing_import_anchor(tree: ast.Module) -> int | None:
    """0-based line right after the first group of consecutive module-level imports."""
    body = tree.body
    for index, stmt in enumerate(body):
        if isinstance(stmt, (ast.Import, ast.ImportFrom)):
            last = stmt
            for follower in body[index + 1 :]:
                if not isinstance(follower, (ast.Import, ast.ImportFrom)):
                    break
                last = follower
            return last.end_lineno or last.lineno
    return None


def _header_rows(lines: list[str]) -> int:
    """Leading shebang and encoding-cookie rows, which must stay on top."""
    rows = 0
    while rows < min(2, len(lines)) and (
        lines[rows].startswith("#!") or _CODING_RE.match(lines[rows])
    ):
        rows += 1
    return rows


def _new_group_anchor(unit: SourceUnit) -> int:
    """0-based line before the first statement, after the module docstring.

    Comment lines directly above that statement stay attached to it.
    """
    body = unit.tree.body
    start = 0
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        start = 1
    if start >= len(body):
        return (body[-1].end_lineno or body[-1].lineno) if body else 0

    anchor = _statement_start(body[start]) - 1
    floor = (body[0].end_lineno or 0) if start else _header_rows(unit.lines)
    while anchor > floor and unit.lines[anchor - 1].lstrip().startswith("#"):
        anchor -= 1
    return anchor


def ensure_import(unit: SourceUnit, identifier: str) -> bool:
    """Make sure ``identifier`` is imported by the unit. Returns True if added.

    Dotted identifiers are imported as ``from parent import leaf`` so the
    leaf name is bound, plain ones as ``import name``. A ``" as alias"``
    suffix binds the alias instead.
    """
    if identifier in unit.imports:
        return False

    target, _, alias = identifier.partition(" as ")
    parent, _, leaf = target.rpartition(".")
    statement = f"from {parent} import {leaf}" if parent else f"import {target}"
    if alias:
        statement += f" as {alias}"

    if unit.import_anchor is None:
        anchor = _existing_import_anchor(unit.tree)
        if anchor is None:
            anchor = _new_group_anchor(unit)
            unit.new_import_group = True
        unit.import_anchor = anchor
    unit.pending_imports.append(statement + unit.newline)
    unit.imports.append(identifier)
    return True


def _indent_step(outer: str, inner: str) -> str:
    if inner.startswith(outer) and len(inner) > len(outer):
        return inner[len(outer) :]
    return "\t" if "\t" in outer else "    "


class Transformer:
    """Instrument source units with the timing hook.

    Usage:
        transformer = Transformer(config, prepare_pipeline)
        report = transformer.run_batch(paths)

    ``prepare_pipeline`` is called once a unit actually needs the runtime;
    it resolves (and materializes) the runtime module and returns its
    import identifier.
    """

    def __init__(self, config: Config, prepare_pipeline: Callable[[], str]) -> None:
        self.config = config
        self.prepare_pipeline = prepare_pipeline

    # ------------------------------------------------------------------
    # Tree mutation
    # ------------------------------------------------------------------

    def transform(self, unit: SourceUnit) -> int:
        """Instrument every eligible function in ``unit``. Returns the count."""
        runtime = self.config.runtime_package
        hook = self.config.hook_name
        count = 0

        for node in iter_functions(unit.tree):
            if is_stub(node):
                continue
            if should_skip(node, unit.lines, self.config.skip_marker):
                logger.debug("Skipping %s.%s (marked)", unit.module, node.name)
                continue
            if already_instrumented(node, runtime, hook):
                continue
            self._wrap_body(unit, node, f"{unit.module}.{node.name}")
            count += 1

        if count:
            pipeline = self.prepare_pipeline()
            ensure_import(unit, self.config.clock_import)
            ensure_import(unit, pipeline)
        return count

    def hook_statement(self, qualified_name: str) -> str:
        cfg = self.config
        return f'with {cfg.runtime_package}.{cfg.hook_name}("{qualified_name}", {cfg.clock_call}):'

    def _wrap_body(self, unit: SourceUnit, node: FunctionNode, qualified_name: str) -> None:
        """Queue an edit nesting the body (after the docstring) under the hook."""
        stmts = body_statements(node)
        first, last = stmts[0], stmts[-1]
        start_row = _statement_start(first)
        end_row = last.end_lineno or last.lineno

        def_indent = leading_whitespace(unit.lines[node.lineno - 1])
        start_line = unit.lines[start_row - 1]
        if start_row == first.lineno:
            head, tail = split_at_offset(start_line, first.col_offset)
        else:
            # Decorated statements always start on their own row.
            head = leading_whitespace(start_line)
            tail = start_line[len(head) :]
        hook_line = self.hook_statement(qualified_name)
        nl = unit.newline

        new_lines: list[str] = []
        if head.strip():
            # Body shares its row with the signature or the docstring.
            row_indent = leading_whitespace(head)
            if (
                first.lineno != node.lineno
                and first.lineno not in unit.string_rows
                and len(row_indent) > len(def_indent)
            ):
                body_indent = row_indent
            else:
                body_indent = def_indent + _indent_step(def_indent, "")
            step = _indent_step(def_indent, body_indent)
            new_lines.append(head.rstrip().rstrip(";").rstrip() + nl)
            new_lines.append(body_indent + hook_line + nl)
            new_lines.append(body_indent + step + tail)
        else:
            step = _indent_step(def_indent, head)
            new_lines.append(head + hook_line + nl)
            new_lines.append(step + start_line)

        for row in range(start_row + 1, end_row + 1):
            line = unit.lines[row - 1]
            if row in unit.string_rows or not line.strip():
                new_lines.append(line)
            else:
                new_lines.append(step + line)

        unit.edits.append(Edit(start_row - 1, end_row, tuple(new_lines)))

    # ------------------------------------------------------------------
    # File processing
    # ------------------------------------------------------------------

    def process_file(self, path: str | Path) -> FileResult:
        """Read, transform, validate and write back one file.

        Raises a ``TransformError`` subclass for per-file failures. The
        file is only written after the full output rendered and re-parsed.
        """
        path = Path(path)
        try:
            with path.open(encoding="utf-8", newline="") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"read: {exc}"
            raise ReadError(msg) from exc

        unit = parse_unit(path, text, module_name_for(path, self.config.project_dir))
        count = self.transform(unit)
        if not unit.modified:
            return FileResult(path=str(path), status=FileStatus.UNCHANGED)

        output = render(unit)
        validate(output, path)

        try:
            with path.open("w", encoding="utf-8", newline="") as f:
                f.write(output)
        except OSError as exc:
            msg = f"write: {exc}"
            raise WriteError(msg) from exc

        logger.debug("Instrumented %d functions in %s", count, path)
        return FileResult(path=str(path), status=FileStatus.INSTRUMENTED, instrumented=count)

    def run_batch(self, paths: Iterable[str | Path]) -> BatchReport:
        """Process files sequentially. Per-file errors are logged, not raised.

        ``BootstrapError`` propagates: without the runtime module every
        instrumented file would import a module that does not exist.
        """
        report = BatchReport()
        for path in paths:
            logger.info("Processing %s", path)
            try:
                result = self.process_file(path)
            except TransformError as exc:
                logger.error("Error processing %s: %s", path, exc)
                result = FileResult(path=str(path), status=FileStatus.FAILED, error=str(exc))
            report.results.append(result)
        return report
