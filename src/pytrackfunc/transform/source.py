"""Parse/render adapter over ``ast`` and ``tokenize``.

Parsing builds a ``SourceUnit``. Rendering splices the unit's edits into
the original lines and re-parses the result before handing it back.
"""

from __future__ import annotations

import ast
import io
import tokenize
from pathlib import Path

from pytrackfunc.exceptions import FormatError, ParseError
from pytrackfunc.transform.types import Edit, SourceUnit

_FSTRING_STARTS = frozenset(
    getattr(tokenize, name) for name in ("FSTRING_START", "TSTRING_START") if hasattr(tokenize, name)
)
_FSTRING_ENDS = frozenset(
    getattr(tokenize, name) for name in ("FSTRING_END", "TSTRING_END") if hasattr(tokenize, name)
)


def module_name_for(path: Path, project_dir: Path) -> str:
    """Dotted module name of ``path`` relative to the project root.

    ``src/`` layouts are unwrapped and ``__init__`` collapses to its package.
    Files outside the project fall back to their stem.
    """
    try:
        rel = path.resolve().relative_to(project_dir.resolve())
    except ValueError:
        rel = Path(path.name)

    parts = list(rel.with_suffix("").parts)
    if len(parts) > 1 and parts[0] == "src":
        parts = parts[1:]
    if len(parts) > 1 and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def split_lines(text: str) -> list[str]:
    """Split on the same newlines the tokenizer honours, keeping endings."""
    return io.StringIO(text, newline="").readlines()


def string_continuation_rows(text: str) -> frozenset[int]:
    """1-based rows that begin inside a multi-line string literal."""
    rows: set[int] = set()
    opened: list[int] = []
    for tok in tokenize.generate_tokens(io.StringIO(text, newline="").readline):
        if tok.type == tokenize.STRING:
            rows.update(range(tok.start[0] + 1, tok.end[0] + 1))
        elif tok.type in _FSTRING_STARTS:
            opened.append(tok.start[0])
        elif tok.type in _FSTRING_ENDS and opened:
            start_row = opened.pop()
            rows.update(range(start_row + 1, tok.end[0] + 1))
    return frozenset(rows)


def _import_key(name: str, asname: str | None) -> str:
    return f"{name} as {asname}" if asname else name


def collect_imports(tree: ast.Module) -> list[str]:
    """Identifiers bound by module-level imports.

    ``import a`` gives ``"a"``, ``from a import b`` gives ``"a.b"`` and an
    alias is kept as a suffix: ``import time as t`` gives ``"time as t"``.
    """
    imports: list[str] = []
    for node in tree.body:
        if isinstance(node, ast.Import):
            names = [_import_key(alias.name, alias.asname) for alias in node.names]
        elif isinstance(node, ast.ImportFrom) and not node.level and node.module:
            names = [
                _import_key(f"{node.module}.{alias.name}", alias.asname) for alias in node.names
            ]
        else:
            continue
        imports.extend(name for name in names if name not in imports)
    return imports


def _detect_newline(lines: list[str]) -> str:
    for line in lines:
        for ending in ("\r\n", "\n", "\r"):
            if line.endswith(ending):
                return ending
    return "\n"


def parse_unit(path: Path, text: str, module: str) -> SourceUnit:
    """Parse ``text`` into a ``SourceUnit``. Raises ``ParseError``."""
    try:
        tree = ast.parse(text, filename=str(path))
        string_rows = string_continuation_rows(text)
    except (SyntaxError, tokenize.TokenError, ValueError) as exc:
        msg = f"parse: {exc}"
        raise ParseError(msg) from exc

    lines = split_lines(text)
    return SourceUnit(
        path=path,
        text=text,
        tree=tree,
        module=module,
        lines=lines,
        newline=_detect_newline(lines),
        string_rows=string_rows,
        imports=collect_imports(tree),
    )


def render(unit: SourceUnit) -> str:
    """Apply queued edits to the original lines and return the new text."""
    edits = list(unit.edits)
    if unit.pending_imports:
        anchor = unit.import_anchor or 0
        block = list(unit.pending_imports)
        if unit.new_import_group and anchor < len(unit.lines):
            block.append(unit.newline)
        edits.append(Edit(anchor, anchor, tuple(block)))
    if not edits:
        return unit.text

    lines = list(unit.lines)
    for edit in sorted(edits, key=lambda e: (e.start, e.end), reverse=True):
        prev = edit.start - 1
        if 0 <= prev < len(lines) and not lines[prev].endswith(("\n", "\r")):
            lines[prev] += unit.newline
        lines[edit.start : edit.end] = edit.lines
    return "".join(lines)


def validate(text: str, path: Path) -> None:
    """Re-parse rendered output. Raises ``FormatError`` if it is not valid Python."""
    try:
        ast.parse(text, filename=str(path))
    except (SyntaxError, ValueError) as exc:
        msg = f"format: rendered output does not parse: {exc}"
        raise FormatError(msg) from exc


def leading_whitespace(line: str) -> str:
    return line[: len(line) - len(line.lstrip(" \t\f"))]


def split_at_offset(line: str, col_offset: int) -> tuple[str, str]:
    """Split ``line`` at an ``ast`` column offset (UTF-8 bytes)."""
    raw = line.encode("utf-8")
    return raw[:col_offset].decode("utf-8"), raw[col_offset:].decode("utf-8")
