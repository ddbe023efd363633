"""Aggregator: reduce the trace log to a per-function summary."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, computed_field
from rich.table import Table

from pytrackfunc.exceptions import LogNotFoundError

logger = logging.getLogger(__name__)

HEADER = ("FUNCTION", "CALLS", "TOTAL_NS", "TOTAL_SEC")
PADDING = 2


@dataclass(frozen=True, slots=True)
class LogRecord:
    """One trace log line: ``<name> <count> <elapsed_ns>``."""

    name: str
    count: int
    elapsed_ns: int


@dataclass(frozen=True, slots=True)
class ParsedLine:
    record: LogRecord | None  # None for blank lines
    error: str | None = None


class AggregateEntry(BaseModel):
    name: str
    calls: int = 0
    total_ns: int = 0

    @computed_field
    @property
    def total_seconds(self) -> float:
        return self.total_ns / 1e9


class Summary(BaseModel):
    entries: list[AggregateEntry] = Field(default_factory=list)
    lines: int = 0
    malformed: int = 0


def parse_line(line: str) -> ParsedLine:
    """Parse one log line leniently.

    Fields are whitespace separated. Parsing stops at the first field that
    is missing or not an integer; that field and the ones after it stay 0
    and the line still counts. Extra trailing fields are ignored.
    """
    fields = line.split()
    if not fields:
        return ParsedLine(record=None)

    name = fields[0]
    numbers = [0, 0]
    error: str | None = None
    for index in range(2):
        position = index + 1
        if position >= len(fields):
            error = f"expected 3 fields, got {len(fields)}"
            break
        try:
            numbers[index] = int(fields[position])
        except ValueError:
            error = f"field {position + 1} is not an integer: {fields[position]!r}"
            break

    return ParsedLine(record=LogRecord(name, numbers[0], numbers[1]), error=error)


def aggregate(lines: Iterable[str]) -> Summary:
    """Sum calls and elapsed time per function name.

    Entries are ordered by total elapsed time, largest first; equal totals
    are ordered by name.
    """
    counts: dict[str, int] = {}
    sums: dict[str, int] = {}
    total_lines = 0
    malformed = 0

    for line in lines:
        parsed = parse_line(line)
        if parsed.record is None:
            continue
        total_lines += 1
        if parsed.error is not None:
            malformed += 1
            logger.debug("Lenient parse of %r: %s", line.rstrip("\n"), parsed.error)
        record = parsed.record
        counts[record.name] = counts.get(record.name, 0) + record.count
        sums[record.name] = sums.get(record.name, 0) + record.elapsed_ns

    entries = [AggregateEntry(name=name, calls=counts[name], total_ns=sums[name]) for name in counts]
    entries.sort(key=lambda e: (-e.total_ns, e.name))
    return Summary(entries=entries, lines=total_lines, malformed=malformed)


def summarize_file(path: Path) -> Summary:
    """Aggregate the trace log at ``path``. Raises ``LogNotFoundError``."""
    try:
        with path.open(encoding="utf-8", errors="replace") as f:
            return aggregate(f)
    except FileNotFoundError as exc:
        msg = f"cannot open log: {path}"
        raise LogNotFoundError(msg) from exc


def _row(entry: AggregateEntry) -> tuple[str, str, str, str]:
    return (entry.name, str(entry.calls), str(entry.total_ns), f"{entry.total_seconds:.2f}")


def render_table(summary: Summary) -> Table:
    """Rich table for terminal output."""
    table = Table(title="Function timings")
    table.add_column(HEADER[0], style="cyan")
    for column in HEADER[1:]:
        table.add_column(column, justify="right")
    for entry in summary.entries:
        table.add_row(*_row(entry))
    return table


def render_plain(summary: Summary) -> str:
    """Column-aligned text: header, dashed rule, one row per function."""
    rule = tuple("-" * len(column) for column in HEADER)
    rows = [HEADER, rule, *(_row(e) for e in summary.entries)]
    widths = [max(len(row[i]) for row in rows) + PADDING for i in range(len(HEADER) - 1)]
    lines = [
        "".join(cell.ljust(width) for cell, width in zip(row[:-1], widths, strict=True)) + row[-1]
        for row in rows
    ]
    return "\n".join(lines) + "\n"
