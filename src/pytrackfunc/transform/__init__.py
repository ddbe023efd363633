"""Source transformer: function-level timing instrumentation for Python files.

Public API:
    instrument_source(source, module, pipeline_import) -> tuple[str, int]
    Transformer(config, prepare_pipeline).run_batch(paths) -> BatchReport
"""

from __future__ import annotations

from pathlib import Path

from pytrackfunc.config import Config
from pytrackfunc.transform.injector import Transformer, ensure_import, iter_functions
from pytrackfunc.transform.policy import already_instrumented, classify_statement, should_skip
from pytrackfunc.transform.source import parse_unit, render, validate
from pytrackfunc.transform.types import (
    BatchReport,
    FileResult,
    FileStatus,
    HookMatch,
    SourceUnit,
)


def instrument_source(
    source: str,
    module: str,
    pipeline_import: str,
    config: Config | None = None,
) -> tuple[str, int]:
    """Instrument ``source`` in memory. Returns (new source, functions instrumented)."""
    path = Path(f"<{module}>")
    transformer = Transformer(config or Config(), lambda: pipeline_import)
    unit = parse_unit(path, source, module)
    count = transformer.transform(unit)
    output = render(unit)
    validate(output, path)
    return output, count


__all__ = [
    "BatchReport",
    "FileResult",
    "FileStatus",
    "HookMatch",
    "SourceUnit",
    "Transformer",
    "already_instrumented",
    "classify_statement",
    "ensure_import",
    "instrument_source",
    "iter_functions",
    "should_skip",
]
