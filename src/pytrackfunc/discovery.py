"""Expand CLI path arguments into the list of source files to instrument."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pytrackfunc.config import Config
from pytrackfunc.exceptions import DiscoveryError

logger = logging.getLogger(__name__)


def is_source_file(name: str) -> bool:
    """Python sources that are not tests."""
    if not name.endswith(".py"):
        return False
    return not (name.startswith("test_") or name.endswith("_test.py") or name == "conftest.py")


def expand_wildcard(root: Path, skip_dirs: frozenset[str]) -> list[str]:
    """All eligible source files under ``root``, in sorted walk order."""
    if not root.is_dir():
        msg = f"not a directory: {root}"
        raise DiscoveryError(msg)

    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in skip_dirs and not d.endswith(".egg-info")
        )
        files.extend(
            os.path.join(dirpath, name) for name in sorted(filenames) if is_source_file(name)
        )
    logger.debug("Discovered %d files under %s", len(files), root)
    return files


def expand_args(args: list[str], config: Config) -> list[str]:
    """Replace the wildcard token with discovered files; keep other paths as given."""
    files: list[str] = []
    for arg in args:
        if arg == config.wildcard:
            files.extend(expand_wildcard(config.project_dir, config.all_skip_dirs))
        else:
            files.append(arg)
    return files
