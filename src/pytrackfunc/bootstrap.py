"""Build descriptor reading and runtime module bootstrapping."""

from __future__ import annotations

import logging
import re
import tomllib
from pathlib import Path

from pytrackfunc import runtime
from pytrackfunc.config import Config
from pytrackfunc.exceptions import BootstrapError, RootResolutionError

logger = logging.getLogger(__name__)


def detect_root_package(descriptor: Path) -> str:
    """Root import package named by ``pyproject.toml``.

    ``[tool.pytrackfunc] root`` wins; otherwise ``[project] name`` is
    turned into an import name (``my-app`` -> ``my_app``).
    """
    try:
        with descriptor.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as exc:
        msg = f"cannot detect root package: {descriptor} not found"
        raise RootResolutionError(msg) from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"cannot detect root package: {descriptor}: {exc}"
        raise RootResolutionError(msg) from exc

    root = data.get("tool", {}).get("pytrackfunc", {}).get("root")
    if not root:
        name = data.get("project", {}).get("name")
        if name:
            root = re.sub(r"[-_.]+", "_", name).lower()
    if not root:
        msg = f"root package not found in {descriptor}"
        raise RootResolutionError(msg)
    return root


def pipeline_import(root: str, runtime_package: str = "pytrackfunc") -> str:
    return f"{root}.{runtime_package}"


def pipeline_path(project_dir: Path, root: str, runtime_package: str = "pytrackfunc") -> Path:
    """Location of the generated runtime package inside the root package.

    Prefers ``src/<root>`` when it exists, then ``<root>``.
    """
    parts = root.split(".")
    candidates = [project_dir.joinpath("src", *parts), project_dir.joinpath(*parts)]
    base = next((c for c in candidates if c.is_dir()), candidates[1])
    return base / runtime_package / "__init__.py"


def runtime_template() -> str:
    """Source of the runtime collector, written verbatim into projects."""
    return Path(runtime.__file__).read_text(encoding="utf-8")


def ensure_pipeline_module(path: Path) -> bool:
    """Write the runtime module at ``path`` unless a file is already there.

    Never overwrites, so hand edits survive. Returns True if it wrote.
    """
    if path.exists():
        return False

    logger.info("Creating %s", path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("x", encoding="utf-8", newline="") as f:
            f.write(runtime_template())
    except FileExistsError as exc:
        if path.is_file():
            return False
        msg = f"failed to create runtime module {path}: {exc}"
        raise BootstrapError(msg) from exc
    except OSError as exc:
        msg = f"failed to create runtime module {path}: {exc}"
        raise BootstrapError(msg) from exc
    return True


class Bootstrapper:
    """Resolve the runtime import identifier and materialize its module once."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._identifier: str | None = None

    def prepare(self) -> str:
        """Return the runtime import identifier, creating the module if needed.

        Raises ``RootResolutionError`` (per unit) or ``BootstrapError`` (fatal).
        """
        if self._identifier is None:
            cfg = self.config
            root = detect_root_package(cfg.descriptor_path)
            ensure_pipeline_module(pipeline_path(cfg.project_dir, root, cfg.runtime_package))
            self._identifier = pipeline_import(root, cfg.runtime_package)
        return self._identifier
