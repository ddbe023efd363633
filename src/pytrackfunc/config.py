"""Configuration management for pytrackfunc."""

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_SKIP_DIRS = frozenset(
    {
        ".git",
        ".github",
        ".idea",
        ".venv",
        "venv",
        "__pycache__",
        "node_modules",
        "build",
        "dist",
    }
)


@dataclass
class Config:
    """Central configuration with path properties and instrumentation knobs."""

    project_dir: Path = field(default_factory=Path.cwd)

    # Instrumentation
    skip_marker: str = "notrack"
    runtime_package: str = "pytrackfunc"
    hook_name: str = "hook"
    clock_module: str = "time"
    clock_alias: str = "_pytrackfunc_time"  # never shadowed by user names

    # Discovery
    wildcard: str = "./..."
    skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRS

    # Trace log
    log_file_name: str = "pytrackfunc.log"

    @property
    def descriptor_path(self) -> Path:
        return self.project_dir / "pyproject.toml"

    @property
    def log_path(self) -> Path:
        return self.project_dir / self.log_file_name

    @property
    def clock_import(self) -> str:
        return f"{self.clock_module} as {self.clock_alias}"

    @property
    def clock_call(self) -> str:
        return f"{self.clock_alias}.perf_counter_ns()"

    @property
    def all_skip_dirs(self) -> frozenset[str]:
        """Skip list plus the generated runtime package itself."""
        return self.skip_dirs | {self.runtime_package}
