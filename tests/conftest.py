"""Shared fixtures for all test modules."""

from textwrap import dedent

import pytest

from pytrackfunc.config import Config
from pytrackfunc.transform import Transformer

PIPELINE = "demo.pytrackfunc"


@pytest.fixture
def tmp_config(tmp_path):
    """Config rooted at a temp project directory."""
    return Config(project_dir=tmp_path)


@pytest.fixture
def transformer(tmp_config):
    """Transformer with a fixed runtime import, no descriptor or bootstrap."""
    return Transformer(tmp_config, lambda: PIPELINE)


@pytest.fixture
def project(tmp_path):
    """Minimal flat-layout project named ``demo`` with an empty package."""
    (tmp_path / "pyproject.toml").write_text(
        dedent("""\
            [project]
            name = "demo"
            version = "0.0.1"
        """),
        encoding="utf-8",
    )
    package = tmp_path / "demo"
    package.mkdir()
    (package / "__init__.py").write_text("", encoding="utf-8")
    return tmp_path
