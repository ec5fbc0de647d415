"""Shared fixtures: small engine source trees with ``build.lua`` scripts."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from buildgraph.config.schema import BuildOptions, Configuration


@pytest.fixture
def engine_root(tmp_path: Path) -> Path:
    """Empty engine root with a ``src`` directory."""
    root = tmp_path / "engine"
    (root / "src").mkdir(parents=True)
    return root


@pytest.fixture
def add_project(engine_root: Path) -> Callable[..., Path]:
    """Factory writing a project directory below ``<engine>/src``.

    ``files`` maps project-relative paths to file content.
    """

    def _add(relative: str, script: str, files: Optional[Dict[str, str]] = None) -> Path:
        directory = engine_root / "src" / relative
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "build.lua").write_text(script, encoding="utf-8")
        for name, content in (files or {}).items():
            path = directory / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return directory

    return _add


@pytest.fixture
def make_config(engine_root: Path) -> Callable[..., Configuration]:
    """Factory for a fully resolved configuration rooted at ``engine_root``."""

    def _make(**options: object) -> Configuration:
        return Configuration.from_options(
            BuildOptions(engine_dir=str(engine_root), **options)
        )

    return _make
