"""Tests for copying deploy files."""

from __future__ import annotations

import os
from pathlib import Path

from buildgraph.config.schema import Configuration
from buildgraph.diagnostics import Severity
from buildgraph.project import ProjectInfo, ProjectKind, ProjectStructure
from buildgraph.project.deploy import copy_newer_file, deploy_files
from buildgraph.project.models import DeployInfo


def _structure(tmp_path: Path) -> ProjectStructure:
    data = tmp_path / "data"
    data.mkdir()
    (data / "config.ini").write_text("a", encoding="utf-8")
    (data / "font.ttf").write_text("b", encoding="utf-8")
    project = ProjectInfo(name="game", merged_name="game", kind=ProjectKind.LOCAL_APPLICATION)
    project.deploy_list = [DeployInfo(data / "config.ini", "cfg/config.ini")]
    project.shared_deploy_list = [DeployInfo(data / "font.ttf", "font.ttf")]
    structure = ProjectStructure()
    structure.register(project)
    return structure


def test_deploy_copies_once(tmp_path: Path) -> None:
    structure = _structure(tmp_path)
    config = Configuration(deploy_path=tmp_path / "bin", shared_deploy_path=tmp_path / "shared")

    first = deploy_files(structure, config)
    second = deploy_files(structure, config)

    assert first.ok and first.copied == 2
    assert second.copied == 0
    assert (tmp_path / "bin" / "cfg" / "config.ini").read_text(encoding="utf-8") == "a"
    assert (tmp_path / "shared" / "font.ttf").read_text(encoding="utf-8") == "b"


def test_newer_source_is_copied_again(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    target = tmp_path / "out" / "a.txt"
    source.write_text("1", encoding="utf-8")
    assert copy_newer_file(source, target)

    source.write_text("2", encoding="utf-8")
    stamp = target.stat().st_mtime_ns + 5_000_000_000
    os.utime(source, ns=(stamp, stamp))

    assert copy_newer_file(source, target)
    assert target.read_text(encoding="utf-8") == "2"


def test_failures_are_warnings(tmp_path: Path) -> None:
    structure = _structure(tmp_path)
    (tmp_path / "data" / "font.ttf").unlink()
    config = Configuration(deploy_path=tmp_path / "bin", shared_deploy_path=None)

    result = deploy_files(structure, config)

    assert result.ok
    assert result.copied == 1
    assert [d.severity for d in result.diagnostics] == [Severity.WARNING]
    assert result.diagnostics.items[0].message == "No deploy directory configured"


def test_missing_source_is_a_warning(tmp_path: Path) -> None:
    structure = _structure(tmp_path)
    (tmp_path / "data" / "config.ini").unlink()
    config = Configuration(deploy_path=tmp_path / "bin", shared_deploy_path=tmp_path / "bin")

    result = deploy_files(structure, config)

    assert result.ok
    assert result.copied == 1
    assert "Failed to deploy" in result.diagnostics.warnings()[0].message
