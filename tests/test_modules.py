"""Tests for module aggregation in standalone builds."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pytest

from buildgraph.config.schema import BuildType, Configuration, GeneratorType, LibraryType
from buildgraph.errors import AggregationError
from buildgraph.graph.modules import collect_module_dependencies, make_modules
from buildgraph.project import (
    FileInfo,
    FileRole,
    PlatformFilter,
    ProjectInfo,
    ProjectKind,
    ProjectStructure,
)

STANDALONE = Configuration(
    generator=GeneratorType.CMAKE, build=BuildType.STANDALONE, libs=LibraryType.STATIC
)


def _file(project: str, name: str) -> FileInfo:
    return FileInfo(
        name=name,
        absolute_path=Path("/src") / project / "src" / name,
        project_relative_path=f"src/{name}",
        root_relative_path=f"{project}/src/{name}",
        role=FileRole.CPP_SOURCE,
        original_project=project,
    )


def _project(
    name: str,
    module: str = "",
    resolved: Sequence[str] = (),
    files: Sequence[str] = (),
    kind: ProjectKind = ProjectKind.LOCAL_LIBRARY,
) -> ProjectInfo:
    return ProjectInfo(
        name=name,
        merged_name=name,
        kind=kind,
        module_name=module,
        resolved_dependencies=list(resolved),
        files=[_file(name, f) for f in files],
    )


def _structure(*projects: ProjectInfo) -> ProjectStructure:
    structure = ProjectStructure()
    for project in projects:
        structure.register(project)
    return structure


def test_constituents_collapse_into_module() -> None:
    """Two libraries of one module become one project owning both files."""
    core_a = _project("core_a", "core", ["core_b"], ["a.cpp", "a_test.cpp"])
    core_b = _project("core_b", "core", files=["b.cpp"])
    core_b.has_media = True
    structure = _structure(core_a, core_b)

    result = make_modules(structure, STANDALONE)

    assert result.ok
    assert structure.project_names == ["core"]
    core = structure.get("core")
    assert core.kind == ProjectKind.LOCAL_LIBRARY
    assert core.flags.module_root
    assert core.has_media
    assert core.module_source_projects == ["core_a", "core_b"]
    assert sorted(f.name for f in core.files) == ["a.cpp", "b.cpp"]
    assert [f.original_project for f in core.files] == ["core_a", "core_b"]
    assert core.resolved_dependencies == []
    assert [f.name for f in core_a.files] == ["a_test.cpp"]
    assert core_b.files == []
    assert core_a.module_project == "core"
    assert core_b.module_project == "core"
    # Constituents stay in the arena.
    assert structure.find_project("core_a") is core_a


def test_edges_are_rehomed_between_modules() -> None:
    structure = _structure(
        _project("core_a", "core", ["lib_zlib", "ext_sdk"], ["a.cpp"]),
        _project("render_gl", "render", ["core_a", "util"], ["gl.cpp"]),
        _project("util", resolved=["core_a"], files=["util.cpp"]),
        _project("lib_zlib"),
        _project("ext_sdk", kind=ProjectKind.EXTERNAL_LIBRARY),
        _project("game", resolved=["render_gl"], kind=ProjectKind.LOCAL_APPLICATION),
        _project("_rtti_gen", kind=ProjectKind.RTTI_GENERATOR),
    )

    result = make_modules(structure, STANDALONE)

    assert structure.project_names == ["core", "render", "_rtti_gen", "lib_zlib", "ext_sdk"]
    assert structure.get("core").resolved_dependencies == ["lib_zlib", "ext_sdk"]
    assert structure.get("render").resolved_dependencies == ["core"]
    warnings = result.diagnostics.warnings()
    assert [w.message for w in warnings] == [
        "Dependency 'util' is not part of any module and is dropped"
    ]
    assert warnings[0].project == "render"


def test_collect_stops_at_other_modules() -> None:
    structure = _structure(
        _project("a", "m1", ["b", "c"]),
        _project("b", "m2", ["d"]),
        _project("c", resolved=["e"]),
        _project("d"),
        _project("e"),
    )
    structure.get("a").module_project = "m1"
    structure.get("b").module_project = "m2"

    found = collect_module_dependencies(structure, structure.get("a"), "m1", [])

    assert found == ["b", "c", "e"]


def test_platform_filtered_projects_are_skipped() -> None:
    linux_only = _project("core_posix", "core", files=["posix.cpp"])
    linux_only.filter = PlatformFilter.LINUX
    structure = _structure(_project("core_a", "core", files=["a.cpp"]), linux_only)

    make_modules(structure, STANDALONE)

    assert structure.get("core").module_source_projects == ["core_a"]
    assert linux_only.module_project is None


def test_application_cannot_join_a_module() -> None:
    structure = _structure(_project("tool", "core", kind=ProjectKind.LOCAL_APPLICATION))

    with pytest.raises(AggregationError, match="must be a local or external library"):
        make_modules(structure, STANDALONE)


def test_module_name_collision() -> None:
    structure = _structure(_project("util"), _project("core_a", "util"))

    with pytest.raises(AggregationError, match="collides"):
        make_modules(structure, STANDALONE)


def test_no_modules_is_fatal() -> None:
    structure = _structure(_project("core"), _project("game", kind=ProjectKind.LOCAL_APPLICATION))

    with pytest.raises(AggregationError, match="No module projects"):
        make_modules(structure, STANDALONE)
