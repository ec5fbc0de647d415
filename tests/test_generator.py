"""Tests for project extraction and link decisions."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pytest

from buildgraph.config.schema import (
    BuildType,
    Configuration,
    GeneratorType,
    LibraryType,
    PlatformType,
)
from buildgraph.errors import DependencyCycleError
from buildgraph.graph.generator import extract_projects
from buildgraph.project import (
    FileInfo,
    FileRole,
    PlatformFilter,
    ProjectInfo,
    ProjectKind,
    ProjectStructure,
)
from buildgraph.utils.paths import guid_from_text


def _config(tmp_path: Path, **axes: object) -> Configuration:
    return Configuration(generator=GeneratorType.CMAKE, solution_path=tmp_path / "sol", **axes)


def _project(
    name: str,
    resolved: Sequence[str] = (),
    kind: ProjectKind = ProjectKind.LOCAL_LIBRARY,
) -> ProjectInfo:
    return ProjectInfo(name=name, merged_name=name, kind=kind, resolved_dependencies=list(resolved))


def _structure(*projects: ProjectInfo) -> ProjectStructure:
    structure = ProjectStructure()
    for project in projects:
        structure.register(project)
    return structure


def _engine() -> ProjectStructure:
    return _structure(
        _project("game", ["engine_render", "core_system"], ProjectKind.LOCAL_APPLICATION),
        _project("engine_render", ["core_system", "core_object"]),
        _project("core_system", ["core_object"]),
        _project("core_object"),
        _project("tools_baker", ["engine_render"]),
    )


def test_order_and_transitive_dependencies(tmp_path: Path) -> None:
    solution = extract_projects(_engine(), _config(tmp_path))

    assert [p.name for p in solution.projects] == [
        "core_object",
        "core_system",
        "engine_render",
        "game",
        "tools_baker",
    ]
    game = solution.get("game")
    assert game.direct_dependencies == ["engine_render", "core_system"]
    assert game.all_dependencies == ["core_object", "core_system", "engine_render"]
    assert solution.get("core_object").all_dependencies == []
    assert sorted(solution.graph.edges) == sorted(
        [
            ("game", "engine_render"),
            ("game", "core_system"),
            ("engine_render", "core_system"),
            ("engine_render", "core_object"),
            ("core_system", "core_object"),
            ("tools_baker", "engine_render"),
        ]
    )


def test_shared_link_shape(tmp_path: Path) -> None:
    structure = _engine()
    structure.get("core_object").flags.force_static = True

    solution = extract_projects(structure, _config(tmp_path, libs=LibraryType.SHARED))

    render = solution.get("engine_render")
    assert render.will_be_dynamic and render.will_be_linked
    assert not render.will_have_entry_point
    core_object = solution.get("core_object")
    assert not core_object.will_be_dynamic
    assert not core_object.will_be_linked
    game = solution.get("game")
    assert not game.will_be_dynamic
    assert game.will_be_linked and game.will_have_entry_point


def test_static_link_shape(tmp_path: Path) -> None:
    structure = _engine()
    structure.get("engine_render").flags.force_shared = True

    solution = extract_projects(
        structure,
        _config(tmp_path, libs=LibraryType.STATIC, build=BuildType.SHIPMENT),
    )

    assert solution.get("engine_render").will_be_dynamic
    for name in ("core_object", "core_system", "engine_render", "tools_baker"):
        assert solution.get(name).will_be_linked
    assert not solution.get("core_system").will_be_dynamic


def test_reflection_and_static_init(tmp_path: Path) -> None:
    structure = _engine()
    structure.get("tools_baker").flags.no_init = True
    structure.register(_project("math"))

    solution = extract_projects(structure, _config(tmp_path))

    reflection = {p.name: p.has_reflection for p in solution.projects}
    assert reflection == {
        "core_object": True,
        "core_system": True,
        "engine_render": True,
        "game": True,
        "math": False,
        "tools_baker": True,
    }
    static_init = {p.name: p.needs_static_init for p in solution.projects}
    assert static_init == {
        "core_object": False,
        "core_system": True,
        "engine_render": True,
        "game": False,
        "math": False,
        "tools_baker": False,
    }


def test_groups_guids_and_paths(tmp_path: Path) -> None:
    solution = extract_projects(_engine(), _config(tmp_path))

    render = solution.get("engine_render")
    assert render.group == "engine"
    assert render.guid == guid_from_text("engine_render")
    assert render.generated_path == tmp_path / "sol" / "generated" / "engine_render"
    assert render.project_path == tmp_path / "sol" / "projects" / "engine_render"
    assert [g.name for g in solution.root_group.children] == ["game", "engine", "core", "tools"]
    core = solution.root_group.find_or_create("core")
    assert core.projects == ["core_system", "core_object"]
    assert core.merged_name == "Engine.core"
    assert solution.graph.nodes["engine_render"]["dynamic"] is True


def test_non_dev_builds_skip_dev_only_and_foreign_projects(tmp_path: Path) -> None:
    structure = _engine()
    structure.get("tools_baker").flags.dev_only = True
    linux_io = _project("linux_io")
    linux_io.filter = PlatformFilter.LINUX
    structure.register(linux_io)
    structure.get("core_system").resolved_dependencies.append("linux_io")

    shipment = extract_projects(
        structure,
        _config(tmp_path, build=BuildType.SHIPMENT, libs=LibraryType.STATIC),
    )
    dev = extract_projects(structure, _config(tmp_path, platform=PlatformType.WINDOWS))

    assert shipment.find("tools_baker") is None
    assert shipment.find("linux_io") is None
    assert shipment.get("core_system").direct_dependencies == ["core_object"]
    assert dev.find("tools_baker") is not None
    # Present in dev builds, but never an edge target on a foreign platform.
    assert dev.get("core_system").direct_dependencies == ["core_object"]


def test_test_files_only_build_in_dev(tmp_path: Path) -> None:
    project = _project("core_object")
    project.files = [
        FileInfo(
            name=name,
            absolute_path=tmp_path / "src" / name,
            project_relative_path=f"src/{name}",
            root_relative_path=f"core/object/src/{name}",
            role=FileRole.CPP_SOURCE,
            original_project="core_object",
        )
        for name in ("object.cpp", "object_test.cpp")
    ]
    project.files[0].filter = PlatformFilter.POSIX

    dev = extract_projects(_structure(project), _config(tmp_path, platform=PlatformType.LINUX))
    shipment = extract_projects(
        _structure(project),
        _config(tmp_path, build=BuildType.SHIPMENT, libs=LibraryType.STATIC),
    )

    assert [f.use_in_build for f in dev.get("core_object").files] == [True, True]
    assert [f.use_in_build for f in shipment.get("core_object").files] == [False, False]
    assert dev.get("core_object").files[0].filter_path == "src"


def test_cycles_abort_extraction(tmp_path: Path) -> None:
    structure = _structure(
        _project("a", ["b"]),
        _project("b", ["a"]),
        _project("c", ["d"]),
        _project("d", ["c"]),
    )

    with pytest.raises(DependencyCycleError) as exc:
        extract_projects(structure, _config(tmp_path))

    assert sorted(sorted(c) for c in exc.value.cycles) == [["a", "b"], ["c", "d"]]


def test_script_projects_are_passed_through(tmp_path: Path) -> None:
    tools = _project("Tools", kind=ProjectKind.SCRIPT_PROJECT)
    tools.root_path = tmp_path / "Tools"
    custom = _project("Pipeline", kind=ProjectKind.SCRIPT_PROJECT)
    custom.root_path = tmp_path / "Pipeline"
    custom.assigned_guid = "0000-1111"
    custom.assigned_project_file = "build/Pipeline.csproj"

    solution = extract_projects(_structure(tools, custom), _config(tmp_path))

    assert solution.projects == []
    first, second = solution.script_projects
    assert first.project_file == tmp_path / "Tools" / "Tools.csproj"
    assert first.guid == guid_from_text("Tools")
    assert second.project_file == tmp_path / "Pipeline" / "build" / "Pipeline.csproj"
    assert second.guid == "0000-1111"
