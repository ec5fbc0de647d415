"""End-to-end tests running the whole pipeline on small source trees."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from buildgraph.errors import DependencyCycleError, ProjectNameCollisionError
from buildgraph.graph.export import load_graph
from buildgraph.pipeline import run_pipeline

_LIBRARY = 'ProjectType "library"\n'


def _engine(add_project) -> None:
    add_project("core/object", _LIBRARY + 'ProjectModuleName "core"', {"src/object.cpp": "", "include/public.h": ""})
    add_project(
        "core/system",
        _LIBRARY + 'ProjectModuleName "core"\nDependency "core_object"',
        {"src/system.cpp": "", "src/system_test.cpp": "", "include/public.h": ""},
    )
    add_project(
        "game",
        'ProjectType "app"\nDependency "core_*"\nGenerateAppMain("GameApp", "game/app.h")\nDeploy "data/game.ini"',
        {"src/game.cpp": "", "data/game.ini": "[game]"},
    )


def test_dev_pipeline(add_project, make_config, engine_root: Path) -> None:
    _engine(add_project)
    config = make_config()

    result = run_pipeline(config)

    assert result.ok
    order = [p.name for p in result.solution.projects]
    assert order == ["_rtti_gen", "core_object", "core_system", "_embedd_files", "game"]
    game = result.solution.get("game")
    assert game.direct_dependencies == ["_rtti_gen", "core_object", "core_system"]
    assert (config.solution_path / "generated" / "game" / "main.cpp").is_file()
    assert (config.deploy_path / "game.ini").read_text(encoding="utf-8") == "[game]"
    assert (engine_root / "src" / "game" / "BUILD").is_file()
    assert result.saved_files > 0

    graph = load_graph(result.graph_path)
    assert graph.has_edge("game", "core_system")
    data = json.loads(result.graph_path.read_text(encoding="utf-8"))
    assert data["graph"]["order"] == order
    assert data["graph"]["configuration"] == config.merged_name

    again = run_pipeline(config)
    assert again.ok
    assert again.saved_files == 0

    forced = run_pipeline(config.model_copy(update={"force": True}))
    assert forced.ok
    assert forced.saved_files == result.saved_files


def test_standalone_pipeline_builds_modules(add_project, make_config) -> None:
    _engine(add_project)
    config = make_config(build="standalone")

    result = run_pipeline(config)

    assert result.ok
    assert [p.name for p in result.solution.projects] == ["_rtti_gen", "core"]
    core = result.solution.get("core")
    assert core.will_be_linked and not core.will_be_dynamic
    assert sorted(f.name for f in core.files if not f.generated) == [
        "build.lua",
        "build.lua",
        "object.cpp",
        "public.h",
        "public.h",
        "system.cpp",
    ]
    shared = config.solution_path / "generated" / "_shared"
    assert (shared / "core_object_glue.inl").is_file()
    glue = (shared / "core_system_glue.inl").read_text(encoding="utf-8")
    assert "#define CORE_SYSTEM_API" in glue
    assert "core/object/include/public.h" in glue


def test_linux_pipeline_has_no_synthetic_projects(add_project, make_config) -> None:
    _engine(add_project)

    result = run_pipeline(make_config(platform="linux"), generate=False)

    assert result.ok
    assert [p.name for p in result.solution.projects] == ["core_object", "core_system", "game"]
    assert result.graph_path is None


def test_script_errors_stop_the_run(add_project, make_config) -> None:
    _engine(add_project)
    add_project("broken", 'ProjectType "library"\nerror("nope")')

    result = run_pipeline(make_config())

    assert not result.ok
    assert result.solution is None
    assert [d.project for d in result.diagnostics.errors()] == ["broken"]


def test_scan_continues_past_script_errors(add_project, make_config) -> None:
    add_project("core/good", _LIBRARY)
    add_project("core/bad", _LIBRARY + 'ProjectOption "bogus"')

    result = run_pipeline(make_config(), generate=False)

    assert result.ok
    assert result.solution is not None
    assert "core_good" in [p.name for p in result.solution.projects]
    assert result.structure.get("core_bad").has_script_errors
    assert [d.project for d in result.diagnostics.errors()] == ["core_bad"]
    assert result.saved_files == 0


def test_script_errors_fail_a_generating_run_only(add_project, make_config) -> None:
    add_project("core/good", _LIBRARY)
    add_project("core/bad", _LIBRARY + 'ProjectOption "bogus"')

    result = run_pipeline(make_config())

    assert not result.ok
    assert result.solution is None


def test_missing_dependency_stops_the_run(add_project, make_config) -> None:
    add_project("game", 'ProjectType "app"\nDependency "physics"')

    result = run_pipeline(make_config())

    assert not result.ok
    assert result.solution is None
    assert result.structure.get("game").has_missing_dependencies


def test_cycles_raise(add_project, make_config) -> None:
    add_project("a", _LIBRARY + 'Dependency "b"')
    add_project("b", _LIBRARY + 'Dependency "a"')

    with pytest.raises(DependencyCycleError):
        run_pipeline(make_config(), generate=False)


def test_user_projects_and_script_projects(add_project, make_config, engine_root: Path, tmp_path: Path) -> None:
    add_project("core", _LIBRARY)
    user = tmp_path / "user"
    (user / "mygame").mkdir(parents=True)
    (user / "mygame" / "build.lua").write_text('ProjectType "app"\nDependency "core"', encoding="utf-8")
    tools = engine_root / "scripts" / "src" / "Tools"
    tools.mkdir(parents=True)
    (tools / "build.lua").write_text('ProjectType "mono"', encoding="utf-8")

    result = run_pipeline(make_config(project_dir=str(user), platform="linux"), generate=False)

    assert result.ok
    assert [p.name for p in result.solution.projects] == ["core", "mygame"]
    assert [s.name for s in result.solution.script_projects] == ["Tools"]


def test_user_project_name_collision(add_project, make_config, tmp_path: Path) -> None:
    add_project("core", _LIBRARY)
    user = tmp_path / "user"
    (user / "core").mkdir(parents=True)
    (user / "core" / "build.lua").write_text(_LIBRARY, encoding="utf-8")

    with pytest.raises(ProjectNameCollisionError):
        run_pipeline(make_config(project_dir=str(user)))
