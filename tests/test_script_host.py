"""Tests for running project build scripts against the host API."""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

from buildgraph.diagnostics import Severity, Stage, StageResult
from buildgraph.project import PlatformFilter, ProjectGroupKind, ProjectKind, ProjectStructure
from buildgraph.project.models import ProjectInfo
from buildgraph.script import render_metadata, run_project_script


def _setup(engine_root: Path, config) -> Tuple[ProjectStructure, StageResult]:
    structure = ProjectStructure()
    structure.scan_projects(ProjectGroupKind.ENGINE, engine_root / "src")
    structure.scan_content()
    return structure, structure.setup_projects(config)


def _messages(result: StageResult) -> str:
    return "\n".join(d.message for d in result.diagnostics)


def test_library_script_is_applied(add_project, make_config, engine_root: Path) -> None:
    root = add_project(
        "core/io",
        """
        ProjectType "library"
        ProjectOption("noinit")
        ProjectOption("pch", false)
        ProjectFilter "windows"
        Dependency "base_math"
        Dependency "base_math"
        DependencyOptional "lib_zlib"
        LocalDefine("FOO", "1")
        LocalDefine("FOO", "2")
        GlobalDefine "BAR"
        LocalIncludeDir "src/detail"
        """,
    )

    structure, result = _setup(engine_root, make_config())

    assert result.ok
    project = structure.get("core_io")
    assert project.kind == ProjectKind.LOCAL_LIBRARY
    assert project.flags.no_init
    assert not project.flags.use_pch
    assert project.filter == PlatformFilter.WINDOWS
    assert project.dependencies == ["base_math"]
    assert project.optional_dependencies == ["lib_zlib"]
    assert project.local_defines == {"FOO": "2"}
    assert project.global_defines == {"BAR": ""}
    assert (root / "BUILD").read_text(encoding="utf-8") == (
        "# Project Configuration\n"
        "TYPE: library\n"
        "FILTER: windows\n"
        "\n"
        "TOGGLE: noinit ON\n"
        "TOGGLE: pch OFF\n"
        "\n"
        "DEPENDENCY: base_math\n"
        "DEPENDENCY: lib_zlib OPTIONAL\n"
        "\n"
        'INCLUDE: "src/detail"\n'
    )


def test_script_sees_configuration(add_project, make_config, engine_root: Path) -> None:
    add_project(
        "platform",
        """
        ProjectType "library"
        if PlatformName == "linux" then
            Dependency "posix_io"
        else
            Dependency "win_io"
        end
        if UseStaticLibs then ProjectOption "forceStatic" end
        """,
    )

    structure, _ = _setup(engine_root, make_config(platform="linux", libs="static"))

    project = structure.get("platform")
    assert project.dependencies == ["posix_io"]
    assert project.flags.force_static


def test_domain_errors_keep_the_rest_of_the_script(add_project, make_config, engine_root: Path) -> None:
    add_project(
        "game",
        """
        ProjectOption "bogus"
        ProjectFilter "amiga"
        ProjectType "app"
        ProjectType "plugin"
        """,
    )

    structure, result = _setup(engine_root, make_config())

    project = structure.get("game")
    assert not result.ok
    assert project.has_script_errors
    assert project.kind == ProjectKind.LOCAL_APPLICATION
    assert project.filter == PlatformFilter.ANY
    messages = _messages(result)
    assert "Project uses invalid flag: 'bogus'" in messages
    assert "Project has invalid platform filter: 'amiga'" in messages
    assert "Project has invalid type: 'plugin'" in messages
    assert all(d.stage == Stage.SCRIPT and d.project == "game" for d in result.diagnostics)


def test_runtime_fault_discards_all_changes(add_project, make_config, engine_root: Path) -> None:
    root = add_project(
        "broken",
        """
        ProjectType "library"
        Dependency "a"
        error("stop here")
        """,
    )
    add_project("fine", 'ProjectType "library"')

    structure, result = _setup(engine_root, make_config())

    broken = structure.get("broken")
    assert broken.kind == ProjectKind.DISABLED
    assert broken.dependencies == []
    assert broken.has_script_errors
    assert not (root / "BUILD").exists()
    assert "line 4: stop here" in _messages(result)
    assert structure.get("fine").kind == ProjectKind.LOCAL_LIBRARY


def test_bad_argument_aborts_the_project(add_project, make_config, engine_root: Path) -> None:
    add_project("app", 'ProjectType "app"\nDependency(nil)')

    structure, result = _setup(engine_root, make_config())

    assert structure.get("app").kind == ProjectKind.DISABLED
    assert "bad argument #1 to 'Dependency' (string expected, got nil)" in _messages(result)


def test_syntax_error_aborts_the_project(add_project, make_config, engine_root: Path) -> None:
    add_project("app", 'ProjectType "app"\nif then')

    structure, result = _setup(engine_root, make_config())

    assert structure.get("app").has_script_errors
    assert [d.severity for d in result.diagnostics] == [Severity.ERROR]


def test_file_options(add_project, make_config, engine_root: Path) -> None:
    add_project(
        "core",
        """
        ProjectType "library"
        FileOption("src/a.cpp", "exclude")
        FileOption("src/b.cpp", "nopch")
        FileFilter("src/b.cpp", "posix")
        FileOption("src/missing.cpp", "exclude")
        FileOption("src/a.cpp", "turbo")
        """,
        {"src/a.cpp": "", "src/b.cpp": ""},
    )

    structure, result = _setup(engine_root, make_config())

    project = structure.get("core")
    a = project.find_file("src/a.cpp")
    b = project.find_file("src/b.cpp")
    assert a.excluded
    assert not b.use_pch
    assert b.filter == PlatformFilter.POSIX
    messages = _messages(result)
    assert "Unknown file 'src/missing.cpp'" in messages
    assert "Unknown file option 'turbo' used on file 'src/a.cpp'" in messages


def test_deploy_and_library_references(add_project, make_config, engine_root: Path) -> None:
    root = add_project(
        "ext/sdk",
        """
        ProjectType "external"
        Deploy "data/config.ini"
        Deploy("data/config.ini", "cfg/app.ini")
        SharedDeployDir "data"
        LibraryInclude "include"
        LibraryLink "lib/sdk.lib"
        LibraryLink "lib/missing.lib"
        Tool("compiler", "bin/tool.exe")
        """,
        {
            "data/config.ini": "x",
            "data/shaders/a.fx": "y",
            "include/sdk.h": "",
            "lib/sdk.lib": "",
            "bin/tool.exe": "",
        },
    )

    structure, result = _setup(engine_root, make_config())

    project = structure.get("ext_sdk")
    assert [d.deploy_target for d in project.deploy_list] == ["config.ini", "cfg/app.ini"]
    assert [d.deploy_target for d in project.shared_deploy_list] == [
        "config.ini",
        "shaders/a.fx",
    ]
    assert project.library_include_paths == [root / "include"]
    assert project.library_link_files == [root / "lib" / "sdk.lib"]
    assert project.tools[0].name == "compiler"
    assert "Referenced library file 'lib/missing.lib' does not exist" in _messages(result)


def test_app_main_and_test_types(make_config, tmp_path: Path) -> None:
    project = ProjectInfo(name="editor", merged_name="editor", root_path=tmp_path)

    ctx = run_project_script(
        project,
        'ProjectType "test"\nProjectOption "console"\nGenerateAppMain("EditorApp", "editor/app.h")',
        make_config(),
    )

    draft = ctx.project
    assert project.kind == ProjectKind.DISABLED
    assert draft.kind == ProjectKind.LOCAL_APPLICATION
    assert draft.has_tests
    assert draft.flags.generate_main
    assert render_metadata(draft).splitlines()[:6] == [
        "# Project Configuration",
        "TYPE: test",
        "APP_CLASS: EditorApp",
        "APP_HEADER: editor/app.h",
        "SUBSYSTEM: console",
        "",
    ]
    assert "TOGGLE: main ON" in render_metadata(draft)


def test_dynlibrary_is_pure_dynamic(make_config, tmp_path: Path) -> None:
    project = ProjectInfo(name="plugin", merged_name="plugin", root_path=tmp_path)

    ctx = run_project_script(project, 'ProjectType "dynlibrary"', make_config())

    assert ctx.project.kind == ProjectKind.LOCAL_LIBRARY
    assert ctx.project.flags.pure_dynamic
    assert "TOGGLE: dependency OFF" in render_metadata(ctx.project)


def test_runaway_recursion_only_disables_that_project(add_project, make_config, engine_root: Path) -> None:
    add_project("deep", 'ProjectType "library"\nlocal function f(n) return f(n + 1) end\nf(1)')
    add_project("nested", "ProjectType " + "(" * 1500 + '"library"' + ")" * 1500)
    add_project("chain", "ProjectType(" + " .. ".join(['""'] * 1500) + ' .. "library")')

    structure, result = _setup(engine_root, make_config())

    assert structure.get("deep").has_script_errors
    assert structure.get("nested").has_script_errors
    assert "stack overflow" in _messages(result)
    chain = structure.get("chain")
    assert not chain.has_script_errors
    assert chain.kind == ProjectKind.LOCAL_LIBRARY


def test_unexpected_host_failure_is_a_script_error(
    add_project, make_config, engine_root: Path, monkeypatch
) -> None:
    import buildgraph.script.host as host

    real = host.run_project_script

    def flaky(project, source, config):
        if project.merged_name == "bad":
            raise RuntimeError("interpreter bug")
        return real(project, source, config)

    monkeypatch.setattr(host, "run_project_script", flaky)
    add_project("bad", 'ProjectType "library"')
    add_project("good", 'ProjectType "library"')

    structure, result = _setup(engine_root, make_config())

    assert structure.get("bad").has_script_errors
    assert structure.get("bad").kind == ProjectKind.DISABLED
    assert "interpreter bug" in _messages(result)
    assert [d.project for d in result.diagnostics] == ["bad"]
    assert structure.get("good").kind == ProjectKind.LOCAL_LIBRARY


def test_scripts_can_use_functions_and_libraries(add_project, make_config, engine_root: Path) -> None:
    add_project("core/helper", 'local function lib(n) ProjectType(n) end\nlib("library")')
    add_project("core/format", 'ProjectType(string.format("%s", "library"))')
    add_project(
        "core/deps",
        """
        ProjectType "library"
        local names = {}
        for part in string.gmatch("Base_Math,Base_IO", "[^,]+") do
            table.insert(names, part)
        end
        for _, name in ipairs(names) do Dependency(name:lower()) end
        """,
    )

    structure, result = _setup(engine_root, make_config())

    assert result.ok, _messages(result)
    assert structure.get("core_helper").kind == ProjectKind.LOCAL_LIBRARY
    assert structure.get("core_format").kind == ProjectKind.LOCAL_LIBRARY
    assert structure.get("core_deps").dependencies == ["base_math", "base_io"]


def test_opengl_filter_uses_short_metadata_token(add_project, make_config, engine_root: Path) -> None:
    root = add_project("render/gl", 'ProjectType "library"\nProjectFilter "opengl"')

    structure, result = _setup(engine_root, make_config())

    assert result.ok
    assert structure.get("render_gl").filter == PlatformFilter.OPENGL
    assert "FILTER: ogl\n" in (root / "BUILD").read_text(encoding="utf-8")
