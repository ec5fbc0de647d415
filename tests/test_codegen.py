"""Tests for generated glue sources and change-aware saving."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Sequence, Tuple

import pytest

from buildgraph.codegen import CodeGenerator, FileGenerator, generate_code
from buildgraph.codegen.files import save_file_if_changed
from buildgraph.config.schema import Configuration, LibraryType
from buildgraph.graph.generator import ExtractedSolution, extract_projects
from buildgraph.graph.resolver import EMBEDDED_MEDIA_NAME, RTTI_GENERATOR_NAME, resolve_dependencies
from buildgraph.project import FileInfo, FileRole, ProjectInfo, ProjectKind, ProjectStructure


def _project(
    root: Path,
    name: str,
    deps: Sequence[str] = (),
    kind: ProjectKind = ProjectKind.LOCAL_LIBRARY,
) -> ProjectInfo:
    directory = root / "src" / name
    directory.mkdir(parents=True, exist_ok=True)
    return ProjectInfo(
        name=name,
        merged_name=name,
        root_path=directory,
        kind=kind,
        dependencies=list(deps),
    )


def _public_header(project: ProjectInfo) -> Path:
    header = project.root_path / "include" / "public.h"
    header.parent.mkdir(parents=True, exist_ok=True)
    header.write_text("#pragma once\n", encoding="utf-8")
    return header


def _generate(
    tmp_path: Path, libs: LibraryType = LibraryType.SHARED
) -> Tuple[ExtractedSolution, ProjectStructure, FileGenerator, Dict[str, str]]:
    root = tmp_path / "engine"
    config = Configuration(libs=libs, engine_root_path=root, solution_path=tmp_path / "sol")

    core_object = _project(root, "core_object")
    core_system = _project(root, "core_system", ["core_object"])
    _public_header(core_system)
    sdk = _project(root, "ext_sdk", kind=ProjectKind.EXTERNAL_LIBRARY)
    sdk.library_link_files = [root / "ext" / "sdk.lib"]
    game = _project(root, "game", ["core_system", "ext_sdk"], ProjectKind.LOCAL_APPLICATION)
    game.flags.generate_main = True
    game.app_class_name = "GameApp"
    game.app_header_name = "game/app.h"
    game.files = [
        FileInfo(
            name="level.lua",
            absolute_path=game.root_path / "media" / "level.lua",
            project_relative_path="media/level.lua",
            root_relative_path="game/media/level.lua",
            role=FileRole.MEDIA_SCRIPT,
            original_project="game",
        ),
        FileInfo(
            name="game.cpp",
            absolute_path=game.root_path / "src" / "game.cpp",
            project_relative_path="src/game.cpp",
            root_relative_path="game/src/game.cpp",
            role=FileRole.CPP_SOURCE,
            original_project="game",
        ),
    ]
    game.has_media = True

    structure = ProjectStructure()
    for project in (core_object, core_system, sdk, game):
        structure.register(project)
    assert resolve_dependencies(structure, config).ok

    solution = extract_projects(structure, config)
    files = FileGenerator()
    result = generate_code(solution, structure, files)
    assert result.ok
    content = {
        str(f.absolute_path.relative_to(tmp_path / "sol")).replace("\\", "/"): f.content
        for f in files.files
    }
    return solution, structure, files, content


def test_generated_file_entries(tmp_path: Path) -> None:
    solution, _, _, content = _generate(tmp_path)

    assert sorted(content) == [
        "generated/_embedd_files/media_list.txt",
        "generated/_rtti_gen/rtti_list.txt",
        "generated/_shared/core_object_glue.inl",
        "generated/_shared/core_system_glue.inl",
        "generated/core_object/build.cpp",
        "generated/core_object/build.h",
        "generated/core_object/static_init.inl",
        "generated/core_system/build.cpp",
        "generated/core_system/build.h",
        "generated/core_system/static_init.inl",
        "generated/game/build.cpp",
        "generated/game/build.h",
        "generated/game/main.cpp",
        "generated/game/static_init.inl",
    ]
    game = solution.get("game")
    names = [f.name for f in game.files]
    assert names[0] == "build.cpp"
    assert "reflection.cpp" in names
    assert "EmbeddedMedia_game_level_data.cpp" in names
    generated = [f for f in game.files if f.generated]
    assert all(f.filter_path == "_generated" for f in generated)
    assert game.local_reflection_file == game.generated_path / "reflection.cpp"


def test_glue_exports_and_public_headers(tmp_path: Path) -> None:
    solution, _, _, content = _generate(tmp_path)

    glue = content["generated/_shared/core_system_glue.inl"]
    assert "#define CORE_SYSTEM_API __declspec( dllexport )" in glue
    assert "#ifdef CORE_SYSTEM_EXPORTS" in glue
    assert "// Public header from project dependencies:" in glue

    static_glue = _generate(tmp_path / "static", LibraryType.STATIC)[3]
    assert "#define CORE_SYSTEM_API\n" in static_glue["generated/_shared/core_system_glue.inl"]

    header = solution.get("core_system").local_public_header
    game_header = content["generated/game/build.h"]
    assert f'#include "{header.as_posix()}"' in game_header


def test_static_init_for_entry_point(tmp_path: Path) -> None:
    solution, _, _, content = _generate(tmp_path)

    init = content["generated/game/static_init.inl"]
    sdk_lib = (tmp_path / "engine" / "ext" / "sdk.lib").as_posix()
    assert f'#pragma comment( lib, "{sdk_lib}" )' in init
    assert "void InitializeStaticDependencies() {" in init
    assert '    modules::LoadDynamicModule("core_system");' in init
    assert "    InitModule_game();" in init
    assert "InitModule_core_object" not in init
    assert "InitializeStaticDependencies" not in content["generated/core_system/static_init.inl"]

    static = _generate(tmp_path / "static", LibraryType.STATIC)[3]
    assert "    extern void InitModule_core_system();" in static["generated/game/static_init.inl"]


def test_main_and_module_init(tmp_path: Path) -> None:
    _, _, _, content = _generate(tmp_path)

    main = content["generated/game/main.cpp"]
    assert '#include "game/app.h"' in main
    assert '#include "core/containers/include/commandLine.h"' in main
    assert "int __stdcall wWinMain(" in main
    assert "  GameApp app;" in main

    build = content["generated/core_system/build.cpp"]
    assert "void InitModule_core_system() {" in build
    assert "extern void InitializeReflection_core_system();" in build
    assert "DllMain" in build
    assert "InitializeEmbeddedFiles_game" in content["generated/game/build.cpp"]
    assert "RegisterEmbeddedFiles_GAME_LEVEL" in content["generated/game/build.cpp"]


def test_reflection_and_media_lists(tmp_path: Path) -> None:
    solution, _, _, content = _generate(tmp_path)

    lines = content["generated/_rtti_gen/rtti_list.txt"].splitlines()
    assert lines[:2] == ["windows", "dev"]
    assert lines.count("PROJECT") == 3
    game_block = lines[lines.index("game") - 1 : lines.index("game") + 3]
    game = solution.get("game")
    assert game_block == [
        "PROJECT",
        "game",
        str(game.generated_path / "reflection.cpp"),
        str(game.root_path / "src" / "game.cpp"),
    ]

    media = content["generated/_embedd_files/media_list.txt"].splitlines()
    assert media == [
        "windows",
        "game",
        (game.root_path / "media" / "level.lua").as_posix(),
        (game.generated_path / "EmbeddedMedia_game_level_data.cpp").as_posix(),
    ]


def test_external_include_directory(tmp_path: Path) -> None:
    root = tmp_path / "engine"
    shared = root / "shared" / "include"
    shared.mkdir(parents=True)
    (shared / "b.h").write_text("", encoding="utf-8")
    (shared / "a.h").write_text("", encoding="utf-8")
    config = Configuration(engine_root_path=root, solution_path=tmp_path / "sol")
    lib = _project(root, "core", kind=ProjectKind.LOCAL_LIBRARY)
    lib.external_include_paths = ["shared/include", "missing/include"]
    structure = ProjectStructure()
    structure.register(lib)
    resolve_dependencies(structure, config)
    solution = extract_projects(structure, config)

    generator = CodeGenerator(solution, structure)
    result = generator.generate_automatic_code()

    core = solution.get("core")
    shared_files = [f.name for f in core.files if f.filter_path == "_shared"]
    assert shared_files == ["a.h", "b.h"]
    assert core.additional_include_paths == [shared]
    assert [d.message for d in result.errors()] == [
        f"No shared files found at shared directory '{root / 'missing' / 'include'}'"
    ]


def test_save_files_only_writes_changes(tmp_path: Path) -> None:
    _, _, files, _ = _generate(tmp_path)

    first = files.save_files()
    second = files.save_files()

    assert first.ok
    assert first.saved == len(files.files)
    assert second.saved == 0
    files.files[0].writeln("// changed")
    assert files.save_files().saved == 1
    files.force = True
    assert files.save_files().saved == len(files.files)


def test_save_file_if_changed(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "out.txt"

    assert save_file_if_changed(path, "a\n")
    assert not save_file_if_changed(path, "a\n")
    assert save_file_if_changed(path, "b\n")
    assert path.read_text(encoding="utf-8") == "b\n"
    assert save_file_if_changed(path, "b\n", force=True)


@pytest.mark.parametrize("name", [RTTI_GENERATOR_NAME, EMBEDDED_MEDIA_NAME])
def test_synthetic_projects_have_no_glue(tmp_path: Path, name: str) -> None:
    _, _, _, content = _generate(tmp_path)

    assert not any(path.startswith(f"generated/_shared/{name}") for path in content)
