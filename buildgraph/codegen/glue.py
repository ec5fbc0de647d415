"""Generated glue sources consumed by the solution emitters.

For every extracted project this adds the generated file entries
(``*_glue.inl``, ``static_init.inl``, ``build.h``/``build.cpp``,
``main.cpp``, reflection and media lists) and fills their text through a
``FileGenerator``. Nothing is written to disk until ``save_files`` runs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from buildgraph.codegen.files import FileGenerator, GeneratedFile
from buildgraph.codegen.reflection import ReflectionList, ReflectionProject
from buildgraph.config.schema import BuildType, PlatformType
from buildgraph.diagnostics import Stage, StageResult
from buildgraph.graph.generator import (
    ExtractedSolution,
    GeneratedProject,
    GeneratedProjectFile,
)
from buildgraph.graph.resolver import RTTI_GENERATOR_NAME
from buildgraph.project.models import FileInfo, FileRole, ProjectInfo, ProjectKind
from buildgraph.project.structure import ProjectStructure
from buildgraph.utils.paths import make_generic_path, part_before

logger = logging.getLogger("buildgraph.codegen.glue")

GENERATED_FILTER = "_generated"
SHARED_FILTER = "_shared"
COMMAND_LINE_HEADER = "core/containers/include/commandLine.h"

_BANNER = (
    "/***",
    "* Auto generated, do not modify",
    "***/",
    "",
)

_CODE_PROJECTS = (ProjectKind.LOCAL_APPLICATION, ProjectKind.LOCAL_LIBRARY)


def _public_header(root: Optional[Path]) -> Optional[Path]:
    if root is None:
        return None
    header = root / "include" / "public.h"
    return header if header.is_file() else None


def _include(path: Path) -> str:
    return f'#include "{make_generic_path(path)}"'


def media_data_file_name(original_project: str, script_name: str) -> str:
    """Name of the source compiled from one embedded media script."""
    return f"EmbeddedMedia_{original_project}_{part_before(script_name, '.')}_data.cpp"


class CodeGenerator:
    """Adds and renders generated files for an extracted solution.

    Args:
        solution: Ordered projects from ``extract_projects``.
        structure: Project arena, used to look up projects that were not
            wrapped (external libraries, module constituents).
        files: Collector for generated file content.
    """

    def __init__(
        self,
        solution: ExtractedSolution,
        structure: ProjectStructure,
        files: Optional[FileGenerator] = None,
    ) -> None:
        self.solution = solution
        self.structure = structure
        self.config = solution.config
        self.files = files or FileGenerator()
        assert self.config.solution_path is not None
        self.shared_glue_folder = self.config.solution_path / "generated" / "_shared"
        self.result = StageResult(Stage.GENERATE)

    # -- driver --------------------------------------------------------------

    def generate_automatic_code(self) -> StageResult:
        """Generate per-project files; the reflection generator goes last."""
        for project in self.solution.projects:
            if project.name != RTTI_GENERATOR_NAME:
                self.generate_for_project(project)
        for project in self.solution.projects:
            if project.name == RTTI_GENERATOR_NAME:
                self.generate_for_project(project)
        return self.result

    def generate_extra_code(self) -> StageResult:
        """Move ``build.cpp`` to the front of every project's file list."""
        for project in self.solution.projects:
            for index, file in enumerate(project.files):
                if file.name in ("build.cpp", "build.cxx"):
                    project.files.insert(0, project.files.pop(index))
                    break
        return self.result

    def _add_file(
        self,
        project: GeneratedProject,
        path: Path,
        role: FileRole,
        name: Optional[str] = None,
        write: bool = True,
    ) -> Optional[GeneratedFile]:
        project.files.append(
            GeneratedProjectFile(
                name=name or path.name,
                absolute_path=path,
                role=role,
                filter_path=GENERATED_FILTER,
                generated=True,
            )
        )
        return self.files.create_file(path) if write else None

    def generate_for_project(self, project: GeneratedProject) -> None:
        info = project.project
        kind = info.kind

        if kind in _CODE_PROJECTS and project.has_reflection:
            path = project.generated_path / "reflection.cpp"
            # Content comes from the external reflection pass.
            self._add_file(project, path, FileRole.CPP_SOURCE, write=False)
            project.local_reflection_file = path

        if kind == ProjectKind.LOCAL_LIBRARY:
            if info.flags.module_root:
                for source_name in info.module_source_projects:
                    source = self.structure.get(source_name)
                    path = self.shared_glue_folder / f"{source_name}_glue.inl"
                    out = self._add_file(project, path, FileRole.CPP_HEADER)
                    self.render_module_glue(project, source, out)
            else:
                path = self.shared_glue_folder / f"{project.name}_glue.inl"
                out = self._add_file(project, path, FileRole.CPP_HEADER)
                self.render_glue(project, out)

        if kind in _CODE_PROJECTS:
            out = self._add_file(
                project, project.generated_path / "static_init.inl", FileRole.CPP_HEADER
            )
            self.render_static_init(project, out)

            if info.flags.use_pch:
                out = self._add_file(project, project.generated_path / "build.h", FileRole.CPP_HEADER)
                self.render_build_header(project, out)
                out = self._add_file(project, project.generated_path / "build.cpp", FileRole.CPP_SOURCE)
                self.render_build_source(project, out)

        if kind == ProjectKind.LOCAL_APPLICATION and (info.flags.generate_main or info.has_tests):
            out = self._add_file(project, project.generated_path / "main.cpp", FileRole.CPP_SOURCE)
            self.render_main(project, out)

        if kind == ProjectKind.EMBEDDED_MEDIA:
            out = self._add_file(
                project, project.generated_path / "media_list.txt", FileRole.MEDIA_FILE_LIST
            )
            self.render_media_list(out)

        if kind == ProjectKind.RTTI_GENERATOR:
            out = self._add_file(
                project, project.generated_path / "rtti_list.txt", FileRole.RTTI_LIST
            )
            self.render_rtti_list(out)

        if kind in _CODE_PROJECTS:
            for file in self._media_scripts(info.files):
                name = media_data_file_name(file.original_project, file.name)
                self._add_file(project, project.generated_path / name, FileRole.CPP_SOURCE, write=False)

        for include in info.external_include_paths:
            self._add_external_includes(project, include)

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _media_scripts(files: Iterable[FileInfo]) -> List[FileInfo]:
        return [f for f in files if f.role == FileRole.MEDIA_SCRIPT]

    def _add_external_includes(self, project: GeneratedProject, include: str) -> None:
        assert self.config.engine_root_path is not None
        full = self.config.engine_root_path / include
        if not full.is_dir():
            self.result.diagnostics.error(
                Stage.GENERATE,
                f"No shared files found at shared directory '{full}'",
                project.name,
            )
            return
        try:
            entries = sorted(p for p in full.iterdir() if p.is_file())
        except OSError as exc:
            self.result.diagnostics.warning(
                Stage.GENERATE, f"Filesystem error at '{full}': {exc}", project.name
            )
            return
        for path in entries:
            logger.debug("Discovered shared file '%s'", path)
            project.files.append(
                GeneratedProjectFile(
                    name=path.name,
                    absolute_path=path,
                    role=FileRole.CPP_HEADER,
                    filter_path=SHARED_FILTER,
                )
            )
        if entries:
            project.additional_include_paths.append(full)

    @staticmethod
    def _banner(out: GeneratedFile, title: Optional[str] = None) -> None:
        out.writeln(_BANNER[0])
        if title:
            out.writeln(f"* {title}")
        for line in _BANNER[1:]:
            out.writeln(line)

    @staticmethod
    def _api_macro(out: GeneratedFile, api: str, exports: str, dynamic: bool) -> None:
        if not dynamic:
            out.writeln(f"#define {api}")
            return
        out.writeln(f"  #ifdef {exports}")
        out.writeln(f"    #define {api} __declspec( dllexport )")
        out.writeln("  #else")
        out.writeln(f"    #define {api} __declspec( dllimport )")
        out.writeln("  #endif")

    # -- renderers -----------------------------------------------------------

    def render_glue(self, project: GeneratedProject, out: GeneratedFile) -> None:
        upper = project.name.upper()
        self._banner(out, "Glue Code")
        out.writeln(f"#ifndef {upper}_GLUE")
        out.writeln(f"#define {upper}_GLUE")
        out.writeln()
        self._api_macro(out, f"{upper}_API", f"{upper}_EXPORTS", project.will_be_dynamic)

        if project.direct_dependencies:
            out.writeln()
            out.writeln("// Public header from project dependencies:")
            for name in project.direct_dependencies:
                header = self.solution.get(name).local_public_header
                if header is not None:
                    out.writeln(_include(header))
        out.writeln("#endif")

    def render_module_glue(
        self, project: GeneratedProject, source: ProjectInfo, out: GeneratedFile
    ) -> None:
        upper = source.merged_name.upper()
        self._banner(out, "Glue Code")
        out.writeln(f"#ifndef {upper}_GLUE")
        out.writeln(f"#define {upper}_GLUE")
        out.writeln()
        self._api_macro(
            out, f"{upper}_API", f"{project.name.upper()}_EXPORTS", project.will_be_dynamic
        )

        if source.resolved_dependencies:
            out.writeln()
            out.writeln("// Public header from project dependencies:")
            for name in source.resolved_dependencies:
                dep = self.structure.get(name)
                if dep.module_project is None:
                    continue
                header = _public_header(dep.root_path)
                if header is not None:
                    out.writeln(_include(header))
        out.writeln("#endif")

    def _external_link_files(self, project: GeneratedProject) -> List[Path]:
        """Link files of external libraries this project must pull in."""
        if project.will_have_entry_point:
            owners = [project.project] + [
                self.solution.get(name).project for name in project.all_dependencies
            ]
        elif project.will_be_linked:
            owners = [project.project]
        else:
            return []

        seen: List[str] = []
        links: List[Path] = []
        for owner in owners:
            for name in owner.resolved_dependencies:
                dep = self.structure.find_project(name)
                if dep is None or dep.kind != ProjectKind.EXTERNAL_LIBRARY or name in seen:
                    continue
                seen.append(name)
                links.extend(dep.library_link_files)
        return links

    def render_static_init(self, project: GeneratedProject, out: GeneratedFile) -> None:
        self._banner(out, "Static Lib Initialization Code")

        if self.config.generator.is_visual_studio:
            for link in self._external_link_files(project):
                out.writeln(f'#pragma comment( lib, "{make_generic_path(link)}" )')

        if not project.will_have_entry_point:
            return

        windows = self.config.platform == PlatformType.WINDOWS
        if windows:
            out.writeln("#include <Windows.h>")
            out.writeln()
        out.writeln("void* GModuleHandle = nullptr;")
        out.writeln("void InitializeStaticDependencies() {")
        if windows:
            out.writeln("    GModuleHandle = (void*)GetModuleHandle(NULL);")

        for name in project.all_dependencies:
            dep = self.solution.get(name)
            if not (dep.needs_static_init and dep.will_be_linked):
                continue
            if dep.will_be_dynamic:
                out.writeln(f'    modules::LoadDynamicModule("{name}");')
            else:
                out.writeln(f"    extern void InitModule_{name}();")
                out.writeln(f"    InitModule_{name}();")

        out.writeln(f"    extern void InitModule_{project.name}();")
        out.writeln(f"    InitModule_{project.name}();")
        out.writeln("    modules::InitializePendingModules();")
        out.writeln("}")

    def _dependency_public_headers(self, project: GeneratedProject) -> List[Path]:
        headers: List[Path] = []
        for name in project.all_dependencies:
            dep = self.solution.get(name)
            if dep.kind != ProjectKind.LOCAL_LIBRARY:
                continue
            info = dep.project
            if info.flags.module_root:
                roots = [self.structure.get(s).root_path for s in info.module_source_projects]
            elif self.config.build != BuildType.STANDALONE:
                roots = [info.root_path]
            else:
                roots = []
            for root in roots:
                header = _public_header(root)
                if header is not None:
                    headers.append(header)
        return headers

    def render_build_header(self, project: GeneratedProject, out: GeneratedFile) -> None:
        info = project.project
        self._banner(out, "Precompiled Header")
        out.writeln("#pragma once")
        out.writeln()

        if info.has_tests:
            out.writeln("#define WITH_GTEST")
            out.writeln()

        if info.kind == ProjectKind.LOCAL_APPLICATION and project.all_dependencies:
            out.writeln()
            out.writeln("// Public header from project dependencies:")
            for header in self._dependency_public_headers(project):
                out.writeln(_include(header))

        for file in project.files:
            if file.name == "public.h":
                out.writeln(_include(file.absolute_path))

        if info.has_tests:
            out.writeln()
            out.writeln('#include "gtest/gtest.h"')

    def render_build_source(self, project: GeneratedProject, out: GeneratedFile) -> None:
        name = project.name
        self._banner(out, "Static Lib Initialization Code")
        out.writeln('#include "build.h"')
        out.writeln('#include "static_init.inl"')
        out.writeln()

        if project.has_reflection:
            out.writeln(f"extern void InitializeReflection_{name}();")
            out.writeln(f"extern void InitializeTests_{name}();")
            out.writeln()

        if project.has_embedded_files:
            out.writeln(f"void InitializeEmbeddedFiles_{name}() {{")
            for file in self._media_scripts(project.project.files):
                symbol = f"{file.original_project.upper()}_{part_before(file.name, '.').upper()}"
                out.writeln(f"  extern void RegisterEmbeddedFiles_{symbol}();")
                out.writeln(f"  RegisterEmbeddedFiles_{symbol}();")
            out.writeln("}")
            out.writeln()

        calls = []
        if project.has_reflection:
            calls += [f"InitializeReflection_{name}();", f"InitializeTests_{name}();"]
        if project.has_embedded_files:
            calls.append(f"InitializeEmbeddedFiles_{name}();")
        body = " ".join(calls)

        out.writeln(f"void InitModule_{name}() {{")
        out.writeln(
            "modules::TModuleInitializationFunc initFunc = []() { "
            + (body + " " if body else "")
            + "};"
        )
        out.writeln(
            f'modules::RegisterModule("{name}", __DATE__, __TIME__, _MSC_FULL_VER, initFunc);'
        )
        out.writeln("}")
        out.writeln()

        if project.will_be_dynamic:
            out.writeln("void* GModuleHandle = nullptr;")
            out.writeln(
                "unsigned char __stdcall DllMain(void* moduleInstance, unsigned long nReason, void*) {"
            )
            out.writeln(
                f"if (nReason == 1) {{ GModuleHandle = moduleInstance; InitModule_{name}(); }}"
            )
            out.writeln("return 1;")
            out.writeln("}")
            out.writeln()

    def render_main(self, project: GeneratedProject, out: GeneratedFile) -> None:
        info = project.project
        self._banner(out, "Application Entry Point")
        out.writeln('#include "build.h"')
        if info.app_header_name:
            out.writeln(f'#include "{info.app_header_name}"')
        out.writeln(f'#include "{COMMAND_LINE_HEADER}"')
        out.writeln()

        if info.has_tests:
            out.writeln('#include "gtest/gtest.h"')
            out.writeln()

        windows_command_line = False
        if self.config.platform == PlatformType.WINDOWS and not info.flags.console:
            out.writeln("#include <Windows.h>")
            out.writeln()
            out.writeln(
                "int __stdcall wWinMain(HINSTANCE hInstance, HINSTANCE hPrevInstance, "
                "PWSTR pCmdLine, int nCmdShow) {"
            )
            windows_command_line = True
        else:
            out.writeln("int main(int argc, char** argv) {")

        out.writeln("  extern void InitializeStaticDependencies();")
        out.writeln("  InitializeStaticDependencies();")
        out.writeln()
        out.writeln("  CommandLine commandLine;")
        if windows_command_line:
            out.writeln("  if (!commandLine.parse(BaseStringView<wchar_t>(pCmdLine), false))")
        else:
            out.writeln("  if (!commandLine.parse(argc, argv))")
        out.writeln("    return -1;")
        out.writeln()

        if info.has_tests:
            out.writeln('  if (!commandLine.hasParam("interactive")) {')
            out.writeln("    #ifdef PLATFORM_LINUX")
            out.writeln("      signal(SIGPIPE, SIG_IGN);")
            out.writeln("    #endif")
            out.writeln()
            out.writeln("    testing::InitGoogleTest(&argc, argv);")
            out.writeln("    auto ret = RUN_ALL_TESTS();")
            out.writeln("    if (ret) return ret;")
            out.writeln("  }")
            out.writeln()

        if info.app_class_name:
            out.writeln(f"  {info.app_class_name} app;")
            out.writeln("  if (!app.init(commandLine))")
            out.writeln("    return -1;")
            out.writeln()
            out.writeln("  while (app.update()) {}")
            out.writeln()

        out.writeln("  return 0;")
        out.writeln("}")

    def render_rtti_list(self, out: GeneratedFile) -> None:
        listing = ReflectionList(
            platform=self.config.platform.value, build=self.config.build.value
        )
        total = 0
        for project in self.solution.projects:
            total += len(project.files)
            if not project.has_reflection or project.local_reflection_file is None:
                continue
            listing.projects.append(
                ReflectionProject(
                    name=project.name,
                    reflection_file=project.local_reflection_file,
                    sources=[
                        f.absolute_path
                        for f in project.files
                        if f.role == FileRole.CPP_SOURCE and not f.generated
                    ],
                )
            )
        reflected = sum(len(p.sources) for p in listing.projects)
        logger.info(
            "Found %d source code file(s) for reflection of (%d total)", reflected, total
        )
        out.lines.extend(listing.render().splitlines())

    def render_media_list(self, out: GeneratedFile) -> None:
        out.writeln(self.config.platform.value)
        count = 0
        for project in self.solution.projects:
            if not project.has_embedded_files:
                continue
            for file in self._media_scripts(project.project.files):
                name = media_data_file_name(file.original_project, file.name)
                out.writeln(project.name)
                out.writeln(make_generic_path(file.absolute_path))
                out.writeln(make_generic_path(project.generated_path / name))
                count += 1
        logger.info("Found %d embedded media build file(s)", count)


def generate_code(
    solution: ExtractedSolution,
    structure: ProjectStructure,
    files: Optional[FileGenerator] = None,
) -> StageResult:
    """Run the automatic and extra code generation passes."""
    generator = CodeGenerator(solution, structure, files)
    generator.generate_automatic_code()
    result = generator.generate_extra_code()
    structure.diagnostics.extend(result.diagnostics)
    return result
