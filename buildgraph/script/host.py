"""Script host: runs a project's ``build.lua`` against a private context.

Each project gets a fresh ``Interpreter`` whose host functions are closures
over a ``ScriptContext``. Scripts never touch the arena directly: they edit
a ``ProjectDraft`` that is merged back into the project only when the whole
script ran without a runtime or syntax fault.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from buildgraph.config.schema import Configuration, LibraryType, host_name
from buildgraph.diagnostics import Diagnostics, Stage
from buildgraph.errors import ScriptError
from buildgraph.project.models import (
    BUILD_SCRIPT_NAME,
    DeployInfo,
    PlatformFilter,
    ProjectInfo,
    ProjectKind,
    ToolInfo,
)
from buildgraph.script.interpreter import Interpreter
from buildgraph.script.metadata import write_metadata
from buildgraph.script.values import HostFunction, check_string, opt_bool, opt_string
from buildgraph.utils.paths import make_generic_path

logger = logging.getLogger("buildgraph.script.host")

# Fields a script is allowed to change; everything else stays untouched.
_DRAFT_FIELDS = (
    "kind",
    "flags",
    "filter",
    "has_tests",
    "module_name",
    "dependencies",
    "optional_dependencies",
    "files",
    "local_include_directories",
    "local_defines",
    "global_defines",
    "external_include_paths",
    "library_include_paths",
    "library_link_files",
    "deploy_list",
    "shared_deploy_list",
    "tools",
    "assigned_guid",
    "assigned_project_file",
    "app_class_name",
    "app_header_name",
)


@dataclass
class ProjectDraft:
    """Private, mutable copy of the script-editable part of a project."""

    project: ProjectInfo

    @classmethod
    def from_project(cls, project: ProjectInfo) -> "ProjectDraft":
        return cls(copy.deepcopy(project))

    def merge_into(self, target: ProjectInfo) -> None:
        for name in _DRAFT_FIELDS:
            setattr(target, name, getattr(self.project, name))


@dataclass
class ScriptContext:
    """Everything the host functions of one script run may read or write."""

    draft: ProjectDraft
    config: Configuration
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def project(self) -> ProjectInfo:
        return self.draft.project

    @property
    def root(self) -> Path:
        assert self.project.root_path is not None
        return self.project.root_path

    def error(self, message: str) -> None:
        """Record a domain problem; the script keeps running."""
        self.diagnostics.error(Stage.SCRIPT, message, self.project.merged_name)


def injected_values(config: Configuration) -> Dict[str, Any]:
    """Read-only values describing the active configuration."""
    return {
        "PlatformName": config.platform.value,
        "GeneratorName": config.generator.value,
        "BuildName": config.build.value,
        "ConfigurationName": config.configuration.value,
        "LibrariesName": config.libs.value,
        "HostName": host_name(),
        "UseStaticLibs": config.libs == LibraryType.STATIC,
    }


_PROJECT_TYPES = {
    "library": ProjectKind.LOCAL_LIBRARY,
    "dynlibrary": ProjectKind.LOCAL_LIBRARY,
    "app": ProjectKind.LOCAL_APPLICATION,
    "test_app": ProjectKind.LOCAL_APPLICATION,
    "test": ProjectKind.LOCAL_APPLICATION,
    "external": ProjectKind.EXTERNAL_LIBRARY,
    "mono": ProjectKind.SCRIPT_PROJECT,
}


def _collect_deploy_files(root: Path) -> List[DeployInfo]:
    """All regular files below ``root``, targets relative to it."""
    found: List[DeployInfo] = []
    try:
        paths = sorted(p for p in root.rglob("*") if p.is_file())
    except OSError as exc:
        logger.warning("Filesystem error while scanning %s: %s", root, exc)
        return found
    for path in paths:
        target = make_generic_path(path.relative_to(root))
        if target:
            found.append(DeployInfo(source_path=path, deploy_target=target))
    return found


def make_host_functions(ctx: ScriptContext) -> Dict[str, HostFunction]:
    """Build the host functions bound to ``ctx``."""

    def project_option(*args: Any) -> None:
        name = check_string(args, 0, "ProjectOption")
        value = opt_bool(args, 1)
        if not ctx.project.flags.toggle(name, value):
            ctx.error(f"Project uses invalid flag: '{name}'")

    def project_filter(*args: Any) -> None:
        tag = check_string(args, 0, "ProjectFilter")
        filter_ = PlatformFilter.by_name(tag)
        if filter_ is None:
            ctx.error(f"Project has invalid platform filter: '{tag}'")
            return
        ctx.project.filter = filter_

    def project_module_name(*args: Any) -> None:
        name = check_string(args, 0, "ProjectModuleName")
        if not name:
            ctx.error("Project has empty module name")
            return
        ctx.project.module_name = name

    def file_option(*args: Any) -> None:
        path = check_string(args, 0, "FileOption")
        flag = check_string(args, 1, "FileOption")
        value = opt_bool(args, 2)
        file = ctx.project.find_file(path)
        if file is None:
            ctx.error(f"Unknown file '{path}'")
        elif not file.toggle_flag(flag, value):
            ctx.error(f"Unknown file option '{flag}' used on file '{path}'")

    def file_filter(*args: Any) -> None:
        path = check_string(args, 0, "FileFilter")
        tag = check_string(args, 1, "FileFilter")
        filter_ = PlatformFilter.by_name(tag)
        if filter_ is None:
            ctx.error(f"File '{path}' has invalid platform filter: '{tag}'")
            return
        file = ctx.project.find_file(path)
        if file is None:
            ctx.error(f"Unknown file '{path}'")
            return
        file.filter = filter_

    def project_type(*args: Any) -> None:
        name = check_string(args, 0, "ProjectType")
        kind = _PROJECT_TYPES.get(name)
        if kind is None:
            ctx.error(f"Project has invalid type: '{name}'")
            return
        ctx.project.kind = kind
        if name == "dynlibrary":
            ctx.project.flags.pure_dynamic = True
        if name in ("test_app", "test"):
            ctx.project.has_tests = True

    def dependency(*args: Any) -> None:
        ctx.project.add_dependency(check_string(args, 0, "Dependency"))

    def dependency_optional(*args: Any) -> None:
        ctx.project.add_dependency(
            check_string(args, 0, "DependencyOptional"), optional=True
        )

    def local_define(*args: Any) -> None:
        name = check_string(args, 0, "LocalDefine")
        ctx.project.local_defines[name] = opt_string(args, 1, "LocalDefine") or ""

    def global_define(*args: Any) -> None:
        name = check_string(args, 0, "GlobalDefine")
        ctx.project.global_defines[name] = opt_string(args, 1, "GlobalDefine") or ""

    def local_include_dir(*args: Any) -> None:
        ctx.project.local_include_directories.append(
            check_string(args, 0, "LocalIncludeDir")
        )

    def external_include_directory(*args: Any) -> None:
        ctx.project.external_include_paths.append(
            check_string(args, 0, "ExternalIncludeDirectory")
        )

    def _existing_file(relative: str, what: str) -> Optional[Path]:
        full = ctx.root / relative
        if not full.exists():
            ctx.error(f"Referenced {what} '{relative}' does not exist in the project folder")
            return None
        if not full.is_file():
            ctx.error(f"Referenced {what} '{relative}' is not a file")
            return None
        return full

    def _existing_dir(relative: str, what: str) -> Optional[Path]:
        full = ctx.root / relative
        if not full.exists():
            ctx.error(f"Referenced {what} '{relative}' does not exist in the project folder")
            return None
        if not full.is_dir():
            ctx.error(f"Referenced {what} '{relative}' is not a directory")
            return None
        return full

    def tool(*args: Any) -> None:
        name = check_string(args, 0, "Tool")
        path = check_string(args, 1, "Tool")
        full = _existing_file(path, "binary file")
        if full is not None:
            ctx.project.tools.append(ToolInfo(name=name, executable_path=full))

    def _deploy(func: str, target_list: List[DeployInfo]) -> Callable[..., None]:
        def deploy(*args: Any) -> None:
            path = check_string(args, 0, func)
            target = opt_string(args, 1, func)
            full = _existing_file(path, "deployment file")
            if full is not None:
                target_list.append(
                    DeployInfo(source_path=full, deploy_target=target or full.name)
                )

        return deploy

    def _deploy_dir(func: str, target_list: List[DeployInfo]) -> Callable[..., None]:
        def deploy_dir(*args: Any) -> None:
            path = check_string(args, 0, func)
            full = _existing_dir(path, "deployment directory")
            if full is not None:
                target_list.extend(_collect_deploy_files(full))

        return deploy_dir

    def library_link(*args: Any) -> None:
        path = check_string(args, 0, "LibraryLink")
        full = _existing_file(path, "library file")
        if full is not None:
            ctx.project.library_link_files.append(full)

    def library_include(*args: Any) -> None:
        path = check_string(args, 0, "LibraryInclude")
        full = _existing_dir(path, "include path")
        if full is not None:
            ctx.project.library_include_paths.append(full)

    def assigned_guid(*args: Any) -> None:
        ctx.project.assigned_guid = check_string(args, 0, "AssignedGUID")

    def assigned_project_file(*args: Any) -> None:
        ctx.project.assigned_project_file = check_string(args, 0, "AssignedProjectFile")

    def generate_app_main(*args: Any) -> None:
        class_name = check_string(args, 0, "GenerateAppMain")
        header_name = check_string(args, 1, "GenerateAppMain")
        if not class_name:
            ctx.error("Missing app class name")
        if not header_name:
            ctx.error("Missing app header name")
        ctx.project.app_class_name = class_name
        ctx.project.app_header_name = header_name
        ctx.project.flags.generate_main = True

    project = ctx.project
    return {
        "ProjectOption": project_option,
        "ProjectFilter": project_filter,
        "ProjectModuleName": project_module_name,
        "FileOption": file_option,
        "FileFilter": file_filter,
        "ProjectType": project_type,
        "Dependency": dependency,
        "DependencyOptional": dependency_optional,
        "LocalDefine": local_define,
        "GlobalDefine": global_define,
        "LocalIncludeDir": local_include_dir,
        "Tool": tool,
        "Deploy": _deploy("Deploy", project.deploy_list),
        "DeployDir": _deploy_dir("DeployDir", project.deploy_list),
        "SharedDeploy": _deploy("SharedDeploy", project.shared_deploy_list),
        "SharedDeployDir": _deploy_dir("SharedDeployDir", project.shared_deploy_list),
        "LibraryLink": library_link,
        "LibraryInclude": library_include,
        "AssignedGUID": assigned_guid,
        "AssignedProjectFile": assigned_project_file,
        "ExternalIncludeDirectory": external_include_directory,
        "GenerateAppMain": generate_app_main,
    }


def run_project_script(
    project: ProjectInfo, source: str, config: Configuration
) -> ScriptContext:
    """Execute ``source`` for ``project`` without touching the project.

    Returns:
        The context holding the edited draft and the recorded problems.

    Raises:
        ScriptError: On a syntax error or a runtime fault in the script.
    """
    ctx = ScriptContext(ProjectDraft.from_project(project), config)
    globals_: Dict[str, Any] = injected_values(config)
    globals_.update(make_host_functions(ctx))
    Interpreter(globals_).run(source)
    return ctx


def setup_project(
    project: ProjectInfo,
    config: Configuration,
    diagnostics: Diagnostics,
    emit_metadata: bool = True,
) -> bool:
    """Configure one project from its ``build.lua``.

    A syntax error or runtime fault discards every change the script made
    and leaves the project disabled. Domain problems (unknown flag, missing
    file) are recorded while the rest of the script still applies.

    Returns:
        True if the script ran and recorded no problems.
    """
    assert project.root_path is not None
    script_path = project.root_path / BUILD_SCRIPT_NAME
    try:
        source = script_path.read_text(encoding="utf-8")
    except OSError as exc:
        diagnostics.error(
            Stage.SCRIPT,
            f"Failed to read build script at {script_path}: {exc}",
            project.merged_name,
        )
        project.has_script_errors = True
        return False

    try:
        ctx = run_project_script(project, source, config)
    except ScriptError as exc:
        diagnostics.error(
            Stage.SCRIPT,
            f"Failed to run build script at {script_path}: {exc}",
            project.merged_name,
        )
        project.has_script_errors = True
        return False
    except Exception as exc:
        # Interpreter bugs and exhausted recursion stay local to the project.
        logger.exception("Unexpected failure running %s", script_path)
        diagnostics.error(
            Stage.SCRIPT,
            f"Failed to run build script at {script_path}: {exc!r}",
            project.merged_name,
        )
        project.has_script_errors = True
        return False

    ctx.draft.merge_into(project)
    diagnostics.extend(ctx.diagnostics)
    if ctx.diagnostics.has_errors:
        project.has_script_errors = True

    if emit_metadata:
        try:
            write_metadata(project)
        except OSError as exc:
            diagnostics.warning(
                Stage.SCRIPT,
                f"Failed to write metadata file: {exc}",
                project.merged_name,
            )

    logger.debug("Configured project '%s' as %s", project.merged_name, project.kind.value)
    return not project.has_script_errors

