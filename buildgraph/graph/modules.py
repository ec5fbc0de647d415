"""Module aggregation for standalone builds.

Projects declaring the same module name are collapsed into one synthetic
library project (the module root). Their non-test files move into the
module and their cross-module dependencies are re-homed as module to
module edges.
"""

from __future__ import annotations

import logging
from typing import List

from buildgraph.config.schema import Configuration
from buildgraph.diagnostics import Stage, StageResult
from buildgraph.errors import AggregationError
from buildgraph.project.models import (
    RESERVED_LIBRARY_PREFIX,
    ProjectGroupKind,
    ProjectInfo,
    ProjectKind,
    check_platform_filter,
    is_test_file,
)
from buildgraph.project.structure import ProjectStructure

logger = logging.getLogger("buildgraph.graph.modules")

# Dependencies that have no module of their own and are carried along as-is.
_PASS_THROUGH_KINDS = (
    ProjectKind.RTTI_GENERATOR,
    ProjectKind.EXTERNAL_LIBRARY,
    ProjectKind.EMBEDDED_MEDIA,
)


def collect_module_dependencies(
    structure: ProjectStructure,
    project: ProjectInfo,
    module: str,
    found: List[str],
) -> List[str]:
    """Collect the transitive resolved dependencies of a module constituent.

    Recursion stops at projects that belong to a different module, so the
    internals of other modules are never pulled in.
    """
    if project.module_project is None or project.module_project == module:
        for name in project.resolved_dependencies:
            if name not in found:
                found.append(name)
                collect_module_dependencies(structure, structure.get(name), module, found)
    return found


def _is_pass_through(project: ProjectInfo) -> bool:
    return project.kind in _PASS_THROUGH_KINDS or project.merged_name.startswith(
        RESERVED_LIBRARY_PREFIX
    )


def make_modules(structure: ProjectStructure, config: Configuration) -> StageResult:
    """Replace the active project list with module aggregates.

    Returns:
        Stage result carrying the warnings of the pass.

    Raises:
        AggregationError: If a constituent is not a library, a module name
            is already used by a regular project, or no module was created.
    """
    result = StageResult(Stage.AGGREGATE)
    diagnostics = result.diagnostics

    old_projects = structure.active_projects()
    engine_group = structure.find_group(ProjectGroupKind.ENGINE)
    for group in structure.groups:
        group.projects = []

    active: List[str] = []
    modules: List[str] = []
    dropped: List[str] = []

    for project in old_projects:
        if project.module_name:
            if not check_platform_filter(project.filter, config.platform):
                continue

            if project.kind not in (ProjectKind.LOCAL_LIBRARY, ProjectKind.EXTERNAL_LIBRARY):
                raise AggregationError(
                    f"Project '{project.merged_name}' must be a local or external "
                    f"library to be part of module '{project.module_name}'"
                )

            module = structure.find_project(project.module_name)
            if module is None:
                module = ProjectInfo(
                    name=project.module_name,
                    merged_name=project.module_name,
                    group=ProjectGroupKind.ENGINE,
                    kind=ProjectKind.LOCAL_LIBRARY,
                )
                module.flags.module_root = True
                structure.projects[module.merged_name] = module
                active.append(module.merged_name)
                modules.append(module.merged_name)
                if engine_group is not None:
                    engine_group.projects.append(module.merged_name)
            elif not module.flags.module_root:
                raise AggregationError(
                    f"Module name '{project.module_name}' collides with an existing project"
                )

            logger.info(
                "Project '%s' will be added to module '%s'",
                project.merged_name,
                module.merged_name,
            )
            module.module_source_projects.append(project.merged_name)
            project.module_project = module.merged_name
            module.has_media = module.has_media or project.has_media

            kept = [f for f in project.files if is_test_file(f.name)]
            module.files.extend(f for f in project.files if not is_test_file(f.name))
            project.files = kept

        elif project.kind == ProjectKind.RTTI_GENERATOR:
            active.append(project.merged_name)

    for project in old_projects:
        if project.module_project is None:
            continue
        module = structure.get(project.module_project)
        for name in collect_module_dependencies(structure, project, module.merged_name, []):
            dep = structure.get(name)
            if dep.module_project is not None:
                if dep.module_project != module.merged_name and (
                    dep.module_project not in module.resolved_dependencies
                ):
                    module.resolved_dependencies.append(dep.module_project)
            elif _is_pass_through(dep):
                if name not in module.resolved_dependencies:
                    module.resolved_dependencies.append(name)
                if name not in active:
                    active.append(name)
                    logger.info("Discovered non-module dependency that has to be kept: '%s'", name)
                    group = structure.find_group(dep.group) if dep.group else None
                    if group is not None and name not in group.projects:
                        group.projects.append(name)
            elif dep.kind == ProjectKind.LOCAL_LIBRARY and name not in dropped:
                dropped.append(name)
                diagnostics.warning(
                    Stage.AGGREGATE,
                    f"Dependency '{name}' is not part of any module and is dropped",
                    module.merged_name,
                )

    logger.info("Created %d module project(s)", len(modules))
    if not modules:
        raise AggregationError("No module projects created for a standalone build")

    structure.project_names = active
    structure.diagnostics.extend(diagnostics)
    return result
