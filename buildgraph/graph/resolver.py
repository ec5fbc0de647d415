"""Dependency resolution: declared names to concrete arena references.

Resolution runs one full pass over every active project and reports all
problems at once. Cycles are not looked for here; they can only be judged
on the final ordering edges (see ``buildgraph.graph.ordering``).
"""

from __future__ import annotations

import logging
from typing import List, Optional

from buildgraph.config.schema import Configuration
from buildgraph.diagnostics import Diagnostics, Stage, StageResult
from buildgraph.project.models import (
    RESERVED_LIBRARY_PREFIX,
    WILDCARD_SUFFIX,
    ProjectInfo,
    ProjectKind,
)
from buildgraph.project.structure import ProjectStructure

logger = logging.getLogger("buildgraph.graph.resolver")

RTTI_GENERATOR_NAME = "_rtti_gen"
EMBEDDED_MEDIA_NAME = "_embedd_files"
MEDIA_TOOL_NAME = "tool_fxc"


def create_synthetic_projects(
    structure: ProjectStructure, config: Configuration
) -> List[ProjectInfo]:
    """Register the reflection generator and media aggregator projects.

    Both exist only for Visual Studio generators. Calling this twice is a
    no-op.
    """
    if not config.generator.is_visual_studio:
        return []
    created = []
    for name, kind in (
        (RTTI_GENERATOR_NAME, ProjectKind.RTTI_GENERATOR),
        (EMBEDDED_MEDIA_NAME, ProjectKind.EMBEDDED_MEDIA),
    ):
        if structure.find_project(name) is None:
            created.append(
                structure.register(ProjectInfo(name=name, merged_name=name, kind=kind))
            )
    return created


def _add_unique(target: List[str], name: str) -> None:
    if name not in target:
        target.append(name)


def match_wildcard(structure: ProjectStructure, pattern: str, owner: str) -> List[str]:
    """Local libraries whose merged name starts with the wildcard prefix.

    ``base_*`` matches ``base_math`` and ``base_io`` but never ``baseline``;
    the declaring project itself is never matched. Results are sorted.
    """
    prefix = pattern[: -len("*")]
    return sorted(
        project.merged_name
        for project in structure.active_projects()
        if project.merged_name.startswith(prefix)
        and project.kind == ProjectKind.LOCAL_LIBRARY
        and project.merged_name != owner
    )


def _resolve_name(
    structure: ProjectStructure,
    project: ProjectInfo,
    name: str,
    diagnostics: Diagnostics,
) -> bool:
    """Resolve one declared name into ``project.resolved_dependencies``.

    Returns:
        False only when an exact name does not exist.
    """
    if name.endswith(WILDCARD_SUFFIX):
        matches = match_wildcard(structure, name, project.merged_name)
        if not matches:
            diagnostics.warning(
                Stage.RESOLVE,
                f"Wildcard dependency '{name}' does not match any library",
                project.merged_name,
            )
        for match in matches:
            _add_unique(project.resolved_dependencies, match)
        return True

    target = structure.find_project(name)
    if target is None:
        return False
    if target.kind == ProjectKind.LOCAL_APPLICATION:
        diagnostics.info(
            Stage.RESOLVE,
            f"Project '{name}' is an application and can't be a dependency",
            project.merged_name,
        )
        return True
    _add_unique(project.resolved_dependencies, target.merged_name)
    return True


def resolve_dependencies(
    structure: ProjectStructure, config: Configuration
) -> StageResult:
    """Resolve declared dependencies of every active project.

    Args:
        structure: Project arena after scripts ran.
        config: Active configuration (decides the synthetic projects).

    Returns:
        Stage result; not ok if any required dependency is missing.
    """
    result = StageResult(Stage.RESOLVE)
    diagnostics = result.diagnostics

    create_synthetic_projects(structure, config)
    rtti: Optional[ProjectInfo] = structure.find_project(RTTI_GENERATOR_NAME)
    media: Optional[ProjectInfo] = structure.find_project(EMBEDDED_MEDIA_NAME)

    for project in structure.active_projects():
        project.resolved_dependencies = []

        if project.is_source_project:
            if (
                rtti is not None
                and not project.merged_name.startswith(RESERVED_LIBRARY_PREFIX)
                and project is not media
            ):
                project.resolved_dependencies.append(rtti.merged_name)

            for name in project.dependencies:
                if not _resolve_name(structure, project, name, diagnostics):
                    project.has_missing_dependencies = True
                    diagnostics.error(
                        Stage.RESOLVE,
                        f"Dependency '{name}' can't be resolved",
                        project.merged_name,
                    )

            for name in project.optional_dependencies:
                if not _resolve_name(structure, project, name, diagnostics):
                    logger.debug(
                        "Optional dependency '%s' of '%s' not found",
                        name,
                        project.merged_name,
                    )
        elif project.dependencies:
            diagnostics.warning(
                Stage.RESOLVE,
                "Project has dependencies even though it's not a source-code based project",
                project.merged_name,
            )

        if project.has_media and project.kind in (
            ProjectKind.LOCAL_APPLICATION,
            ProjectKind.LOCAL_LIBRARY,
        ):
            if media is not None:
                _add_unique(project.resolved_dependencies, media.merged_name)
            else:
                diagnostics.warning(
                    Stage.RESOLVE,
                    "Project will not embed media because the media aggregator is not available",
                    project.merged_name,
                )

    if media is not None:
        tool = structure.find_project(MEDIA_TOOL_NAME)
        if tool is not None:
            _add_unique(media.resolved_dependencies, tool.merged_name)

    structure.diagnostics.extend(diagnostics)
    if not result.ok:
        logger.error(
            "There are projects with invalid dependencies, can't continue solution generation"
        )
    return result
