"""Writer for the per-project ``BUILD`` metadata summary."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from buildgraph.project.models import (
    METADATA_FILE_NAME,
    PlatformFilter,
    ProjectInfo,
    ProjectKind,
)
from buildgraph.utils.paths import make_generic_path

logger = logging.getLogger("buildgraph.script.metadata")

METADATA_HEADER = "# Project Configuration"

# Filter tokens that differ from the script tag.
_FILTER_TOKENS = {PlatformFilter.OPENGL: "ogl"}


def _type_lines(project: ProjectInfo) -> List[str]:
    if project.kind == ProjectKind.LOCAL_APPLICATION:
        lines = ["TYPE: test" if project.has_tests else "TYPE: app"]
        if project.app_class_name:
            lines.append(f"APP_CLASS: {project.app_class_name}")
        if project.app_header_name:
            lines.append(f"APP_HEADER: {project.app_header_name}")
        lines.append(
            "SUBSYSTEM: console" if project.flags.console else "SUBSYSTEM: windows"
        )
        return lines
    if project.kind == ProjectKind.LOCAL_LIBRARY:
        if project.flags.force_shared:
            return ["TYPE: dll"]
        if project.flags.force_static:
            return ["TYPE: static"]
        return ["TYPE: library"]
    if project.kind == ProjectKind.EXTERNAL_LIBRARY:
        return ["TYPE: external_library"]
    if project.kind == ProjectKind.SCRIPT_PROJECT:
        return ["TYPE: mono"]
    return []


def _toggle_lines(project: ProjectInfo) -> List[str]:
    flags = project.flags
    toggles = []
    if flags.dev_only:
        toggles.append("dev ON")
    if flags.no_warnings:
        toggles.append("warnings OFF")
    elif flags.warn3:
        toggles.append("warnings 3")
    if flags.no_init:
        toggles.append("noinit ON")
    if flags.no_symbols:
        toggles.append("symbols OFF")
    if flags.pure_dynamic:
        toggles.append("dependency OFF")
    if flags.global_include:
        toggles.append("global ON")
    if flags.generate_main:
        toggles.append("main ON")
    if flags.allow_exceptions:
        toggles.append("exceptions ON")
    if not flags.use_pch:
        toggles.append("pch OFF")
    return [f"TOGGLE: {t}" for t in toggles]


def render_metadata(project: ProjectInfo) -> str:
    """Render the ``BUILD`` summary of a configured project.

    Example:
        # Project Configuration
        TYPE: library
        FILTER: windows

        TOGGLE: noinit ON

        DEPENDENCY: base_math
        DEPENDENCY: lib_zlib OPTIONAL
    """
    lines = [METADATA_HEADER]
    lines.extend(_type_lines(project))

    if project.assigned_guid:
        lines.append(f"GUID: {project.assigned_guid}")
    if project.assigned_project_file:
        lines.append(f"PROJECT_FILE: {project.assigned_project_file}")
    if project.filter != PlatformFilter.ANY:
        lines.append(f"FILTER: {_FILTER_TOKENS.get(project.filter, project.filter.value)}")

    lines.append("")
    lines.extend(_toggle_lines(project))

    if project.dependencies or project.optional_dependencies:
        lines.append("")
        lines.extend(f"DEPENDENCY: {dep}" for dep in project.dependencies)
        lines.extend(f"DEPENDENCY: {dep} OPTIONAL" for dep in project.optional_dependencies)

    if project.local_include_directories:
        lines.append("")
        lines.extend(f'INCLUDE: "{d}"' for d in project.local_include_directories)

    lines.extend(
        f"LIBRARY_INCLUDE: {make_generic_path(p)}" for p in project.library_include_paths
    )
    lines.extend(f"LIBRARY_LIB: {make_generic_path(p)}" for p in project.library_link_files)

    return "\n".join(lines) + "\n"


def write_metadata(project: ProjectInfo) -> Path:
    """Write ``BUILD`` next to the project's build script.

    Raises:
        OSError: If the file cannot be written.
    """
    assert project.root_path is not None
    path = project.root_path / METADATA_FILE_NAME
    path.write_text(render_metadata(project), encoding="utf-8")
    logger.debug("Wrote metadata for '%s' to %s", project.merged_name, path)
    return path
