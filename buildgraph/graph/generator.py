"""Extraction of the resolved project set into emitter-ready projects.

``extract_projects`` wraps every buildable project into a
``GeneratedProject``, maps dependency edges into a ``networkx.DiGraph``,
computes transitive closures and the global emission order, and derives the
link shape of each project. Emitters read the resulting ``ExtractedSolution``
and must not mutate it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import networkx as nx

from buildgraph.config.schema import BuildType, Configuration, LibraryType
from buildgraph.errors import DependencyCycleError
from buildgraph.graph.ordering import OrderedGraphBuilder, canonical_cycle, transitive_dependencies
from buildgraph.project.models import (
    FileInfo,
    FileRole,
    ProjectInfo,
    ProjectKind,
    check_platform_filter,
    is_test_file,
)
from buildgraph.project.structure import ProjectStructure
from buildgraph.utils.paths import guid_from_text, part_before

logger = logging.getLogger("buildgraph.graph.generator")

OBJECT_SYSTEM_PROJECT = "core_object"
STATIC_INIT_PROJECT = "core_system"
ROOT_GROUP_NAME = "Engine"

_WRAPPED_KINDS = (
    ProjectKind.LOCAL_APPLICATION,
    ProjectKind.LOCAL_LIBRARY,
    ProjectKind.RTTI_GENERATOR,
    ProjectKind.EMBEDDED_MEDIA,
)


@dataclass
class GeneratedProjectFile:
    """A file as an emitter sees it.

    ``original_file`` is None for files produced by code generation.
    """

    name: str
    absolute_path: Path
    role: FileRole
    filter_path: str = ""
    use_in_build: bool = True
    original_file: Optional[FileInfo] = None
    generated: bool = False


@dataclass
class GeneratedGroup:
    """Solution folder; ``merged_name`` is the dotted path from the root."""

    name: str
    merged_name: str
    guid: str
    parent: Optional["GeneratedGroup"] = field(default=None, repr=False)
    children: List["GeneratedGroup"] = field(default_factory=list)
    projects: List[str] = field(default_factory=list)

    def find_or_create(self, name: str) -> "GeneratedGroup":
        for child in self.children:
            if child.name == name:
                return child
        merged = f"{self.merged_name}.{name}"
        child = GeneratedGroup(name=name, merged_name=merged, guid=guid_from_text(merged), parent=self)
        self.children.append(child)
        return child


@dataclass
class GeneratedProject:
    """Emitter view of one project plus its derived link shape."""

    name: str
    project: ProjectInfo
    generated_path: Path
    project_path: Path
    output_path: Path
    guid: str
    group: str = ""
    has_embedded_files: bool = False

    files: List[GeneratedProjectFile] = field(default_factory=list)
    direct_dependencies: List[str] = field(default_factory=list)
    all_dependencies: List[str] = field(default_factory=list)
    additional_include_paths: List[Path] = field(default_factory=list)

    will_be_dynamic: bool = False
    will_be_linked: bool = False
    will_have_entry_point: bool = False
    has_reflection: bool = False
    needs_static_init: bool = False

    local_public_header: Optional[Path] = None
    local_reflection_file: Optional[Path] = None

    @property
    def kind(self) -> ProjectKind:
        return self.project.kind


@dataclass
class ScriptProject:
    """Auxiliary language project passed through to the solution."""

    name: str
    project_path: Path
    project_file: Path
    guid: str


@dataclass
class ExtractedSolution:
    """Ordered, read-only view of the solution handed to emitters."""

    config: Configuration
    graph: nx.DiGraph
    projects: List[GeneratedProject] = field(default_factory=list)
    script_projects: List[ScriptProject] = field(default_factory=list)
    source_roots: List[Path] = field(default_factory=list)
    root_group: GeneratedGroup = field(
        default_factory=lambda: GeneratedGroup(
            ROOT_GROUP_NAME, ROOT_GROUP_NAME, guid_from_text(ROOT_GROUP_NAME)
        )
    )

    def __post_init__(self) -> None:
        self._by_name: Dict[str, GeneratedProject] = {}

    def index(self) -> None:
        self._by_name = {p.name: p for p in self.projects}

    def find(self, name: str) -> Optional[GeneratedProject]:
        return self._by_name.get(name)

    def get(self, name: str) -> GeneratedProject:
        return self._by_name[name]

    def create_group(self, dotted_name: str) -> GeneratedGroup:
        group = self.root_group
        for part in dotted_name.split("."):
            if part:
                group = group.find_or_create(part)
        return group


def _file_filter_path(file: FileInfo) -> str:
    parent = file.project_relative_path.rpartition("/")[0]
    return "" if parent == "." else parent


def _wrap_files(project: ProjectInfo, config: Configuration) -> List[GeneratedProjectFile]:
    wrapped = []
    for file in project.files:
        use = file.check_filter(config.platform)
        if config.build != BuildType.DEV and is_test_file(file.name):
            use = False
        wrapped.append(
            GeneratedProjectFile(
                name=file.name,
                absolute_path=file.absolute_path,
                role=file.role,
                filter_path=_file_filter_path(file),
                use_in_build=use,
                original_file=file,
            )
        )
    return wrapped


def derive_link_shape(generated: GeneratedProject, config: Configuration) -> None:
    """Decide dynamic/linked/entry-point for one wrapped project."""
    project = generated.project
    if project.kind == ProjectKind.LOCAL_LIBRARY:
        if project.flags.force_shared:
            generated.will_be_dynamic = True
        elif project.flags.force_static:
            generated.will_be_dynamic = False
        else:
            generated.will_be_dynamic = config.libs == LibraryType.SHARED

        if config.libs == LibraryType.SHARED:
            generated.will_be_linked = generated.will_be_dynamic
        else:
            generated.will_be_linked = True
    else:
        generated.will_be_dynamic = False
        if project.kind == ProjectKind.LOCAL_APPLICATION:
            generated.will_be_linked = True
            generated.will_have_entry_point = True


def needs_reflection(generated: GeneratedProject) -> bool:
    """Module roots, the object system and everything depending on it."""
    if generated.kind not in (ProjectKind.LOCAL_APPLICATION, ProjectKind.LOCAL_LIBRARY):
        return False
    if generated.project.flags.module_root:
        return True
    if generated.name == OBJECT_SYSTEM_PROJECT:
        return True
    return OBJECT_SYSTEM_PROJECT in generated.all_dependencies


def requires_static_init(generated: GeneratedProject) -> bool:
    """Libraries whose init entry must be called by the program entry point."""
    project = generated.project
    if project.flags.no_init:
        return False
    if project.kind != ProjectKind.LOCAL_LIBRARY:
        return False
    if project.flags.pure_dynamic:
        return False
    if STATIC_INIT_PROJECT in generated.all_dependencies:
        return True
    return generated.name == STATIC_INIT_PROJECT


def _script_project(project: ProjectInfo) -> ScriptProject:
    assert project.root_path is not None
    if project.assigned_project_file:
        project_file = project.root_path / project.assigned_project_file
    else:
        project_file = project.root_path / f"{project.merged_name}.csproj"
    return ScriptProject(
        name=project.merged_name,
        project_path=project.root_path,
        project_file=project_file,
        guid=project.assigned_guid or guid_from_text(project.merged_name),
    )


def _collect_cycles(
    found: List[List[str]], seen: set, cycles: List[List[str]]
) -> None:
    for cycle in cycles:
        key = canonical_cycle(cycle)
        if key not in seen:
            seen.add(key)
            found.append(cycle)


def extract_projects(structure: ProjectStructure, config: Configuration) -> ExtractedSolution:
    """Build the ordered, link-decided project list for emitters.

    Args:
        structure: Resolved (and possibly aggregated) project arena.
        config: Active configuration.

    Returns:
        The extracted solution.

    Raises:
        DependencyCycleError: If any ordering walk reaches a cycle. Every
            distinct cycle found is reported.
    """
    assert config.solution_path is not None, "solution path is required for extraction"
    solution_root = config.solution_path

    graph = nx.DiGraph()
    solution = ExtractedSolution(config=config, graph=graph)
    wrapped: List[GeneratedProject] = []
    by_name: Dict[str, GeneratedProject] = {}

    for project in structure.active_projects():
        if project.kind in _WRAPPED_KINDS:
            if config.build != BuildType.DEV:
                if project.flags.dev_only:
                    logger.info("Skipped dev-only project '%s'", project.merged_name)
                    continue
                if not check_platform_filter(project.filter, config.platform):
                    logger.info(
                        "Skipped project '%s' because it's not compatible with current platform",
                        project.merged_name,
                    )
                    continue

            name = project.merged_name
            generated = GeneratedProject(
                name=name,
                project=project,
                generated_path=solution_root / "generated" / name,
                project_path=solution_root / "projects" / name,
                output_path=solution_root / "output" / name,
                guid=guid_from_text(name),
                has_embedded_files=project.has_media,
            )
            generated.files = _wrap_files(project, config)

            full_project = project.kind in (
                ProjectKind.LOCAL_APPLICATION,
                ProjectKind.LOCAL_LIBRARY,
            )
            generated.group = part_before(name, "_") if full_project else ""
            solution.create_group(generated.group).projects.append(name)

            derive_link_shape(generated, config)
            wrapped.append(generated)
            by_name[name] = generated
            graph.add_node(name)

        elif project.kind == ProjectKind.SCRIPT_PROJECT:
            solution.script_projects.append(_script_project(project))

    for generated in wrapped:
        for dep_name in generated.project.resolved_dependencies:
            dep = by_name.get(dep_name)
            if dep is None:
                continue
            if not check_platform_filter(dep.project.filter, config.platform):
                continue
            if dep_name not in generated.direct_dependencies:
                generated.direct_dependencies.append(dep_name)
                graph.add_edge(generated.name, dep_name)

    cycles: List[List[str]] = []
    seen: set = set()
    for generated in wrapped:
        try:
            generated.all_dependencies = transitive_dependencies(graph, generated.name)
        except DependencyCycleError as exc:
            _collect_cycles(cycles, seen, exc.cycles)

    builder = OrderedGraphBuilder(graph)
    for generated in wrapped:
        builder.insert(generated.name, 1, [])
    _collect_cycles(cycles, seen, builder.cycles)
    if cycles:
        raise DependencyCycleError(cycles)

    solution.projects = [by_name[name] for name in builder.ordered()]
    solution.index()

    for generated in solution.projects:
        generated.has_reflection = needs_reflection(generated)
        generated.needs_static_init = requires_static_init(generated)
        root = generated.project.root_path
        if not generated.project.flags.module_root and root is not None:
            header = root / "include" / "public.h"
            if header.is_file():
                generated.local_public_header = header
        graph.nodes[generated.name].update(_node_attributes(generated))

    solution.source_roots = [group.root_path for group in structure.groups]
    logger.info("Extracted %d project(s) in build order", len(solution.projects))
    return solution


def _node_attributes(generated: GeneratedProject) -> Dict[str, object]:
    return {
        "kind": generated.kind.value,
        "group": generated.group,
        "guid": generated.guid,
        "dynamic": generated.will_be_dynamic,
        "linked": generated.will_be_linked,
        "entry_point": generated.will_have_entry_point,
        "reflection": generated.has_reflection,
        "static_init": generated.needs_static_init,
    }
