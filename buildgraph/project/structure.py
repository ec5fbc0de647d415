"""Project arena: every project of a run, addressed by merged name."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from buildgraph.config.schema import Configuration
from buildgraph.diagnostics import Diagnostics, Stage, StageResult
from buildgraph.errors import ProjectNameCollisionError
from buildgraph.project.models import ProjectGroup, ProjectGroupKind, ProjectInfo
from buildgraph.project.scanner import (
    DirectoryLister,
    scan_content,
    scan_projects,
    scan_script_projects,
)

logger = logging.getLogger("buildgraph.project.structure")


@dataclass
class ProjectStructure:
    """Owns all projects, the active project order and the groups.

    ``projects`` is the arena; ``project_names`` is the ordered list of
    projects taking part in later stages. Module aggregation replaces the
    active list but never removes anything from the arena.
    """

    projects: Dict[str, ProjectInfo] = field(default_factory=dict)
    project_names: List[str] = field(default_factory=list)
    groups: List[ProjectGroup] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    lister: Optional[DirectoryLister] = None

    def register(self, project: ProjectInfo, group: Optional[ProjectGroup] = None) -> ProjectInfo:
        """Add a project to the arena and the active list.

        Raises:
            ProjectNameCollisionError: If the merged name is already taken.
        """
        existing = self.projects.get(project.merged_name)
        if existing is not None:
            raise ProjectNameCollisionError(
                project.merged_name,
                str(existing.root_path or existing.merged_name),
                str(project.root_path or project.merged_name),
            )
        self.projects[project.merged_name] = project
        self.project_names.append(project.merged_name)
        if group is not None:
            group.projects.append(project.merged_name)
        return project

    def find_project(self, name: str) -> Optional[ProjectInfo]:
        return self.projects.get(name)

    def get(self, name: str) -> ProjectInfo:
        return self.projects[name]

    def active_projects(self) -> List[ProjectInfo]:
        return [self.projects[name] for name in self.project_names]

    def __iter__(self) -> Iterator[ProjectInfo]:
        return iter(self.active_projects())

    def __len__(self) -> int:
        return len(self.project_names)

    def find_group(self, kind: ProjectGroupKind) -> Optional[ProjectGroup]:
        for group in self.groups:
            if group.kind == kind:
                return group
        return None

    def group_root(self, project: ProjectInfo) -> Optional[Path]:
        for group in self.groups:
            if group.kind == project.group and project.merged_name in group.projects:
                return group.root_path
        return None

    # -- stages --------------------------------------------------------------

    def scan_projects(self, kind: ProjectGroupKind, root: Path) -> ProjectGroup:
        """Scan ``root`` for build scripts and register a group of projects."""
        group = ProjectGroup(kind=kind, root_path=root)
        self.groups.append(group)
        for project in scan_projects(group, self.lister):
            self.register(project, group)
        return group

    def scan_script_projects(self, kind: ProjectGroupKind, root: Path) -> ProjectGroup:
        group = ProjectGroup(kind=kind, root_path=root)
        self.groups.append(group)
        for project in scan_script_projects(group, self.lister):
            self.register(project, group)
        return group

    def scan_content(self) -> int:
        """Collect the files of every active project; returns the total."""
        total = 0
        for project in self.active_projects():
            root = self.group_root(project) or project.root_path
            if root is None:
                continue
            total += scan_content(project, root, self.lister)
        logger.info("Found %d file(s) in %d project(s)", total, len(self))
        return total

    def setup_projects(self, config: Configuration) -> StageResult:
        """Run the build script of every active project."""
        # Imported here: the script host depends on the project model.
        from buildgraph.script.host import setup_project

        result = StageResult(Stage.SCRIPT)
        for project in self.active_projects():
            if project.root_path is None:
                continue
            setup_project(project, config, result.diagnostics)
        self.diagnostics.extend(result.diagnostics)
        invalid = sum(1 for p in self.active_projects() if p.has_script_errors)
        if invalid:
            logger.warning("%d project(s) have script errors", invalid)
        return result
