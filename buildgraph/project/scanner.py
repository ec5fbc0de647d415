"""Filesystem scanner for projects and their files.

Enumeration (which paths exist) and classification (what role a path has)
are kept apart: every walk goes through a ``DirectoryLister`` so tests can
substitute an in-memory tree, and ``classify_file`` is a pure function of
the file name.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple

from buildgraph.project.models import (
    BUILD_SCRIPT_NAME,
    FileInfo,
    FileRole,
    ProjectGroup,
    ProjectInfo,
)
from buildgraph.utils.paths import make_generic_path

logger = logging.getLogger("buildgraph.project.scanner")

_EXTENSION_ROLES = {
    ".h": FileRole.CPP_HEADER,
    ".hpp": FileRole.CPP_HEADER,
    ".hxx": FileRole.CPP_HEADER,
    ".inl": FileRole.CPP_HEADER,
    ".c": FileRole.CPP_SOURCE,
    ".cpp": FileRole.CPP_SOURCE,
    ".cxx": FileRole.CPP_SOURCE,
    ".crt": FileRole.CPP_SOURCE,
    ".bison": FileRole.BISON,
    ".natvis": FileRole.NATVIS,
    ".lua": FileRole.BUILD_SCRIPT,
    ".rc": FileRole.WINDOWS_RESOURCES,
}

# Scanned only when the project has a src/ directory, in this order.
_SOURCE_DIRECTORIES: Tuple[Tuple[str, bool], ...] = (
    ("include", True),
    ("res", False),
    ("natvis", False),
    ("src", False),
)


class DirEntry(NamedTuple):
    name: str
    path: Path
    is_dir: bool
    is_file: bool


class DirectoryLister:
    """Lists directory entries using ``os.scandir``.

    Entries come back sorted by name. Errors while listing are logged and
    the directory is treated as empty.
    """

    def list(self, directory: Path) -> List[DirEntry]:
        try:
            with os.scandir(directory) as it:
                entries = [
                    DirEntry(
                        entry.name,
                        Path(entry.path),
                        entry.is_dir(),
                        entry.is_file(),
                    )
                    for entry in it
                ]
        except OSError as exc:
            logger.warning("Filesystem error while listing %s: %s", directory, exc)
            return []
        return sorted(entries, key=lambda e: e.name)

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        return path.is_file()


_DEFAULT_LISTER = DirectoryLister()


def classify_file(path: Path) -> FileRole:
    """Map a file name to its role by extension."""
    return _EXTENSION_ROLES.get(path.suffix, FileRole.UNKNOWN)


def classify_media_file(path: Path) -> FileRole:
    return FileRole.MEDIA_SCRIPT if path.suffix == ".lua" else FileRole.MEDIA_FILE


def enumerate_files(
    directory: Path,
    lister: Optional[DirectoryLister] = None,
    skip_hidden: bool = False,
) -> List[Path]:
    """Recursively list regular files below ``directory``."""
    lister = lister or _DEFAULT_LISTER
    found: List[Path] = []
    stack = [directory]
    while stack:
        current = stack.pop()
        subdirs = []
        for entry in lister.list(current):
            if skip_hidden and entry.name.startswith("."):
                continue
            if entry.is_dir:
                subdirs.append(entry.path)
            elif entry.is_file:
                found.append(entry.path)
        stack.extend(reversed(subdirs))
    return found


def find_project_directories(
    root: Path, lister: Optional[DirectoryLister] = None
) -> List[Tuple[List[str], Path]]:
    """Find every directory below ``root`` that holds a build script.

    Returns:
        ``(path segments relative to root, absolute directory)`` pairs in
        post-order (children before their parent), siblings sorted by name.
    """
    lister = lister or _DEFAULT_LISTER
    result: List[Tuple[List[str], Path]] = []

    def walk(directory: Path, segments: List[str]) -> None:
        has_script = False
        for entry in lister.list(directory):
            if entry.is_dir:
                walk(entry.path, segments + [entry.name])
            elif entry.is_file and entry.name == BUILD_SCRIPT_NAME:
                has_script = True
        # The scan root itself has no name and is never a project.
        if has_script and segments:
            result.append((segments, directory))

    walk(root, [])
    return result


def scan_projects(
    group: ProjectGroup, lister: Optional[DirectoryLister] = None
) -> List[ProjectInfo]:
    """Create a disabled project for each build-script directory of a group.

    The merged name joins the directory segments with ``_``, so
    ``src/base/math`` becomes ``base_math``.
    """
    logger.info("Scanning for projects at %s", group.root_path)
    projects = []
    for segments, directory in find_project_directories(group.root_path, lister):
        project = ProjectInfo(
            name=segments[-1],
            merged_name="_".join(segments),
            root_path=directory,
            group=group.kind,
        )
        projects.append(project)
    logger.info("Discovered %d project(s)", len(projects))
    return projects


def scan_script_projects(
    group: ProjectGroup, lister: Optional[DirectoryLister] = None
) -> List[ProjectInfo]:
    """Variant of ``scan_projects`` for auxiliary language projects.

    Hidden directories are skipped and the project name is just the name of
    its directory.
    """
    lister = lister or _DEFAULT_LISTER
    logger.info("Scanning for script projects at %s", group.root_path)
    projects: List[ProjectInfo] = []

    def walk(directory: Path, is_root: bool) -> None:
        has_script = False
        for entry in lister.list(directory):
            if entry.name.startswith("."):
                continue
            if entry.is_dir:
                walk(entry.path, False)
            elif entry.is_file and entry.name == BUILD_SCRIPT_NAME:
                has_script = True
        if has_script and not is_root:
            projects.append(
                ProjectInfo(
                    name=directory.name,
                    merged_name=directory.name,
                    root_path=directory,
                    group=group.kind,
                )
            )
            logger.debug("Found script project '%s' at %s", directory.name, directory)

    walk(group.root_path, True)
    logger.info("Discovered %d script project(s)", len(projects))
    return projects


def scan_script_sources(
    root: Path, extension: str = ".cs", lister: Optional[DirectoryLister] = None
) -> List[Path]:
    """List the sources of a script project, skipping hidden entries."""
    files = enumerate_files(root, lister, skip_hidden=True)
    return sorted(
        (path for path in files if path.name.endswith(extension)),
        key=lambda p: make_generic_path(p.relative_to(root)),
    )


def _make_file(
    project: ProjectInfo, group_root: Path, path: Path, role: FileRole
) -> FileInfo:
    assert project.root_path is not None
    return FileInfo(
        name=path.name,
        absolute_path=path,
        project_relative_path=make_generic_path(path.relative_to(project.root_path)),
        root_relative_path=make_generic_path(path.relative_to(group_root)),
        role=role,
        original_project=project.merged_name,
    )


def scan_content(
    project: ProjectInfo,
    group_root: Path,
    lister: Optional[DirectoryLister] = None,
) -> int:
    """Populate ``project.files`` from its directory layout.

    Args:
        project: Project with ``root_path`` set.
        group_root: Root of the group the project was found in.
        lister: Directory lister override.

    Returns:
        Number of files added.
    """
    lister = lister or _DEFAULT_LISTER
    root = project.root_path
    if root is None:
        return 0

    files: List[FileInfo] = []

    script = root / BUILD_SCRIPT_NAME
    if lister.is_file(script):
        files.append(_make_file(project, group_root, script, FileRole.BUILD_SCRIPT))

    if lister.is_dir(root / "src"):
        for directory, headers_only in _SOURCE_DIRECTORIES:
            if not lister.is_dir(root / directory):
                continue
            for path in enumerate_files(root / directory, lister):
                role = classify_file(path)
                if role == FileRole.UNKNOWN:
                    continue
                if headers_only and role != FileRole.CPP_HEADER:
                    continue
                files.append(_make_file(project, group_root, path, role))

    media = root / "media"
    if lister.is_dir(media):
        for path in enumerate_files(media, lister):
            role = classify_media_file(path)
            if role == FileRole.MEDIA_SCRIPT:
                project.has_media = True
            files.append(_make_file(project, group_root, path, role))

    files.sort(key=lambda f: (f.name, f.project_relative_path))
    project.files.extend(files)
    return len(files)
