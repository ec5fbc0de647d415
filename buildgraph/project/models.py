"""Project and file data model.

Projects live in an arena owned by ``ProjectStructure`` and are addressed by
their merged name. Every field that refers to another project
(``resolved_dependencies``, ``module_project``, ``module_source_projects``,
``FileInfo.original_project``) stores merged names, never object references.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from buildgraph.config.schema import PlatformType

BUILD_SCRIPT_NAME = "build.lua"
METADATA_FILE_NAME = "BUILD"

RESERVED_LIBRARY_PREFIX = "lib_"
WILDCARD_SUFFIX = "_*"
TEST_FILE_SUFFIXES = ("_test.cpp", "_tests.cpp")


class ProjectKind(str, Enum):
    """Kind of a project, fixed before ordering starts."""

    DISABLED = "disabled"
    LOCAL_LIBRARY = "local_library"
    LOCAL_APPLICATION = "local_application"
    EXTERNAL_LIBRARY = "external_library"
    SCRIPT_PROJECT = "script_project"
    RTTI_GENERATOR = "rtti_generator"
    EMBEDDED_MEDIA = "embedded_media"


class ProjectGroupKind(str, Enum):
    """Source roots scanned together."""

    ENGINE = "engine"
    USER = "user"
    SCRIPTS = "scripts"


class FileRole(str, Enum):
    """Role of a file inside its project."""

    UNKNOWN = "unknown"
    CPP_HEADER = "cpp_header"
    CPP_SOURCE = "cpp_source"
    BISON = "bison"
    NATVIS = "natvis"
    BUILD_SCRIPT = "build_script"
    WINDOWS_RESOURCES = "windows_resources"
    MEDIA_SCRIPT = "media_script"
    MEDIA_FILE = "media_file"
    RTTI_LIST = "rtti_list"
    MEDIA_FILE_LIST = "media_file_list"


class PlatformFilter(str, Enum):
    """Platform filter attached to projects and files."""

    ANY = "any"
    POSIX = "posix"
    CONSOLE = "console"
    DIRECTX = "directx"
    OPENGL = "opengl"
    WINDOWS = "windows"
    UWP = "uwp"
    LINUX = "linux"
    SCARLETT = "scarlett"
    PROSPERO = "prospero"

    @classmethod
    def by_name(cls, name: str) -> Optional["PlatformFilter"]:
        """Look up a filter tag usable from scripts (``any`` is not one)."""
        if name == "any":
            return None
        try:
            return cls(name)
        except ValueError:
            return None


_GENERIC_FILTERS: Dict[PlatformFilter, Tuple[PlatformType, ...]] = {
    PlatformFilter.POSIX: (PlatformType.LINUX, PlatformType.PROSPERO),
    PlatformFilter.CONSOLE: (PlatformType.SCARLETT, PlatformType.PROSPERO),
    PlatformFilter.DIRECTX: (
        PlatformType.WINDOWS,
        PlatformType.UWP,
        PlatformType.SCARLETT,
    ),
    PlatformFilter.OPENGL: (PlatformType.WINDOWS, PlatformType.LINUX),
}


def check_platform_filter(filter_: PlatformFilter, platform: PlatformType) -> bool:
    """Return True if something tagged with ``filter_`` builds on ``platform``."""
    if filter_ == PlatformFilter.ANY:
        return True
    generic = _GENERIC_FILTERS.get(filter_)
    if generic is not None:
        return platform in generic
    return filter_.value == platform.value


def is_test_file(name: str) -> bool:
    return name.endswith(TEST_FILE_SUFFIXES)


@dataclass
class FileInfo:
    """One source or resource file owned by a project."""

    name: str
    absolute_path: Path
    project_relative_path: str
    root_relative_path: str
    role: FileRole
    original_project: str

    excluded: bool = False
    use_pch: bool = True
    warn3: bool = False
    filter: PlatformFilter = PlatformFilter.ANY

    def toggle_flag(self, name: str, value: bool) -> bool:
        """Set a per-file flag, returning False for unknown flag names."""
        if name == "exclude":
            self.excluded = value
        elif name == "pch":
            self.use_pch = value
        elif name == "nopch":
            self.use_pch = not value
        elif name == "warn3":
            self.warn3 = value
        else:
            return False
        return True

    def check_filter(self, platform: PlatformType) -> bool:
        if self.excluded:
            return False
        return check_platform_filter(self.filter, platform)


@dataclass
class ProjectFlags:
    """Boolean capability flags a script can toggle."""

    console: bool = False
    use_pch: bool = True
    warn3: bool = False
    no_warnings: bool = False
    no_init: bool = False
    global_include: bool = False
    dev_only: bool = False
    no_symbols: bool = False
    force_shared: bool = False
    force_static: bool = False
    allow_exceptions: bool = False
    pure_dynamic: bool = False
    generate_main: bool = False
    module_root: bool = False

    def toggle(self, name: str, value: bool) -> bool:
        """Set a flag by its script name, returning False if unknown."""
        if name == "warn3":
            self.warn3 = value
        elif name == "nowarn":
            self.no_warnings = value
        elif name == "noinit":
            self.no_init = value
        elif name == "pch":
            self.use_pch = value
        elif name == "global":
            self.global_include = value
        elif name == "console":
            self.console = value
        elif name == "devonly":
            self.dev_only = value
        elif name == "nosymbols":
            self.no_symbols = value
        elif name == "symbols":
            self.no_symbols = not value
        elif name in ("forceShared", "shared_lib"):
            self.force_shared = value
        elif name in ("forceStatic", "static_lib"):
            self.force_static = value
        elif name == "exceptions":
            self.allow_exceptions = value
        else:
            return False
        return True


@dataclass
class DeployInfo:
    """Single file copied to a deploy directory."""

    source_path: Path
    deploy_target: str


@dataclass
class ToolInfo:
    """Named external executable declared by a project."""

    name: str
    executable_path: Path


@dataclass
class ProjectInfo:
    """One buildable or synthetic unit."""

    name: str
    merged_name: str
    root_path: Optional[Path] = None
    group: Optional[ProjectGroupKind] = None
    kind: ProjectKind = ProjectKind.DISABLED

    flags: ProjectFlags = field(default_factory=ProjectFlags)
    filter: PlatformFilter = PlatformFilter.ANY
    has_tests: bool = False
    has_media: bool = False
    has_script_errors: bool = False
    has_missing_dependencies: bool = False

    module_name: str = ""
    module_project: Optional[str] = None
    module_source_projects: List[str] = field(default_factory=list)

    dependencies: List[str] = field(default_factory=list)
    optional_dependencies: List[str] = field(default_factory=list)
    resolved_dependencies: List[str] = field(default_factory=list)

    files: List[FileInfo] = field(default_factory=list)

    local_include_directories: List[str] = field(default_factory=list)
    local_defines: Dict[str, str] = field(default_factory=dict)
    global_defines: Dict[str, str] = field(default_factory=dict)
    external_include_paths: List[str] = field(default_factory=list)
    library_include_paths: List[Path] = field(default_factory=list)
    library_link_files: List[Path] = field(default_factory=list)

    deploy_list: List[DeployInfo] = field(default_factory=list)
    shared_deploy_list: List[DeployInfo] = field(default_factory=list)
    tools: List[ToolInfo] = field(default_factory=list)

    assigned_guid: str = ""
    assigned_project_file: str = ""
    app_class_name: str = ""
    app_header_name: str = ""

    @property
    def is_source_project(self) -> bool:
        """Projects whose dependencies are resolved into real edges."""
        return self.kind in (
            ProjectKind.LOCAL_APPLICATION,
            ProjectKind.LOCAL_LIBRARY,
            ProjectKind.EMBEDDED_MEDIA,
        )

    def find_file(self, relative_path: str) -> Optional[FileInfo]:
        """Find an owned file by its project-relative (posix) path."""
        wanted = relative_path.replace("\\", "/")
        for file in self.files:
            if file.project_relative_path == wanted:
                return file
        return None

    def add_dependency(self, name: str, optional: bool = False) -> bool:
        target = self.optional_dependencies if optional else self.dependencies
        if name in target:
            return False
        target.append(name)
        return True


@dataclass
class ProjectGroup:
    """A source root scanned together; lists member project names."""

    kind: ProjectGroupKind
    root_path: Path
    projects: List[str] = field(default_factory=list)
