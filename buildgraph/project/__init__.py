"""Project data model, filesystem scanner and project arena."""

from .models import (
    FileInfo,
    FileRole,
    PlatformFilter,
    ProjectFlags,
    ProjectGroup,
    ProjectGroupKind,
    ProjectInfo,
    ProjectKind,
)
from .scanner import DirectoryLister, classify_file, scan_content, scan_projects
from .structure import ProjectStructure

__all__ = [
    "FileInfo",
    "FileRole",
    "PlatformFilter",
    "ProjectFlags",
    "ProjectGroup",
    "ProjectGroupKind",
    "ProjectInfo",
    "ProjectKind",
    "DirectoryLister",
    "classify_file",
    "scan_content",
    "scan_projects",
    "ProjectStructure",
]
