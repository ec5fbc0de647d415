"""Dependency resolution, module aggregation, ordering and extraction."""

from .export import export_json, load_graph
from .generator import (
    ExtractedSolution,
    GeneratedProject,
    GeneratedProjectFile,
    ScriptProject,
    extract_projects,
)
from .modules import make_modules
from .ordering import OrderedGraphBuilder, build_order, transitive_dependencies
from .resolver import create_synthetic_projects, match_wildcard, resolve_dependencies

__all__ = [
    "export_json",
    "load_graph",
    "ExtractedSolution",
    "GeneratedProject",
    "GeneratedProjectFile",
    "ScriptProject",
    "extract_projects",
    "make_modules",
    "OrderedGraphBuilder",
    "build_order",
    "transitive_dependencies",
    "create_synthetic_projects",
    "match_wildcard",
    "resolve_dependencies",
]
