"""Configuration script language and the project script host."""

from .grammar import parse_script
from .host import ScriptContext, ProjectDraft, run_project_script, setup_project
from .interpreter import Interpreter
from .values import LuaTable
from .metadata import render_metadata, write_metadata

__all__ = [
    "parse_script",
    "ScriptContext",
    "ProjectDraft",
    "run_project_script",
    "setup_project",
    "Interpreter",
    "LuaTable",
    "render_metadata",
    "write_metadata",
]
