"""Generated glue sources, reflection lists and change-aware file saving."""

from .files import FileGenerator, GeneratedFile, SaveResult, save_file_if_changed
from .glue import CodeGenerator, generate_code
from .reflection import ReflectionList, ReflectionProject, needs_reflection_update

__all__ = [
    "FileGenerator",
    "GeneratedFile",
    "SaveResult",
    "save_file_if_changed",
    "CodeGenerator",
    "generate_code",
    "ReflectionList",
    "ReflectionProject",
    "needs_reflection_update",
]
