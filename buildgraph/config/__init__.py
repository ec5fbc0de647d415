"""Build configuration: axes, validation and option loading."""

from .schema import (
    CONFIG_FILE_NAME,
    BuildOptions,
    BuildType,
    Configuration,
    ConfigurationType,
    GeneratorType,
    LibraryType,
    PlatformType,
    host_name,
    parse_axis,
)
from .loader import load_build_options

__all__ = [
    "CONFIG_FILE_NAME",
    "BuildOptions",
    "BuildType",
    "Configuration",
    "ConfigurationType",
    "GeneratorType",
    "LibraryType",
    "PlatformType",
    "host_name",
    "parse_axis",
    "load_build_options",
]
