"""Configuration schema definitions using Pydantic for validation.

A ``Configuration`` is one point in the build matrix (platform, generator,
build kind, library kind, configuration level) together with the resolved
filesystem roots every later stage reads. It is created once, validated,
and then treated as immutable.
"""

from __future__ import annotations

import logging
import platform as _host_platform
from enum import Enum
from pathlib import Path
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from buildgraph.errors import ConfigurationError

logger = logging.getLogger("buildgraph.config.schema")

CONFIG_FILE_NAME = ".buildConfig"


class PlatformType(str, Enum):
    """Target platforms."""

    WINDOWS = "windows"
    UWP = "uwp"
    LINUX = "linux"
    SCARLETT = "scarlett"
    PROSPERO = "prospero"


class GeneratorType(str, Enum):
    """Solution generators."""

    VS2019 = "vs2019"
    VS2022 = "vs2022"
    CMAKE = "cmake"

    @property
    def is_visual_studio(self) -> bool:
        return self in (GeneratorType.VS2019, GeneratorType.VS2022)


class BuildType(str, Enum):
    """Build kinds.

    ``dev`` includes development projects (editor, importers), ``standalone``
    glues module projects together and ``shipment`` keeps only the shippable
    executable.
    """

    DEV = "dev"
    STANDALONE = "standalone"
    SHIPMENT = "shipment"


class LibraryType(str, Enum):
    """Library kinds."""

    SHARED = "shared"
    STATIC = "static"


class ConfigurationType(str, Enum):
    """Configuration levels."""

    DEBUG = "debug"
    CHECKED = "checked"
    RELEASE = "release"
    FINAL = "final"


E = TypeVar("E", bound=Enum)


def parse_axis(enum_cls: Type[E], value: str, axis: str) -> E:
    """Parse a build axis name into its enum value.

    Args:
        enum_cls: Axis enum class.
        value: Axis name (case insensitive).
        axis: Axis label used in the error message.

    Returns:
        The matching enum member.

    Raises:
        ConfigurationError: If the name is not a valid option.
    """
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(
            f"Invalid {axis} type '{value}' specified (valid: {valid})"
        ) from None


def host_name() -> str:
    """Return the name of the host operating system as seen by scripts."""
    system = _host_platform.system().lower()
    if system.startswith("win"):
        return "windows"
    if system == "darwin":
        return "darwin"
    return "linux"


class BuildOptions(BaseModel):
    """Raw, unvalidated build options.

    Every field is optional; missing axes are derived from the others when
    the options are turned into a ``Configuration``.

    Attributes:
        platform: Platform name.
        generator: Generator name.
        build: Build kind name.
        libs: Library kind name.
        configuration: Configuration level name.
        engine_dir: Engine root directory (defaults to the current directory).
        project_dir: Optional user project sources directory.
        deploy_dir: Deploy directory override (project and shared deploys).
        out_dir: Solution/output directory override.
        force: Force regeneration of all outputs.
    """

    platform: Optional[str] = None
    generator: Optional[str] = None
    build: Optional[str] = None
    libs: Optional[str] = None
    configuration: Optional[str] = None
    engine_dir: Optional[str] = None
    project_dir: Optional[str] = None
    deploy_dir: Optional[str] = None
    out_dir: Optional[str] = None
    force: bool = False

    model_config = ConfigDict(extra="forbid")


class Configuration(BaseModel):
    """One validated point of the build matrix plus resolved paths.

    Path fields are optional so that graph-only stages can be exercised
    without a source tree; ``from_options`` always fills them.
    """

    platform: PlatformType = PlatformType.WINDOWS
    generator: GeneratorType = GeneratorType.VS2019
    build: BuildType = BuildType.DEV
    libs: LibraryType = LibraryType.SHARED
    configuration: ConfigurationType = ConfigurationType.DEBUG
    force: bool = False

    engine_root_path: Optional[Path] = None
    engine_sources_path: Optional[Path] = None
    project_sources_path: Optional[Path] = None
    deploy_path: Optional[Path] = None
    shared_deploy_path: Optional[Path] = None
    solution_path: Optional[Path] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_axis_combination(self) -> "Configuration":
        if self.platform == PlatformType.UWP:
            if self.libs != LibraryType.STATIC:
                raise ValueError("UWP platform requires 'static' library configuration")
            if self.build != BuildType.SHIPMENT:
                raise ValueError("UWP platform requires 'shipment' build type")
        return self

    @property
    def merged_name(self) -> str:
        """Dotted axis tuple, e.g. ``windows.vs2019.dev.shared.debug``."""
        return ".".join(
            (
                self.platform.value,
                self.generator.value,
                self.build.value,
                self.libs.value,
                self.configuration.value,
            )
        )

    @classmethod
    def from_axes(cls, **axes: object) -> "Configuration":
        """Create a configuration, converting validation failures.

        Raises:
            ConfigurationError: If the axis combination is invalid.
        """
        try:
            return cls(**axes)
        except ValidationError as exc:
            messages = "; ".join(err["msg"] for err in exc.errors())
            raise ConfigurationError(messages) from exc

    @classmethod
    def from_options(
        cls, options: BuildOptions, cwd: Optional[Path] = None
    ) -> "Configuration":
        """Derive defaults, validate and resolve all paths.

        Args:
            options: Raw build options.
            cwd: Directory used when no engine directory is given.

        Returns:
            A fully populated, frozen Configuration.

        Raises:
            ConfigurationError: On invalid axes or missing directories.
        """
        build = (
            parse_axis(BuildType, options.build, "build")
            if options.build
            else BuildType.DEV
        )
        platform = (
            parse_axis(PlatformType, options.platform, "platform")
            if options.platform
            else PlatformType.WINDOWS
        )

        if options.generator:
            generator = parse_axis(GeneratorType, options.generator, "generator")
        elif platform in (
            PlatformType.WINDOWS,
            PlatformType.UWP,
            PlatformType.SCARLETT,
            PlatformType.PROSPERO,
        ):
            generator = GeneratorType.VS2019
        else:
            generator = GeneratorType.CMAKE

        if options.libs:
            libs = parse_axis(LibraryType, options.libs, "library")
        else:
            libs = LibraryType.SHARED if build == BuildType.DEV else LibraryType.STATIC

        if options.configuration:
            configuration = parse_axis(
                ConfigurationType, options.configuration, "configuration"
            )
        else:
            configuration = (
                ConfigurationType.DEBUG
                if build == BuildType.DEV
                else ConfigurationType.FINAL
            )

        axes = cls.from_axes(
            platform=platform,
            generator=generator,
            build=build,
            libs=libs,
            configuration=configuration,
            force=options.force,
        )

        paths = _resolve_paths(options, axes.merged_name, cwd or Path.cwd())
        return axes.model_copy(update=paths)

    def save(self, path: Path) -> None:
        """Persist the axis tuple to ``path``."""
        path.write_text(self.merged_name, encoding="utf-8")

    @staticmethod
    def load_options(path: Path) -> Optional[BuildOptions]:
        """Load an axis tuple previously written by ``save``.

        Returns:
            BuildOptions with the five axes set, or None if the file is
            missing or malformed.
        """
        try:
            text = path.read_text(encoding="utf-8").strip()
        except OSError:
            return None

        parts = text.split(".")
        if len(parts) != 5:
            logger.warning("Malformed configuration file %s: %r", path, text)
            return None

        options = BuildOptions(
            platform=parts[0],
            generator=parts[1],
            build=parts[2],
            libs=parts[3],
            configuration=parts[4],
        )
        try:
            Configuration.from_axes(
                platform=parse_axis(PlatformType, parts[0], "platform"),
                generator=parse_axis(GeneratorType, parts[1], "generator"),
                build=parse_axis(BuildType, parts[2], "build"),
                libs=parse_axis(LibraryType, parts[3], "library"),
                configuration=parse_axis(
                    ConfigurationType, parts[4], "configuration"
                ),
            )
        except ConfigurationError as exc:
            logger.warning("Invalid configuration file %s: %s", path, exc)
            return None
        return options


def _ensure_directory(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Failed to create directory {path}: {exc}") from exc


def _resolve_paths(options: BuildOptions, merged_name: str, cwd: Path) -> dict:
    """Resolve and validate every filesystem root of a configuration."""
    if options.engine_dir:
        engine_root = Path(options.engine_dir).expanduser().resolve()
        if not engine_root.is_dir():
            raise ConfigurationError(
                f"Specified engine directory does not exist: {engine_root}"
            )
    else:
        engine_root = cwd.resolve()

    engine_sources = engine_root / "src"
    if not engine_sources.is_dir():
        raise ConfigurationError(
            f"Specified engine directory has no source directory: {engine_sources}"
        )

    project_sources: Optional[Path] = None
    if options.project_dir:
        project_sources = Path(options.project_dir).expanduser().resolve()
        if not project_sources.is_dir():
            raise ConfigurationError(
                f"Specified project directory does not exist: {project_sources}"
            )

    if options.deploy_dir:
        deploy_path = Path(options.deploy_dir).expanduser().resolve()
        shared_deploy_path = deploy_path
    else:
        deploy_path = engine_root / ".bin" / merged_name
        shared_deploy_path = engine_root / ".bin" / "shared"

    if options.out_dir:
        solution_path = Path(options.out_dir).expanduser().resolve()
    else:
        solution_path = engine_root / ".temp" / merged_name

    for directory in (deploy_path, shared_deploy_path, solution_path):
        _ensure_directory(directory)

    logger.info("Engine root: %s", engine_root)
    logger.info("Solution path: %s", solution_path)

    return {
        "engine_root_path": engine_root,
        "engine_sources_path": engine_sources,
        "project_sources_path": project_sources,
        "deploy_path": deploy_path,
        "shared_deploy_path": shared_deploy_path,
        "solution_path": solution_path,
    }
