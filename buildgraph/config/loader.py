"""Helpers for loading build options from TOML/JSON sources.

This module provides a single entry point `load_build_options`
that accepts various configuration sources:

* None -> default BuildOptions
* dict -> BuildOptions.model_validate
* Path / path-like string -> load .toml/.json from filesystem
* Inline JSON/TOML strings
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from buildgraph.config.schema import BuildOptions
from buildgraph.errors import ConfigurationError

logger = logging.getLogger("buildgraph.config.loader")

ConfigSource = Union[str, Path, Dict[str, Any], None]


def _validate(data: Dict[str, Any]) -> BuildOptions:
    # A [build] table is accepted so options can live in a shared file.
    if "build" in data and isinstance(data["build"], dict):
        data = data["build"]
    try:
        return BuildOptions.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid build options: {exc}") from exc


def load_build_options(source: ConfigSource) -> BuildOptions:
    """Load BuildOptions from various configuration sources.

    Args:
        source: One of:
            * None: returns default BuildOptions
            * dict: treated as already-parsed configuration mapping
            * str/Path: either a filesystem path to a .toml/.json file,
              or an inline TOML/JSON string (auto-detected)

    Returns:
        BuildOptions instance.

    Raises:
        ConfigurationError: If the source cannot be parsed or validated.
    """
    if source is None:
        logger.debug("No options source provided; using defaults")
        return BuildOptions()

    if isinstance(source, dict):
        logger.debug("Loading BuildOptions from provided dict")
        return _validate(source)

    if isinstance(source, (str, Path)):
        path = Path(source)
        text: Optional[str] = None
        fmt: Optional[str] = None

        if path.is_file():
            text = path.read_text(encoding="utf-8")
            suffix = path.suffix.lower()
            if suffix in {".toml", ".tml"}:
                fmt = "toml"
            elif suffix == ".json":
                fmt = "json"
            else:
                stripped = text.lstrip()
                fmt = "json" if stripped.startswith(("{", "[")) else "toml"
            logger.info("Loading build options from file: %s (fmt=%s)", path, fmt)
        else:
            text = str(source)
            stripped = text.lstrip()
            fmt = "json" if stripped.startswith(("{", "[")) else "toml"
            logger.info("Loading build options from inline %s string", fmt)

        try:
            data = json.loads(text) if fmt == "json" else tomllib.loads(text)
        except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
            raise ConfigurationError(f"Failed to parse build options: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Top-level build options must be a mapping")

        return _validate(data)

    raise TypeError(f"Unsupported options source type: {type(source)!r}")


__all__ = ["load_build_options"]
