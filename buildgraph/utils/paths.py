"""Path and naming helpers shared by the scanner and the generators."""

import uuid
from pathlib import Path, PurePath
from typing import Union

# Fixed namespace so the same project name always yields the same GUID.
_GUID_NAMESPACE = uuid.UUID("6f1c7e52-3b0d-4c59-9a57-2f1f0c4e8d11")


def make_generic_path(path: Union[PurePath, str]) -> str:
    """Return ``path`` with forward slashes regardless of the host OS.

    Examples:
        >>> make_generic_path(Path("src") / "math" / "vector.cpp")
        'src/math/vector.cpp'
    """
    return str(path).replace("\\", "/")


def guid_from_text(text: str) -> str:
    """Derive a stable, upper-case GUID string from arbitrary text."""
    return str(uuid.uuid5(_GUID_NAMESPACE, text)).upper()


def part_before(text: str, separator: str) -> str:
    """Return the part of ``text`` before the first ``separator``.

    The whole string is returned when the separator does not occur.
    """
    head, _, _ = text.partition(separator)
    return head


def is_file_newer(source: Path, target: Path) -> bool:
    """True if ``target`` is missing or older than ``source``."""
    try:
        target_time = target.stat().st_mtime_ns
    except FileNotFoundError:
        return True
    return source.stat().st_mtime_ns > target_time
