"""Reflection file list shared with the external declaration tokenizer.

Format, one entry per line::

    <platform>
    <build>
    PROJECT
    <project name>
    <reflection output file>
    <source file>
    ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

logger = logging.getLogger("buildgraph.codegen.reflection")

PROJECT_MARKER = "PROJECT"


@dataclass
class ReflectionProject:
    name: str
    reflection_file: Path
    sources: List[Path] = field(default_factory=list)


@dataclass
class ReflectionList:
    platform: str = ""
    build: str = ""
    projects: List[ReflectionProject] = field(default_factory=list)

    def render(self) -> str:
        lines = [self.platform, self.build]
        for project in self.projects:
            lines.append(PROJECT_MARKER)
            lines.append(project.name)
            lines.append(str(project.reflection_file))
            lines.extend(str(source) for source in project.sources)
        return "".join(line + "\n" for line in lines)

    @classmethod
    def parse_text(cls, text: str) -> "ReflectionList":
        """Parse list text; source lines before the first block are ignored."""
        lines = text.splitlines()
        result = cls(
            platform=lines[0] if lines else "",
            build=lines[1] if len(lines) > 1 else "",
        )
        current = None
        it = iter(lines[2:])
        for line in it:
            if line == PROJECT_MARKER:
                name = next(it, "")
                output = next(it, "")
                current = ReflectionProject(name=name, reflection_file=Path(output))
                result.projects.append(current)
            elif current is not None and line:
                current.sources.append(Path(line))
        logger.info(
            "Loaded %d file(s) from %d project(s) for reflection",
            sum(len(p.sources) for p in result.projects),
            len(result.projects),
        )
        return result

    @classmethod
    def parse(cls, path: Path) -> "ReflectionList":
        """Read and parse a list file.

        Raises:
            OSError: If the file cannot be read.
        """
        return cls.parse_text(path.read_text(encoding="utf-8"))


def needs_reflection_update(output: Path, sources: Sequence[Path]) -> bool:
    """True if ``output`` must be regenerated from ``sources``.

    That is the case when there are no sources, the output is missing, any
    source is newer than the output, or timestamps cannot be read.
    """
    if not sources:
        return True
    try:
        if not output.is_file():
            return True
        output_time = output.stat().st_mtime_ns
        for source in sources:
            if source.stat().st_mtime_ns > output_time:
                logger.info(
                    "Some files used to build %s changed, reflection will have to be refreshed",
                    output,
                )
                return True
    except OSError as exc:
        logger.debug("Timestamp check for %s failed: %s", output, exc)
        return True
    return False
