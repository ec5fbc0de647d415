"""Generated file collection that only touches files whose content changed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from buildgraph.diagnostics import Stage, StageResult

logger = logging.getLogger("buildgraph.codegen.files")


@dataclass
class GeneratedFile:
    """Text file assembled line by line."""

    absolute_path: Path
    lines: List[str] = field(default_factory=list)

    def writeln(self, text: str = "") -> None:
        self.lines.append(text)

    @property
    def content(self) -> str:
        return "".join(line + "\n" for line in self.lines)


@dataclass
class SaveResult(StageResult):
    saved: int = 0


def save_file_if_changed(path: Path, content: str, force: bool = False) -> bool:
    """Write ``content`` to ``path`` unless it already holds exactly that.

    With ``force`` the file is written even when unchanged.

    Returns:
        True if the file was written.

    Raises:
        OSError: If the file cannot be written.
    """
    if not force:
        try:
            if path.read_text(encoding="utf-8") == content:
                return False
        except (OSError, UnicodeDecodeError):
            pass
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.debug("Saved %s", path)
    return True


class FileGenerator:
    """Collects generated files and saves the changed ones.

    Args:
        force: Write every file, changed or not.
    """

    def __init__(self, force: bool = False) -> None:
        self.files: List[GeneratedFile] = []
        self.force = force

    def create_file(self, path: Path) -> GeneratedFile:
        generated = GeneratedFile(path)
        self.files.append(generated)
        return generated

    def save_files(self) -> SaveResult:
        """Write every changed file; failures become ERROR diagnostics."""
        result = SaveResult(Stage.GENERATE)
        for generated in self.files:
            try:
                if save_file_if_changed(
                    generated.absolute_path, generated.content, force=self.force
                ):
                    result.saved += 1
            except OSError as exc:
                result.diagnostics.error(
                    Stage.GENERATE, f"Failed to save {generated.absolute_path}: {exc}"
                )
        logger.info("Saved %d file(s)", result.saved)
        if not result.ok:
            logger.error("Failed to save some output files, generated solution may not be valid")
        return result
