"""Copies deploy files into the deploy directories."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from buildgraph.config.schema import Configuration
from buildgraph.diagnostics import Stage, StageResult
from buildgraph.project.structure import ProjectStructure
from buildgraph.utils.paths import is_file_newer

logger = logging.getLogger("buildgraph.project.deploy")


@dataclass
class DeployResult(StageResult):
    """Deploy outcome plus the number of files actually written."""

    copied: int = 0


def copy_newer_file(source: Path, target: Path) -> bool:
    """Copy ``source`` over ``target`` unless the target is up to date.

    Returns:
        True if the file was copied, False if it was already current.

    Raises:
        OSError: If the source is unreadable or the copy fails.
    """
    if not is_file_newer(source, target):
        return False
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, target)
    logger.info("Deployed %s -> %s", source, target)
    return True


def deploy_files(structure: ProjectStructure, config: Configuration) -> DeployResult:
    """Process the project and shared deploy lists of every active project.

    Copy failures become WARNING diagnostics; the remaining files are still
    processed.
    """
    result = DeployResult(Stage.DEPLOY)
    for project in structure.active_projects():
        batches = (
            (config.deploy_path, project.deploy_list),
            (config.shared_deploy_path, project.shared_deploy_list),
        )
        for root, entries in batches:
            if not entries:
                continue
            if root is None:
                result.diagnostics.warning(
                    Stage.DEPLOY, "No deploy directory configured", project.merged_name
                )
                continue
            for entry in entries:
                try:
                    if copy_newer_file(entry.source_path, root / entry.deploy_target):
                        result.copied += 1
                except OSError as exc:
                    result.diagnostics.warning(
                        Stage.DEPLOY,
                        f"Failed to deploy '{entry.source_path}': {exc}",
                        project.merged_name,
                    )
    logger.info("Deployed %d file(s)", result.copied)
    return result
