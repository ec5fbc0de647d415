"""End-to-end run: scan, configure, resolve, aggregate, extract, generate."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from buildgraph.codegen.files import FileGenerator
from buildgraph.codegen.glue import generate_code
from buildgraph.config.schema import BuildType, Configuration
from buildgraph.diagnostics import Diagnostics, Stage, StageResult
from buildgraph.graph.export import GRAPH_FILE_NAME, export_json
from buildgraph.graph.generator import ExtractedSolution, extract_projects
from buildgraph.graph.modules import make_modules
from buildgraph.graph.resolver import resolve_dependencies
from buildgraph.project.deploy import deploy_files
from buildgraph.project.models import ProjectGroupKind
from buildgraph.project.scanner import DirectoryLister
from buildgraph.project.structure import ProjectStructure

logger = logging.getLogger("buildgraph.pipeline")

SCRIPT_PROJECTS_DIRECTORY = Path("scripts") / "src"


@dataclass
class PipelineResult:
    """Everything a run produced, including partial results of a failed run.

    Attributes:
        config: Configuration the run used.
        structure: Project arena.
        stages: Results of the stages that ran, in order.
        solution: Extracted solution, None if the run stopped earlier.
        saved_files: Number of generated files actually written.
        graph_path: Location of the exported graph, if written.
        generate: Whether the run was asked to write outputs. Script errors
            only fail a run that generates.
    """

    config: Configuration
    structure: ProjectStructure
    stages: List[StageResult] = field(default_factory=list)
    solution: Optional[ExtractedSolution] = None
    saved_files: int = 0
    graph_path: Optional[Path] = None
    generate: bool = True

    @property
    def ok(self) -> bool:
        return all(
            stage.ok
            for stage in self.stages
            if self.generate or stage.stage != Stage.SCRIPT
        )

    @property
    def diagnostics(self) -> Diagnostics:
        merged = Diagnostics()
        for stage in self.stages:
            merged.extend(stage.diagnostics)
        return merged


def configure_structure(
    config: Configuration, lister: Optional[DirectoryLister] = None
) -> ProjectStructure:
    """Scan every source root of ``config`` and collect project files."""
    structure = ProjectStructure(lister=lister)

    if config.engine_sources_path is not None:
        structure.scan_projects(ProjectGroupKind.ENGINE, config.engine_sources_path)
    if config.project_sources_path is not None:
        structure.scan_projects(ProjectGroupKind.USER, config.project_sources_path)
    if config.engine_root_path is not None:
        scripts_root = config.engine_root_path / SCRIPT_PROJECTS_DIRECTORY
        if scripts_root.is_dir():
            structure.scan_script_projects(ProjectGroupKind.SCRIPTS, scripts_root)

    structure.scan_content()
    return structure


def run_pipeline(
    config: Configuration,
    generate: bool = True,
    lister: Optional[DirectoryLister] = None,
) -> PipelineResult:
    """Run every stage for one configuration.

    Collect-all stages (scripts, resolution) stop the run when they report
    errors; the partial result is returned with ``ok`` False. Without
    ``generate`` a script error only disables the faulty project and the
    run continues through extraction.

    Args:
        config: Fully resolved configuration.
        generate: When False, stop after extraction (nothing is written).
        lister: Directory lister override for scanning.

    Returns:
        The pipeline result.

    Raises:
        ProjectNameCollisionError: Two projects share a merged name.
        DependencyCycleError: The dependency graph contains cycles.
        AggregationError: Module aggregation failed.
    """
    start_time = time.time()
    structure = configure_structure(config, lister)
    result = PipelineResult(config=config, structure=structure, generate=generate)

    stage = structure.setup_projects(config)
    result.stages.append(stage)
    if not stage.ok:
        if generate:
            logger.error("Failed to configure projects")
            return result
        logger.warning("Continuing without the projects that failed to configure")

    stage = resolve_dependencies(structure, config)
    result.stages.append(stage)
    if not stage.ok:
        return result

    if config.build == BuildType.STANDALONE:
        result.stages.append(make_modules(structure, config))

    if generate:
        deployed = deploy_files(structure, config)
        structure.diagnostics.extend(deployed.diagnostics)
        result.stages.append(deployed)

    solution = extract_projects(structure, config)
    result.solution = solution

    if generate:
        files = FileGenerator(force=config.force)
        result.stages.append(generate_code(solution, structure, files))
        saved = files.save_files()
        structure.diagnostics.extend(saved.diagnostics)
        result.stages.append(saved)
        result.saved_files = saved.saved

        assert config.solution_path is not None
        result.graph_path = config.solution_path / GRAPH_FILE_NAME
        export_json(solution, result.graph_path)

    logger.info("Pipeline completed in %.2fs", time.time() - start_time)
    return result
