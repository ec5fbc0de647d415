"""JSON export of the resolved project graph."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import networkx as nx

from buildgraph.graph.generator import ExtractedSolution

logger = logging.getLogger("buildgraph.graph.export")

GRAPH_FILE_NAME = "graph.json"


def solution_graph_data(solution: ExtractedSolution) -> Dict[str, Any]:
    """Node-link data of the solution graph plus the emission order."""
    data = nx.readwrite.json_graph.node_link_data(solution.graph, edges="edges")
    data["graph"] = {
        "configuration": solution.config.merged_name,
        "order": [project.name for project in solution.projects],
    }
    return data


def export_json(solution: ExtractedSolution, output_path: Path) -> None:
    """Export the solution graph to JSON format.

    Args:
        solution: Extracted solution to export.
        output_path: Output file path.
    """
    logger.info("Exporting graph to JSON: %s", output_path)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = solution_graph_data(solution)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    logger.info(
        "JSON export completed: %d nodes, %d edges",
        solution.graph.number_of_nodes(),
        solution.graph.number_of_edges(),
    )


def load_graph(path: Path) -> nx.DiGraph:
    """Load a graph previously written by ``export_json``."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return nx.readwrite.json_graph.node_link_graph(data, directed=True, edges="edges")
