# src/pipeline/dag_builder.py — v1
"""DAG builder — artifact graph from step input/output declarations.

Nodes are steps and artifact types; edges run artifact -> consuming step
and step -> produced artifact. The builder rejects graphs where an
artifact has two producers, an input can never become available, or
the steps form a cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import networkx as nx

from adacta.core.errors import AdactaError
from adacta.core.models import SPECIMEN
from adacta.pipeline.plugin_kit.base_step import BaseStep

logger = logging.getLogger(__name__)

_STEP = "step"
_ARTIFACT = "artifact"


class DAGError(AdactaError):
    """Raised when DAG construction fails (cycle, missing producer)."""


def _step_node(name: str) -> tuple[str, str]:
    return (_STEP, name)


def _artifact_node(name: str) -> tuple[str, str]:
    return (_ARTIFACT, name)


@dataclass
class ArtifactGraph:
    """Validated step graph keyed by artifact type.

    stages groups steps into levels: steps of one level have no mutual
    dependencies. The orchestrator does not run level by level; it
    starts every step as soon as its inputs exist.
    """

    graph: nx.DiGraph = field(default_factory=nx.DiGraph)
    inputs: dict[str, list[str]] = field(default_factory=dict)
    producers: dict[str, str] = field(default_factory=dict)
    stages: list[list[str]] = field(default_factory=list)

    @property
    def step_names(self) -> list[str]:
        return [name for stage in self.stages for name in stage]

    @property
    def flat_order(self) -> list[str]:
        """Return a flat topological ordering (no concurrency info)."""
        return self.step_names

    def ready_steps(self, available: Iterable[str], exclude: Iterable[str] = ()) -> list[str]:
        """Steps not in exclude whose every input is available."""
        have = set(available)
        skip = set(exclude)
        return [
            name
            for name in self.step_names
            if name not in skip and all(a in have for a in self.inputs[name])
        ]

    def dependents(self, step: str) -> set[str]:
        """Every step transitively consuming an output of step."""
        return {
            name
            for kind, name in nx.descendants(self.graph, _step_node(step))
            if kind == _STEP
        }

    def consumers(self, artifact: str) -> set[str]:
        """Steps that read the given artifact type directly."""
        node = _artifact_node(artifact)
        if node not in self.graph:
            return set()
        return {name for _, name in self.graph.successors(node)}


def build_artifact_graph(steps: Iterable[BaseStep]) -> ArtifactGraph:
    """Build and validate the artifact graph.

    Raises:
        DAGError: On a duplicate producer, an unresolvable input or a cycle.
    """
    graph = nx.DiGraph()
    inputs: dict[str, list[str]] = {}
    producers: dict[str, str] = {}

    step_list = list(steps)
    for step in step_list:
        if step.name in inputs:
            raise DAGError(f"Step '{step.name}' is registered twice")
        inputs[step.name] = list(step.inputs)
        graph.add_node(_step_node(step.name))
        for artifact in step.outputs:
            if artifact in producers:
                raise DAGError(
                    f"Artifact '{artifact}' is produced by both "
                    f"'{producers[artifact]}' and '{step.name}'"
                )
            producers[artifact] = step.name
            graph.add_edge(_step_node(step.name), _artifact_node(artifact))

    for step in step_list:
        for artifact in step.inputs:
            if artifact != SPECIMEN and artifact not in producers:
                raise DAGError(
                    f"Step '{step.name}' needs '{artifact}' which no step produces"
                )
            graph.add_edge(_artifact_node(artifact), _step_node(step.name))

    if not nx.is_directed_acyclic_graph(graph):
        cycle = nx.find_cycle(graph)
        involved = sorted({name for (kind, name), _ in cycle if kind == _STEP})
        raise DAGError(f"Cycle detected involving steps: {involved}")

    step_graph = nx.DiGraph()
    step_graph.add_nodes_from(inputs)
    for name, needs in inputs.items():
        for artifact in needs:
            if artifact in producers:
                step_graph.add_edge(producers[artifact], name)
    stages = [sorted(level) for level in nx.topological_generations(step_graph)]

    plan = ArtifactGraph(graph=graph, inputs=inputs, producers=producers, stages=stages)
    logger.info(
        "DAG built: %d steps in %d stages → %s",
        len(inputs),
        len(stages),
        plan.flat_order,
    )
    return plan
