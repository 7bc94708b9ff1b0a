# tests/unit/pipeline/test_unit_dag_builder.py — v1
"""Tests for pipeline/dag_builder.py — artifact graph construction."""

from __future__ import annotations

import pytest

from adacta.pipeline.dag_builder import DAGError, build_artifact_graph
from adacta.pipeline.plugin_kit.base_step import BaseStep


class _Step(BaseStep):
    def __init__(self, name: str, inputs: list[str], outputs: list[str]) -> None:
        self._name, self._inputs, self._outputs = name, inputs, outputs

    @property
    def name(self) -> str:
        return self._name

    @property
    def inputs(self) -> list[str]:
        return self._inputs

    @property
    def outputs(self) -> list[str]:
        return self._outputs

    async def execute(self, context):
        raise NotImplementedError


def _pipeline() -> list[BaseStep]:
    return [
        _Step("summarize", ["text"], ["summary"]),
        _Step("ocr", ["specimen"], ["text"]),
        _Step("thumbnail", ["specimen"], ["thumbnail"]),
        _Step("classify", ["text", "thumbnail"], ["category"]),
    ]


class TestBuild:
    def test_stages(self):
        graph = build_artifact_graph(_pipeline())
        assert graph.stages == [["ocr", "thumbnail"], ["classify", "summarize"]]
        assert graph.flat_order == ["ocr", "thumbnail", "classify", "summarize"]
        assert graph.producers == {
            "summary": "summarize", "text": "ocr",
            "thumbnail": "thumbnail", "category": "classify",
        }

    def test_ready_steps(self):
        graph = build_artifact_graph(_pipeline())
        assert graph.ready_steps({"specimen"}) == ["ocr", "thumbnail"]
        assert graph.ready_steps({"specimen", "text"}, exclude={"ocr", "thumbnail"}) == [
            "summarize"
        ]
        assert graph.ready_steps({"specimen", "text", "thumbnail"}, exclude={"ocr"}) == [
            "thumbnail", "classify", "summarize"
        ]

    def test_dependents_are_transitive(self):
        steps = _pipeline() + [_Step("archive_label", ["category"], ["label"])]
        graph = build_artifact_graph(steps)
        assert graph.dependents("ocr") == {"summarize", "classify", "archive_label"}
        assert graph.dependents("thumbnail") == {"classify", "archive_label"}
        assert graph.dependents("summarize") == set()

    def test_consumers(self):
        graph = build_artifact_graph(_pipeline())
        assert graph.consumers("specimen") == {"ocr", "thumbnail"}
        assert graph.consumers("category") == set()
        assert graph.consumers("unknown") == set()

    def test_empty_pipeline(self):
        graph = build_artifact_graph([])
        assert graph.step_names == []
        assert graph.ready_steps({"specimen"}) == []


class TestValidation:
    def test_duplicate_step(self):
        with pytest.raises(DAGError, match="registered twice"):
            build_artifact_graph([_Step("ocr", ["specimen"], ["text"])] * 2)

    def test_duplicate_producer(self):
        with pytest.raises(DAGError, match="produced by both"):
            build_artifact_graph([
                _Step("ocr", ["specimen"], ["text"]),
                _Step("pdftotext", ["specimen"], ["text"]),
            ])

    def test_unresolvable_input(self):
        with pytest.raises(DAGError, match="needs 'text' which no step produces"):
            build_artifact_graph([_Step("summarize", ["text"], ["summary"])])

    def test_cycle(self):
        with pytest.raises(DAGError, match="Cycle detected") as excinfo:
            build_artifact_graph([
                _Step("a", ["specimen", "y"], ["x"]),
                _Step("b", ["x"], ["y"]),
            ])
        assert "'a'" in str(excinfo.value) and "'b'" in str(excinfo.value)
