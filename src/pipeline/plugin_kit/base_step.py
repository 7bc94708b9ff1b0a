# src/pipeline/plugin_kit/base_step.py — v1
"""Standard step interface for pipeline plugins.

A step declares the artifact types it consumes and produces; the
orchestrator wires steps together by those types, never by step name.
ContainerStep is the built-in variant backed by the container executor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from adacta.core.models import RetryPolicy, StepDefinition
from adacta.executor.models import ExecutionRequest
from adacta.pipeline.plugin_kit.models import StepContext, StepOutput

if TYPE_CHECKING:
    from adacta.executor.executor import ContainerExecutor


class BaseStep(ABC):
    """Standard interface for all pipeline steps."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique step identifier (e.g., 'extract_text')."""

    @property
    @abstractmethod
    def inputs(self) -> list[str]:
        """Artifact types that must be available before the step runs."""

    @property
    @abstractmethod
    def outputs(self) -> list[str]:
        """Artifact types the step produces on success."""

    @property
    def version(self) -> str:
        return "1"

    @property
    def retry(self) -> RetryPolicy:
        """Retry policy applied to TransientError failures."""
        return RetryPolicy()

    @abstractmethod
    async def execute(self, context: StepContext) -> StepOutput:
        """Run the step once.

        Raises:
            TransientError: Worth retrying.
            PermanentError: Retrying would not help.
            ExecutionCancelled: context.token fired.
            ResourceExhaustion: No capacity right now; retry later.
        """


class ContainerStep(BaseStep):
    """Step running a container image declared by a StepDefinition."""

    def __init__(self, definition: StepDefinition, executor: ContainerExecutor) -> None:
        self._definition = definition
        self._executor = executor

    @property
    def definition(self) -> StepDefinition:
        return self._definition

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def inputs(self) -> list[str]:
        return list(self._definition.inputs)

    @property
    def outputs(self) -> list[str]:
        return list(self._definition.outputs)

    @property
    def version(self) -> str:
        return self._definition.version

    @property
    def retry(self) -> RetryPolicy:
        return self._definition.retry

    async def execute(self, context: StepContext) -> StepOutput:
        d = self._definition
        request = ExecutionRequest(
            label=f"{d.name}-{context.document_id[:8]}-{context.attempt}",
            image=d.image,
            command=d.command,
            env=d.env,
            inputs={a: context.inputs[a] for a in d.inputs},
            outputs=d.outputs,
            timeout_s=d.timeout_s,
            limits=d.limits,
            transient_exit_codes=d.transient_exit_codes,
        )
        result = await self._executor.execute(request, context.token)
        return StepOutput(
            files=result.files, logs=result.logs, duration_ms=result.duration_ms
        )
