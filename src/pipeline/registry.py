# src/pipeline/registry.py — v1
"""Step registry — build and manage the set of pipeline steps.

Container steps come from StepDefinitions; custom BaseStep classes are
imported from the STEP_PLUGINS dotted paths. Disabled steps are left out.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from adacta.core.errors import AdactaError
from adacta.core.models import StepDefinition
from adacta.pipeline.plugin_kit.base_step import BaseStep, ContainerStep

if TYPE_CHECKING:
    from adacta.executor.executor import ContainerExecutor

logger = logging.getLogger(__name__)


class RegistryError(AdactaError):
    """Raised when step loading or lookup fails."""


class StepRegistry:
    """Registry of all available pipeline steps."""

    def __init__(self) -> None:
        self._steps: dict[str, BaseStep] = {}
        self._disabled: set[str] = set()

    @property
    def steps(self) -> dict[str, BaseStep]:
        """Return mapping of step_name -> step instance."""
        return dict(self._steps)

    @property
    def step_names(self) -> list[str]:
        return sorted(self._steps)

    def load_all(
        self,
        definitions: Iterable[StepDefinition],
        executor: ContainerExecutor,
        plugins: Iterable[str] = (),
        disabled: set[str] | None = None,
    ) -> None:
        """Register container steps and plugin steps.

        Raises:
            RegistryError: If a plugin class cannot be imported.
        """
        self._disabled = disabled or set()

        for definition in definitions:
            if definition.name in self._disabled:
                logger.info("Skipping disabled step: %s", definition.name)
                continue
            self.register(ContainerStep(definition, executor))

        for class_path in plugins:
            step = _import_step(class_path)
            if step.name in self._disabled:
                logger.info("Skipping disabled step: %s", step.name)
                continue
            self.register(step)

        logger.info(
            "Registry loaded %d steps (%d disabled)",
            len(self._steps),
            len(self._disabled),
        )

    def register(self, step: BaseStep) -> None:
        """Manually register a step instance."""
        if step.name in self._steps:
            logger.warning("Overwriting existing step: %s", step.name)
        self._steps[step.name] = step
        logger.debug("Registered step %s v%s", step.name, step.version)

    def get(self, name: str) -> BaseStep | None:
        return self._steps.get(name)

    def get_or_raise(self, name: str) -> BaseStep:
        step = self._steps.get(name)
        if step is None:
            raise RegistryError(f"Step '{name}' not found in registry")
        return step


def _import_step(class_path: str) -> BaseStep:
    """Import and instantiate a step from a dotted class path."""
    parts = class_path.rsplit(".", 1)
    if len(parts) != 2:
        raise RegistryError(f"Invalid class path: {class_path}")
    module_path, class_name = parts

    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise RegistryError(f"Cannot import module {module_path}: {exc}") from exc

    cls = getattr(module, class_name, None)
    if cls is None:
        raise RegistryError(f"Class {class_name} not found in {module_path}")

    if not isinstance(cls, type) or not issubclass(cls, BaseStep):
        raise RegistryError(f"{class_path} is not a BaseStep subclass")

    return cls()
