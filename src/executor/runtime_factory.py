# src/executor/runtime_factory.py — v1
"""Factory: instantiate the container runtime from configuration."""

from __future__ import annotations

import logging

from adacta.config.settings import Settings
from adacta.executor.base_runtime import BaseContainerRuntime

logger = logging.getLogger(__name__)


class UnsupportedRuntimeError(ValueError):
    """Raised when a container runtime is not supported."""


def create_runtime(settings: Settings) -> BaseContainerRuntime:
    """Instantiate the configured container runtime.

    Raises:
        UnsupportedRuntimeError: If CONTAINER_RUNTIME is not supported.
    """
    runtime = settings.container_runtime

    if runtime == "docker":
        from adacta.executor.docker_runtime import DockerRuntime

        logger.info(
            "Using docker runtime at %s", settings.docker_base_url or "environment default"
        )
        return DockerRuntime(
            base_url=settings.docker_base_url or None,
            timeout_s=settings.docker_api_timeout_s,
        )

    raise UnsupportedRuntimeError(
        f"Unsupported container runtime: {runtime!r}. Available: docker"
    )
