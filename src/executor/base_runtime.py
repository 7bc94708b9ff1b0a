# src/executor/base_runtime.py — v1
"""Abstract container runtime interface.

The executor depends only on this narrow contract. Implementations
translate their library's exceptions into TransientError (daemon
unreachable, server-side errors) or PermanentError (unknown image,
rejected configuration).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from adacta.executor.models import ContainerExit, ContainerSpec


class BaseContainerRuntime(ABC):
    """Unified interface for container runtimes."""

    @abstractmethod
    async def create(self, spec: ContainerSpec) -> str:
        """Create (but do not start) a container. Returns its id."""

    @abstractmethod
    async def start(self, container_id: str) -> None:
        """Start a created container."""

    @abstractmethod
    async def wait(self, container_id: str) -> ContainerExit:
        """Block until the container stops and return its exit status."""

    @abstractmethod
    async def logs(self, container_id: str) -> str:
        """Return combined stdout/stderr of the container."""

    @abstractmethod
    async def kill(self, container_id: str) -> None:
        """Stop a running container immediately. No-op if already stopped."""

    @abstractmethod
    async def remove(self, container_id: str) -> None:
        """Remove the container and its writable layer. No-op if gone."""

    async def ping(self) -> bool:
        """Check that the runtime is reachable."""
        return True

    async def close(self) -> None:
        """Release client resources."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Runtime identifier (docker, ...)."""
