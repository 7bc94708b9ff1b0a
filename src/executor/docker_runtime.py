# src/executor/docker_runtime.py — v1
"""Docker container runtime adapter.

Uses the docker SDK (blocking) through asyncio.to_thread so waits and
daemon round-trips never block the event loop.
Requires: pip install docker.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from adacta.core.errors import PermanentError, TransientError
from adacta.executor.base_runtime import BaseContainerRuntime
from adacta.executor.models import ContainerExit, ContainerSpec

logger = logging.getLogger(__name__)

RUNTIME_LABEL = "io.adacta.runtime"


class DockerRuntime(BaseContainerRuntime):
    """Container runtime backed by a Docker daemon."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: int = 60,
        client: Any = None,
    ) -> None:
        try:
            import docker
        except ImportError as e:
            raise ImportError("docker package required: pip install docker") from e

        self._errors = docker.errors
        if client is not None:
            self._client = client
        elif base_url:
            self._client = docker.DockerClient(base_url=base_url, timeout=timeout_s)
        else:
            self._client = docker.from_env(timeout=timeout_s)

    async def create(self, spec: ContainerSpec) -> str:
        volumes = {
            str(m.source): {"bind": m.target, "mode": "ro" if m.read_only else "rw"}
            for m in spec.mounts
        }
        labels = {RUNTIME_LABEL: "adacta", **spec.labels}
        container = await self._call(
            self._client.containers.create,
            spec.image,
            command=spec.command or None,
            name=spec.name,
            environment=spec.env,
            volumes=volumes,
            labels=labels,
            mem_limit=spec.limits.memory,
            nano_cpus=int(spec.limits.cpus * 1_000_000_000),
            pids_limit=spec.limits.pids,
            network_disabled=spec.limits.network_disabled,
            detach=True,
        )
        logger.debug("Created container %s (%s)", container.id[:12], spec.image)
        return container.id

    async def start(self, container_id: str) -> None:
        container = await self._get(container_id)
        await self._call(container.start)

    async def wait(self, container_id: str) -> ContainerExit:
        container = await self._get(container_id)
        result = await self._call(container.wait)
        error = result.get("Error") or None
        if isinstance(error, dict):
            error = error.get("Message") or None
        return ContainerExit(status_code=int(result.get("StatusCode", -1)), error=error)

    async def logs(self, container_id: str) -> str:
        container = await self._get(container_id)
        raw = await self._call(container.logs, stdout=True, stderr=True)
        return raw.decode("utf-8", errors="replace")

    async def kill(self, container_id: str) -> None:
        try:
            container = await self._get(container_id)
            await self._call(container.kill)
        except PermanentError as exc:
            # Not found or already stopped (409).
            logger.debug("Kill of %s ignored: %s", container_id[:12], exc)

    async def remove(self, container_id: str) -> None:
        try:
            container = await self._get(container_id)
        except PermanentError:
            return
        await self._call(container.remove, force=True, v=True)

    async def ping(self) -> bool:
        try:
            return bool(await self._call(self._client.ping))
        except TransientError:
            return False

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)

    @property
    def provider_name(self) -> str:
        return "docker"

    # ------------------------------------------------------------------

    async def _get(self, container_id: str) -> Any:
        return await self._call(self._client.containers.get, container_id)

    async def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call and translate its errors."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except self._errors.ImageNotFound as exc:
            raise PermanentError(f"Image not found: {exc}") from exc
        except self._errors.NotFound as exc:
            raise PermanentError(f"Container not found: {exc}") from exc
        except self._errors.APIError as exc:
            if exc.is_server_error():
                raise TransientError(f"Docker daemon error: {exc}") from exc
            raise PermanentError(f"Docker rejected request: {exc}") from exc
        except (self._errors.DockerException, OSError) as exc:
            raise TransientError(f"Docker unavailable: {exc}") from exc
