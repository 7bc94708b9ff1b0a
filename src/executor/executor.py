# src/executor/executor.py — v1
"""Container executor — run one step in an ephemeral, isolated container.

Every invocation gets a fresh working directory:

    <work_root>/<label>-XXXX/in/<artifact type>    read-only inputs
    <work_root>/<label>-XXXX/out/<artifact type>   outputs written by the step

The container and the working directory are torn down on every exit
path. At most pool_size containers run at once; further submissions
wait on the semaphore, and with a queue_limit set, overflow raises
ResourceExhaustion instead of queueing.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

from adacta.core.errors import (
    AdactaError,
    ExecutionCancelled,
    ExecutionTimeout,
    PermanentError,
    ResourceExhaustion,
    TransientError,
)
from adacta.executor.base_runtime import BaseContainerRuntime
from adacta.executor.cancellation import CancellationToken
from adacta.executor.models import (
    INPUT_MOUNT,
    OUTPUT_MOUNT,
    ContainerExit,
    ContainerSpec,
    ExecutionOutputs,
    ExecutionRequest,
    ExecutorStats,
    Mount,
)

logger = logging.getLogger(__name__)


class ContainerExecutor:
    """Bounded pool running ExecutionRequests through a container runtime.

    Args:
        runtime: Injected container runtime.
        work_root: Parent directory of per-invocation working directories.
        pool_size: Maximum number of concurrently running containers.
        queue_limit: Maximum number of waiting submissions (0 = unbounded).
        keep_failed_workdirs: Leave the working directory of failed runs
            on disk for inspection.
    """

    def __init__(
        self,
        runtime: BaseContainerRuntime,
        work_root: Path | str,
        pool_size: int = 4,
        queue_limit: int = 0,
        keep_failed_workdirs: bool = False,
    ) -> None:
        if pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        self._runtime = runtime
        self._work_root = Path(work_root).expanduser()
        self._work_root.mkdir(parents=True, exist_ok=True)
        self._pool_size = pool_size
        self._queue_limit = queue_limit
        self._keep_failed = keep_failed_workdirs
        self._semaphore = asyncio.Semaphore(pool_size)
        self._stats = ExecutorStats(pool_size=pool_size)

    @property
    def runtime(self) -> BaseContainerRuntime:
        return self._runtime

    @property
    def stats(self) -> ExecutorStats:
        return self._stats.model_copy()

    async def execute(
        self,
        request: ExecutionRequest,
        token: CancellationToken | None = None,
    ) -> ExecutionOutputs:
        """Run a request and return its declared output files.

        Raises:
            ResourceExhaustion: If the wait queue is full.
            ExecutionCancelled: If the token fired while waiting or running.
            ExecutionTimeout: If the container exceeded request.timeout_s.
            TransientError: On runtime hiccups or a transient exit code.
            PermanentError: On any other non-zero exit or a missing output.
        """
        token = token or CancellationToken()
        token.raise_if_cancelled()

        if (
            self._queue_limit
            and self._semaphore.locked()
            and self._stats.waiting >= self._queue_limit
        ):
            raise ResourceExhaustion(
                f"Executor queue full ({self._stats.waiting} waiting, "
                f"{self._stats.running} running)"
            )

        self._stats.waiting += 1
        try:
            await self._acquire(token)
        finally:
            self._stats.waiting -= 1

        self._stats.running += 1
        self._stats.peak_running = max(self._stats.peak_running, self._stats.running)
        try:
            outputs = await self._run(request, token)
        except BaseException:
            self._stats.failed += 1
            raise
        else:
            self._stats.completed += 1
            return outputs
        finally:
            self._stats.running -= 1
            self._semaphore.release()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def _acquire(self, token: CancellationToken) -> None:
        """Take a pool slot, giving up if the token fires first."""
        acquire = asyncio.ensure_future(self._semaphore.acquire())
        cancelled = asyncio.ensure_future(token.wait())
        acquired = False
        try:
            await asyncio.wait({acquire, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            acquired = acquire.done() and not token.cancelled
        finally:
            cancelled.cancel()
            if not acquired:
                if acquire.done() and not acquire.cancelled():
                    self._semaphore.release()
                else:
                    acquire.cancel()
        token.raise_if_cancelled()

    # ------------------------------------------------------------------
    # One invocation
    # ------------------------------------------------------------------

    async def _run(
        self, request: ExecutionRequest, token: CancellationToken
    ) -> ExecutionOutputs:
        start_ns = time.monotonic_ns()
        workdir = Path(tempfile.mkdtemp(prefix=f"{request.label}-", dir=self._work_root))
        in_dir, out_dir = workdir / "in", workdir / "out"
        container_id: str | None = None
        succeeded = False
        try:
            await asyncio.to_thread(_stage_inputs, in_dir, out_dir, request.inputs)
            token.raise_if_cancelled()

            spec = ContainerSpec(
                name=f"adacta-{workdir.name}",
                image=request.image,
                command=request.command,
                env=request.env,
                mounts=[
                    Mount(source=in_dir, target=INPUT_MOUNT, read_only=True),
                    Mount(source=out_dir, target=OUTPUT_MOUNT, read_only=False),
                ],
                limits=request.limits,
                labels={"io.adacta.label": request.label},
            )
            container_id = await self._runtime.create(spec)
            token.raise_if_cancelled()
            await self._runtime.start(container_id)

            exit_status = await self._wait(container_id, request, token)
            logs = await self._collect_logs(container_id)
            self._classify(request, exit_status, logs)

            files = await asyncio.to_thread(_collect_outputs, out_dir, request.outputs)
            succeeded = True
            duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
            logger.info(
                "Container %s finished: outputs=%s, %dms",
                request.label, sorted(files), duration_ms,
            )
            return ExecutionOutputs(
                files=files,
                exit_code=exit_status.status_code,
                logs=logs,
                duration_ms=duration_ms,
            )
        finally:
            if container_id is not None:
                await self._teardown(container_id)
            if succeeded or not self._keep_failed:
                await asyncio.to_thread(shutil.rmtree, workdir, True)
            else:
                logger.info("Keeping failed workdir %s", workdir)

    async def _wait(
        self,
        container_id: str,
        request: ExecutionRequest,
        token: CancellationToken,
    ) -> ContainerExit:
        """Wait for exit, racing the timeout and the cancellation token."""
        waiter = asyncio.ensure_future(self._runtime.wait(container_id))
        cancelled = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait(
                {waiter, cancelled},
                timeout=request.timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()
            if not waiter.done():
                waiter.cancel()

        if waiter in done and not token.cancelled:
            return waiter.result()

        await self._kill(container_id)
        if token.cancelled:
            logger.info("Container %s cancelled: %s", request.label, token.reason)
            raise ExecutionCancelled(token.reason or "cancelled")
        logs = await self._collect_logs(container_id)
        logger.warning("Container %s timed out after %.1fs", request.label, request.timeout_s)
        raise ExecutionTimeout(
            f"{request.label} exceeded {request.timeout_s:.1f}s", logs=logs
        )

    @staticmethod
    def _classify(request: ExecutionRequest, exit_status: ContainerExit, logs: str) -> None:
        code = exit_status.status_code
        if exit_status.error:
            raise TransientError(
                f"{request.label}: runtime error: {exit_status.error}", logs=logs
            )
        if code == 0:
            return
        if code in request.transient_exit_codes:
            raise TransientError(
                f"{request.label} exited with transient code {code}", logs=logs
            )
        raise PermanentError(
            f"{request.label} exited with code {code}", exit_code=code, logs=logs
        )

    async def _collect_logs(self, container_id: str) -> str:
        try:
            return await self._runtime.logs(container_id)
        except AdactaError as exc:
            logger.warning("Could not read logs of %s: %s", container_id[:12], exc)
            return ""

    async def _kill(self, container_id: str) -> None:
        try:
            await self._runtime.kill(container_id)
        except AdactaError as exc:
            logger.warning("Kill of %s failed: %s", container_id[:12], exc)

    async def _teardown(self, container_id: str) -> None:
        try:
            await self._runtime.remove(container_id)
        except AdactaError as exc:
            logger.warning("Removal of %s failed: %s", container_id[:12], exc)


def _stage_inputs(in_dir: Path, out_dir: Path, inputs: dict[str, bytes]) -> None:
    in_dir.mkdir()
    out_dir.mkdir()
    # The step may run as a non-root user.
    os.chmod(out_dir, 0o777)
    for name, data in inputs.items():
        path = in_dir / name
        path.write_bytes(data)
        os.chmod(path, 0o444)


def _collect_outputs(out_dir: Path, outputs: list[str]) -> dict[str, bytes]:
    files: dict[str, bytes] = {}
    for name in outputs:
        path = out_dir / name
        if path.is_symlink() or not path.is_file():
            raise PermanentError(f"Declared output '{name}' was not produced")
        files[name] = path.read_bytes()
    return files
