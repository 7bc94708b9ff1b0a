# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides a scripted in-memory container runtime, temp archive roots,
settings, and a small two-step pipeline. No Docker, no search engine.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from pathlib import Path

import pytest

from adacta.api.engine import ArchiveEngine
from adacta.blob.local_store import LocalBlobStore
from adacta.config.settings import Settings
from adacta.core.errors import PermanentError
from adacta.core.models import RetryPolicy, StepDefinition
from adacta.documents.json_registry import JsonDocumentRegistry
from adacta.executor.base_runtime import BaseContainerRuntime
from adacta.executor.executor import ContainerExecutor
from adacta.executor.models import INPUT_MOUNT, OUTPUT_MOUNT, ContainerExit, ContainerSpec
from adacta.index.memory_index import MemorySearchIndex

# (exit code, output files, logs)
Outcome = tuple[int, dict[str, bytes], str]
Behaviour = Callable[[dict[str, bytes]], Awaitable[Outcome]]

TEXT_IMAGE = "test/juicer-text"
THUMB_IMAGE = "test/juicer-thumb"


class _FakeContainer:
    def __init__(self, container_id: str, spec: ContainerSpec) -> None:
        self.id = container_id
        self.spec = spec
        self.done = asyncio.Event()
        self.exit: ContainerExit | None = None
        self.logs = ""
        self.task: asyncio.Task[None] | None = None

    def mount(self, target: str) -> Path:
        return next(m.source for m in self.spec.mounts if m.target == target)


class FakeContainerRuntime(BaseContainerRuntime):
    """In-memory runtime running scripted behaviours per image.

    Behaviours read /in and write /out through the host directories the
    executor mounts, so the executor's staging and collection are real.
    The last behaviour scripted for an image repeats.
    """

    def __init__(self) -> None:
        self._scripts: dict[str, list[Behaviour]] = {}
        self._ids = itertools.count(1)
        self.containers: dict[str, _FakeContainer] = {}
        self.started: list[str] = []
        self.killed: set[str] = set()
        self.removed: set[str] = set()
        self.running = 0
        self.peak_running = 0
        self.create_error: Exception | None = None

    # --- scripting ---

    def on(self, image: str, *behaviours: Behaviour) -> None:
        self._scripts[image] = list(behaviours)

    @staticmethod
    def produce(
        logs: str = "ok", delay: float = 0.0, **outputs: bytes | Callable[[dict[str, bytes]], bytes]
    ) -> Behaviour:
        async def behaviour(inputs: dict[str, bytes]) -> Outcome:
            if delay:
                await asyncio.sleep(delay)
            files = {
                name: value(inputs) if callable(value) else value
                for name, value in outputs.items()
            }
            return 0, files, logs

        return behaviour

    @staticmethod
    def exit_with(code: int, logs: str = "boom") -> Behaviour:
        async def behaviour(inputs: dict[str, bytes]) -> Outcome:
            return code, {}, logs

        return behaviour

    @staticmethod
    def hang() -> Behaviour:
        async def behaviour(inputs: dict[str, bytes]) -> Outcome:
            await asyncio.Event().wait()
            return 0, {}, ""

        return behaviour

    # --- BaseContainerRuntime ---

    async def create(self, spec: ContainerSpec) -> str:
        if self.create_error is not None:
            raise self.create_error
        if spec.image not in self._scripts:
            raise PermanentError(f"Image not found: {spec.image}")
        container = _FakeContainer(f"c{next(self._ids)}", spec)
        self.containers[container.id] = container
        return container.id

    async def start(self, container_id: str) -> None:
        container = self.containers[container_id]
        self.started.append(container_id)
        container.task = asyncio.create_task(self._run(container))

    async def wait(self, container_id: str) -> ContainerExit:
        container = self.containers[container_id]
        await container.done.wait()
        assert container.exit is not None
        return container.exit

    async def logs(self, container_id: str) -> str:
        return self.containers[container_id].logs

    async def kill(self, container_id: str) -> None:
        self.killed.add(container_id)
        await self._stop(self.containers[container_id])

    async def remove(self, container_id: str) -> None:
        await self._stop(self.containers[container_id])
        self.removed.add(container_id)

    @property
    def provider_name(self) -> str:
        return "fake"

    # --- internals ---

    async def _stop(self, container: _FakeContainer) -> None:
        if container.task is not None and not container.task.done():
            container.task.cancel()
            await asyncio.gather(container.task, return_exceptions=True)
        if container.exit is None:
            container.exit = ContainerExit(status_code=137)
        container.done.set()

    def _next(self, image: str) -> Behaviour:
        script = self._scripts[image]
        return script.pop(0) if len(script) > 1 else script[0]

    async def _run(self, container: _FakeContainer) -> None:
        self.running += 1
        self.peak_running = max(self.peak_running, self.running)
        try:
            in_dir = container.mount(INPUT_MOUNT)
            inputs = {p.name: p.read_bytes() for p in in_dir.iterdir()}
            code, files, logs = await self._next(container.spec.image)(inputs)
            out_dir = container.mount(OUTPUT_MOUNT)
            for name, data in files.items():
                (out_dir / name).write_bytes(data)
            container.exit = ContainerExit(status_code=code)
            container.logs = logs
        except asyncio.CancelledError:
            container.exit = ContainerExit(status_code=137)
            container.logs = "killed"
        finally:
            self.running -= 1
            container.done.set()


# === FIXTURES: Runtime and executor ===


@pytest.fixture
def fake_runtime() -> FakeContainerRuntime:
    return FakeContainerRuntime()


@pytest.fixture
def executor(fake_runtime, tmp_path) -> ContainerExecutor:
    return ContainerExecutor(fake_runtime, work_root=tmp_path / "work", pool_size=2)


# === FIXTURES: Storage ===


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "archive")


@pytest.fixture
def registry(tmp_path) -> JsonDocumentRegistry:
    return JsonDocumentRegistry(tmp_path / "registry")


@pytest.fixture
def memory_index() -> MemorySearchIndex:
    return MemorySearchIndex()


# === FIXTURES: Pipeline ===


def _fast_retry(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, base_delay_s=0.01, jitter=False)


@pytest.fixture
def step_definitions() -> list[StepDefinition]:
    """extract_text: specimen -> text, thumbnail: specimen -> thumbnail."""
    return [
        StepDefinition(
            name="extract_text",
            image=TEXT_IMAGE,
            outputs=["text"],
            timeout_s=5.0,
            retry=_fast_retry(),
        ),
        StepDefinition(
            name="thumbnail",
            image=THUMB_IMAGE,
            outputs=["thumbnail"],
            timeout_s=5.0,
            retry=_fast_retry(),
        ),
    ]


@pytest.fixture
def scripted_runtime(fake_runtime) -> FakeContainerRuntime:
    """Runtime where both default steps succeed deterministically."""
    fake_runtime.on(TEXT_IMAGE, fake_runtime.produce(text=lambda i: b"text of " + i["specimen"]))
    fake_runtime.on(THUMB_IMAGE, fake_runtime.produce(thumbnail=lambda i: b"PNG" + i["specimen"][:8]))
    return fake_runtime


# === FIXTURES: Engine ===


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        archive_root=tmp_path / "archive",
        work_root=tmp_path / "work",
        registry_root=tmp_path / "registry",
        executor_pool_size=2,
        sync_retry_delay_s=0.01,
    )


@pytest.fixture
def make_engine(settings, fake_runtime, memory_index, step_definitions):
    """Build (not start) an ArchiveEngine on temp roots with fakes injected."""

    def factory(**overrides) -> ArchiveEngine:
        kwargs = {
            "runtime": fake_runtime,
            "search_index": memory_index,
            "steps": step_definitions,
            "plugins": [],
        }
        kwargs.update(overrides)
        engine_settings = kwargs.pop("settings", settings)
        return ArchiveEngine(engine_settings, **kwargs)

    return factory
