"""
Async dependency graph runner.

Steps are named coroutines with declared dependencies. A step starts as
soon as every dependency has finished and receives their results as
keyword arguments. The first failing step ends the run: no further steps
are started, steps already running are awaited without being cancelled,
their results are dropped and the first exception is raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

StepFn = Callable[..., Awaitable[Any]]


class GraphDefinitionError(Exception):
    """Graph has an unknown dependency or a cycle."""


@dataclass
class Step:
    name: str
    fn: StepFn
    depends_on: tuple[str, ...] = field(default_factory=tuple)


class TaskGraph:
    """Directed acyclic graph of async steps."""

    def __init__(self) -> None:
        self._steps: dict[str, Step] = {}

    def add(self, name: str, fn: StepFn, depends_on: tuple[str, ...] = ()) -> TaskGraph:
        if name in self._steps:
            raise GraphDefinitionError(f"Duplicate step: {name}")
        self._steps[name] = Step(name=name, fn=fn, depends_on=tuple(depends_on))
        return self

    @property
    def steps(self) -> dict[str, Step]:
        return dict(self._steps)

    def check(self) -> None:
        """Reject unknown dependencies and cycles."""
        for step in self._steps.values():
            for dep in step.depends_on:
                if dep not in self._steps:
                    raise GraphDefinitionError(f"Step {step.name} depends on unknown step {dep}")

        # Kahn's algorithm: anything left unvisited is on a cycle
        remaining = {name: set(step.depends_on) for name, step in self._steps.items()}
        while remaining:
            ready = [name for name, deps in remaining.items() if not deps]
            if not ready:
                raise GraphDefinitionError(f"Cycle between steps: {sorted(remaining)}")
            for name in ready:
                del remaining[name]
            for deps in remaining.values():
                deps.difference_update(ready)

    async def run(self) -> dict[str, Any]:
        """
        Execute every step.

        Returns:
            Mapping of step name to result

        Raises:
            GraphDefinitionError: If the graph is malformed (before any step runs)
            Exception: The first exception raised by a step
        """
        self.check()

        results: dict[str, Any] = {}
        running: dict[asyncio.Task[Any], str] = {}
        pending = dict(self._steps)

        def start_ready() -> None:
            for name, step in list(pending.items()):
                if all(dep in results for dep in step.depends_on):
                    kwargs = {dep: results[dep] for dep in step.depends_on}
                    task = asyncio.create_task(step.fn(**kwargs), name=name)
                    running[task] = name
                    del pending[name]

        start_ready()

        while running:
            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            failure: BaseException | None = None

            for task in done:
                name = running.pop(task)
                if task.cancelled():
                    failure = failure or asyncio.CancelledError(f"Step {name} was cancelled")
                    continue
                error = task.exception()
                if error is not None:
                    logger.debug(f"Step {name} failed: {error!r}")
                    failure = failure or error
                    continue
                results[name] = task.result()

            if failure is not None:
                await self._settle(running)
                raise failure

            start_ready()

        return results

    @staticmethod
    async def _settle(running: dict[asyncio.Task[Any], str]) -> None:
        """Let in-flight steps finish and drop their outcomes."""
        if not running:
            return

        logger.debug(f"Waiting for in-flight steps: {', '.join(running.values())}")
        await asyncio.wait(running)

        for task, name in running.items():
            error = None if task.cancelled() else task.exception()
            if error is not None:
                logger.debug(f"Discarding failure of in-flight step {name}: {error!r}")
