"""Job graph: named jobs with prerequisites, run on a worker pool.

Jobs share nothing; the only coordination is fan-out (submit every job whose
prerequisites succeeded) and fan-in (collect outcomes as futures complete).
A job whose prerequisite failed or was skipped is itself skipped, never run.
An exception escaping a job becomes that job's failure and does not reach
the other jobs.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from relpipe.core.result import Err, Result
from relpipe.services.errors import PipelineError
from relpipe.services.model import JobOutcome

JobFn = Callable[[], Result[object, PipelineError]]


@dataclass(frozen=True, slots=True)
class Job:
    name: str
    run: JobFn
    needs: tuple[str, ...] = ()


class JobGraph:
    def __init__(self, jobs: Iterable[Job]) -> None:
        """
        Raises:
            ValueError: Duplicate job names, unknown prerequisites, or a cycle.
        """
        self._jobs: dict[str, Job] = {}
        for job in jobs:
            if job.name in self._jobs:
                raise ValueError(f"duplicate job name: {job.name}")
            self._jobs[job.name] = job

        for job in self._jobs.values():
            for need in job.needs:
                if need not in self._jobs:
                    raise ValueError(f"job {job.name} needs unknown job {need}")

        self._order = self._topological_order()

    @property
    def names(self) -> tuple[str, ...]:
        """Job names in definition order."""
        return tuple(self._jobs)

    @property
    def order(self) -> tuple[str, ...]:
        """Job names in a valid execution order."""
        return self._order

    def needs(self, name: str) -> tuple[str, ...]:
        return self._jobs[name].needs

    def __len__(self) -> int:
        return len(self._jobs)

    def _topological_order(self) -> tuple[str, ...]:
        # Kahn's algorithm, ties broken by definition order.
        remaining = {name: set(job.needs) for name, job in self._jobs.items()}
        order: list[str] = []
        while remaining:
            ready = [name for name, needs in remaining.items() if not needs]
            if not ready:
                raise ValueError(f"job graph has a cycle among: {', '.join(sorted(remaining))}")
            for name in ready:
                order.append(name)
                del remaining[name]
            for needs in remaining.values():
                needs.difference_update(ready)
        return tuple(order)

    def run(
        self,
        *,
        max_workers: int = 0,
        on_finish: Callable[[JobOutcome], None] | None = None,
    ) -> tuple[JobOutcome, ...]:
        """Run every job once and return outcomes in definition order.

        Args:
            max_workers: Pool size; 0 means one worker per job.
            on_finish: Called on the coordinating thread as each outcome lands.
        """
        if not self._jobs:
            return ()

        outcomes: dict[str, JobOutcome] = {}
        started: set[str] = set()
        running: dict[Future[JobOutcome], str] = {}

        def record(outcome: JobOutcome) -> None:
            outcomes[outcome.name] = outcome
            if on_finish is not None:
                on_finish(outcome)

        workers = max_workers if max_workers > 0 else len(self._jobs)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="relpipe-job") as pool:

            def schedule() -> None:
                # Topological order lets a skip cascade to dependents in one pass.
                for name in self._order:
                    if name in outcomes or name in started:
                        continue
                    needs = self._jobs[name].needs
                    blocked = [
                        n for n in needs if n in outcomes and not outcomes[n].succeeded
                    ]
                    if blocked:
                        record(
                            JobOutcome(
                                name=name,
                                status="skipped",
                                error=PipelineError(
                                    kind="dependency_failed",
                                    message=f"skipped: {', '.join(blocked)} did not succeed",
                                ),
                            )
                        )
                        continue
                    if all(n in outcomes for n in needs):
                        started.add(name)
                        running[pool.submit(_execute, self._jobs[name])] = name

            schedule()
            while running:
                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    del running[future]
                    record(future.result())
                schedule()

        return tuple(outcomes[name] for name in self._jobs)


def _execute(job: Job) -> JobOutcome:
    start = time.monotonic()
    try:
        result = job.run()
    except Exception as e:  # noqa: BLE001
        return JobOutcome(
            name=job.name,
            status="failed",
            error=PipelineError(kind="job_crashed", message=f"{type(e).__name__}: {e}"),
            duration_seconds=time.monotonic() - start,
        )

    elapsed = time.monotonic() - start
    if isinstance(result, Err):
        return JobOutcome(
            name=job.name, status="failed", error=result.error, duration_seconds=elapsed
        )
    return JobOutcome(
        name=job.name, status="succeeded", value=result.value, duration_seconds=elapsed
    )
