from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from .models import ACTIVE_STATES, Cause

if TYPE_CHECKING:
    from .job import Job


class JobRegistry:
    def __init__(self) -> None:
        self._jobs: list[Job] = []

    def __iter__(self) -> Iterator[Job]:
        return iter(list(self._jobs))

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def root(self) -> Job:
        return self._jobs[0]

    def add(self, job: Job) -> Job:
        self._jobs.append(job)
        return job

    def find(self, name: str | None, number: int | None) -> Job | None:
        for job in self._jobs:
            if job.name == name and job.execution_number == number:
                return job
        return None

    def find_cause(self, cause: Cause) -> Job | None:
        return self.find(cause.upstream_project, cause.upstream_build)

    def active_jobs(self) -> list[Job]:
        return [job for job in self._jobs if job.state in ACTIVE_STATES]

    def console_owner(self) -> Job | None:
        for job in self.active_jobs():
            if job.console_enabled:
                return job
        return None
