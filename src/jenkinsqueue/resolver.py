from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .app_logging import log_with_fields
from .models import Cause, Execution, JobState, RemoteResponse
from .remote import require_ok

if TYPE_CHECKING:
    from .job import Job
    from .registry import JobRegistry
    from .remote import JenkinsClient

JOINABLE_STATES = (JobState.STREAMING, JobState.DONE)


# Jenkins coalesces triggers: A -> C and B -> C can run as one C listing both
# causes. The first cause owns the execution and the other tracked C jobs join it.
class JoinResolver:
    def __init__(
        self,
        registry: JobRegistry,
        client: JenkinsClient,
        poll_interval: float,
        logger: logging.Logger,
    ) -> None:
        self.registry = registry
        self.client = client
        self.poll_interval = poll_interval
        self.logger = logger

    def locate(self, job: Job) -> None:
        if self._settled(job):
            return
        number = job.cursor.next_guess
        job.debug(f"locating execution #{number}")
        job.request(
            lambda: self.client.get_execution(job.definition_url, number),
            lambda response: self._on_execution(job, number, response),
        )

    def join_if_possible(self, job: Job) -> bool:
        if job.state is not JobState.LOCATING:
            return True
        for other in self.registry:
            if other.parent is None or other is job or other.name != job.name:
                continue
            if other.state not in JOINABLE_STATES:
                continue
            for cause in other.causes[1:]:
                if self.registry.find_cause(cause) is job.parent:
                    job.set_joined(other)
                    return True
        return False

    def adopt(self, job: Job, causes: list[Cause], number: int) -> bool:
        if not job.set_streaming(causes, number):
            return False
        log_with_fields(
            self.logger,
            logging.INFO,
            "execution_located",
            job=job.name,
            number=number,
            parent=job.parent.name if job.parent else None,
        )
        for cause in causes[1:]:
            cause_job = self.registry.find_cause(cause)
            if cause_job is None:
                # triggered from outside this pipeline
                continue
            for child in cause_job.children:
                if child is not job and child.name == job.name:
                    child.set_joined(job)
        return True

    def _settled(self, job: Job) -> bool:
        if job.state is not JobState.LOCATING or self.join_if_possible(job):
            job.stop_work(0)
            return True
        return False

    def _on_execution(self, job: Job, number: int, response: RemoteResponse) -> None:
        if self._settled(job):
            return
        if response.status == 404:
            job.debug(f"404 for {job.name}:{number}, checking if it is in the queue")
            job.request(
                lambda: self.client.get_definition(job.definition_url),
                lambda definition: self._on_missing(job, definition),
            )
            return
        require_ok(response, "Job pipeline tracking failed to read downstream project")
        execution: Execution = response.payload
        causes = execution.causes
        first_cause_job = self.registry.find_cause(causes[0]) if causes else None
        if first_cause_job is not None:
            if first_cause_job is job.parent:
                self.adopt(job, causes, number)
                job.stop_work(self.poll_interval)
                return
            for other in first_cause_job.children:
                if other.name == job.name and other.state is JobState.LOCATING:
                    self.adopt(other, causes, number)
            if job.state is JobState.JOINED:
                job.stop_work(0)
                return
        self._advance(job, execution)
        job.stop_work(self.poll_interval)

    def _on_missing(self, job: Job, response: RemoteResponse) -> None:
        if self._settled(job):
            return
        require_ok(response, f"Unable to retrieve job: {job.name}")
        definition = response.payload
        job.definition = definition
        last_completed = definition.last_completed_build_number
        if definition.in_queue or (last_completed is not None and last_completed >= job.cursor.next_guess):
            job.debug("job has been queued, continue searching")
        else:
            log_with_fields(
                self.logger,
                logging.INFO,
                "search_restarted",
                job=job.describe(),
                initial_guess=job.cursor.initial_guess,
            )
            job.cursor.restart()
        job.stop_work(self.poll_interval)

    def _advance(self, job: Job, execution: Execution) -> None:
        cursor = job.cursor
        parent_execution = job.parent.execution if job.parent is not None else None
        parent_timestamp = parent_execution.timestamp if parent_execution is not None else 0
        job.debug(f"search missed #{cursor.next_guess}")
        if cursor.direction < 0:
            if execution.timestamp <= parent_timestamp or cursor.next_guess <= 1:
                job.debug("changing search direction")
                cursor.next_guess = cursor.initial_guess + 1
                cursor.direction = 1
            else:
                cursor.next_guess -= 1
        else:
            cursor.next_guess += 1
