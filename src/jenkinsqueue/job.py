from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from .app_logging import log_with_fields
from .models import (
    ACTIVE_STATES,
    UNKNOWN_BUILD_NUMBER,
    Cause,
    DownstreamProject,
    Execution,
    JobDefinition,
    JobState,
    RemoteResponse,
    SearchCursor,
    describe_result,
    is_successful_result,
)
from .remote import require_ok
from .utils import add_url_segment

if TYPE_CHECKING:
    from .registry import JobRegistry
    from .remote import JenkinsClient
    from .resolver import JoinResolver

BANNER = "*" * 78 + "\n"

ResponseHandler = Callable[[Any], None]
ConsoleSink = Callable[["Job", str], None]


@dataclass(slots=True)
class TrackingContext:
    client: JenkinsClient
    registry: JobRegistry
    resolver: JoinResolver
    submit: Callable[[Job, Callable[[], Any], ResponseHandler], None]
    console_sink: ConsoleSink
    on_inactive: Callable[[], None]
    clock: Callable[[], float]
    logger: logging.Logger
    capture_console: bool
    capture_pipeline: bool
    poll_interval: float


def is_valid_transition(job: Job, old: JobState, new: JobState) -> bool:
    capture_console = job.context.capture_console
    if old is JobState.NEW:
        if new is JobState.STREAMING:
            return job.parent is None and capture_console
        if new is JobState.QUEUED:
            return job.parent is None and not capture_console
        return new in (JobState.LOCATING, JobState.JOINED)
    if old is JobState.LOCATING:
        return new in (JobState.JOINED, JobState.STREAMING)
    if old is JobState.STREAMING:
        return new is JobState.FINISHING
    if old is JobState.FINISHING:
        return new is JobState.DONE or (new is JobState.QUEUED and not capture_console)
    return False


class Job:
    def __init__(
        self,
        context: TrackingContext,
        parent: Job | None,
        definition_url: str,
        execution_url: str | None,
        execution_number: int,
        name: str,
    ) -> None:
        self.context = context
        self.parent = parent
        self.children: list[Job] = []
        self.joined_target: Job | None = None
        self.state = JobState.NEW

        self.definition_url = definition_url
        self.execution_url = execution_url
        self.execution_number = execution_number
        self.name = name

        self.console = ""
        self.console_offset = 0
        self.console_enabled = False

        self.cursor = SearchCursor()
        self.busy = False
        self.ready_at = 0.0

        self.definition: JobDefinition | None = None
        self.causes: list[Cause] = []
        self.execution: Execution | None = None
        self.debug("created")

    def __repr__(self) -> str:
        return f"Job{self.describe()}"

    def describe(self) -> str:
        text = f"({self.state.value}:{self.name}:{self.execution_number}"
        if self.parent is not None:
            text += f", p:{self.parent.describe()}"
        if self.joined_target is not None:
            text += f", j:{self.joined_target.describe()}"
        return text + ")"

    def debug(self, message: str) -> None:
        self.context.logger.debug("%s debug: %s", self.describe(), message)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def resolved(self) -> Job:
        job = self
        while job.state is JobState.JOINED and job.joined_target is not None:
            job = job.joined_target
        return job

    @property
    def result_label(self) -> str:
        job = self.resolved()
        if job.state is JobState.QUEUED:
            return "Queued"
        if job.state is JobState.DONE and job.execution is not None and job.execution.result:
            return describe_result(job.execution.result)
        return "Unknown"

    @property
    def succeeded(self) -> bool:
        job = self.resolved()
        if job.state is JobState.QUEUED:
            return True
        if job.state is JobState.DONE and job.execution is not None and job.execution.result:
            return is_successful_result(job.execution.result)
        return False

    @property
    def console_text(self) -> str:
        return self.resolved().console

    # work loop

    def tick(self, now: float) -> None:
        if self.busy or now < self.ready_at:
            return
        self.busy = True
        if self.state is JobState.NEW:
            self._initialize()
        elif self.state is JobState.LOCATING:
            self.context.resolver.locate(self)
        elif self.state is JobState.STREAMING:
            self._stream_console()
        elif self.state is JobState.FINISHING:
            self._finish()
        else:
            # another job's response joined this one
            self.stop_work(0)

    def request(self, call: Callable[[], Any], handler: ResponseHandler) -> None:
        self.context.submit(self, call, handler)

    def stop_work(self, delay: float, state: JobState | None = None) -> None:
        if state is not None and state is not self.state:
            self.change_state(state)
            if not self.is_active:
                self.context.on_inactive()
            if self.state is JobState.DONE:
                log_with_fields(
                    self.context.logger,
                    logging.INFO,
                    "job_done",
                    job=self.name,
                    number=self.execution_number,
                    result=self.result_label,
                )
        self.ready_at = self.context.clock() + delay
        self.busy = False

    def change_state(self, new_state: JobState) -> bool:
        old_state = self.state
        if old_state is new_state:
            return True
        if not is_valid_transition(self, old_state, new_state):
            log_with_fields(
                self.context.logger,
                logging.WARNING,
                "invalid_state_change",
                job=self.describe(),
                old_state=old_state.value,
                new_state=new_state.value,
            )
            return False
        self.state = new_state
        log_with_fields(
            self.context.logger,
            logging.DEBUG,
            "job_state_changed",
            job=self.name,
            number=self.execution_number,
            old_state=old_state.value,
            new_state=new_state.value,
        )
        return True

    # transitions driven by the resolver and response handlers

    def set_streaming(self, causes: list[Cause], execution_number: int) -> bool:
        if not self.change_state(JobState.STREAMING):
            return False
        self.causes = list(causes)
        self.execution_number = execution_number
        self.execution_url = add_url_segment(self.definition_url, str(execution_number))
        self.console_log(BANNER)
        self.console_log(f"Jenkins job started: {self.name}\n")
        self.console_log(f"{self.execution_url}\n")
        self.console_log(BANNER)
        if self.context.registry.console_owner() is None:
            log_with_fields(
                self.context.logger,
                logging.INFO,
                "job_pending",
                job=self.name,
                url=self.execution_url,
            )
        return True

    def set_joined(self, target: Job) -> bool:
        if not self.change_state(JobState.JOINED):
            return False
        self.joined_target = target
        log_with_fields(
            self.context.logger,
            logging.INFO,
            "job_joined",
            job=self.describe(),
            target=target.describe(),
        )
        return True

    def set_execution_result(self, execution: Execution) -> None:
        self.execution = execution
        self.console_log(BANNER)
        self.console_log(f"Jenkins job finished: {self.name}\n")
        self.console_log(f"{self.execution_url}\n")
        self.console_log(BANNER)

    def spawn_child(self, project: DownstreamProject) -> Job:
        child = Job(self.context, self, project.url, None, UNKNOWN_BUILD_NUMBER, project.name)
        self.children.append(child)
        self.context.registry.add(child)
        return child

    # console

    def enable_console(self) -> None:
        if not self.context.capture_console or self.console_enabled:
            return
        self.console_enabled = True
        if self.console:
            self.context.console_sink(self, self.console)

    def console_log(self, text: str) -> None:
        if not text:
            return
        self.console += text
        if self.console_enabled:
            self.context.console_sink(self, text)

    # state handlers

    def _initialize(self) -> None:
        self.request(
            lambda: self.context.client.get_definition(self.definition_url),
            self._on_definition,
        )

    def _on_definition(self, response: RemoteResponse) -> None:
        require_ok(response, f"Unable to retrieve job: {self.name}")
        self.definition = response.payload
        self.cursor.reset(self.definition.initial_search_number())
        self.debug(f"search starts at #{self.cursor.initial_guess}")
        if self.state is not JobState.NEW:
            self.stop_work(0)
            return
        if self.parent is not None:
            self.stop_work(self.context.poll_interval, JobState.LOCATING)
        elif self.context.capture_console:
            self.enable_console()
            self.set_streaming([], self.execution_number)
            self.stop_work(0)
        else:
            self.stop_work(0, JobState.QUEUED)

    def _stream_console(self) -> None:
        url = self.execution_url
        offset = self.console_offset
        self.debug(f"reading console at offset {offset}")
        self.request(lambda: self.context.client.get_console(url, offset), self._on_console)

    def _on_console(self, response: RemoteResponse) -> None:
        require_ok(response, "Job progress tracking failed to read job progress")
        chunk = response.payload
        self.console_log(chunk.text)
        if chunk.more_data:
            if chunk.next_offset > self.console_offset:
                self.console_offset = chunk.next_offset
            self.stop_work(self.context.poll_interval)
        else:
            self.stop_work(0, JobState.FINISHING)

    def _finish(self) -> None:
        if not self.context.capture_console:
            self.stop_work(0, JobState.QUEUED)
            return
        number = self.execution_number
        self.request(
            lambda: self.context.client.get_execution(self.definition_url, number),
            self._on_result,
        )

    def _on_result(self, response: RemoteResponse) -> None:
        require_ok(response, "Job progress tracking failed to read job result")
        execution: Execution = response.payload
        if not execution.result:
            # still running
            self.stop_work(self.context.poll_interval)
            return
        self.set_execution_result(execution)
        if self.context.capture_pipeline and self.definition is not None:
            for project in self.definition.downstream_projects:
                child = self.spawn_child(project)
                log_with_fields(
                    self.context.logger,
                    logging.INFO,
                    "downstream_job_queued",
                    job=child.name,
                    parent=self.name,
                    parent_number=self.execution_number,
                )
        self.stop_work(0, JobState.DONE)
