from __future__ import annotations

from concurrent.futures import Executor, Future
import logging

from jenkinsqueue.config import CaptureConfig, PollConfig
from jenkinsqueue.job import Job
from jenkinsqueue.models import (
    Cause,
    ConsoleChunk,
    DownstreamProject,
    Execution,
    JobDefinition,
    JobState,
    QueueItem,
    RemoteResponse,
)
from jenkinsqueue.scheduler import JobQueue
from jenkinsqueue.utils import add_url_segment

SERVER = "http://jenkins.local/"


def job_url(name: str) -> str:
    return f"{SERVER}job/{name}/"


class ImmediateExecutor(Executor):
    """Runs each call at submit time; the queue still applies it on the next drain."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeJenkins:
    """In-memory stand-in for JenkinsClient.

    Values registered as lists are served in order; the last one repeats.
    """

    def __init__(self) -> None:
        self.definitions: dict[str, list[JobDefinition]] = {}
        self.executions: dict[tuple[str, int], list[Execution | int]] = {}
        self.consoles: dict[str, list[ConsoleChunk]] = {}
        self.queue_items: dict[str, list[QueueItem]] = {}
        self.enqueue_status = 201
        self.calls: list[tuple] = []

    def add_definition(self, name: str, definition: JobDefinition) -> None:
        self.definitions.setdefault(job_url(name), []).append(definition)

    def add_execution(self, name: str, number: int, *responses: Execution | int) -> None:
        self.executions.setdefault((job_url(name), number), []).extend(responses)

    def add_console(self, name: str, number: int, *chunks: ConsoleChunk) -> None:
        url = add_url_segment(job_url(name), str(number))
        self.consoles.setdefault(url, []).extend(chunks)

    def calls_to(self, method: str) -> list[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    @staticmethod
    def _serve(values: list):
        if len(values) > 1:
            return values.pop(0)
        return values[0]

    def get_definition(self, definition_url: str) -> RemoteResponse:
        self.calls.append(("get_definition", definition_url))
        values = self.definitions.get(definition_url)
        if not values:
            return RemoteResponse(404, "Not Found", definition_url)
        return RemoteResponse(200, "OK", definition_url, self._serve(values))

    def get_execution(self, definition_url: str, number: int) -> RemoteResponse:
        self.calls.append(("get_execution", definition_url, number))
        url = add_url_segment(definition_url, f"{number}/api/json")
        values = self.executions.get((definition_url, number))
        if not values:
            return RemoteResponse(404, "Not Found", url)
        value = self._serve(values)
        if isinstance(value, int):
            return RemoteResponse(value, "Error", url)
        return RemoteResponse(200, "OK", url, value)

    def get_console(self, execution_url: str, offset: int) -> RemoteResponse:
        self.calls.append(("get_console", execution_url, offset))
        values = self.consoles.get(execution_url)
        if not values:
            return RemoteResponse(404, "Not Found", execution_url)
        return RemoteResponse(200, "OK", execution_url, self._serve(values))

    def enqueue(self, queue_url: str, parameters: dict[str, str] | None = None) -> RemoteResponse:
        self.calls.append(("enqueue", queue_url, parameters))
        location = f"{SERVER}queue/item/1/" if self.enqueue_status == 201 else None
        return RemoteResponse(self.enqueue_status, "Created", queue_url, location)

    def get_queue_item(self, queue_location: str) -> RemoteResponse:
        self.calls.append(("get_queue_item", queue_location))
        values = self.queue_items.get(queue_location)
        if not values:
            return RemoteResponse(404, "Not Found", queue_location)
        return RemoteResponse(200, "OK", queue_location, self._serve(values))


def quiet_logger() -> logging.Logger:
    logger = logging.getLogger("test_jenkinsqueue")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


def started_item(name: str, number: int) -> QueueItem:
    return QueueItem(
        cancelled=False,
        executable_url=add_url_segment(job_url(name), f"{number}/"),
        executable_number=number,
        task_url=job_url(name),
        task_name=name,
    )


def execution(number: int, *causes: tuple[str, int], result: str | None = None, timestamp: int = 0) -> Execution:
    return Execution(
        number=number,
        url=None,
        timestamp=timestamp,
        result=result,
        causes=[Cause(upstream_project=project, upstream_build=build) for project, build in causes],
    )


class Recorder:
    def __init__(self) -> None:
        self.writes: list[tuple[str, str]] = []

    def __call__(self, job: Job, text: str) -> None:
        self.writes.append((job.name, text))

    def text(self) -> str:
        return "".join(text for _, text in self.writes)


def make_queue(
    fake: FakeJenkins,
    *,
    console: bool = True,
    pipeline: bool = True,
    interval: float = 0,
    clock: FakeClock | None = None,
    sink: Recorder | None = None,
) -> JobQueue:
    return JobQueue(
        fake,
        CaptureConfig(console=console, pipeline=pipeline),
        PollConfig(interval_seconds=interval, tick_seconds=0.01),
        quiet_logger(),
        console_sink=sink or Recorder(),
        executor=ImmediateExecutor(),
        clock=clock or FakeClock(),
        sleep=lambda seconds: None,
    )


def finished_job(queue: JobQueue, parent: Job, name: str, number: int, timestamp: int = 0) -> Job:
    """Attach a child that already ran to completion as ``name #number``."""
    job = parent.spawn_child(DownstreamProject(name=name, url=job_url(name)))
    job.state = JobState.DONE
    job.execution_number = number
    job.execution_url = add_url_segment(job.definition_url, str(number))
    job.execution = execution(number, result="SUCCESS", timestamp=timestamp)
    return job


def finished_root(queue: JobQueue, name: str = "root", number: int = 1, timestamp: int = 0) -> Job:
    root = queue.create_root(started_item(name, number))
    root.state = JobState.DONE
    root.execution = execution(number, result="SUCCESS", timestamp=timestamp)
    return root


def locating_child(parent: Job, name: str, guess: int) -> Job:
    job = parent.spawn_child(DownstreamProject(name=name, url=job_url(name)))
    job.state = JobState.LOCATING
    job.cursor.reset(guess)
    return job
