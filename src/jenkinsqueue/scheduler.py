from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import sys
import time
from typing import Any

from .app_logging import log_with_fields
from .config import CaptureConfig, PollConfig
from .job import ConsoleSink, Job, ResponseHandler, TrackingContext
from .models import JobState, QueueItem, RunOutcome
from .registry import JobRegistry
from .remote import JenkinsClient
from .report import build_report, completion_message, overall_success
from .resolver import JoinResolver


def write_to_stdout(job: Job, text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


@dataclass(slots=True)
class PendingRequest:
    job: Job
    future: Future
    handler: ResponseHandler


class JobQueue:
    def __init__(
        self,
        client: JenkinsClient,
        capture: CaptureConfig,
        poll: PollConfig,
        logger: logging.Logger,
        *,
        console_sink: ConsoleSink | None = None,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.capture = capture
        self.poll = poll
        self.logger = logger
        self.clock = clock
        self.sleep = sleep
        self.owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="jenkinsqueue")
        self.registry = JobRegistry()
        self.resolver = JoinResolver(self.registry, client, poll.interval_seconds, logger)
        self.pending: list[PendingRequest] = []
        self.context = TrackingContext(
            client=client,
            registry=self.registry,
            resolver=self.resolver,
            submit=self.submit,
            console_sink=console_sink or write_to_stdout,
            on_inactive=self.flush_job_consoles_safely,
            clock=clock,
            logger=logger,
            capture_console=capture.console,
            capture_pipeline=capture.console and capture.pipeline,
            poll_interval=poll.interval_seconds,
        )

    def create_root(self, queue_item: QueueItem) -> Job:
        if len(self.registry):
            raise RuntimeError("root job already created")
        root = Job(
            self.context,
            None,
            queue_item.task_url or "",
            queue_item.executable_url,
            int(queue_item.executable_number),
            queue_item.task_name or "",
        )
        return self.registry.add(root)

    def track(self, queue_item: QueueItem) -> RunOutcome:
        self.create_root(queue_item)
        return self.run()

    def run(self) -> RunOutcome:
        log_with_fields(self.logger, logging.INFO, "queue_started", root=self.registry.root.describe())
        try:
            while self.single_cycle():
                self.sleep(self.poll.tick_seconds)
        finally:
            if self.owns_executor:
                self.executor.shutdown(wait=False, cancel_futures=True)
        return self.stop()

    def single_cycle(self) -> bool:
        self.drain_responses()
        active_jobs = self.registry.active_jobs()
        if not active_jobs and not self.pending:
            return False
        now = self.clock()
        for job in active_jobs:
            job.tick(now)
        self.flush_job_consoles_safely()
        return True

    def submit(self, job: Job, call: Callable[[], Any], handler: ResponseHandler) -> None:
        future = self.executor.submit(call)
        self.pending.append(PendingRequest(job=job, future=future, handler=handler))

    def drain_responses(self) -> None:
        completed = [item for item in self.pending if item.future.done()]
        for item in completed:
            self.pending.remove(item)
            # RemoteError propagates and aborts the run
            item.handler(item.future.result())

    def flush_job_consoles_safely(self) -> None:
        if self.registry.console_owner() is not None:
            return
        streaming_jobs: list[Job] = []
        added_to_console = False
        for job in self.registry:
            if job.state is JobState.DONE:
                if not job.console_enabled:
                    job.enable_console()
                    added_to_console = True
            elif job.state in (JobState.STREAMING, JobState.FINISHING):
                streaming_jobs.append(job)
        if len(streaming_jobs) == 1:
            streaming_jobs[0].enable_console()
        elif added_to_console:
            for job in streaming_jobs:
                log_with_fields(self.logger, logging.INFO, "job_pending", job=job.name, url=job.execution_url)

    def stop(self) -> RunOutcome:
        self.flush_job_consoles_safely()
        report = build_report(self.registry.root, self.logger)
        succeeded = overall_success(report)
        message = completion_message(self.capture, report)
        log_with_fields(
            self.logger,
            logging.INFO if succeeded else logging.ERROR,
            "run_complete",
            succeeded=succeeded,
            summary=message,
            jobs=len(self.registry),
        )
        return RunOutcome(succeeded=succeeded, message=message, report=report)
