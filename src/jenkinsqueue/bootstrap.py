from __future__ import annotations

from collections.abc import Callable
import logging
import time

from .app_logging import log_with_fields
from .config import AppConfig
from .models import QueueItem
from .remote import JenkinsClient, JobCancelledError, RemoteError, require_ok


def queue_job(client: JenkinsClient, config: AppConfig, logger: logging.Logger) -> str:
    """Enqueue the configured job and return its queue item location."""
    parameters = config.job.parameters if config.job.parameterized else None
    log_with_fields(logger, logging.DEBUG, "enqueue_request", url=config.queue_url, parameters=sorted(parameters or {}))
    response = require_ok(client.enqueue(config.queue_url, parameters), "Job creation failed.", expected=201)
    if not response.payload:
        raise RemoteError(f"Jenkins accepted {config.queue_url} but returned no queue location")
    log_with_fields(logger, logging.INFO, "job_queued", job=config.job.name, queue_location=response.payload)
    return str(response.payload)


def wait_for_execution(
    client: JenkinsClient,
    queue_location: str,
    poll_interval: float,
    logger: logging.Logger,
    sleep: Callable[[float], None] = time.sleep,
) -> QueueItem:
    while True:
        response = require_ok(
            client.get_queue_item(queue_location),
            "Job progress tracking failed to read job queue",
        )
        item: QueueItem = response.payload
        if item.cancelled:
            raise JobCancelledError("Jenkins job canceled.")
        if item.started:
            log_with_fields(
                logger,
                logging.INFO,
                "job_started",
                job=item.task_name,
                number=item.executable_number,
                url=item.executable_url,
            )
            return item
        sleep(poll_interval)
