from __future__ import annotations

import logging

from .app_logging import log_with_fields
from .config import CaptureConfig
from .job import Job
from .models import JobReport, JobState

INDENT = "  "
PADDING_STEP = 4


def build_report(root: Job, logger: logging.Logger | None = None) -> JobReport:
    """Snapshot the job tree, following join links to the job that actually ran."""
    job = root.resolved()
    if job.state not in (JobState.DONE, JobState.QUEUED) and logger is not None:
        log_with_fields(logger, logging.WARNING, "job_still_active", job=job.describe())
    return JobReport(
        name=job.name,
        number=job.execution_number,
        url=job.execution_url,
        state=job.state,
        result=job.result_label,
        succeeded=job.succeeded,
        children=[build_report(child, logger) for child in job.children],
    )


def overall_success(report: JobReport) -> bool:
    return report.succeeded and all(overall_success(child) for child in report.children)


def failed_jobs(report: JobReport) -> list[JobReport]:
    output = [] if report.succeeded else [report]
    for child in report.children:
        output.extend(failed_jobs(child))
    return output


def completion_message(capture: CaptureConfig, report: JobReport) -> str:
    if capture.console and capture.pipeline:
        message = "Jenkins pipeline complete"
    elif capture.console:
        message = "Jenkins job complete"
    else:
        message = "Jenkins job queued"
    failures = failed_jobs(report)
    if failures:
        names = ", ".join(f"{item.name} #{item.number} ({item.result})" for item in failures)
        message += f" with failures: {names}"
    return message


def summary_filename(report: JobReport) -> str:
    return f"JenkinsJob_{report.name}_{report.number}.md"


def render_markdown(report: JobReport) -> str:
    return _render(report, "", 0)


def _render(report: JobReport, indent: str, padding: int) -> str:
    contents = f'{indent}<ul style="padding-left:{padding}">\n'
    if report.state in (JobState.DONE, JobState.QUEUED):
        link = report.url or ""
        contents += f"{indent}[{report.name} #{report.number}]({link}) {report.result}<br>\n"
    for child in report.children:
        contents += _render(child, indent + INDENT, padding + PADDING_STEP)
    return contents + f"{indent}</ul>\n"
