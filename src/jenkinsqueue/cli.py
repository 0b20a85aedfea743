from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .app_logging import log_with_fields, setup_logger
from .bootstrap import queue_job, wait_for_execution
from .config import AppConfig, CaptureConfig, ensure_local_paths, load_config
from .models import RunOutcome
from .remote import JenkinsClient, JobCancelledError, RemoteError
from .report import render_markdown, summary_filename
from .scheduler import JobQueue


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jenkinsqueue",
        description="Queue a Jenkins job and follow it and its downstream pipeline",
    )
    parser.add_argument("--config", required=True, help="Path to jenkinsqueue YAML config")
    parser.add_argument("--verbose", action="store_true", help="Log per-job debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Queue the configured job and follow it")
    run_parser.add_argument("--no-console", action="store_true", help="Only queue the job, do not stream it")
    run_parser.add_argument("--no-pipeline", action="store_true", help="Do not follow downstream jobs")

    follow = subparsers.add_parser("follow", help="Follow a job that is already queued")
    follow.add_argument("--queue-url", required=True, help="Queue item location returned by Jenkins")
    follow.add_argument("--no-pipeline", action="store_true", help="Do not follow downstream jobs")

    subparsers.add_parser("check", help="Validate the config and show the queue URL")
    return parser


def _apply_overrides(config: AppConfig, *, no_console: bool = False, no_pipeline: bool = False) -> AppConfig:
    console = config.capture.console and not no_console
    config.capture = CaptureConfig(
        console=console,
        pipeline=console and config.capture.pipeline and not no_pipeline,
    )
    return config


def write_summary(outcome: RunOutcome, summary_dir: Path, logger: logging.Logger) -> Path | None:
    summary_path = summary_dir / summary_filename(outcome.report)
    try:
        summary_path.write_text(render_markdown(outcome.report), encoding="utf-8")
    except OSError as exc:
        # a missing summary never fails the run
        log_with_fields(logger, logging.WARNING, "summary_write_failed", path=str(summary_path), error=str(exc))
        return None
    log_with_fields(logger, logging.INFO, "summary_written", path=str(summary_path))
    return summary_path


def _follow(config: AppConfig, client: JenkinsClient, queue_location: str, logger: logging.Logger) -> int:
    item = wait_for_execution(client, queue_location, config.poll.interval_seconds, logger)
    job_queue = JobQueue(client, config.capture, config.poll, logger)
    outcome = job_queue.track(item)
    if config.paths.summary_dir is not None:
        write_summary(outcome, config.paths.summary_dir, logger)
    print(outcome.message, file=sys.stderr)
    return 0 if outcome.succeeded else 1


def cmd_run(config: AppConfig, logger: logging.Logger, queue_location: str | None = None) -> int:
    client = JenkinsClient(config.server)
    try:
        if queue_location is None:
            queue_location = queue_job(client, config, logger)
        return _follow(config, client, queue_location, logger)
    except JobCancelledError as exc:
        log_with_fields(logger, logging.ERROR, "job_cancelled", error=str(exc))
        return 1
    except RemoteError as exc:
        log_with_fields(logger, logging.ERROR, "run_failed", error=str(exc))
        return 1
    except KeyboardInterrupt:
        log_with_fields(logger, logging.INFO, "shutdown", reason="keyboard_interrupt")
        return 130
    finally:
        client.close()


def cmd_check(config: AppConfig) -> int:
    print(f"job:      {config.job.name}")
    print(f"queue:    {config.queue_url}")
    print(f"console:  {config.capture.console}")
    print(f"pipeline: {config.capture.pipeline}")
    if config.job.parameterized:
        for name, value in sorted(config.job.parameters.items()):
            print(f"  {name}={value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"invalid config: {exc}", file=sys.stderr)
        return 2

    if args.command == "check":
        return cmd_check(config)

    ensure_local_paths(config)
    logger = setup_logger(config.paths.log, verbose=args.verbose)
    if args.command == "run":
        _apply_overrides(config, no_console=args.no_console, no_pipeline=args.no_pipeline)
        return cmd_run(config, logger)
    if args.command == "follow":
        _apply_overrides(config, no_pipeline=args.no_pipeline)
        return cmd_run(config, logger, queue_location=args.queue_url)
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
