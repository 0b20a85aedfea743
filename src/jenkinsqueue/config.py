from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path

import yaml

from .utils import add_url_segment, parse_job_parameters


@dataclass(slots=True)
class ServerConfig:
    url: str
    username: str | None = None
    password: str | None = None
    timeout_seconds: float = 30.0
    verify_tls: bool = True

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.username is None:
            return None
        return (self.username, self.password or "")


@dataclass(slots=True)
class JobConfig:
    name: str
    parameterized: bool = False
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CaptureConfig:
    console: bool = True
    pipeline: bool = True


@dataclass(slots=True)
class PollConfig:
    # five seconds is what the Jenkins web UI uses
    interval_seconds: float = 5.0
    tick_seconds: float = 0.01


@dataclass(slots=True)
class PathsConfig:
    log: Path | None = None
    summary_dir: Path | None = None


@dataclass(slots=True)
class AppConfig:
    server: ServerConfig
    job: JobConfig
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    @property
    def job_url(self) -> str:
        return add_url_segment(self.server.url, f"/job/{self.job.name}")

    @property
    def queue_url(self) -> str:
        segment = "/buildWithParameters?delay=0sec" if self.job.parameterized else "/build?delay=0sec"
        return add_url_segment(self.job_url, segment)


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _section(raw: dict, key: str, *, required: bool = False) -> dict:
    value = _require(raw, key, "root") if required else raw.get(key, {})
    if value is None:
        value = {}
    if not isinstance(value, dict):
        raise ValueError(f"`{key}` must be a mapping")
    return value


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    server_raw = _section(raw, "server", required=True)
    job_raw = _section(raw, "job", required=True)
    capture_raw = _section(raw, "capture")
    poll_raw = _section(raw, "poll")
    paths_raw = _section(raw, "paths")

    password = server_raw.get("password")
    password_env = server_raw.get("password_env")
    if password_env:
        password = os.environ.get(str(password_env), password)

    username = server_raw.get("username")
    server = ServerConfig(
        url=str(_require(server_raw, "url", "server")),
        username=str(username) if username is not None else None,
        password=str(password) if password is not None else None,
        timeout_seconds=float(server_raw.get("timeout_seconds", 30)),
        verify_tls=bool(server_raw.get("verify_tls", True)),
    )
    if not server.url.startswith(("http://", "https://")):
        raise ValueError("`server.url` must be an http(s) URL")
    if server.timeout_seconds <= 0:
        raise ValueError("`server.timeout_seconds` must be > 0")

    parameters_raw = job_raw.get("parameters") or []
    if not isinstance(parameters_raw, (list, dict)):
        raise ValueError("`job.parameters` must be a list of NAME=value lines or a mapping")
    job = JobConfig(
        name=str(_require(job_raw, "name", "job")),
        parameterized=bool(job_raw.get("parameterized", False)),
        parameters=parse_job_parameters(
            parameters_raw if isinstance(parameters_raw, dict) else [str(item) for item in parameters_raw]
        ),
    )
    if not job.name.strip():
        raise ValueError("`job.name` must not be empty")

    console = bool(capture_raw.get("console", True))
    capture = CaptureConfig(
        console=console,
        # pipeline tracking needs the console stream to locate downstream builds
        pipeline=console and bool(capture_raw.get("pipeline", True)),
    )

    poll = PollConfig(
        interval_seconds=float(poll_raw.get("interval_seconds", 5)),
        tick_seconds=float(poll_raw.get("tick_seconds", 0.01)),
    )
    if poll.interval_seconds < 0:
        raise ValueError("`poll.interval_seconds` must be >= 0")
    if poll.tick_seconds <= 0:
        raise ValueError("`poll.tick_seconds` must be > 0")

    def to_path(key: str) -> Path | None:
        value = paths_raw.get(key)
        if value is None:
            return None
        output = Path(str(value)).expanduser()
        if not output.is_absolute():
            output = config_path.parent / output
        return output

    paths = PathsConfig(log=to_path("log"), summary_dir=to_path("summary_dir"))

    return AppConfig(server=server, job=job, capture=capture, poll=poll, paths=paths)


def ensure_local_paths(config: AppConfig) -> None:
    if config.paths.log is not None:
        config.paths.log.parent.mkdir(parents=True, exist_ok=True)
    if config.paths.summary_dir is not None:
        config.paths.summary_dir.mkdir(parents=True, exist_ok=True)
