from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

UNKNOWN_BUILD_NUMBER = -1


class JobState(str, Enum):
    NEW = "new"
    LOCATING = "locating"
    STREAMING = "streaming"
    FINISHING = "finishing"
    DONE = "done"
    JOINED = "joined"
    QUEUED = "queued"
    LOST = "lost"


ACTIVE_STATES = frozenset({JobState.NEW, JobState.LOCATING, JobState.STREAMING, JobState.FINISHING})

# codes map to hudson.model.Result
RESULT_LABELS = {
    "SUCCESS": "Success",
    "UNSTABLE": "Unstable",
    "FAILURE": "Failure",
    "NOT_BUILT": "Not built",
    "ABORTED": "Aborted",
}
SUCCESSFUL_RESULTS = frozenset({"SUCCESS", "UNSTABLE"})


def describe_result(result_code: str) -> str:
    code = result_code.upper()
    return RESULT_LABELS.get(code, code)


def is_successful_result(result_code: str) -> bool:
    return result_code.upper() in SUCCESSFUL_RESULTS


@dataclass(slots=True, frozen=True)
class Cause:
    upstream_project: str | None
    upstream_build: int | None


@dataclass(slots=True)
class SearchCursor:
    initial_guess: int = UNKNOWN_BUILD_NUMBER
    next_guess: int = UNKNOWN_BUILD_NUMBER
    direction: int = -1

    def reset(self, initial_guess: int) -> None:
        self.initial_guess = initial_guess
        self.next_guess = initial_guess
        self.direction = -1

    def restart(self) -> None:
        self.next_guess = self.initial_guess
        self.direction = -1


@dataclass(slots=True, frozen=True)
class DownstreamProject:
    name: str
    url: str


@dataclass(slots=True)
class JobDefinition:
    in_queue: bool
    next_build_number: int
    last_build_number: int | None = None
    last_completed_build_number: int | None = None
    downstream_projects: list[DownstreamProject] = field(default_factory=list)

    @classmethod
    def from_json(cls, body: dict[str, Any]) -> JobDefinition:
        return cls(
            in_queue=bool(body.get("inQueue", False)),
            next_build_number=int(body.get("nextBuildNumber", 1)),
            last_build_number=_build_number(body.get("lastBuild")),
            last_completed_build_number=_build_number(body.get("lastCompletedBuild")),
            downstream_projects=[
                DownstreamProject(name=str(item["name"]), url=str(item["url"]))
                for item in body.get("downstreamProjects") or []
            ],
        )

    def initial_search_number(self) -> int:
        if self.in_queue or self.last_build_number is None:
            return self.next_build_number
        return self.last_build_number


@dataclass(slots=True)
class Execution:
    number: int
    url: str | None
    timestamp: int
    result: str | None
    causes: list[Cause] = field(default_factory=list)

    @classmethod
    def from_json(cls, body: dict[str, Any], number: int | None = None) -> Execution:
        causes: list[Cause] = []
        for action in body.get("actions") or []:
            if isinstance(action, dict) and action.get("causes"):
                causes = [
                    Cause(
                        upstream_project=item.get("upstreamProject"),
                        upstream_build=item.get("upstreamBuild"),
                    )
                    for item in action["causes"]
                ]
                break
        return cls(
            number=int(body.get("number", number if number is not None else UNKNOWN_BUILD_NUMBER)),
            url=body.get("url"),
            timestamp=int(body.get("timestamp", 0)),
            result=body.get("result") or None,
            causes=causes,
        )


@dataclass(slots=True)
class ConsoleChunk:
    text: str
    more_data: bool
    next_offset: int


@dataclass(slots=True)
class QueueItem:
    cancelled: bool
    executable_url: str | None = None
    executable_number: int | None = None
    task_url: str | None = None
    task_name: str | None = None

    @classmethod
    def from_json(cls, body: dict[str, Any]) -> QueueItem:
        # Jenkins spells it with two Ls; accept both
        cancelled = bool(body.get("cancelled") or body.get("canceled"))
        executable = body.get("executable") or {}
        task = body.get("task") or {}
        return cls(
            cancelled=cancelled,
            executable_url=executable.get("url"),
            executable_number=executable.get("number"),
            task_url=task.get("url"),
            task_name=task.get("name"),
        )

    @property
    def started(self) -> bool:
        return self.executable_number is not None


@dataclass(slots=True)
class RemoteResponse:
    status: int
    reason: str
    url: str
    payload: Any = None


@dataclass(slots=True)
class JobReport:
    name: str
    number: int
    url: str | None
    state: JobState
    result: str
    succeeded: bool
    children: list[JobReport] = field(default_factory=list)


@dataclass(slots=True)
class RunOutcome:
    succeeded: bool
    message: str
    report: JobReport


def _build_number(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, dict):
        number = value.get("number")
        return int(number) if number is not None else None
    return int(value)
