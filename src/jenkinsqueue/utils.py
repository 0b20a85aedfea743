from __future__ import annotations

from collections.abc import Iterable, Mapping
import re

PARAMETER_LINE_REGEX = re.compile(r"^([^=]+)=(.*)$", re.DOTALL)


def add_url_segment(base_url: str, segment: str) -> str:
    if base_url.endswith("/") and segment.startswith("/"):
        return base_url + segment[1:]
    if base_url.endswith("/") or segment.startswith("/"):
        return base_url + segment
    return f"{base_url}/{segment}"


def parse_job_parameters(lines: Iterable[str] | Mapping[str, object]) -> dict[str, str]:
    if isinstance(lines, Mapping):
        return {str(name): "" if value is None else str(value) for name, value in lines.items()}

    parameters: dict[str, str] = {}
    for line in lines:
        if not line.strip():
            continue
        match = PARAMETER_LINE_REGEX.match(line)
        if not match:
            raise ValueError(
                "Job parameters should be specified as `parameterName=parameterValue` "
                f"with one name, value pair per line. Invalid parameter line: {line}"
            )
        parameters[match.group(1)] = match.group(2)
    return parameters
