from __future__ import annotations

from collections.abc import Callable
import threading
from typing import Any

import requests

from .config import ServerConfig
from .models import ConsoleChunk, Execution, JobDefinition, QueueItem, RemoteResponse
from .utils import add_url_segment


class RemoteError(RuntimeError):
    pass


class TrackingError(RemoteError):
    def __init__(self, message: str, response: RemoteResponse) -> None:
        super().__init__(
            f"{message}\nstatus={response.status}\nreason={response.reason}\nurl={response.url}"
        )
        self.response = response


class JobCancelledError(RemoteError):
    pass


def require_ok(response: RemoteResponse, context: str, expected: int = 200) -> RemoteResponse:
    if response.status != expected:
        raise TrackingError(context, response)
    return response


class JenkinsClient:
    def __init__(
        self,
        server_config: ServerConfig,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.server_config = server_config
        self.session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        # requests.Session is not thread-safe; one per request worker
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            session.auth = self.server_config.auth
            session.verify = self.server_config.verify_tls
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.server_config.timeout_seconds, **kwargs)
        except requests.RequestException as exc:
            raise RemoteError(f"{method} {url} failed: {exc}") from exc

    def _get_json(self, url: str) -> tuple[requests.Response, Any]:
        response = self._request("GET", url)
        if response.status_code != 200:
            return response, None
        try:
            return response, response.json()
        except ValueError as exc:
            raise RemoteError(f"GET {url} returned invalid JSON: {exc}") from exc

    def get_definition(self, definition_url: str) -> RemoteResponse:
        url = add_url_segment(definition_url, "/api/json")
        response, body = self._get_json(url)
        payload = JobDefinition.from_json(body) if body is not None else None
        return RemoteResponse(response.status_code, response.reason, url, payload)

    def get_execution(self, definition_url: str, number: int) -> RemoteResponse:
        url = add_url_segment(definition_url, f"{number}/api/json")
        response, body = self._get_json(url)
        payload = Execution.from_json(body, number) if body is not None else None
        return RemoteResponse(response.status_code, response.reason, url, payload)

    def get_console(self, execution_url: str, offset: int) -> RemoteResponse:
        url = add_url_segment(execution_url, "/logText/progressiveText")
        response = self._request("GET", url, params={"start": offset})
        payload = None
        if response.status_code == 200:
            more_data = response.headers.get("X-More-Data", "").lower() == "true"
            text_size = response.headers.get("X-Text-Size")
            payload = ConsoleChunk(
                text=response.text,
                more_data=more_data,
                next_offset=int(text_size) if text_size else offset,
            )
        return RemoteResponse(response.status_code, response.reason, response.url or url, payload)

    def enqueue(self, queue_url: str, parameters: dict[str, str] | None = None) -> RemoteResponse:
        response = self._request("POST", queue_url, data=parameters)
        location = response.headers.get("Location") if response.status_code == 201 else None
        return RemoteResponse(response.status_code, response.reason, queue_url, location)

    def get_queue_item(self, queue_location: str) -> RemoteResponse:
        url = add_url_segment(queue_location, "api/json")
        response, body = self._get_json(url)
        payload = QueueItem.from_json(body) if body is not None else None
        return RemoteResponse(response.status_code, response.reason, url, payload)
