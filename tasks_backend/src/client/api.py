from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from src.client.session import Session

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5000/api"


def default_api_url() -> str:
    return os.getenv("TASKTRACKER_API_URL", DEFAULT_API_URL).rstrip("/")


class ApiError(Exception):
    """A non-2xx response, decoded from the server's error envelope."""

    def __init__(
        self,
        status_code: int,
        kind: str,
        message: str,
        fields: Optional[List[Dict[str, str]]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind
        self.message = message
        self.fields = fields or []

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return cls(
                response.status_code,
                str(error.get("kind", "Error")),
                str(error.get("message", response.reason_phrase)),
                error.get("fields"),
            )
        return cls(response.status_code, "Error", response.reason_phrase or "Request failed")


class TaskTrackerClient:
    """
    HTTP glue between a `Session` and the Task Tracker API.

    Every request carries `Authorization: Bearer <token>` while the session
    has one. Any 401 clears the session (forced logout) before the error is
    raised, whichever call triggered it.

    `http` may be any httpx.Client; tests pass FastAPI's TestClient.
    """

    def __init__(
        self,
        session: Session,
        base_url: Optional[str] = None,
        *,
        http: Optional[httpx.Client] = None,
        prefix: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.session = session
        self._owns_http = http is None
        self._http = http or httpx.Client(
            base_url=base_url or default_api_url(),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        self._prefix = prefix.rstrip("/")

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "TaskTrackerClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ---- low-level ----

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        headers = {}
        token = self.session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = self._http.request(method, f"{self._prefix}{path}", json=json, headers=headers)
        if response.status_code == 401:
            logger.info("Got 401 on %s %s; clearing session", method, path)
            self.session.clear()
        if response.is_error:
            raise ApiError.from_response(response)
        return response.json()

    # ---- auth ----

    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/auth/register", {"name": name, "email": email, "password": password})
        self.session.set(data["user"], data["token"])
        return data["user"]

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/auth/login", {"email": email, "password": password})
        self.session.set(data["user"], data["token"])
        return data["user"]

    def logout(self) -> None:
        self.session.clear()

    def fetch_profile(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/profile")["user"]

    # ---- tasks ----

    def fetch_tasks(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/tasks")

    def add_task(self, task: Dict[str, Any]) -> Dict[str, Any]:
        if not str(task.get("title") or "").strip():
            raise ValueError("Task title is required")
        return self._request("POST", "/tasks", task)

    def update_task(self, task_id: Any, task: Dict[str, Any]) -> Dict[str, Any]:
        if task_id is None or task_id == "":
            raise ValueError("Task ID is required")
        return self._request("PUT", f"/tasks/{task_id}", task)

    def delete_task(self, task_id: Any) -> Dict[str, Any]:
        if task_id is None or task_id == "":
            raise ValueError("Task ID is required")
        return self._request("DELETE", f"/tasks/{task_id}")
