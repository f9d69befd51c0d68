from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from src.client.api import TaskTrackerClient

logger = logging.getLogger(__name__)

FILTERS = ("all", "pending", "completed")


@dataclass(frozen=True)
class TaskStats:
    total: int
    completed: int
    pending: int
    completion_rate: int  # percent, rounded


class Dashboard:
    """
    Client-side task list state.

    The server does not store completion, so `completed` lives here, keyed
    by task id, and survives `reload()`. Callers that want it to survive the
    process pass the ids in and read `completed_ids` back out.
    """

    def __init__(self, client: TaskTrackerClient, completed_ids: Iterable[int] = ()) -> None:
        self.client = client
        self.tasks: List[Dict[str, Any]] = []
        self.completed_ids: Set[int] = set(completed_ids)
        self.search = ""
        self.filter = "all"

    # ---- loading ----

    def reload(self) -> List[Dict[str, Any]]:
        rows = self.client.fetch_tasks()
        known = {row["id"] for row in rows}
        self.completed_ids &= known
        self.tasks = [self._with_completed(row) for row in rows]
        return self.tasks

    def _with_completed(self, row: Dict[str, Any]) -> Dict[str, Any]:
        task = dict(row)
        task["completed"] = task["id"] in self.completed_ids
        return task

    # ---- view ----

    def set_filter(self, name: str) -> None:
        if name not in FILTERS:
            raise ValueError(f"Unknown filter {name!r}; expected one of {', '.join(FILTERS)}")
        self.filter = name

    def visible_tasks(self) -> List[Dict[str, Any]]:
        needle = self.search.lower()
        out = []
        for task in self.tasks:
            matches = needle in task["title"].lower() or needle in (task.get("description") or "").lower()
            if not matches:
                continue
            if self.filter == "pending" and task["completed"]:
                continue
            if self.filter == "completed" and not task["completed"]:
                continue
            out.append(task)
        return out

    def stats(self) -> TaskStats:
        total = len(self.tasks)
        completed = sum(1 for t in self.tasks if t["completed"])
        rate = 0 if total == 0 else round(completed / total * 100)
        return TaskStats(total=total, completed=completed, pending=total - completed, completion_rate=rate)

    def find(self, task_id: int) -> Optional[Dict[str, Any]]:
        for task in self.tasks:
            if task["id"] == task_id:
                return task
        return None

    # ---- mutations ----

    def save_task(
        self, title: str, description: Optional[str] = None, task_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Create a task, or edit `task_id` when given, then reload the list.

        Edits always send the full task: a `description` of None keeps the
        current one.
        """
        if not title.strip():
            raise ValueError("Task title is required")
        if task_id is None:
            saved = self.client.add_task({"title": title, "description": description or ""})
        else:
            current = self.find(task_id)
            if current is None:
                raise ValueError(f"No task with id {task_id}")
            if description is None:
                description = current.get("description") or ""
            payload = {"title": title, "description": description, "completed": current["completed"]}
            saved = self.client.update_task(task_id, payload)
        self.reload()
        return saved

    def delete_task(self, task_id: int) -> None:
        self.client.delete_task(task_id)
        self.completed_ids.discard(task_id)
        self.reload()

    def toggle_completion(self, task_id: int) -> Dict[str, Any]:
        """
        Flip one task's completed flag.

        The full task is re-sent through update first so a task that was
        deleted or lost elsewhere surfaces as an error instead of a silent flip.
        """
        task = self.find(task_id)
        if task is None:
            raise ValueError(f"No task with id {task_id}")
        new_value = not task["completed"]
        self.client.update_task(
            task_id,
            {"title": task["title"], "description": task.get("description") or "", "completed": new_value},
        )
        if new_value:
            self.completed_ids.add(task_id)
        else:
            self.completed_ids.discard(task_id)
        task["completed"] = new_value
        return task

    def toggle_all(self) -> None:
        """Mark everything completed, or everything pending if it already all is."""
        all_done = all(t["completed"] for t in self.tasks)
        for task in self.tasks:
            task["completed"] = not all_done
        self.completed_ids = set() if all_done else {t["id"] for t in self.tasks}

    def clear_completed(self) -> int:
        """
        Delete every completed task on the server; returns how many went.

        Every delete is attempted even if some fail. The list is reloaded
        either way and the first failure is re-raised afterwards.
        """
        done = [t["id"] for t in self.tasks if t["completed"]]
        failures: List[Exception] = []
        cleared = 0
        try:
            for task_id in done:
                try:
                    self.client.delete_task(task_id)
                except Exception as exc:
                    logger.warning("Could not delete completed task id=%s: %s", task_id, exc)
                    failures.append(exc)
                    continue
                self.completed_ids.discard(task_id)
                cleared += 1
            if cleared:
                logger.info("Cleared %d completed task(s)", cleared)
        finally:
            self.reload()
        if failures:
            raise failures[0]
        return cleared
