"""
`tasktracker` command line client.

Keeps the session (token + user) in ~/.tasktracker/session.json and the
locally tracked completed task ids beside it.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx

from src.client.api import ApiError, TaskTrackerClient, default_api_url
from src.client.dashboard import FILTERS, Dashboard
from src.client.session import Session, SessionState

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path("~/.tasktracker")


def _load_completed(path: Path) -> List[int]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return []
    return [i for i in data if isinstance(i, int)] if isinstance(data, list) else []


def _save_completed(path: Path, ids) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(sorted(ids)), encoding="utf-8")


def _print_dashboard(dash: Dashboard, out) -> None:
    stats = dash.stats()
    print(
        f"Total: {stats.total}  Completed: {stats.completed}  "
        f"Pending: {stats.pending}  ({stats.completion_rate}% completed)",
        file=out,
    )
    tasks = dash.visible_tasks()
    if not tasks:
        print("No tasks.", file=out)
        return
    for task in tasks:
        mark = "x" if task["completed"] else " "
        line = f"[{mark}] {task['id']:>4}  {task['title']}"
        if task.get("description"):
            line += f"  - {task['description']}"
        print(line, file=out)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tasktracker", description="Task Tracker command line client")
    p.add_argument("--api-url", default=None, help=f"API base URL (default {default_api_url()})")
    p.add_argument("--home", default=str(DEFAULT_HOME), help="Where session files are kept")
    sub = p.add_subparsers(dest="command", required=True)

    reg = sub.add_parser("register", help="Create an account and log in")
    reg.add_argument("name")
    reg.add_argument("email")
    reg.add_argument("--password")

    login = sub.add_parser("login", help="Log in")
    login.add_argument("email")
    login.add_argument("--password")

    sub.add_parser("logout", help="Forget the stored session")
    sub.add_parser("profile", help="Show the logged-in user")

    ls = sub.add_parser("list", help="Show the dashboard")
    ls.add_argument("--search", default="")
    ls.add_argument("--filter", choices=FILTERS, default="all")

    add = sub.add_parser("add", help="Add a task")
    add.add_argument("title")
    add.add_argument("--description", default="")

    edit = sub.add_parser("edit", help="Replace a task's title and description")
    edit.add_argument("id", type=int)
    edit.add_argument("title")
    edit.add_argument("--description", default=None, help="Keep the current description when omitted")

    rm = sub.add_parser("delete", help="Delete a task")
    rm.add_argument("id", type=int)

    done = sub.add_parser("done", help="Toggle a task's completed flag")
    done.add_argument("id", type=int)

    sub.add_parser("toggle-all", help="Mark all completed (or all pending)")
    sub.add_parser("clear-completed", help="Delete all completed tasks")
    return p


def _password(args) -> str:
    return args.password if args.password is not None else getpass.getpass("Password: ")


def run_command(args: argparse.Namespace, client: TaskTrackerClient, completed_path: Path, out=None) -> int:
    out = out or sys.stdout
    session = client.session

    if args.command == "register":
        user = client.register(args.name, args.email, _password(args))
        print(f"Registered and logged in as {user['name']} <{user['email']}>", file=out)
        return 0
    if args.command == "login":
        user = client.login(args.email, _password(args))
        print(f"Logged in as {user['name']} <{user['email']}>", file=out)
        return 0
    if args.command == "logout":
        client.logout()
        completed_path.unlink(missing_ok=True)
        print("Logged out.", file=out)
        return 0

    if not session.is_authenticated:
        print("Please log in first.", file=out)
        return 1

    if args.command == "profile":
        user = client.fetch_profile()
        print(f"{user['name']} <{user['email']}> (id {user['id']})", file=out)
        return 0

    dash = Dashboard(client, completed_ids=_load_completed(completed_path))
    dash.reload()

    handlers: Dict[str, Callable[[], None]] = {
        "list": lambda: None,
        "add": lambda: dash.save_task(args.title, args.description),
        "edit": lambda: dash.save_task(args.title, args.description, task_id=args.id),
        "delete": lambda: dash.delete_task(args.id),
        "done": lambda: dash.toggle_completion(args.id),
        "toggle-all": dash.toggle_all,
        "clear-completed": dash.clear_completed,
    }
    handlers[args.command]()

    if args.command == "list":
        dash.search = args.search
        dash.set_filter(args.filter)
    _save_completed(completed_path, dash.completed_ids)
    _print_dashboard(dash, out=out)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    home = Path(args.home).expanduser()
    session = Session(home / "session.json")

    def on_change(state: SessionState) -> None:
        if not state.is_authenticated and args.command not in ("logout",):
            print("Session expired, please log in again.", file=sys.stderr)

    session.subscribe(on_change)

    with TaskTrackerClient(session, base_url=args.api_url) as client:
        try:
            return run_command(args, client, home / "completed.json")
        except ApiError as exc:
            print(f"Error ({exc.kind}): {exc.message}", file=sys.stderr)
            for f in exc.fields:
                print(f"  {f.get('field')}: {f.get('message')}", file=sys.stderr)
            return 1
        except ValueError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        except httpx.HTTPError as exc:
            print(f"Cannot reach API: {exc}", file=sys.stderr)
            return 2


if __name__ == "__main__":
    sys.exit(main())
