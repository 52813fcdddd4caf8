from __future__ import annotations

import re
from typing import Iterable

from tasklane.models import TaskStatus

# Canonical status -> (issue label, project board option name).
STATUS_TABLE: dict[TaskStatus, tuple[str, str]] = {
  TaskStatus.TODO: ("todo", "Todo"),
  TaskStatus.IN_PROGRESS: ("in-progress", "In Progress"),
  TaskStatus.IN_REVIEW: ("in-review", "In Review"),
  TaskStatus.DONE: ("done", "Done"),
  TaskStatus.BLOCKED: ("blocked", "Blocked"),
}

# When an issue carries several status labels, the first match here wins.
LABEL_PRECEDENCE: tuple[TaskStatus, ...] = (
  TaskStatus.IN_PROGRESS,
  TaskStatus.IN_REVIEW,
  TaskStatus.BLOCKED,
  TaskStatus.DONE,
  TaskStatus.TODO,
)

_WS = re.compile(r"\s+")


def normalize_name(name: str) -> str:
  return _WS.sub(" ", (name or "").strip()).lower()


def coerce_status(status: TaskStatus | str) -> TaskStatus:
  if isinstance(status, TaskStatus):
    return status
  return TaskStatus(str(status).strip().upper())


def status_label(status: TaskStatus | str) -> str:
  return STATUS_TABLE[coerce_status(status)][0]


def project_option_name(status: TaskStatus | str) -> str:
  return STATUS_TABLE[coerce_status(status)][1]


def all_status_labels() -> list[str]:
  return [label for label, _ in STATUS_TABLE.values()]


def resolve_status(name: str | None) -> TaskStatus | None:
  """Map an issue label or project option name back to a canonical status.

  Exact match first, then a lower-cased, whitespace-collapsed match.
  """
  if not name:
    return None
  for status, (label, option) in STATUS_TABLE.items():
    if name == label or name == option:
      return status
  key = normalize_name(name)
  if not key:
    return None
  for status, (label, option) in STATUS_TABLE.items():
    if key == normalize_name(label) or key == normalize_name(option):
      return status
  return None


def is_status_label(name: str | None) -> bool:
  return resolve_status(name) is not None


def issue_state_for(status: TaskStatus | str) -> str:
  return "closed" if coerce_status(status) == TaskStatus.DONE else "open"


def status_from_issue(state: str | None, labels: Iterable[str]) -> TaskStatus:
  """Derive a task status: labels override the open/closed flag."""
  found = {s for s in (resolve_status(label) for label in labels) if s is not None}
  for status in LABEL_PRECEDENCE:
    if status in found:
      return status
  return TaskStatus.DONE if (state or "").lower() == "closed" else TaskStatus.TODO
