from __future__ import annotations

import pytest

from tasklane.github.mapping import (
  all_status_labels,
  is_status_label,
  issue_state_for,
  project_option_name,
  resolve_status,
  status_from_issue,
  status_label,
)
from tasklane.models import TaskStatus


@pytest.mark.parametrize(
  "status,label,option",
  [
    (TaskStatus.TODO, "todo", "Todo"),
    (TaskStatus.IN_PROGRESS, "in-progress", "In Progress"),
    (TaskStatus.IN_REVIEW, "in-review", "In Review"),
    (TaskStatus.DONE, "done", "Done"),
    (TaskStatus.BLOCKED, "blocked", "Blocked"),
  ],
)
def test_table_maps_both_directions(status: TaskStatus, label: str, option: str) -> None:
  assert status_label(status) == label
  assert project_option_name(status) == option
  assert resolve_status(label) == status
  assert resolve_status(option) == status


def test_status_accepts_plain_strings() -> None:
  assert status_label("IN_PROGRESS") == "in-progress"
  assert project_option_name("done") == "Done"


def test_resolve_status_normalizes_case_and_whitespace() -> None:
  assert resolve_status("  IN   progress ") == TaskStatus.IN_PROGRESS
  assert resolve_status("In-Review") == TaskStatus.IN_REVIEW
  assert resolve_status("BLOCKED") == TaskStatus.BLOCKED


def test_resolve_status_unknown_is_none() -> None:
  assert resolve_status("bug") is None
  assert resolve_status("") is None
  assert resolve_status(None) is None
  assert not is_status_label("enhancement")
  assert is_status_label("Todo")


def test_all_status_labels_is_the_closed_set() -> None:
  assert sorted(all_status_labels()) == ["blocked", "done", "in-progress", "in-review", "todo"]


def test_issue_state_only_done_closes() -> None:
  assert issue_state_for(TaskStatus.DONE) == "closed"
  for s in (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW, TaskStatus.BLOCKED):
    assert issue_state_for(s) == "open"


def test_status_from_issue_defaults_from_state() -> None:
  assert status_from_issue("open", []) == TaskStatus.TODO
  assert status_from_issue("closed", ["bug"]) == TaskStatus.DONE


def test_labels_override_closed_state() -> None:
  assert status_from_issue("closed", ["blocked"]) == TaskStatus.BLOCKED
  assert status_from_issue("open", ["done"]) == TaskStatus.DONE


def test_several_status_labels_follow_precedence() -> None:
  assert status_from_issue("open", ["todo", "done", "in-progress"]) == TaskStatus.IN_PROGRESS
  assert status_from_issue("open", ["blocked", "in-review"]) == TaskStatus.IN_REVIEW
  assert status_from_issue("open", ["done", "blocked"]) == TaskStatus.BLOCKED
  assert status_from_issue("open", ["todo", "done"]) == TaskStatus.DONE
