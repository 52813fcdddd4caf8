from __future__ import annotations

import pytest

from tasklane.github.client import GitHubGraphQLError, graphql_url, split_repo_name
from tasklane.github.payloads import IssueSnapshot, RepositoryRef, issue_operation
from tasklane.github.project_sync import ProjectBoard, ProjectField
from tasklane.github.results import SyncOutcome, SyncResult
from tasklane.security import github_signature, verify_github_signature


def test_issue_snapshot_accepts_label_strings_and_objects() -> None:
  snap = IssueSnapshot.from_payload(
    {"number": "42", "title": "X", "state": "CLOSED", "labels": ["blocked", {"name": "bug"}, {"color": "fff"}, ""]}
  )
  assert snap.number == 42
  assert snap.state == "closed"
  assert snap.labels == ("blocked", "bug")
  assert snap.body == ""
  assert snap.assignee is None


def test_issue_snapshot_prefers_singular_assignee() -> None:
  snap = IssueSnapshot.from_payload(
    {"number": 1, "assignee": {"login": "alice"}, "assignees": [{"login": "bob"}, {"login": "alice"}]}
  )
  assert snap.assignee == "alice"
  assert snap.assignees == ("alice", "bob")


def test_issue_snapshot_falls_back_to_first_of_assignees() -> None:
  snap = IssueSnapshot.from_payload({"number": 1, "assignee": None, "assignees": ["carol", {"login": "dave"}]})
  assert snap.assignee == "carol"


def test_issue_snapshot_null_body_and_missing_title() -> None:
  snap = IssueSnapshot.from_payload({"number": 3, "body": None})
  assert snap.body == ""
  assert snap.title is None
  assert snap.state == "open"


def test_issue_snapshot_requires_number() -> None:
  with pytest.raises(ValueError):
    IssueSnapshot.from_payload({"title": "no number"})


@pytest.mark.parametrize(
  "payload",
  [
    {"owner": {"login": "acme"}, "name": "widgets"},
    {"owner": "acme", "name": "widgets"},
    {"full_name": "acme/widgets"},
  ],
)
def test_repository_ref_shapes(payload: dict) -> None:
  ref = RepositoryRef.from_payload(payload)
  assert (ref.owner, ref.name, ref.full_name) == ("acme", "widgets", "acme/widgets")


def test_repository_ref_rejects_incomplete() -> None:
  with pytest.raises(ValueError):
    RepositoryRef.from_payload({"name": "widgets"})


@pytest.mark.parametrize(
  "action,op",
  [
    ("opened", "create"),
    ("create", "create"),
    ("edited", "update"),
    ("closed", "update"),
    ("reopened", "update"),
    ("labeled", "update"),
    ("unassigned", "update"),
    ("update", "update"),
    ("transferred", None),
    ("deleted", None),
    (None, None),
  ],
)
def test_issue_operation(action, op) -> None:
  assert issue_operation(action) == op


def test_split_repo_name() -> None:
  assert split_repo_name("acme/widgets") == ("acme", "widgets")
  for bad in ("acme", "/widgets", "acme/", "a/b/c", ""):
    with pytest.raises(ValueError):
      split_repo_name(bad)


def test_graphql_url_for_enterprise_hosts() -> None:
  assert graphql_url("https://api.github.com") == "https://api.github.com/graphql"
  assert graphql_url("ghe.example.com/api/v3/") == "https://ghe.example.com/api/graphql"


def test_graphql_error_classification() -> None:
  nf = GitHubGraphQLError(errors=[{"type": "NOT_FOUND", "message": "Could not resolve to a User"}])
  assert nf.is_not_found and not nf.is_scope_error
  scope = GitHubGraphQLError(errors=[{"message": "The 'read:project' scope is required"}])
  assert scope.is_scope_error and not scope.is_not_found
  assert "read:project" in scope.message


def test_webhook_signature_roundtrip() -> None:
  body = b'{"action":"opened"}'
  sig = github_signature("s3cret", body)
  assert sig.startswith("sha256=")
  assert verify_github_signature("s3cret", body, sig)
  assert not verify_github_signature("other", body, sig)
  assert not verify_github_signature("s3cret", body, None)


def test_sync_result_marks_steps() -> None:
  r = SyncResult.success()
  r.step("labels", "success")
  r.step("assignees", "failed", "boom")
  assert r.failed_steps == ["assignees"]
  d = r.to_dict()
  assert d["outcome"] == SyncOutcome.SUCCESS.value
  assert d["log"][0]["level"] == "error"


def test_project_field_parses_option_shapes() -> None:
  listed = ProjectField.from_payload({"id": "F", "name": "Status", "options": [{"id": "a", "name": "Todo"}]})
  nested = ProjectField.from_payload({"id": "F", "name": "Status", "options": {"nodes": [{"id": "a", "name": "Todo"}]}})
  plain = ProjectField.from_payload({"id": "T", "name": "Title"})
  assert listed.option_for("todo").id == "a"
  assert nested.option_for("Todo").id == "a"
  assert plain is not None and not plain.is_single_select
  assert ProjectField.from_payload({}) is None


def test_project_board_ignores_text_field_named_status() -> None:
  board = ProjectBoard.from_payload(
    {
      "id": "PVT_1",
      "title": "Roadmap",
      "fields": {
        "nodes": [
          {"id": "F_text", "name": "Status"},
          {"id": "F_select", "name": "status", "options": [{"id": "o", "name": "Done"}]},
          {},
        ]
      },
    }
  )
  assert board.status_field().id == "F_select"
