from __future__ import annotations

import httpx
import pytest

from tasklane import main
from tasklane.config import settings
from tasklane.github import importer, outbound
from tasklane.models import TaskStatus
from tasklane.routers import github as github_router
from tests.conftest import load_task, seed_board, seed_task
from tests.github_fake import FakeGitHub

pytestmark = pytest.mark.anyio


@pytest.fixture
def gh(monkeypatch) -> FakeGitHub:
  fake = FakeGitHub()
  for module in (outbound, importer, github_router):
    monkeypatch.setattr(module, "client_for_board", lambda board: fake)
  return fake


async def test_health(client) -> None:
  r = await client.get("/health")
  assert r.status_code == 200
  assert r.json() == {"ok": True}


async def test_board_github_settings_roundtrip(client) -> None:
  ids = await seed_board(sync=False, repo=None, token=None)
  board_id = ids["board_id"]

  r = await client.get(f"/boards/{board_id}/github")
  assert r.status_code == 200
  assert r.json()["active"] is False
  assert r.json()["tokenConfigured"] is False

  r = await client.patch(f"/boards/{board_id}/github", json={"enabled": True, "repoName": "acme/widgets"})
  assert r.status_code == 400

  r = await client.patch(
    f"/boards/{board_id}/github",
    json={"enabled": True, "repoName": "acme/widgets", "projectId": 4, "accessToken": "ghp_abcdef123456"},
  )
  assert r.status_code == 200, r.text
  data = r.json()
  assert data["active"] is True
  assert data["tokenConfigured"] is True
  assert data["tokenHint"] == "…123456"
  assert "accessToken" not in data
  assert data["projectId"] == 4

  r = await client.get("/audit", params={"boardId": board_id, "eventType": "board.github.updated"})
  assert len(r.json()) == 1
  assert "ghp_abcdef123456" not in str(r.json())


@pytest.mark.parametrize("body", [{"repoName": "not a repo"}, {"repoName": "acme/widgets/extra"}, {"projectId": 0}])
async def test_board_github_settings_validation(client, body: dict) -> None:
  ids = await seed_board()
  r = await client.patch(f"/boards/{ids['board_id']}/github", json=body)
  assert r.status_code == 422


async def test_task_update_pushes_to_github(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], issue_number=5)
  gh.add_issue(5, labels=["todo"])
  gh.repo_labels.add("in-progress")

  r = await client.patch(f"/tasks/{task_id}", json={"version": 0, "status": "in progress", "title": "Renamed"})

  assert r.status_code == 200, r.text
  assert r.json()["status"] == TaskStatus.IN_PROGRESS.value
  assert r.json()["statusColumnId"] == ids["column_IN_PROGRESS"]
  assert gh.labels(5) == {"in-progress"}
  assert gh.issues[5]["title"] == "Renamed"

  r = await client.get("/audit", params={"taskId": task_id, "eventType": "task.github.pushed"})
  assert r.json()[0]["payload"]["outcome"] == "success"


async def test_stale_version_is_rejected_without_push(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], issue_number=5)
  gh.add_issue(5, labels=["todo"])

  r = await client.patch(f"/tasks/{task_id}", json={"version": 3, "title": "Nope"})

  assert r.status_code == 409
  assert gh.calls == []


async def test_move_to_done_closes_issue(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], issue_number=6)
  gh.add_issue(6, labels=["todo"])

  r = await client.post(f"/tasks/{task_id}/move", json={"statusColumnId": ids["column_DONE"], "version": 0})

  assert r.status_code == 200, r.text
  assert r.json()["status"] == TaskStatus.DONE.value
  assert gh.issues[6]["state"] == "closed"
  assert gh.labels(6) == {"done"}


async def test_created_task_opens_an_issue(client, gh: FakeGitHub) -> None:
  ids = await seed_board()

  r = await client.post(f"/boards/{ids['board_id']}/tasks", json={"title": "Write docs", "status": "IN_REVIEW"})

  assert r.status_code == 200, r.text
  task = await load_task(r.json()["id"])
  assert task.github_issue_number == 1
  assert gh.issues[1]["title"] == "Write docs"
  assert gh.labels(1) == {"in-review"}


async def test_tasks_on_unsynced_boards_never_reach_github(client, gh: FakeGitHub) -> None:
  ids = await seed_board(sync=False)

  r = await client.post(f"/boards/{ids['board_id']}/tasks", json={"title": "Local only"})
  assert r.status_code == 200
  r = await client.patch(f"/tasks/{r.json()['id']}", json={"version": 0, "status": "DONE"})
  assert r.status_code == 200

  assert gh.calls == []


async def test_manual_push_returns_the_result(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], status=TaskStatus.BLOCKED, issue_number=8)
  gh.add_issue(8, labels=["todo"])

  r = await client.post(f"/tasks/{task_id}/github/push")

  assert r.status_code == 200, r.text
  data = r.json()
  assert data["outcome"] == "success"
  assert data["steps"]["labels"] == "success"
  assert gh.labels(8) == {"blocked"}


async def test_manual_push_of_deleted_issue_reports_failure(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], issue_number=77)

  r = await client.post(f"/tasks/{task_id}/github/push")

  assert r.status_code == 200
  assert r.json()["outcome"] == "failed"



async def test_manual_push_survives_a_timeout(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], title="After timeout", issue_number=9)
  gh.add_issue(9, labels=["in-review"])
  gh.fail["remove_label"] = httpx.ReadTimeout("timed out")

  r = await client.post(f"/tasks/{task_id}/github/push")

  assert r.status_code == 200, r.text
  data = r.json()
  assert data["outcome"] == "failed"
  assert data["steps"]["labels"] == "failed"
  assert data["steps"]["issue"] == "success"
  assert gh.issues[9]["title"] == "After timeout"


async def test_delete_leaves_the_issue(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  task_id = await seed_task(ids["board_id"], issue_number=2)
  gh.add_issue(2)

  r = await client.delete(f"/tasks/{task_id}")

  assert r.status_code == 200
  assert await load_task(task_id) is None
  assert 2 in gh.issues
  assert gh.calls == []
  history = (await client.get("/audit", params={"taskId": task_id})).json()
  assert [h["eventType"] for h in history] == ["task.deleted"]


async def test_sync_from_github_imports_issues(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  gh.add_issue(1, title="One", labels=["in-progress"])
  gh.add_issue(2, title="PR", pull_request=True)
  gh.add_issue(3, title="Three", state="closed")

  r = await client.post("/github/sync", json={"boardId": ids["board_id"], "direction": "from-github"})

  assert r.status_code == 200, r.text
  assert r.json()["imported"] == 2
  tasks = (await client.get(f"/boards/{ids['board_id']}/tasks")).json()
  assert sorted((t["githubIssueNumber"], t["status"]) for t in tasks) == [(1, "IN_PROGRESS"), (3, "DONE")]
  assert gh.mutating_calls() == []


async def test_sync_to_github_pushes_and_creates(client, gh: FakeGitHub) -> None:
  ids = await seed_board()
  linked = await seed_task(ids["board_id"], title="Linked", issue_number=2)
  unlinked = await seed_task(ids["board_id"], title="Unlinked")
  gh.add_issue(2, labels=["todo"])

  r = await client.post("/github/sync", json={"boardId": ids["board_id"], "direction": "to-github"})

  assert r.status_code == 200, r.text
  data = r.json()
  assert [p["taskId"] for p in data["pushed"]] == [linked]
  assert [c["taskId"] for c in data["created"]] == [unlinked]
  assert data["created"][0]["issueNumber"] == 3
  assert gh.issues[3]["title"] == "Unlinked"
  assert gh.issues[2]["title"] == "Linked"


async def test_sync_requires_configured_board(client, gh: FakeGitHub) -> None:
  ids = await seed_board(token=None)

  r = await client.post("/github/sync", json={"boardId": ids["board_id"]})

  assert r.status_code == 400
  assert gh.calls == []


async def test_audit_filters(client) -> None:
  ids = await seed_board(sync=False)
  await client.post(f"/boards/{ids['board_id']}/tasks", json={"title": "A"})
  await client.post(f"/boards/{ids['board_id']}/tasks", json={"title": "B"})

  r = await client.get("/audit", params={"boardId": ids["board_id"], "eventType": "task.created", "limit": 1})

  assert r.status_code == 200
  assert len(r.json()) == 1
  assert r.json()[0]["eventType"] == "task.created"


async def test_run_serves_the_app_with_configured_host_and_port(monkeypatch) -> None:
  import uvicorn

  seen: dict = {}
  monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: seen.update(app=app, **kwargs))

  main.run()

  assert seen["app"] == "tasklane.main:app"
  assert (seen["host"], seen["port"]) == (settings.api_host, settings.api_port)
