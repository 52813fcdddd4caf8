from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tasklane_test.db")
os.environ.setdefault("GITHUB_WEBHOOK_SECRET", "test-webhook-secret")

from tasklane.config import settings
from tasklane.db import SessionLocal, engine
from tasklane.main import app
from tasklane.models import (
  Base,
  Board,
  BoardStatusColumn,
  Member,
  Organization,
  Task,
  TaskStatus,
  User,
)
from tasklane.security import encrypt_secret, token_hint

REPO = "acme/widgets"
DEFAULT_COLUMNS = (
  ("To do", TaskStatus.TODO),
  ("In progress", TaskStatus.IN_PROGRESS),
  ("In review", TaskStatus.IN_REVIEW),
  ("Done", TaskStatus.DONE),
  ("Blocked", TaskStatus.BLOCKED),
)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  await engine.dispose()


@pytest.fixture
async def db_reset() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. tasklane_test)."
    )
  await _reset_db()
  yield
  await engine.dispose()


@pytest.fixture
async def client(db_reset) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://test") as c:
    yield c


async def seed_board(
  *,
  sync: bool = True,
  repo: str | None = REPO,
  project_id: int | None = None,
  token: str | None = "ghp_testtoken123",
  columns: tuple = DEFAULT_COLUMNS,
) -> dict[str, str]:
  async with SessionLocal() as db:
    org = Organization(name="Acme")
    db.add(org)
    await db.flush()
    board = Board(
      organization_id=org.id,
      name="Widgets",
      github_sync_enabled=sync,
      github_access_token_encrypted=encrypt_secret(token) if token else None,
      github_token_hint=token_hint(token or ""),
      github_repo_name=repo,
      github_project_id=project_id,
    )
    db.add(board)
    await db.flush()
    out = {"organization_id": org.id, "board_id": board.id}
    for pos, (name, st) in enumerate(columns):
      col = BoardStatusColumn(board_id=board.id, name=name, status=st.value, position=pos)
      db.add(col)
      await db.flush()
      out[f"column_{st.value}"] = col.id
    await db.commit()
    return out


async def seed_member(organization_id: str, *, email: str, github_username: str | None) -> str:
  async with SessionLocal() as db:
    u = User(email=email, name=email.split("@", 1)[0], github_username=github_username)
    db.add(u)
    await db.flush()
    m = Member(organization_id=organization_id, user_id=u.id)
    db.add(m)
    await db.commit()
    return m.id


async def seed_task(
  board_id: str,
  *,
  title: str = "Ship it",
  description: str | None = "Body",
  status: TaskStatus = TaskStatus.TODO,
  issue_number: int | None = None,
  assignee_id: str | None = None,
) -> str:
  async with SessionLocal() as db:
    t = Task(
      board_id=board_id,
      title=title,
      description=description,
      status=status.value,
      github_issue_number=issue_number,
      assignee_id=assignee_id,
    )
    db.add(t)
    await db.commit()
    return t.id


async def load_task(task_id: str) -> Task | None:
  async with SessionLocal() as db:
    return await db.get(Task, task_id)
