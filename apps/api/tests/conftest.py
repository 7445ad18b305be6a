from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, update

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault(
  "DATABASE_URL",
  f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'collabtask_test.db'}",
)
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collabtask.config import settings
from collabtask.db import SessionLocal, create_schema, engine
from collabtask.main import app
from collabtask.metrics import runtime_metrics
from collabtask.models import Base, User, UserRole

PASSWORD = "Sup3r!secret"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  await create_schema()
  async with SessionLocal() as db:
    for table in reversed(Base.metadata.sorted_tables):
      await db.execute(delete(table))
    await db.commit()
  await engine.dispose()


@pytest.fixture
async def clean_db() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. collabtask_test)."
    )
  await _reset_db()
  runtime_metrics.reset()
  yield
  await _reset_db()


@pytest.fixture
async def client(clean_db) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def register(client: AsyncClient, email: str, name: str = "Test User", password: str = PASSWORD) -> str:
  res = await client.post("/auth/register", json={"email": email, "name": name, "password": password})
  assert res.status_code == 201, res.text
  return res.json()["id"]


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> dict[str, str]:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  return {"Authorization": f"Bearer {res.json()['accessToken']}"}


async def signup(client: AsyncClient, email: str, name: str = "Test User") -> tuple[str, dict[str, str]]:
  user_id = await register(client, email, name)
  return user_id, await login(client, email)


async def promote_admin(user_id: str) -> None:
  async with SessionLocal() as db:
    await db.execute(update(User).where(User.id == user_id).values(role=UserRole.ADMIN.value))
    await db.commit()


def if_match(row_version: str) -> dict[str, str]:
  return {"If-Match": f'W/"{row_version}"'}


async def make_board(client: AsyncClient, headers: dict[str, str], name: str = "Launch Plan") -> dict[str, str]:
  """Project with one lane and one column; returns their ids."""
  p = await client.post("/projects", json={"name": name}, headers=headers)
  assert p.status_code == 201, p.text
  project_id = p.json()["id"]
  l = await client.post(f"/projects/{project_id}/lanes", json={"name": "Backlog"}, headers=headers)
  assert l.status_code == 201, l.text
  lane_id = l.json()["id"]
  c = await client.post(f"/lanes/{lane_id}/columns", json={"name": "Todo"}, headers=headers)
  assert c.status_code == 201, c.text
  return {"project": project_id, "lane": lane_id, "column": c.json()["id"]}


async def make_task(client: AsyncClient, headers: dict[str, str], column_id: str, title: str = "Write docs") -> dict:
  res = await client.post(
    f"/columns/{column_id}/tasks",
    json={"title": title, "description": "Initial description"},
    headers=headers,
  )
  assert res.status_code == 201, res.text
  return res.json()


def etag_token(res) -> str:
  """Base64 token out of a `W/"..."` ETag header."""
  return res.headers["etag"].split('"')[1]
