from __future__ import annotations

import pytest
from httpx import AsyncClient

from collabtask.security import create_access_token
from conftest import PASSWORD, etag_token, if_match, login, make_board, promote_admin, register, signup


@pytest.mark.anyio
async def test_register_login_and_me(client: AsyncClient) -> None:
  user_id = await register(client, "  Ada@Example.com ", "Ada Lovelace")
  res = await client.post("/auth/login", json={"email": "ada@example.com", "password": PASSWORD})
  assert res.status_code == 200, res.text
  token = res.json()
  assert token["tokenType"] == "bearer"
  assert token["expiresIn"] > 0

  me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token['accessToken']}"})
  assert me.status_code == 200, me.text
  assert me.json()["id"] == user_id
  assert me.json()["email"] == "ada@example.com"
  assert etag_token(me) == me.json()["rowVersion"]


@pytest.mark.anyio
async def test_register_validation_and_duplicates(client: AsyncClient) -> None:
  res = await client.post("/auth/register", json={"email": "nope", "name": "R2D2", "password": "short"})
  assert res.status_code == 400, res.text
  fields = {e["field"] for e in res.json()["detail"]["errors"]}
  assert fields == {"email", "name", "password"}

  await register(client, "ada@example.com", "Ada Lovelace")
  res = await client.post("/auth/register", json={"email": "ADA@example.com", "name": "Ada Again", "password": PASSWORD})
  assert res.status_code == 409, res.text


@pytest.mark.anyio
async def test_bad_credentials_and_tokens(client: AsyncClient) -> None:
  await register(client, "ada@example.com", "Ada Lovelace")
  res = await client.post("/auth/login", json={"email": "ada@example.com", "password": "Wrong!pass1"})
  assert res.status_code == 401

  assert (await client.get("/auth/me")).status_code == 401
  assert (await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})).status_code == 401
  ghost = create_access_token("00000000-0000-4000-8000-000000000000")
  assert (await client.get("/auth/me", headers={"Authorization": f"Bearer {ghost}"})).status_code == 401


@pytest.mark.anyio
async def test_rename_self_with_version(client: AsyncClient) -> None:
  user_id, h = await signup(client, "ada@example.com", "Ada Lovelace")
  other_id, _ = await signup(client, "bob@example.com", "Bob Builder")
  me = await client.get("/auth/me", headers=h)

  res = await client.patch(f"/users/{user_id}", json={"name": "Ada King"}, headers={**h, **if_match(etag_token(me))})
  assert res.status_code == 204, res.text
  res = await client.patch(f"/users/{user_id}", json={"name": "Ada Byron"}, headers={**h, **if_match(etag_token(me))})
  assert res.status_code == 409, res.text

  res = await client.patch(f"/users/{other_id}", json={"name": "Bob Hacked"}, headers={**h, "If-Match": "*"})
  assert res.status_code == 403, res.text


@pytest.mark.anyio
async def test_admin_manages_users(client: AsyncClient) -> None:
  admin_id, _ = await signup(client, "admin@example.com", "Ann Admin")
  await promote_admin(admin_id)
  admin = await login(client, "admin@example.com")
  user_id, user = await signup(client, "bob@example.com", "Bob Builder")
  busy_id, busy = await signup(client, "busy@example.com", "Busy Bee")
  await make_board(client, busy)

  assert (await client.get("/users", headers=user)).status_code == 403
  listed = await client.get("/users", headers=admin)
  assert {u["email"] for u in listed.json()} == {"admin@example.com", "bob@example.com", "busy@example.com"}

  bob = await client.get(f"/users/{user_id}", headers=admin)
  res = await client.put(f"/users/{user_id}/role", json={"role": "admin"}, headers={**admin, **if_match(bob.json()["rowVersion"])})
  assert res.status_code == 204, res.text
  res = await client.put(f"/users/{user_id}/role", json={"role": "root"}, headers={**admin, **if_match(etag_token(res))})
  assert res.status_code == 400, res.text

  # Still referenced by a project it owns.
  busy_row = await client.get(f"/users/{busy_id}", headers=admin)
  res = await client.delete(f"/users/{busy_id}", headers={**admin, **if_match(busy_row.json()["rowVersion"])})
  assert res.status_code == 409, res.text
  assert res.json()["currentVersion"] == busy_row.json()["rowVersion"]

  res = await client.delete(f"/users/{admin_id}", headers={**admin, "If-Match": "*"})
  assert res.status_code == 400, res.text

  bob = await client.get(f"/users/{user_id}", headers=admin)
  res = await client.delete(f"/users/{user_id}", headers={**admin, **if_match(bob.json()["rowVersion"])})
  assert res.status_code == 204, res.text
  res = await client.delete(f"/users/{user_id}", headers={**admin, **if_match(bob.json()["rowVersion"])})
  assert res.status_code == 200, res.text
