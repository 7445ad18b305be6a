from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import etag_token, if_match, make_board, make_task, signup


@pytest.mark.anyio
async def test_outsiders_and_readers_cannot_write(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com")
  reader_id, reader = await signup(client, "reader@example.com", "Rita Reader")
  _, outsider = await signup(client, "outsider@example.com", "Oscar Outsider")
  board = await make_board(client, owner)

  assert (await client.get(f"/projects/{board['project']}", headers=outsider)).status_code == 403

  add = await client.post(f"/projects/{board['project']}/members", json={"userId": reader_id, "role": "reader"}, headers=owner)
  assert add.status_code == 201, add.text
  assert add.json()["role"] == "reader"

  assert (await client.get(f"/projects/{board['project']}/lanes", headers=reader)).status_code == 200
  res = await client.post(f"/columns/{board['column']}/tasks", json={"title": "Nope", "description": "Readers only read"}, headers=reader)
  assert res.status_code == 403, res.text
  assert res.json()["detail"] == "Insufficient role"


@pytest.mark.anyio
async def test_member_role_change_and_soft_removal(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com")
  member_id, member = await signup(client, "member@example.com", "Mia Member")
  board = await make_board(client, owner)
  pid = board["project"]

  add = await client.post(f"/projects/{pid}/members", json={"userId": member_id}, headers=owner)
  assert add.status_code == 201, add.text
  v1 = add.json()["rowVersion"]

  res = await client.patch(f"/projects/{pid}/members/{member_id}", json={"role": "admin"}, headers={**owner, **if_match(v1)})
  assert res.status_code == 204, res.text
  v2 = etag_token(res)

  res = await client.post(f"/projects/{pid}/members/{member_id}/remove", headers={**owner, **if_match(v2)})
  assert res.status_code == 204, res.text
  v3 = etag_token(res)
  assert (await client.get(f"/projects/{pid}", headers=member)).status_code == 403

  listed = await client.get(f"/projects/{pid}/members", headers=owner)
  assert [m["userId"] for m in listed.json()] != [] and member_id not in [m["userId"] for m in listed.json()]
  with_removed = await client.get(f"/projects/{pid}/members", params={"include_removed": True}, headers=owner)
  removed = [m for m in with_removed.json() if m["userId"] == member_id][0]
  assert removed["removedAt"] is not None

  again = await client.post(f"/projects/{pid}/members/{member_id}/remove", headers={**owner, **if_match(v3)})
  assert again.status_code == 200, again.text

  res = await client.post(f"/projects/{pid}/members/{member_id}/restore", headers={**owner, **if_match(v3)})
  assert res.status_code == 204, res.text
  assert (await client.get(f"/projects/{pid}", headers=member)).status_code == 200


@pytest.mark.anyio
async def test_owner_membership_is_protected(client: AsyncClient) -> None:
  owner_id, owner = await signup(client, "owner@example.com")
  other_id, _ = await signup(client, "other@example.com", "Olga Other")
  board = await make_board(client, owner)
  pid = board["project"]

  members = (await client.get(f"/projects/{pid}/members", headers=owner)).json()
  mine = [m for m in members if m["userId"] == owner_id][0]
  assert mine["role"] == "owner"

  res = await client.post(f"/projects/{pid}/members/{owner_id}/remove", headers={**owner, **if_match(mine["rowVersion"])})
  assert res.status_code == 409, res.text
  res = await client.patch(f"/projects/{pid}/members/{owner_id}", json={"role": "reader"}, headers={**owner, **if_match(mine["rowVersion"])})
  assert res.status_code == 409, res.text

  res = await client.post(f"/projects/{pid}/members", json={"userId": other_id, "role": "owner"}, headers=owner)
  assert res.status_code == 400, res.text


@pytest.mark.anyio
async def test_member_can_leave_but_not_restore_self(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com")
  member_id, member = await signup(client, "member@example.com", "Mia Member")
  board = await make_board(client, owner)
  pid = board["project"]
  add = await client.post(f"/projects/{pid}/members", json={"userId": member_id}, headers=owner)

  res = await client.post(f"/projects/{pid}/members/{member_id}/remove", headers={**member, **if_match(add.json()["rowVersion"])})
  assert res.status_code == 204, res.text
  res = await client.post(f"/projects/{pid}/members/{member_id}/restore", headers={**member, **if_match(etag_token(res))})
  assert res.status_code == 403, res.text


@pytest.mark.anyio
async def test_adding_unknown_user_or_duplicate_member(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com")
  member_id, _ = await signup(client, "member@example.com", "Mia Member")
  board = await make_board(client, owner)
  pid = board["project"]

  res = await client.post(f"/projects/{pid}/members", json={"userId": "00000000-0000-4000-8000-000000000000"}, headers=owner)
  assert res.status_code == 404, res.text
  assert (await client.post(f"/projects/{pid}/members", json={"userId": member_id}, headers=owner)).status_code == 201
  res = await client.post(f"/projects/{pid}/members", json={"userId": member_id}, headers=owner)
  assert res.status_code == 409, res.text


@pytest.mark.anyio
async def test_plain_member_cannot_manage_members_or_delete_project(client: AsyncClient) -> None:
  _, owner = await signup(client, "owner@example.com")
  member_id, member = await signup(client, "member@example.com", "Mia Member")
  other_id, _ = await signup(client, "other@example.com", "Olga Other")
  board = await make_board(client, owner)
  pid = board["project"]
  await client.post(f"/projects/{pid}/members", json={"userId": member_id}, headers=owner)
  project = (await client.get(f"/projects/{pid}", headers=member)).json()

  res = await client.post(f"/projects/{pid}/members", json={"userId": other_id}, headers=member)
  assert res.status_code == 403, res.text
  res = await client.delete(f"/projects/{pid}", headers={**member, **if_match(project["rowVersion"])})
  assert res.status_code == 403, res.text

  task = await make_task(client, member, board["column"])
  assert task["projectId"] == pid
