from __future__ import annotations

import asyncio
import os
import secrets

from sqlalchemy import select

from collabtask.concurrency.tokens import new_version_token
from collabtask.db import SessionLocal, create_schema
from collabtask.logging_config import get_logger
from collabtask.models import User, UserRole, new_id
from collabtask.security import hash_password
from collabtask.services.users import normalize_email

logger = get_logger(__name__)


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def seed() -> None:
  """Ensure a system admin exists. Idempotent by email."""
  admin_email = normalize_email(os.getenv("SEED_ADMIN_EMAIL") or "admin@collabtask.local")
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == admin_email))
    if res.scalar_one_or_none():
      return
    admin_password, generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    db.add(
      User(
        id=new_id(),
        email=admin_email,
        name="Admin",
        role=UserRole.ADMIN.value,
        password_hash=hash_password(admin_password),
        row_version=new_version_token(),
      )
    )
    await db.commit()
    if generated:
      logger.warning("seed_admin_created", email=admin_email, password=admin_password, generated=True)
    else:
      logger.info("seed_admin_created", email=admin_email, generated=False)


async def main() -> None:
  await create_schema()
  await seed()


if __name__ == "__main__":
  asyncio.run(main())
